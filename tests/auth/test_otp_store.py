"""Tests for OTP stores and the sweeper."""

import asyncio
import threading
from unittest.mock import Mock

import pytest

from auth.config import AuthConfig
from auth.exceptions import OtpExpiredError, OtpMismatchError, OtpNotFoundError
from auth.otp_store import (
    InMemoryOtpStore,
    OtpSweeper,
    ValkeyOtpStore,
    generate_code,
)
from clients.valkey_client import ValkeyClient


def _wrong(code: str) -> str:
    """A six-digit code guaranteed to differ from code."""
    return "100000" if code != "100000" else "100001"


class TestGenerateCode:
    """Code format."""

    def test_six_digits_in_range(self):
        for _ in range(200):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert 100000 <= int(code) <= 999999


class TestIssue:
    """Issuing codes."""

    def test_issue_stores_pending_entry(self, otp_store, clock):
        code = otp_store.issue("a@b.com")

        pending = otp_store.pending("a@b.com")
        assert pending is not None
        assert pending.code == code

    def test_expiry_is_ten_minutes(self, otp_store, clock):
        otp_store.issue("a@b.com")

        pending = otp_store.pending("a@b.com")
        assert (pending.expires_at - clock.now).total_seconds() == 600

    def test_new_issue_replaces_prior_code(self, otp_store):
        first = otp_store.issue("a@b.com")
        second = otp_store.issue("a@b.com")

        assert otp_store.pending("a@b.com").code == second
        if first != second:
            with pytest.raises(OtpMismatchError):
                otp_store.verify("a@b.com", first)


class TestVerify:
    """Verification lifecycle."""

    def test_correct_code_succeeds_exactly_once(self, otp_store):
        code = otp_store.issue("a@b.com")

        otp_store.verify("a@b.com", code)

        with pytest.raises(OtpNotFoundError):
            otp_store.verify("a@b.com", code)

    def test_unknown_email_not_found(self, otp_store):
        with pytest.raises(OtpNotFoundError):
            otp_store.verify("nobody@b.com", "123456")

    def test_mismatch_keeps_entry(self, otp_store):
        code = otp_store.issue("a@b.com")

        with pytest.raises(OtpMismatchError):
            otp_store.verify("a@b.com", _wrong(code))

        assert otp_store.pending("a@b.com") is not None
        otp_store.verify("a@b.com", code)

    def test_expired_code_raises_and_deletes(self, otp_store, clock):
        code = otp_store.issue("a@b.com")
        clock.advance(minutes=10, seconds=1)

        with pytest.raises(OtpExpiredError):
            otp_store.verify("a@b.com", code)

        assert otp_store.pending("a@b.com") is None

    def test_code_valid_right_at_expiry(self, otp_store, clock):
        code = otp_store.issue("a@b.com")
        clock.advance(minutes=10)

        otp_store.verify("a@b.com", code)

    def test_attempt_limit_discards_entry(self, clock):
        store = InMemoryOtpStore(AuthConfig(otp_max_attempts=3), clock=clock)
        code = store.issue("a@b.com")

        for _ in range(3):
            with pytest.raises(OtpMismatchError):
                store.verify("a@b.com", _wrong(code))

        with pytest.raises(OtpNotFoundError):
            store.verify("a@b.com", code)

    def test_emails_are_independent(self, otp_store):
        code_a = otp_store.issue("a@b.com")
        otp_store.issue("c@d.com")

        otp_store.verify("a@b.com", code_a)

        assert otp_store.pending("c@d.com") is not None

    def test_concurrent_verify_succeeds_once(self, otp_store):
        """Only one of many racing verifications of the same code wins."""
        code = otp_store.issue("race@b.com")
        results = []
        barrier = threading.Barrier(8)

        def attempt():
            barrier.wait()
            try:
                otp_store.verify("race@b.com", code)
                results.append("ok")
            except OtpNotFoundError:
                results.append("not_found")

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("not_found") == 7


class TestSweep:
    """Expired entry purge."""

    def test_sweep_removes_only_expired(self, otp_store, clock):
        otp_store.issue("old@b.com")
        clock.advance(minutes=6)
        otp_store.issue("new@b.com")
        clock.advance(minutes=5)

        removed = otp_store.sweep()

        assert removed == 1
        assert otp_store.pending("old@b.com") is None
        assert otp_store.pending("new@b.com") is not None

    def test_sweep_empty_store(self, otp_store):
        assert otp_store.sweep() == 0


class TestValkeyOtpStore:
    """Valkey-backed store - key layout and script result mapping."""

    @pytest.fixture
    def valkey(self):
        return Mock(spec=ValkeyClient)

    @pytest.fixture
    def store(self, valkey, config, clock):
        return ValkeyOtpStore(valkey, config, clock=clock)

    def test_issue_writes_key_with_ttl(self, store, valkey, clock):
        code = store.issue("a@b.com")

        valkey.set_json.assert_called_once()
        key, value = valkey.set_json.call_args.args
        assert key == "otp:a@b.com"
        assert value["code"] == code
        assert value["attempts"] == 0
        assert value["expires_at"] == clock.now.timestamp() + 600
        assert valkey.set_json.call_args.kwargs["expire_seconds"] == 600 + 60

    def test_verify_ok(self, store, valkey):
        valkey.run_script.return_value = "ok"

        store.verify("a@b.com", "123456")

        kwargs = valkey.run_script.call_args.kwargs
        assert kwargs["keys"] == ["otp:a@b.com"]
        assert kwargs["args"][0] == "123456"
        assert kwargs["args"][2] == 5

    @pytest.mark.parametrize(
        "outcome,error",
        [
            ("not_found", OtpNotFoundError),
            ("expired", OtpExpiredError),
            ("mismatch", OtpMismatchError),
        ],
    )
    def test_verify_failures_map_to_errors(self, store, valkey, outcome, error):
        valkey.run_script.return_value = outcome

        with pytest.raises(error):
            store.verify("a@b.com", "123456")

    def test_unexpected_script_result_raises(self, store, valkey):
        valkey.run_script.return_value = "weird"

        with pytest.raises(RuntimeError):
            store.verify("a@b.com", "123456")

    def test_sweep_is_noop(self, store, valkey):
        assert store.sweep() == 0
        valkey.run_script.assert_not_called()

    def test_pending_reads_entry(self, store, valkey, clock):
        valkey.get_json.return_value = {
            "code": "654321",
            "expires_at": clock.now.timestamp() + 600,
            "attempts": 2,
        }

        pending = store.pending("a@b.com")

        assert pending.code == "654321"
        assert pending.attempts == 2
        valkey.get_json.assert_called_once_with("otp:a@b.com")

    def test_pending_missing(self, store, valkey):
        valkey.get_json.return_value = None

        assert store.pending("a@b.com") is None


class TestOtpSweeper:
    """Scheduled sweep task lifecycle."""

    def test_sweep_once_delegates_to_store(self):
        store = Mock()
        store.sweep.return_value = 3
        sweeper = OtpSweeper(store, interval_seconds=60)

        removed = asyncio.run(sweeper.sweep_once())

        assert removed == 3
        store.sweep.assert_called_once()

    def test_start_runs_periodically_and_stop_cancels(self):
        store = Mock()
        store.sweep.return_value = 0
        sweeper = OtpSweeper(store, interval_seconds=0.01)

        async def scenario():
            sweeper.start()
            assert sweeper.running
            await asyncio.sleep(0.1)
            await sweeper.stop()
            assert not sweeper.running

        asyncio.run(scenario())

        assert store.sweep.call_count >= 1

    def test_failed_sweep_does_not_stop_loop(self):
        calls = []

        def flaky_sweep():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        store = Mock()
        store.sweep.side_effect = flaky_sweep
        sweeper = OtpSweeper(store, interval_seconds=0.01)

        async def scenario():
            sweeper.start()
            await asyncio.sleep(0.1)
            still_running = sweeper.running
            await sweeper.stop()
            return still_running

        assert asyncio.run(scenario()) is True
        assert store.sweep.call_count >= 2

    def test_stop_without_start_is_safe(self):
        sweeper = OtpSweeper(Mock(), interval_seconds=60)

        asyncio.run(sweeper.stop())

        assert not sweeper.running
