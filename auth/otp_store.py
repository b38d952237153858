"""One-time code storage.

Codes are keyed by normalized email, at most one pending code per email.
InMemoryOtpStore serves a single process; ValkeyOtpStore shares codes
across instances and relies on key TTLs instead of sweeping.
"""

import asyncio
import hmac
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from contextlib import suppress
from datetime import datetime, timedelta, timezone
from typing import Callable

from starlette.concurrency import run_in_threadpool

from auth.config import AuthConfig
from auth.exceptions import OtpExpiredError, OtpMismatchError, OtpNotFoundError
from auth.types import PendingOtp
from clients.valkey_client import ValkeyClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def generate_code() -> str:
    """Uniformly random six-digit code in 100000-999999."""
    return str(secrets.randbelow(900000) + 100000)


class OtpStore(ABC):
    """Pending one-time codes keyed by normalized email."""

    @abstractmethod
    def issue(self, email: str) -> str:
        """Generate and store a fresh code for email, replacing any prior one."""

    @abstractmethod
    def verify(self, email: str, code: str) -> None:
        """Consume the pending code for email.

        Raises:
            OtpNotFoundError: No pending code.
            OtpExpiredError: Code expired (entry deleted).
            OtpMismatchError: Code differs (entry kept unless attempts exhausted).
        """

    @abstractmethod
    def sweep(self) -> int:
        """Delete expired entries. Returns count deleted."""

    @abstractmethod
    def pending(self, email: str) -> PendingOtp | None:
        """Current pending entry for email, if any."""


class InMemoryOtpStore(OtpStore):
    """Process-local store. A single lock serializes issue, verify and sweep."""

    def __init__(self, config: AuthConfig, clock: Callable[[], datetime] = now_utc):
        self._config = config
        self._clock = clock
        self._entries: dict[str, PendingOtp] = {}
        self._lock = threading.Lock()

    def issue(self, email: str) -> str:
        code = generate_code()
        entry = PendingOtp(
            email=email,
            code=code,
            expires_at=self._clock() + timedelta(minutes=self._config.otp_expiry_minutes),
        )
        with self._lock:
            self._entries[email] = entry
        return code

    def verify(self, email: str, code: str) -> None:
        with self._lock:
            entry = self._entries.get(email)
            if entry is None:
                raise OtpNotFoundError("No verification code found")

            if self._clock() > entry.expires_at:
                del self._entries[email]
                raise OtpExpiredError("Verification code has expired")

            if not hmac.compare_digest(entry.code.encode(), code.encode()):
                entry.attempts += 1
                if entry.attempts >= self._config.otp_max_attempts:
                    del self._entries[email]
                raise OtpMismatchError("Invalid verification code")

            del self._entries[email]

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [email for email, entry in self._entries.items() if entry.expires_at < now]
            for email in expired:
                del self._entries[email]
        return len(expired)

    def pending(self, email: str) -> PendingOtp | None:
        with self._lock:
            entry = self._entries.get(email)
            return entry.model_copy() if entry else None


# Returns one of: ok, not_found, expired, mismatch.
_VERIFY_SCRIPT = """
local raw = redis.call('GET', KEYS[1])
if not raw then
    return 'not_found'
end
local entry = cjson.decode(raw)
if tonumber(ARGV[2]) > tonumber(entry['expires_at']) then
    redis.call('DEL', KEYS[1])
    return 'expired'
end
if entry['code'] ~= ARGV[1] then
    entry['attempts'] = (entry['attempts'] or 0) + 1
    if entry['attempts'] >= tonumber(ARGV[3]) then
        redis.call('DEL', KEYS[1])
    else
        local ttl = redis.call('PTTL', KEYS[1])
        if ttl > 0 then
            redis.call('SET', KEYS[1], cjson.encode(entry), 'PX', ttl)
        else
            redis.call('SET', KEYS[1], cjson.encode(entry))
        end
    end
    return 'mismatch'
end
redis.call('DEL', KEYS[1])
return 'ok'
"""


class ValkeyOtpStore(OtpStore):
    """Shared store in Valkey.

    verify runs as a single Lua script so concurrent verifications across
    processes cannot both succeed. Keys outlive expiry by one sweep interval
    so late attempts still report OtpExpiredError rather than OtpNotFoundError.
    """

    KEY_PREFIX = "otp:"

    def __init__(
        self,
        valkey: ValkeyClient,
        config: AuthConfig,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._valkey = valkey
        self._config = config
        self._clock = clock

    def _key(self, email: str) -> str:
        """Generate Valkey key for email."""
        return f"{self.KEY_PREFIX}{email}"

    def issue(self, email: str) -> str:
        code = generate_code()
        expires_at = self._clock() + timedelta(minutes=self._config.otp_expiry_minutes)
        self._valkey.set_json(
            self._key(email),
            {"code": code, "expires_at": expires_at.timestamp(), "attempts": 0},
            expire_seconds=(
                self._config.otp_expiry_minutes * 60
                + self._config.otp_sweep_interval_seconds
            ),
        )
        return code

    def verify(self, email: str, code: str) -> None:
        outcome = self._valkey.run_script(
            _VERIFY_SCRIPT,
            keys=[self._key(email)],
            args=[code, self._clock().timestamp(), self._config.otp_max_attempts],
        )

        if outcome == "ok":
            return
        if outcome == "not_found":
            raise OtpNotFoundError("No verification code found")
        if outcome == "expired":
            raise OtpExpiredError("Verification code has expired")
        if outcome == "mismatch":
            raise OtpMismatchError("Invalid verification code")
        raise RuntimeError(f"Unexpected OTP script result: {outcome!r}")

    def sweep(self) -> int:
        # Key TTLs reclaim expired codes.
        return 0

    def pending(self, email: str) -> PendingOtp | None:
        data = self._valkey.get_json(self._key(email))
        if data is None:
            return None
        return PendingOtp(
            email=email,
            code=data["code"],
            expires_at=datetime.fromtimestamp(data["expires_at"], tz=timezone.utc),
            attempts=data.get("attempts", 0),
        )


class OtpSweeper:
    """Periodic purge of expired codes, owned by the application lifespan.

    start() must be called from inside a running event loop; stop() cancels
    the task and waits for it to finish.
    """

    def __init__(self, store: OtpStore, interval_seconds: float):
        self._store = store
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"OTP sweeper started (every {self._interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("OTP sweeper stopped")

    async def sweep_once(self) -> int:
        removed = await run_in_threadpool(self._store.sweep)
        if removed:
            logger.debug(f"Swept {removed} expired verification codes")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("OTP sweep failed")
