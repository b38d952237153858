"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, to_epoch_ms, from_epoch_ms
