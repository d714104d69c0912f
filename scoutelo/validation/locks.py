"""
Re-entrancy guards for validation runs.

1. MatchLockRegistry: in-process, non-blocking lock per match key
2. compute_run_key: deterministic idempotency key stored on ValidationRun
"""

import asyncio
import hashlib
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from scoutelo.errors import RunInProgress


def strategy_set_key(strategies: Iterable[str]) -> str:
    """Sorted, comma-joined strategy names."""
    return ",".join(sorted({str(s) for s in strategies}))


def compute_run_key(match_key: str, strategy_set: str, run_version: int) -> str:
    """Compute deterministic run idempotency key.

    Formula: SHA256(match_key|strategy_set|run_version)[:32]
    """
    raw = f"{match_key}|{strategy_set}|{run_version}"
    return hashlib.sha256(raw.encode()).hexdigest()[:32]


class MatchLockRegistry:
    """One asyncio.Lock per match key. A held lock fails fast with RunInProgress."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def is_locked(self, match_key: str) -> bool:
        lock = self._locks.get(match_key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, match_key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(match_key, asyncio.Lock())
        if lock.locked():
            raise RunInProgress(
                f"validation already running for {match_key}",
                {"match_key": match_key},
            )
        await lock.acquire()
        try:
            yield
        finally:
            lock.release()
            if not lock.locked():
                self._locks.pop(match_key, None)


# Shared by every service in the process
default_lock_registry = MatchLockRegistry()
