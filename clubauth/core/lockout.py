import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from clubauth.core.tokens import utc_now


@dataclass
class LockoutState:
    failed_attempts: int = 0
    locked_until: Optional[datetime] = None


class LockoutTracker:
    """Per-identity failed-login bookkeeping.

    Reaching ``threshold`` consecutive failures locks the identity for
    ``duration`` and resets the counter, so only the lock gates access while
    it is active. Expired locks are discarded lazily on read.
    Every ``sweep_every`` failures the table is purged of lapsed locks, so
    its size stays bounded by the identities with failures still pending.
    """

    def __init__(
        self,
        threshold: int = 5,
        duration: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = utc_now,
        sweep_every: int = 256,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        if sweep_every < 1:
            raise ValueError("sweep_every must be at least 1")
        self.threshold = threshold
        self.duration = duration
        self.clock = clock
        self._states: Dict[str, LockoutState] = {}
        self.sweep_every = sweep_every
        self._failures_since_sweep = 0
        self._lock = threading.Lock()

    @staticmethod
    def _key(identity: str) -> str:
        return identity.strip().lower()

    def _active_lock(self, state: LockoutState, now: datetime) -> Optional[datetime]:
        if state.locked_until is None:
            return None
        if now < state.locked_until:
            return state.locked_until
        state.locked_until = None
        return None

    def record_failure(self, identity: str) -> bool:
        """Count a failed attempt; True when this failure triggered the lock."""
        key = self._key(identity)
        with self._lock:
            now = self.clock()
            self._failures_since_sweep += 1
            if self._failures_since_sweep >= self.sweep_every:
                self._sweep_locked(now)
            state = self._states.setdefault(key, LockoutState())
            if self._active_lock(state, now) is not None:
                return False
            state.failed_attempts += 1
            if state.failed_attempts >= self.threshold:
                state.locked_until = now + self.duration
                state.failed_attempts = 0
                return True
            return False

    def record_success(self, identity: str) -> None:
        with self._lock:
            self._states.pop(self._key(identity), None)

    def is_locked(self, identity: str) -> bool:
        return self.locked_until(identity) is not None

    def locked_until(self, identity: str) -> Optional[datetime]:
        with self._lock:
            state = self._states.get(self._key(identity))
            if state is None:
                return None
            return self._active_lock(state, self.clock())

    def failed_attempts(self, identity: str) -> int:
        with self._lock:
            state = self._states.get(self._key(identity))
            return state.failed_attempts if state else 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def sweep(self) -> int:
        """Drop entries that hold neither an active lock nor pending failures."""
        with self._lock:
            return self._sweep_locked(self.clock())

    def _sweep_locked(self, now: datetime) -> int:
        self._failures_since_sweep = 0
        stale = [
            key
            for key, state in self._states.items()
            if self._active_lock(state, now) is None and state.failed_attempts == 0
        ]
        for key in stale:
            del self._states[key]
        return len(stale)
