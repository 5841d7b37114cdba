import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable


@dataclass
class _FailureState:
    failures: list[float] = field(default_factory=list)
    lock_until: float = 0.0


def login_key(username: str, client_host: str | None) -> str:
    return f"{(username or '').strip().lower()}|{client_host or 'unknown'}"


class LoginRateLimiter:
    """Locks a username+client key after repeated failed logins inside a window."""

    def __init__(
        self,
        *,
        max_attempts: int,
        window_seconds: int,
        lock_seconds: int,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.lock_seconds = lock_seconds
        self._clock = clock
        self._states: dict[str, _FailureState] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def retry_after(self, key: str) -> int:
        """Seconds until the key may try again, 0 when not locked."""
        now = self._clock()
        with self._lock:
            self._forget_old(now)
            state = self._states.get(key)
            if state is None or state.lock_until <= now:
                return 0
            return int(state.lock_until - now) + 1

    def record_failure(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            self._forget_old(now)
            state = self._states.setdefault(key, _FailureState())
            state.failures.append(now)
            if len(state.failures) >= self.max_attempts:
                state.lock_until = now + self.lock_seconds

    def reset(self, key: str) -> None:
        with self._lock:
            self._states.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._states.clear()

    def _forget_old(self, now: float) -> None:
        # Keys with no recent failures and no active lock are dropped.
        cutoff = now - self.window_seconds
        for key in list(self._states):
            state = self._states[key]
            state.failures = [ts for ts in state.failures if ts >= cutoff]
            if not state.failures and state.lock_until <= now:
                del self._states[key]
