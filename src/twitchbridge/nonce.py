from __future__ import annotations

import asyncio
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

DEFAULT_TIMEOUT = 5 * 60


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


@dataclass
class _Pending:
    handle: TimerHandle
    deadline: float


class StateNonceRegistry:
    """One-time OAuth `state` values with a bounded lifetime.

    Each pending nonce owns a one-shot timer that drops it after `timeout`
    seconds. `consume` and the timer both remove through a single `dict.pop`,
    so whichever runs first wins and the other is a no-op.

    `scheduler(delay, callback)` must return an object with `cancel()`; the
    default uses the running asyncio loop's `call_later`, so `issue` has to be
    called from inside the loop.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.monotonic,
        nbytes: int = 32,
    ) -> None:
        if timeout <= 0:
            raise ValueError("nonce timeout must be positive")
        if nbytes < 16:
            raise ValueError("nonces need at least 128 bits of entropy")
        self.timeout = float(timeout)
        self._schedule = scheduler or _loop_scheduler
        self._clock = clock
        self._nbytes = nbytes
        self._pending: Dict[str, _Pending] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, nonce: Any) -> bool:
        return nonce in self._pending

    def issue(self) -> str:
        nonce = secrets.token_urlsafe(self._nbytes)
        while nonce in self._pending:
            nonce = secrets.token_urlsafe(self._nbytes)
        handle = self._schedule(self.timeout, lambda: self._expire(nonce))
        self._pending[nonce] = _Pending(
            handle=handle, deadline=self._clock() + self.timeout
        )
        return nonce

    def consume(self, nonce: Optional[str]) -> bool:
        """Return True exactly once for a pending nonce, False otherwise."""
        if not nonce:
            return False
        entry = self._pending.pop(nonce, None)
        if entry is None:
            return False
        entry.handle.cancel()
        # the timer may be late if the loop was busy; the deadline still holds
        return self._clock() < entry.deadline

    def _expire(self, nonce: str) -> None:
        self._pending.pop(nonce, None)

    def close(self) -> None:
        """Cancel every pending timer and forget all nonces."""
        pending, self._pending = self._pending, {}
        for entry in pending.values():
            entry.handle.cancel()
