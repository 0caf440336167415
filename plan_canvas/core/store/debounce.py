from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional


class Debouncer:
    """Coalesce bursts of calls into one call after `wait` seconds of quiet.

    Each schedule() replaces the pending call (latest arguments win). cancel()
    drops the pending call without running it; it is safe to call any number
    of times, including after the call already fired. Runs on the caller's
    asyncio loop.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        wait: float,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._func = func
        self._wait = wait
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, *args: Any, **kwargs: Any) -> None:
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self._wait, self._fire, args, kwargs)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        self._handle = None
        self._func(*args, **kwargs)
