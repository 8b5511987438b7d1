"""Quiescence barrier.

Counts in-flight units of engine work (command acknowledgements and
background reclaim cycles). ``wait`` resolves only when the count
drops to zero, so a timer stopped after ``wait`` covers all the work
the measured call triggered.
"""

from __future__ import annotations

import asyncio
import logging

from ..errors import IdleTimeout

logger = logging.getLogger(__name__)


class IdleBarrier:
    """Tracks outstanding engine work and lets callers wait for idle."""

    def __init__(self, default_timeout: float | None = None) -> None:
        self._default_timeout = default_timeout
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._failure: BaseException | None = None

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def is_idle(self) -> bool:
        return self._pending == 0

    def begin(self) -> None:
        """Register one unit of outstanding work."""
        self._pending += 1
        self._idle.clear()

    def end(self, error: BaseException | None = None) -> None:
        """Complete one unit of work, optionally recording its failure."""
        if error is not None and self._failure is None:
            self._failure = error
        if self._pending > 0:
            self._pending -= 1
        if self._pending == 0:
            self._idle.set()

    def release_all(self) -> None:
        """Drop all outstanding work (used on dispose)."""
        self._pending = 0
        self._idle.set()

    async def wait(self, timeout: float | None = None) -> None:
        """Wait until no work is outstanding.

        Raises:
            IdleTimeout: If work is still outstanding after ``timeout`` seconds.
            Exception: The first failure recorded by ``end`` since the last wait.
        """
        if timeout is None:
            timeout = self._default_timeout
        if self._pending:
            logger.debug("Waiting for idle: %d unit(s) pending", self._pending)
            try:
                await asyncio.wait_for(self._idle.wait(), timeout)
            except TimeoutError as e:
                raise IdleTimeout(
                    f"Engine not idle after {timeout}s ({self._pending} pending)",
                    timeout=timeout,
                    pending=self._pending,
                ) from e
        if self._failure is not None:
            failure, self._failure = self._failure, None
            raise failure
