"""Process-wide change guard.

A single advisory flag shared by both sync directions.  It is raised before
the engine writes to one side on behalf of the other and lowered after a
short settling delay, so that the notifications caused by our own writes
are dropped instead of being echoed back.

This is deliberately a flag, not a lock: events that arrive while it is
raised are lost, not queued, and unrelated paths are blocked too.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY = 0.5


class ChangeGuard:
    """Boolean guard with delayed release.

    Args:
        settle_delay: Seconds to keep the guard raised after the last
            holder releases it.
    """

    def __init__(self, settle_delay: float = DEFAULT_SETTLE_DELAY) -> None:
        self.settle_delay = settle_delay
        self._held = False
        self._depth = 0
        self._release_handle: asyncio.TimerHandle | None = None

    @property
    def held(self) -> bool:
        return self._held

    def set(self) -> None:
        """Raise the guard, cancelling any pending delayed release.

        Calls nest: the guard only starts settling once every ``set()`` has
        been matched by a ``release()``.
        """
        self._cancel_pending()
        self._depth += 1
        self._held = True

    def release(self) -> None:
        """Lower the guard after ``settle_delay`` seconds.

        Outside a running event loop, or with a zero delay, the guard is
        lowered immediately.
        """
        self._depth = max(self._depth - 1, 0)
        if self._depth:
            return
        self._cancel_pending()
        if self.settle_delay <= 0:
            self._clear()
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._clear()
            return
        self._release_handle = loop.call_later(self.settle_delay, self._clear)

    def reset(self) -> None:
        """Lower the guard immediately (engine shutdown)."""
        self._cancel_pending()
        self._depth = 0
        self._clear()

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Hold the guard for the duration of the block, then settle."""
        self.set()
        try:
            yield
        finally:
            self.release()

    def _clear(self) -> None:
        self._release_handle = None
        self._held = False
        logger.debug("Change guard released")

    def _cancel_pending(self) -> None:
        if self._release_handle is not None:
            self._release_handle.cancel()
            self._release_handle = None
