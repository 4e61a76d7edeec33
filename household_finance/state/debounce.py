"""
Single-slot debounced tasks.

Scheduling replaces whatever is pending: the previous timer is cancelled
before a new one starts, so a burst of calls produces exactly one action,
run after `delay` seconds of quiet. A cancelled timer never fires.

Once a timer has fired, the action runs as a background task and is no
longer cancellable through the debouncer; in-flight work is left to finish.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Optional

import structlog


logger = structlog.get_logger(__name__)

Action = Callable[[], Awaitable[None]]


class Debouncer:
    """
    A cancellable delayed task with one slot.

    Must be used from inside a running event loop.
    """

    def __init__(self, delay: float, name: str = "debounce"):
        if delay <= 0:
            raise ValueError("delay must be positive")
        self._delay = delay
        self._name = name
        self._handle: Optional[asyncio.TimerHandle] = None
        self._action: Optional[Action] = None
        self._in_flight: set[asyncio.Task] = set()

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        """True while a timer is armed and has not fired yet."""
        return self._handle is not None

    def schedule(self, action: Action) -> None:
        """Arm the timer for action, cancelling any pending one."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._action = action
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> bool:
        """
        Disarm the pending timer.

        Returns True if a timer was pending.
        """
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._action = None
        return True

    def fire_now(self) -> bool:
        """Run the pending action immediately instead of waiting."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._fire()
        return True

    def _fire(self) -> None:
        action = self._action
        self._handle = None
        self._action = None
        if action is None:
            return
        task = asyncio.ensure_future(action())
        self._in_flight.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("debounced_action_failed", debouncer=self._name, error=repr(error))

    async def wait(self) -> None:
        """Wait for actions that already fired to finish."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
