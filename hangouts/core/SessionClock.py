from __future__ import annotations

from shared.log import get_logger

logger = get_logger(__name__)


class SessionClock:
    """
    Server-assigned logical clock (microseconds since the epoch).

    The value only moves forward once synchronization has started. 0 means
    the session was never synchronized and a full sync is required before
    anything can be applied incrementally.
    """

    def __init__(self, initial: int = 0):
        if initial < 0:
            raise ValueError("clock value must not be negative")
        self._current = int(initial)

    @property
    def current(self) -> int:
        return self._current

    @property
    def is_synchronized(self) -> bool:
        return self._current > 0

    def advance(self, new_clock: int) -> bool:
        """
        Move the clock to ``max(current, new_clock)``.

        Returns:
            True if the clock moved, False for a repeat or a regression
        """
        if new_clock < self._current:
            logger.warning("Ignoring clock regression %d -> %d", self._current, new_clock)
            return False
        if new_clock == self._current:
            return False
        self._current = int(new_clock)
        return True

    def should_apply(self, event_clock: int) -> bool:
        """True iff an event stamped ``event_clock`` is newer than the clock."""
        return event_clock > self._current

    def reset(self) -> None:
        """Forget the clock; only valid when starting a brand new session."""
        self._current = 0

    def __repr__(self) -> str:
        return f"SessionClock({self._current})"
