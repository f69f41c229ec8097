"""Fixed-window rate limiting for built-in tools."""

import time
from dataclasses import dataclass
from typing import Callable, Dict

DEFAULT_LIMIT = 50
DEFAULT_WINDOW_SECONDS = 60.0


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Counts operations per key inside fixed time windows.

    State is process-scoped and lives in the runtime context. It is not
    synchronized, so it must only be used from the event loop thread.

    Attributes:
        limit: Maximum number of operations per window
        window: Window length in seconds
    """

    def __init__(
        self,
        limit: int = DEFAULT_LIMIT,
        window: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.limit = limit
        self.window = window
        self._clock = clock
        self._windows: Dict[str, _Window] = {}

    def check(self, key: str) -> bool:
        """Record one operation for key.

        Args:
            key: Operation key, normally the tool name

        Returns:
            True if the operation is within the limit, False otherwise
        """
        now = self._clock()
        entry = self._windows.get(key)
        if entry is None or now > entry.reset_at:
            self._windows[key] = _Window(count=1, reset_at=now + self.window)
            return True

        if entry.count >= self.limit:
            return False

        entry.count += 1
        return True

    def cleanup(self) -> int:
        """Drop expired windows and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._windows.items() if now > entry.reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def reset(self) -> None:
        self._windows.clear()
