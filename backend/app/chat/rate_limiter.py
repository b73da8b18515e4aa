"""Rate limiting for chat messages."""

import time
from collections import deque
from typing import Callable, Deque, Dict

# Default rate limits
DEFAULT_WINDOW_SECONDS = 10.0
DEFAULT_MAX_MESSAGES = 5


class SlidingWindowRateLimiter:
    """Per-connection sliding window limiter.

    Each connection keeps the timestamps of its accepted messages. Rejected
    attempts are not recorded, so a client that keeps hammering is let back
    in as soon as its oldest accepted message leaves the window.
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_messages = max_messages
        self._clock = clock
        self._windows: Dict[str, Deque[float]] = {}

    def allow(self, connection_id: str) -> bool:
        """Record a message attempt for a connection.

        Args:
            connection_id: The connection sending the message.

        Returns:
            True if the message is accepted, False if rate limited.
        """
        now = self._clock()
        window = self._windows.setdefault(connection_id, deque())

        # Prune lazily; timestamps are appended in order so the oldest is first
        while window and now - window[0] >= self.window_seconds:
            window.popleft()

        if len(window) >= self.max_messages:
            return False

        window.append(now)
        return True

    def reset(self, connection_id: str) -> None:
        """Forget a connection's window (called on disconnect)."""
        self._windows.pop(connection_id, None)

    def tracked(self) -> int:
        """Number of connections that currently hold a window."""
        return len(self._windows)
