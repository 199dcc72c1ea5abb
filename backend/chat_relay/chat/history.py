"""Bounded recent-message log replayed to newly joining connections."""
import threading
from collections import deque
from typing import Deque, List

from .messages import ChatMessage


class HistoryBuffer:
    """FIFO buffer of the most recent ``capacity`` messages, oldest first."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._messages: Deque[ChatMessage] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, message: ChatMessage) -> None:
        # deque(maxlen=...) drops from the head once full
        with self._lock:
            self._messages.append(message)

    def snapshot(self) -> List[ChatMessage]:
        """Oldest-first copy, detached from later appends."""
        with self._lock:
            return list(self._messages)

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
