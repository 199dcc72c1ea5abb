"""Presence registry: who is online right now.

One entry per open connection, keyed by connection id. The registry's size
is the online count broadcast to clients.
"""
import logging
import threading
from typing import Dict, List, Optional

from .identity import Identity

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Connection id -> identity map shared by every connection lifecycle.

    Every operation takes the lock, so register/remove pairs from concurrent
    lifecycles can't corrupt the count and ``snapshot()`` is consistent.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Identity] = {}
        self._lock = threading.Lock()

    def register(self, connection_id: str, identity: Identity) -> int:
        """Insert or overwrite an entry. Returns the new online count."""
        with self._lock:
            self._entries[connection_id] = identity
            return len(self._entries)

    def remove(self, connection_id: str) -> Optional[Identity]:
        """Delete an entry if present. Returns the removed identity, if any."""
        with self._lock:
            return self._entries.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[Identity]:
        with self._lock:
            return self._entries.get(connection_id)

    def snapshot(self) -> List[Identity]:
        """All current identities, in registration order."""
        with self._lock:
            return list(self._entries.values())

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._entries
