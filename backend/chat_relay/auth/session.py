"""In-memory session store with TTL-based auto-expiry.

Maps an opaque session id (the value of the session cookie) to the linked
external profile captured by the login flow.  Sessions live for the process
lifetime only and expire after the configured cookie lifetime.  A background
task sweeps expired entries.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Dict, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class LinkedProfile(BaseModel):
    """External profile as stored in an authenticated session."""
    id:          str           = Field(..., description="Provider user id")
    username:    str           = Field(..., description="Stable provider username")
    displayName: Optional[str] = Field(default=None, description="Provider display name")
    avatar:      Optional[str] = Field(default=None, description="Avatar URL, if any")
    profileUrl:  Optional[str] = Field(default=None, description="Provider profile page")


@dataclass
class _StoredSession:
    profile:    LinkedProfile
    expires_at: float   # absolute monotonic deadline

    def is_expired(self) -> bool:
        return time.monotonic() >= self.expires_at


class SessionStore:
    """asyncio-safe in-memory store of linked profiles keyed by session id."""

    def __init__(self, max_age_seconds: int = 86400) -> None:
        self._store: Dict[str, _StoredSession] = {}
        self._lock  = asyncio.Lock()
        self._max_age = max_age_seconds
        self._sweep_task: Optional[asyncio.Task] = None  # type: ignore[type-arg]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start background sweep task."""
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info("SessionStore sweep task started (TTL=%ss)", self._max_age)

    async def stop(self) -> None:
        """Cancel sweep task and drop all sessions."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        async with self._lock:
            self._store.clear()
        logger.info("SessionStore stopped; all sessions dropped.")

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create(self, profile: LinkedProfile) -> str:
        """Store *profile* under a fresh session id and return the id."""
        session_id = secrets.token_urlsafe(32)
        entry = _StoredSession(
            profile=profile,
            expires_at=time.monotonic() + self._max_age,
        )
        async with self._lock:
            self._store[session_id] = entry
        logger.info("Session created for %s", profile.username)
        return session_id

    async def get(self, session_id: Optional[str]) -> Optional[LinkedProfile]:
        """Return the profile if the session exists and is not expired."""
        if not session_id:
            return None
        async with self._lock:
            entry = self._store.get(session_id)
        if entry is None:
            return None
        if entry.is_expired():
            await self.delete(session_id)
            logger.debug("Session for %s expired", entry.profile.username)
            return None
        return entry.profile

    async def delete(self, session_id: str) -> None:
        """Remove a session (no-op if absent)."""
        async with self._lock:
            self._store.pop(session_id, None)

    async def count(self) -> int:
        async with self._lock:
            return len(self._store)

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    async def _sweep_loop(self) -> None:
        sweep_interval = max(60, self._max_age // 4)
        while True:
            await asyncio.sleep(sweep_interval)
            await self.sweep()

    async def sweep(self) -> int:
        """Evict all expired entries and return how many were removed."""
        now = time.monotonic()
        async with self._lock:
            expired = [k for k, v in self._store.items() if now >= v.expires_at]
            for k in expired:
                del self._store[k]
        if expired:
            logger.info("SessionStore sweep: evicted %d expired sessions", len(expired))
        return len(expired)
