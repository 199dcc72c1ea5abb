"""Identity resolution for chat connections.

Every connection is resolved to exactly one display identity when it opens:

    - linked:    the connection carries a valid session cookie whose session
                 holds an external profile. Stable across reconnects within
                 the same browser session.
    - anonymous: everything else. A fresh guest number is drawn per
                 connection, so reconnecting yields a new guest persona.

Identities are frozen for the lifetime of the connection.
"""
import logging
import random
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from chat_relay.auth.session import LinkedProfile, SessionStore
from chat_relay.config import ChatSettings

logger = logging.getLogger(__name__)


class LinkedIdentity(BaseModel):
    """Identity derived from an external profile."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["linked"] = "linked"
    connectionId: str = Field(..., description="Connection this identity belongs to")
    username: str = Field(..., description="Stable provider username")
    displayName: str = Field(..., description="Name shown in the chat UI")
    avatar: str = Field(..., description="Avatar image URL")


class AnonymousIdentity(BaseModel):
    """Identity minted for a connection without a linked session."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["anonymous"] = "anonymous"
    connectionId: str = Field(..., description="Connection this identity belongs to")
    guestNumber: int = Field(..., description="Randomized guest suffix")
    username: str = Field(..., description="guest_<n>")
    displayName: str = Field(..., description="Name shown in the chat UI")
    avatar: str = Field(..., description="Seeded placeholder avatar URL")


Identity = Annotated[
    Union[LinkedIdentity, AnonymousIdentity],
    Field(discriminator="kind"),
]


class IdentityResolver:
    """Turns a connection's session cookie into a display identity.

    Args:
        sessions: Session lookup used for linked identities.
        settings: Chat settings (guest number range, display/avatar templates).
        rng: Random source for guest numbers; injectable for tests.
    """

    def __init__(
        self,
        sessions: SessionStore,
        settings: ChatSettings,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._sessions = sessions
        self._settings = settings
        self._rng = rng or random.Random()

    async def resolve(
        self, connection_id: str, session_id: Optional[str]
    ) -> Union[LinkedIdentity, AnonymousIdentity]:
        """Resolve a connection to an identity. Never raises.

        Any failure reading the session degrades to an anonymous identity.
        """
        try:
            profile = await self._sessions.get(session_id)
        except Exception as e:
            logger.warning(
                f"[Identity] Session lookup failed for {connection_id}, "
                f"falling back to anonymous: {e}"
            )
            profile = None

        if profile is not None:
            try:
                return self.linked(connection_id, profile)
            except Exception as e:
                logger.warning(
                    f"[Identity] Bad profile in session for {connection_id}, "
                    f"falling back to anonymous: {e}"
                )

        return self.anonymous(connection_id)

    def linked(self, connection_id: str, profile: LinkedProfile) -> LinkedIdentity:
        avatar = profile.avatar or self._settings.linked_avatar_url.format(
            username=profile.username
        )
        return LinkedIdentity(
            connectionId=connection_id,
            username=profile.username,
            displayName=profile.displayName or profile.username,
            avatar=avatar,
        )

    def anonymous(self, connection_id: str) -> AnonymousIdentity:
        n = self._rng.randint(0, self._settings.guest_number_max)
        return AnonymousIdentity(
            connectionId=connection_id,
            guestNumber=n,
            username=f"guest_{n}",
            displayName=self._settings.guest_display_format.format(n=n),
            avatar=self._settings.guest_avatar_url.format(n=n),
        )
