"""
Session Registry

Owns the live set of push-channel sessions keyed by server-generated
identifier. The registry is the only shared mutable structure in the
gateway; every mutation is a plain synchronous call, so it completes
between two suspension points of the event loop and needs no lock.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

from .errors import SessionNotFoundError

if TYPE_CHECKING:
    from ..channels.sse import PushChannelBinding
    from .auth.gate import CredentialContext

logger = logging.getLogger(__name__)

# 32 random bytes, url-safe: the identifier is as strong as a bearer token
SESSION_ID_BYTES = 32


@dataclass
class Session:
    """A live push-channel session."""
    id: str
    channel: "PushChannelBinding"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    credentials: Optional["CredentialContext"] = None

    def owned_by(self, credentials: Optional["CredentialContext"]) -> bool:
        """Whether a submission carrying these credentials may use the session."""
        if self.credentials is None:
            return True
        if credentials is None:
            return False
        return credentials.client_id == self.credentials.client_id


class SessionRegistry:
    """Arena of push-channel sessions; the session id is the index."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    @staticmethod
    def generate_id() -> str:
        return secrets.token_urlsafe(SESSION_ID_BYTES)

    def create(
        self,
        channel: "PushChannelBinding",
        credentials: Optional["CredentialContext"] = None
    ) -> str:
        """Admit a channel and return its new session identifier."""
        session_id = self.generate_id()
        while session_id in self._sessions:
            session_id = self.generate_id()

        self._sessions[session_id] = Session(id=session_id, channel=channel, credentials=credentials)
        logger.info(f"Session {session_id[:8]}... opened ({len(self._sessions)} active)")
        return session_id

    def lookup(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def require(
        self,
        session_id: Optional[str],
        credentials: Optional["CredentialContext"] = None
    ) -> Session:
        """
        Resolve a session for a submission or raise SessionNotFoundError.

        A session opened by another principal is reported exactly like an
        unknown one.
        """
        session = self.lookup(session_id)
        if session is None or session.channel.is_closed or not session.owned_by(credentials):
            raise SessionNotFoundError(session_id)
        return session

    def remove(self, session_id: str) -> bool:
        """Remove a session. Returns False if it was already gone."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            logger.debug(f"Session {session_id[:8]}... already removed")
            return False
        logger.info(f"Session {session_id[:8]}... closed ({len(self._sessions)} active)")
        return True

    async def close_all(self) -> int:
        """Shutdown sweep: close every live channel."""
        sessions: List[Session] = list(self._sessions.values())
        for session in sessions:
            await session.channel.close()
        # Channels remove themselves on close; clear stragglers
        self._sessions.clear()
        if sessions:
            logger.info(f"Closed {len(sessions)} sessions on shutdown")
        return len(sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))
