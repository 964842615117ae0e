"""
Auth Gate

Admission check installed in front of every network-reachable endpoint.
A gate instance is a FastAPI dependency: the web server adds it once to
the router, and admitted requests carry the resulting CredentialContext on
request.state.credentials. Nothing behind the router knows whether a gate
is present.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from fastapi import Request

from ..errors import AuthenticationError
from .verifier import TokenVerificationError, TokenVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialContext:
    """Verified identity attached to an admitted request."""
    token: str = field(repr=False)
    client_id: str
    scopes: Tuple[str, ...] = ()
    principal: Optional[str] = None
    email_verified: bool = False
    claims: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes


class PrincipalPolicy:
    """
    Optional allow-list of principal identifiers (email addresses).

    An empty list admits every verified identity. A non-empty list admits
    only listed principals whose email is verified by the IdP.
    """

    def __init__(self, allowed: Optional[Iterable[str]] = None):
        self.allowed = frozenset(
            p.strip().lower() for p in (allowed or []) if p and p.strip()
        )

    @property
    def restricted(self) -> bool:
        return bool(self.allowed)

    def permits(self, principal: Optional[str], verified: bool) -> bool:
        if not self.restricted:
            return True
        if not principal or not verified:
            return False
        return principal.lower() in self.allowed


class AuthGate(ABC):
    """Base class for admission gates."""

    name: str = "gate"

    @abstractmethod
    async def admit(self, request: Request) -> Optional[CredentialContext]:
        """Admit a request, or raise AuthenticationError."""
        pass

    async def __call__(self, request: Request) -> Optional[CredentialContext]:
        credentials = await self.admit(request)
        request.state.credentials = credentials
        return credentials


class PassThroughGate(AuthGate):
    """No authentication configured: every request is admitted."""

    name = "pass-through"

    async def admit(self, request: Request) -> Optional[CredentialContext]:
        return None


class BearerTokenGate(AuthGate):
    """
    Delegated bearer-token verification.

    The token is resolved by an external verifier (the identity provider).
    Missing tokens, rejected tokens, verifier failures and principals
    outside the allow-list all raise the same AuthenticationError.
    """

    name = "bearer"

    def __init__(
        self,
        verifier: TokenVerifier,
        policy: Optional[PrincipalPolicy] = None,
        timeout: Optional[float] = 10.0
    ):
        self.verifier = verifier
        self.policy = policy or PrincipalPolicy()
        self.timeout = timeout

    @staticmethod
    def extract_token(request: Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return token.strip()

    async def admit(self, request: Request) -> CredentialContext:
        token = self.extract_token(request)
        if token is None:
            raise AuthenticationError("missing bearer token")

        try:
            credentials = await asyncio.wait_for(self.verifier.verify(token), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Token verification timed out")
            raise AuthenticationError("verifier timeout")
        except TokenVerificationError as e:
            logger.info(f"Token rejected: {e}")
            raise AuthenticationError("token rejected")
        except Exception as e:
            logger.exception(f"Token verifier failed: {e}")
            raise AuthenticationError("verifier failure")

        if not self.policy.permits(credentials.principal, credentials.email_verified):
            logger.info(f"Principal not allowed: {credentials.principal}")
            raise AuthenticationError("principal not allowed")

        logger.debug(f"Admitted {credentials.principal or credentials.client_id}")
        return credentials
