"""
Token Verifiers

A verifier resolves a bearer token issued by an external identity provider
to a CredentialContext. The gateway never issues tokens itself.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

if TYPE_CHECKING:
    from .gate import CredentialContext

logger = logging.getLogger(__name__)


class TokenVerificationError(Exception):
    """The identity provider did not accept the token."""


class TokenVerifier(ABC):
    """Resolves a bearer token to a credential context."""

    @abstractmethod
    async def verify(self, token: str) -> "CredentialContext":
        pass


def credentials_from_claims(token: str, claims: Dict[str, Any]) -> "CredentialContext":
    """Map OIDC claims (userinfo or id_token) to a CredentialContext."""
    from .gate import CredentialContext

    subject = claims.get("sub")
    if not subject or not isinstance(subject, (str, int)):
        raise TokenVerificationError("claims carry no subject")

    scope = claims.get("scope") or ""
    if isinstance(scope, str):
        scopes = tuple(scope.split())
    elif isinstance(scope, list) and all(isinstance(s, str) for s in scope):
        scopes = tuple(scope)
    else:
        raise TokenVerificationError("scope claim is neither a string nor a list of strings")

    email = claims.get("email")
    if email is not None and not isinstance(email, str):
        raise TokenVerificationError("email claim is not a string")

    return CredentialContext(
        token=token,
        client_id=str(subject),
        scopes=scopes,
        principal=email,
        email_verified=_is_verified(claims.get("email_verified")),
        claims=dict(claims)
    )


def _is_verified(value: Any) -> bool:
    # Some IdPs send the claim as the string "true" / "false"
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


class OAuth2UserInfoVerifier(TokenVerifier):
    """
    Verifies access tokens by presenting them to the IdP's userinfo endpoint.

    Any non-2xx answer or transport failure is a verification failure.
    """

    def __init__(
        self,
        userinfo_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0
    ):
        self.userinfo_url = userinfo_url
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def verify(self, token: str) -> "CredentialContext":
        try:
            response = await self.client.get(
                self.userinfo_url,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"}
            )
            response.raise_for_status()
            claims = response.json()
        except httpx.HTTPStatusError as e:
            raise TokenVerificationError(f"userinfo returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Userinfo request failed: {e}")
            raise TokenVerificationError("identity provider unreachable") from e
        except ValueError as e:
            raise TokenVerificationError("userinfo response is not JSON") from e

        if not isinstance(claims, dict):
            raise TokenVerificationError("userinfo response is not an object")

        return credentials_from_claims(token, claims)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
