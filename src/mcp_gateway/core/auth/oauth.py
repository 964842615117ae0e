"""
OAuth2 Login Surface

Authorization-code login delegated to an external identity provider:

    GET /oauth/authorize   -> redirect to the IdP authorization endpoint
    GET /oauth/callback    -> exchange the code, check the allow-list,
                              hand the IdP access token to the client
    GET /.well-known/oauth-authorization-server -> IdP endpoint metadata

The callback cannot sit behind the bearer gate (it is how a client obtains
a token); it is admitted by the code exchange itself and by the same
allow-list the gate enforces, failing with the same AuthenticationError.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import TYPE_CHECKING, Dict, Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Query
from fastapi.responses import RedirectResponse
from jose import JWTError, jwt
from pydantic import BaseModel

from ..errors import AuthenticationError
from .gate import AuthGate, BearerTokenGate, PassThroughGate, PrincipalPolicy
from .verifier import OAuth2UserInfoVerifier, TokenVerificationError, credentials_from_claims

if TYPE_CHECKING:
    from config.schema import OAuthConfig

logger = logging.getLogger(__name__)

STATE_TTL_SECONDS = 600


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    principal: Optional[str] = None


def build_auth_gate(oauth: Optional[OAuthConfig]) -> AuthGate:
    """Select the gate once at startup."""
    if oauth is None or not oauth.enabled:
        logger.info("Auth gate: pass-through (no OAuth client configured)")
        return PassThroughGate()

    verifier = OAuth2UserInfoVerifier(oauth.userinfo_url, timeout=oauth.verify_timeout)
    policy = PrincipalPolicy(oauth.allowed_users)
    logger.info(
        f"Auth gate: bearer verification via {oauth.userinfo_url}"
        + (f" ({len(policy.allowed)} allowed principals)" if policy.restricted else "")
    )
    return BearerTokenGate(verifier, policy, timeout=oauth.verify_timeout)


class StateStore:
    """Short-lived anti-CSRF state values for the authorization redirect."""

    def __init__(self, ttl: float = STATE_TTL_SECONDS):
        self.ttl = ttl
        self._states: Dict[str, float] = {}

    def issue(self) -> str:
        self._purge()
        state = secrets.token_urlsafe(24)
        self._states[state] = time.monotonic() + self.ttl
        return state

    def consume(self, state: Optional[str]) -> bool:
        self._purge()
        if not state:
            return False
        return self._states.pop(state, None) is not None

    def _purge(self) -> None:
        now = time.monotonic()
        for state in [s for s, expires in self._states.items() if expires < now]:
            del self._states[state]


def create_oauth_router(
    oauth: OAuthConfig,
    policy: Optional[PrincipalPolicy] = None,
    client: Optional[httpx.AsyncClient] = None,
    states: Optional[StateStore] = None
) -> APIRouter:
    """
    Create the OAuth login router.

    Args:
        oauth: OAuth client settings
        policy: Allow-list shared with the bearer gate
        client: httpx client used for the token exchange (tests inject one)
        states: State store (tests inject one)
    """
    router = APIRouter(tags=["oauth"])
    policy = policy or PrincipalPolicy(oauth.allowed_users)
    states = states or StateStore()
    redirect_uri = f"{oauth.public_host.rstrip('/')}/oauth/callback"

    async def exchange_code(code: str) -> Dict:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": oauth.client_id,
            "client_secret": oauth.client_secret,
        }
        http = client or httpx.AsyncClient(timeout=oauth.verify_timeout)
        try:
            response = await http.post(oauth.token_url, data=data, headers={"Accept": "application/json"})
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Token exchange failed: {e}")
            raise AuthenticationError("token exchange failed")
        finally:
            if client is None:
                await http.aclose()

    @router.get("/oauth/authorize")
    async def authorize():
        """Redirect the user agent to the identity provider."""
        query = urlencode({
            "response_type": "code",
            "client_id": oauth.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(oauth.scopes),
            "state": states.issue(),
        })
        return RedirectResponse(f"{oauth.authorization_url}?{query}", status_code=302)

    @router.get("/oauth/callback", response_model=TokenResponse)
    async def callback(
        code: Optional[str] = Query(None),
        state: Optional[str] = Query(None),
        error: Optional[str] = Query(None)
    ):
        """Complete the authorization-code flow."""
        if error:
            logger.info(f"Identity provider returned error: {error}")
            raise AuthenticationError("idp error")
        if not code or not states.consume(state):
            raise AuthenticationError("missing code or state")

        tokens = await exchange_code(code)
        access_token = tokens.get("access_token")
        id_token = tokens.get("id_token")
        if not access_token or not id_token:
            raise AuthenticationError("incomplete token response")

        # Received directly from the token endpoint over TLS
        try:
            claims = jwt.get_unverified_claims(id_token)
            credentials = credentials_from_claims(access_token, claims)
        except (JWTError, TokenVerificationError) as e:
            logger.warning(f"Unusable id_token: {e}")
            raise AuthenticationError("bad id_token")

        if not policy.permits(credentials.principal, credentials.email_verified):
            logger.info(f"User not allowed: {credentials.principal}")
            raise AuthenticationError("principal not allowed")

        logger.info(f"OAuth login: {credentials.principal or credentials.client_id}")
        return TokenResponse(
            access_token=access_token,
            token_type=tokens.get("token_type", "Bearer"),
            expires_in=tokens.get("expires_in"),
            principal=credentials.principal
        )

    @router.get("/.well-known/oauth-authorization-server")
    async def authorization_server_metadata():
        """Publish the identity provider's endpoints."""
        return {
            "issuer": oauth.public_host,
            "authorization_endpoint": oauth.authorization_url,
            "token_endpoint": oauth.token_url,
            "userinfo_endpoint": oauth.userinfo_url,
            "scopes_supported": list(oauth.scopes),
            "response_types_supported": ["code"],
            "grant_types_supported": ["authorization_code"],
        }

    return router
