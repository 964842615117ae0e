"""
Gateway Authentication

Pluggable admission in front of the network surface:
- AuthGate: pass-through or delegated bearer-token verification
- TokenVerifier: resolves IdP-issued tokens to a CredentialContext
- OAuth login router for the authorization-code flow
"""

from .gate import (
    AuthGate,
    BearerTokenGate,
    CredentialContext,
    PassThroughGate,
    PrincipalPolicy,
)
from .verifier import (
    OAuth2UserInfoVerifier,
    TokenVerificationError,
    TokenVerifier,
)
from .oauth import StateStore, build_auth_gate, create_oauth_router

__all__ = [
    "AuthGate",
    "BearerTokenGate",
    "CredentialContext",
    "PassThroughGate",
    "PrincipalPolicy",
    "OAuth2UserInfoVerifier",
    "TokenVerificationError",
    "TokenVerifier",
    "StateStore",
    "build_auth_gate",
    "create_oauth_router",
]
