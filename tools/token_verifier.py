"""Bearer credential verification for externally issued identity tokens."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import jwt

from logic.errors import Unauthorized
from tryon_app.logging_config import get_logger, log_event

LOGGER = get_logger(__name__)

GOOGLE_SECURE_TOKEN_JWKS = (
    "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
)


def subject_from_claims(claims: Dict[str, Any]) -> str:
    """Firebase tokens carry the uid as ``user_id``; plain JWTs use ``sub``."""

    subject = claims.get("user_id") or claims.get("sub")
    if not subject:
        raise Unauthorized("Token does not carry a subject")
    return str(subject)


class TokenVerifier(ABC):
    """Turns a bearer credential into the external subject it was issued to."""

    @abstractmethod
    def verify(self, token: str) -> str:
        """Return the subject or raise :class:`Unauthorized`."""


class FirebaseTokenVerifier(TokenVerifier):
    """Verifies Firebase ID tokens against Google's published signing keys."""

    def __init__(self, project_id: str, jwks_url: str = GOOGLE_SECURE_TOKEN_JWKS, timeout_seconds: float = 10.0) -> None:
        self.project_id = project_id
        self.issuer = f"https://securetoken.google.com/{project_id}"
        self._jwks_client = jwt.PyJWKClient(jwks_url, cache_keys=True, timeout=timeout_seconds)

    def verify(self, token: str) -> str:
        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=self.issuer,
                options={"require": ["exp", "iat"]},
            )
        except jwt.PyJWTError as exc:
            log_event(LOGGER, logging.INFO, "token_rejected", reason=type(exc).__name__)
            raise Unauthorized("Invalid or expired token") from exc
        return subject_from_claims(claims)


class SharedSecretTokenVerifier(TokenVerifier):
    """HS256 verifier for local runs and tests; same audience and expiry rules."""

    def __init__(self, secret: str, audience: str, issuer: Optional[str] = None) -> None:
        if not secret:
            raise ValueError("A shared secret is required for shared_secret auth mode")
        self.secret = secret
        self.audience = audience
        self.issuer = issuer

    def verify(self, token: str) -> str:
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=["HS256"],
                audience=self.audience,
                issuer=self.issuer,
                options={"require": ["exp"]},
            )
        except jwt.PyJWTError as exc:
            log_event(LOGGER, logging.INFO, "token_rejected", reason=type(exc).__name__)
            raise Unauthorized("Invalid or expired token") from exc
        return subject_from_claims(claims)


__all__ = [
    "TokenVerifier",
    "FirebaseTokenVerifier",
    "SharedSecretTokenVerifier",
    "subject_from_claims",
]
