"""Identity gate: turns a bearer credential into a verified email.

Tokens are minted by Firebase Authentication on the client. This service
never stores credentials; it only checks the ID token's signature and expiry
through ``firebase_admin`` and reads the claims.
"""
import logging
import os
import threading
from dataclasses import dataclass
from typing import Optional

import firebase_admin
from firebase_admin import auth, credentials
from fastapi import Depends, Header

import config
from errors import Unauthenticated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    email: str
    verified: bool = False


class TokenVerifier:
    """Anything that maps a raw token to a claims dict or raises ``Unauthenticated``."""

    def verify(self, token: str) -> dict:
        raise NotImplementedError


class FirebaseTokenVerifier(TokenVerifier):
    _lock = threading.Lock()

    def __init__(self, credentials_path: Optional[str] = None):
        self.credentials_path = credentials_path or config.FIREBASE_CREDENTIALS

    def _ensure_app(self):
        with self._lock:
            if firebase_admin._apps:
                return
            if os.path.exists(self.credentials_path):
                firebase_admin.initialize_app(credentials.Certificate(self.credentials_path))
            else:
                # falls back to GOOGLE_APPLICATION_CREDENTIALS / metadata server
                logger.warning("Firebase credentials file %s not found; using default credentials", self.credentials_path)
                firebase_admin.initialize_app()

    def verify(self, token: str) -> dict:
        self._ensure_app()
        try:
            return auth.verify_id_token(token)
        except (ValueError, auth.InvalidIdTokenError) as e:
            # ExpiredIdTokenError and RevokedIdTokenError are InvalidIdTokenError
            logger.info("Rejected ID token: %s", type(e).__name__)
            raise Unauthenticated()


_verifier: Optional[TokenVerifier] = None


def get_verifier() -> TokenVerifier:
    global _verifier
    if _verifier is None:
        _verifier = FirebaseTokenVerifier()
    return _verifier


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise Unauthenticated()
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise Unauthenticated()
    return token


def resolve(token: str, verifier: TokenVerifier) -> Identity:
    claims = verifier.verify(token)
    email = claims.get("email")
    if not email:
        raise Unauthenticated()
    return Identity(email=email, verified=bool(claims.get("email_verified", False)))


def current_identity(
    authorization: Optional[str] = Header(None),
    verifier: TokenVerifier = Depends(get_verifier),
) -> Identity:
    return resolve(bearer_token(authorization), verifier)


def optional_identity(
    authorization: Optional[str] = Header(None),
    verifier: TokenVerifier = Depends(get_verifier),
) -> Optional[Identity]:
    """Like ``current_identity`` but anonymous callers get ``None``."""
    if not authorization:
        return None
    return resolve(bearer_token(authorization), verifier)
