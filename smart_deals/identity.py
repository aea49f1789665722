"""
Bearer token verification.

Route code only depends on the ``IdentityVerifier`` protocol: one ``verify``
method turning a token string into an ``Identity`` or raising
``InvalidToken``. Two implementations ship with the service:

- ``FirebaseVerifier`` checks Firebase ID tokens with the Admin SDK.
- ``LocalJWTVerifier`` checks HS256 tokens signed with ``JWT_SECRET_KEY``,
  for local development and the test suite.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol

import firebase_admin
import jwt
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin.exceptions import FirebaseError
from flask import Flask
from flask_jwt_extended import JWTManager, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException

from .config import DEFAULT_JWT_SECRET_KEY
from .errors import InvalidToken, StartupError

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "smart-deals"


@dataclass(frozen=True)
class Identity:
    """Verified caller identity, scoped to a single request."""

    email: str
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return self.email.split("@")[0]

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Identity":
        email = str(claims.get("email") or "").strip()
        if not email:
            raise InvalidToken()
        name = claims.get("name")
        return cls(email=email, name=str(name) if name else None)


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> Identity:
        ...


class FirebaseVerifier:
    def __init__(self, firebase_app):
        self.firebase_app = firebase_app

    @classmethod
    def from_service_key(cls, encoded_key: str) -> "FirebaseVerifier":
        """Initialize the Admin SDK from a base64 encoded service-account JSON."""
        if not encoded_key:
            raise StartupError("FIREBASE_SERVICE_KEY is not configured.")

        try:
            service_account = json.loads(
                base64.b64decode(encoded_key).decode("utf-8")
            )
            credential = credentials.Certificate(service_account)
        except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
            raise StartupError(
                "Could not initialize Firebase Admin. Check the service account key."
            ) from exc

        try:
            firebase_app = firebase_admin.get_app(FIREBASE_APP_NAME)
        except ValueError:
            firebase_app = firebase_admin.initialize_app(
                credential, name=FIREBASE_APP_NAME
            )
        return cls(firebase_app)

    def verify(self, token: str) -> Identity:
        try:
            claims = firebase_auth.verify_id_token(token, app=self.firebase_app)
        except (FirebaseError, ValueError) as exc:
            logger.warning("Token verification failed: %s", exc)
            raise InvalidToken() from exc
        return Identity.from_claims(claims)


class LocalJWTVerifier:
    """Verifies tokens issued by this app's own ``flask_jwt_extended`` setup."""

    def __init__(self, app: Flask):
        self.app = app
        if "flask-jwt-extended" not in app.extensions:
            JWTManager(app)

    def verify(self, token: str) -> Identity:
        with self.app.app_context():
            try:
                claims: Dict[str, Any] = decode_token(token)
            except (jwt.PyJWTError, JWTExtendedException) as exc:
                logger.warning("Token verification failed: %s", exc)
                raise InvalidToken() from exc
        return Identity.from_claims(claims)


def build_verifier(app: Flask) -> IdentityVerifier:
    provider = app.config.get("IDENTITY_PROVIDER", "firebase")
    if provider == "local":
        insecure_secret = app.config.get("JWT_SECRET_KEY") in ("", None, DEFAULT_JWT_SECRET_KEY)
        if insecure_secret and not (app.config.get("TESTING") or app.config.get("DEBUG")):
            raise StartupError(
                "IDENTITY_PROVIDER=local requires JWT_SECRET_KEY to be set outside TESTING or DEBUG."
            )
        return LocalJWTVerifier(app)
    if provider == "firebase":
        return FirebaseVerifier.from_service_key(app.config.get("FIREBASE_SERVICE_KEY", ""))
    raise StartupError(f"Unknown IDENTITY_PROVIDER {provider!r}.")
