"""
Shared pytest fixtures for Smart Deals tests.

The app runs against an in-memory ``mongomock`` database and the local JWT
verifier, so tokens are minted with ``flask_jwt_extended``.
"""

from datetime import timedelta
from typing import Dict, List, Optional

import mongomock
import pytest
from flask_jwt_extended import create_access_token

from smart_deals import create_app
from smart_deals.errors import InvalidToken
from smart_deals.identity import Identity

TEST_JWT_SECRET = "smart-deals-test-secret-0123456789abcdef"

BUYER_EMAIL = "alice@example.com"
OTHER_EMAIL = "bob@example.com"


def base_test_config() -> Dict:
    return {
        "TESTING": True,
        "IDENTITY_PROVIDER": "local",
        "JWT_SECRET_KEY": TEST_JWT_SECRET,
        "TRUSTED_PROXY_HOPS": 0,
        "VERIFY_STORE_ON_STARTUP": False,
    }


class StubVerifier:
    """Accepts a fixed set of tokens and records every call."""

    def __init__(self, identities: Optional[Dict[str, Identity]] = None):
        self.identities = identities or {}
        self.calls: List[str] = []

    def verify(self, token: str) -> Identity:
        self.calls.append(token)
        if token not in self.identities:
            raise InvalidToken()
        return self.identities[token]


@pytest.fixture
def store():
    return mongomock.MongoClient()["SmartDeals"]


@pytest.fixture
def app(store):
    return create_app(test_config=base_test_config(), store=store)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_token(app):
    def _make(email: str, name: Optional[str] = None, expires_delta=None) -> str:
        claims = {"email": email}
        if name:
            claims["name"] = name
        with app.app_context():
            return create_access_token(
                identity=email,
                additional_claims=claims,
                expires_delta=expires_delta if expires_delta is not None else timedelta(minutes=15),
            )

    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(email: str = BUYER_EMAIL, name: Optional[str] = None) -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(email, name)}"}

    return _headers
