"""
Unit tests for the identity verifiers.
"""

import base64
import json
from unittest.mock import MagicMock, patch

import pytest
from firebase_admin import auth as firebase_auth
from flask import Flask
from flask_jwt_extended import create_access_token

from smart_deals.errors import InvalidToken, StartupError
from smart_deals.identity import (
    FIREBASE_APP_NAME,
    FirebaseVerifier,
    Identity,
    LocalJWTVerifier,
    build_verifier,
)
from smart_deals.config import DEFAULT_JWT_SECRET_KEY
from tests.conftest import TEST_JWT_SECRET


class TestIdentity:
    def test_display_name_prefers_name_claim(self):
        identity = Identity.from_claims({"email": "carol@example.com", "name": "Carol"})

        assert identity.display_name == "Carol"

    def test_display_name_falls_back_to_local_part(self):
        identity = Identity.from_claims({"email": "carol.smith@example.com"})

        assert identity.display_name == "carol.smith"

    def test_claims_without_email_are_invalid(self):
        with pytest.raises(InvalidToken):
            Identity.from_claims({"sub": "anonymous-user"})


class TestFirebaseVerifier:
    def test_verified_claims_become_identity(self):
        firebase_app = MagicMock(name="firebase-app")
        verifier = FirebaseVerifier(firebase_app)

        with patch(
            "smart_deals.identity.firebase_auth.verify_id_token",
            return_value={"uid": "abc", "email": "dave@example.com", "name": "Dave"},
        ) as verify_id_token:
            identity = verifier.verify("id-token")

        verify_id_token.assert_called_once_with("id-token", app=firebase_app)
        assert identity == Identity(email="dave@example.com", name="Dave")

    @pytest.mark.parametrize(
        "error",
        [
            firebase_auth.InvalidIdTokenError("bad signature"),
            firebase_auth.ExpiredIdTokenError("expired", cause=None),
            ValueError("Illegal ID token provided"),
        ],
    )
    def test_verification_failures_are_invalid_token(self, error):
        verifier = FirebaseVerifier(MagicMock())

        with patch("smart_deals.identity.firebase_auth.verify_id_token", side_effect=error):
            with pytest.raises(InvalidToken):
                verifier.verify("id-token")

    def test_missing_service_key_fails_startup(self):
        with pytest.raises(StartupError):
            FirebaseVerifier.from_service_key("")

    def test_undecodable_service_key_fails_startup(self):
        with pytest.raises(StartupError):
            FirebaseVerifier.from_service_key("%%% not base64 %%%")

    def test_service_key_initializes_named_app(self):
        service_account = {"type": "service_account", "project_id": "smart-deals"}
        encoded = base64.b64encode(json.dumps(service_account).encode("utf-8")).decode("ascii")
        firebase_app = MagicMock(name="firebase-app")

        with patch("smart_deals.identity.credentials.Certificate") as certificate, patch(
            "smart_deals.identity.firebase_admin.get_app", side_effect=ValueError
        ), patch(
            "smart_deals.identity.firebase_admin.initialize_app", return_value=firebase_app
        ) as initialize_app:
            verifier = FirebaseVerifier.from_service_key(encoded)

        certificate.assert_called_once_with(service_account)
        initialize_app.assert_called_once_with(certificate.return_value, name=FIREBASE_APP_NAME)
        assert verifier.firebase_app is firebase_app


class TestLocalJWTVerifier:
    @pytest.fixture
    def jwt_app(self):
        app = Flask(__name__)
        app.config["JWT_SECRET_KEY"] = TEST_JWT_SECRET
        return app

    def test_round_trips_tokens_from_the_same_app(self, jwt_app):
        verifier = LocalJWTVerifier(jwt_app)
        with jwt_app.app_context():
            token = create_access_token(
                identity="erin@example.com", additional_claims={"email": "erin@example.com"}
            )

        identity = verifier.verify(token)

        assert identity.email == "erin@example.com"
        assert identity.display_name == "erin"

    def test_token_signed_with_other_secret_is_invalid(self, jwt_app):
        other_app = Flask("other")
        other_app.config["JWT_SECRET_KEY"] = "a-completely-different-secret-0123456789"
        LocalJWTVerifier(other_app)
        with other_app.app_context():
            token = create_access_token(
                identity="erin@example.com", additional_claims={"email": "erin@example.com"}
            )

        with pytest.raises(InvalidToken):
            LocalJWTVerifier(jwt_app).verify(token)


def test_build_verifier_rejects_unknown_provider():
    app = Flask(__name__)
    app.config["IDENTITY_PROVIDER"] = "ldap"

    with pytest.raises(StartupError):
        build_verifier(app)


def test_build_verifier_local_provider():
    app = Flask(__name__)
    app.config.update(IDENTITY_PROVIDER="local", JWT_SECRET_KEY=TEST_JWT_SECRET)

    assert isinstance(build_verifier(app), LocalJWTVerifier)


def test_build_verifier_refuses_default_secret_in_production():
    app = Flask(__name__)
    app.config.update(IDENTITY_PROVIDER="local", JWT_SECRET_KEY=DEFAULT_JWT_SECRET_KEY)

    with pytest.raises(StartupError):
        build_verifier(app)


@pytest.mark.parametrize("flag", ["TESTING", "DEBUG"])
def test_build_verifier_allows_default_secret_for_development(flag):
    app = Flask(__name__)
    app.config.update(IDENTITY_PROVIDER="local", JWT_SECRET_KEY=DEFAULT_JWT_SECRET_KEY)
    app.config[flag] = True

    assert isinstance(build_verifier(app), LocalJWTVerifier)
