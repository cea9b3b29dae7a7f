"""
Unit Tests for session token issue/verification

Run with: pytest tests/test_tokens.py -v
"""

import base64
import json
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from services.tokens import SessionIdentity, TokenIssuer, TokenVerifier
from utils.errors import (
    AuthenticationFailed,
    TokenExpired,
    TokenMalformed,
    TokenMissingIdentity,
    TokenSignatureInvalid,
)

SECRET = "unit-test-secret"


def _b64(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()


@pytest.fixture
def issuer():
    return TokenIssuer(secret_key=SECRET, algorithm="HS256", access_minutes=60, remember_me_days=7)


@pytest.fixture
def verifier():
    return TokenVerifier(secret_key=SECRET, algorithm="HS256")


class TestIssue:

    def test_round_trip_carries_both_ids(self, issuer, verifier):
        token = issuer.issue("65a1f0c2e4b0a1b2c3d4e5f6", "42")
        identity = verifier.verify(token)
        assert identity == SessionIdentity(mongo_id="65a1f0c2e4b0a1b2c3d4e5f6", sql_id="42")

    def test_single_store_identity(self, issuer, verifier):
        identity = verifier.verify(issuer.issue(None, 7))
        assert identity.mongo_id is None
        assert identity.sql_id == "7"

    def test_refuses_to_issue_without_identity(self, issuer):
        with pytest.raises(TokenMissingIdentity):
            issuer.issue(None, None)

    def test_claims_are_nested_under_user(self, issuer):
        claims = jwt.get_unverified_claims(issuer.issue("abc", None))
        assert claims["user"] == {"mongo_id": "abc", "sql_id": None}

    @pytest.mark.parametrize("remember_me,expected", [
        (False, timedelta(hours=1)),
        (True, timedelta(days=7)),
    ])
    def test_lifetime(self, issuer, remember_me, expected):
        claims = jwt.get_unverified_claims(issuer.issue("abc", "1", remember_me=remember_me))
        assert claims["exp"] - claims["iat"] == int(expected.total_seconds())


class TestVerify:

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b", "a.b.c", "x.y.z.w"])
    def test_malformed(self, verifier, token):
        with pytest.raises(TokenMalformed):
            verifier.verify(token)

    def test_unsigned_token_is_malformed(self, verifier):
        token = f"{_b64({'alg': 'none', 'typ': 'JWT'})}.{_b64({'user': {'mongo_id': 'abc'}})}."
        with pytest.raises(TokenMalformed):
            verifier.verify(token)

    def test_expired(self, issuer, verifier):
        token = issuer.issue("abc", None, expires_delta=timedelta(seconds=-10))
        with pytest.raises(TokenExpired) as exc_info:
            verifier.verify(token)
        assert exc_info.value.error == "token_expired"

    def test_wrong_secret(self, issuer):
        token = issuer.issue("abc", "1")
        with pytest.raises(TokenSignatureInvalid):
            TokenVerifier(secret_key="another-secret", algorithm="HS256").verify(token)

    def test_valid_signature_without_ids(self, verifier):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"user": {"mongo_id": None, "sql_id": None}, "iat": now, "exp": now + timedelta(hours=1)},
            SECRET,
            algorithm="HS256",
        )
        with pytest.raises(TokenMissingIdentity) as exc_info:
            verifier.verify(token)
        assert exc_info.value.error == "invalid_user_id"
        assert exc_info.value.message == "Invalid user identification"

    def test_legacy_flat_claims(self, verifier):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"mongoId": "abc", "mysqlId": 12, "exp": now + timedelta(hours=1)},
            SECRET,
            algorithm="HS256",
        )
        assert verifier.verify(token) == SessionIdentity(mongo_id="abc", sql_id="12")

    def test_all_failures_are_authentication_failures(self, verifier):
        for error in (TokenMalformed, TokenExpired, TokenSignatureInvalid, TokenMissingIdentity):
            assert issubclass(error, AuthenticationFailed)
            assert error().status_code == 401
