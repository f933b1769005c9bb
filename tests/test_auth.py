import dataclasses

import pytest
from jose import jwt

from auth import JWT_ALG, AuthGate, hash_password
from errors import InvalidCredential, InvalidOrExpiredToken, MalformedHeader, MissingCredential


@pytest.fixture
def gate(settings, clock):
    return AuthGate(settings, clock=clock)


def test_wrong_secret_is_rejected(gate):
    with pytest.raises(InvalidCredential):
        gate.issue_token("wrong-secret")


@pytest.mark.parametrize("supplied", [None, ""])
def test_missing_secret(gate, supplied):
    with pytest.raises(MissingCredential):
        gate.issue_token(supplied)


def test_issued_token_is_accepted(gate):
    token = gate.issue_token("correct")
    gate.authorize(f"Bearer {token}")

    claims = jwt.get_unverified_claims(token)
    assert claims["role"] == "admin"
    assert claims["exp"] - claims["iat"] == 2 * 60 * 60


def test_token_expires_after_two_hours(gate, clock):
    token = gate.issue_token("correct")

    clock.advance(hours=1, minutes=59)
    gate.authorize(f"Bearer {token}")

    clock.advance(minutes=1, seconds=1)
    with pytest.raises(InvalidOrExpiredToken):
        gate.authorize(f"Bearer {token}")


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearertoken", "Bearer a b", "bearer abc"])
def test_malformed_headers(gate, header):
    with pytest.raises(MalformedHeader):
        gate.authorize(header)


def test_token_signed_with_other_key_is_rejected(gate, clock):
    forged = jwt.encode(
        {"role": "admin", "exp": int(clock().timestamp()) + 3600}, "not-our-key", algorithm=JWT_ALG
    )
    with pytest.raises(InvalidOrExpiredToken):
        gate.authorize(f"Bearer {forged}")


def test_garbage_token_is_rejected(gate):
    with pytest.raises(InvalidOrExpiredToken):
        gate.authorize("Bearer not.a.jwt")


def test_token_without_expiry_is_rejected(gate, settings):
    token = jwt.encode({"role": "admin"}, settings.jwt_secret, algorithm=JWT_ALG)
    with pytest.raises(InvalidOrExpiredToken):
        gate.authorize(f"Bearer {token}")


def test_hashed_admin_password(settings, clock):
    hashed = dataclasses.replace(
        settings, admin_password=None, admin_password_hash=hash_password("s3cret")
    )
    gate = AuthGate(hashed, clock=clock)

    with pytest.raises(InvalidCredential):
        gate.issue_token("correct")
    gate.authorize(f"Bearer {gate.issue_token('s3cret')}")
