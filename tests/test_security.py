"""Tests for bearer token verification."""
import time

import jwt
import pytest

from bizchat.errors import InvalidCredential, MissingCredential
from bizchat.utils.security import authenticate, bearer_token_from_header

from helpers import make_token


def test_valid_token_yields_identity():
    identity = authenticate(make_token("user-1"))
    assert identity.user_id == "user-1"
    assert identity.issued_at is not None


def test_legacy_id_claim_is_accepted():
    identity = authenticate(make_token("user-2", claim="id"))
    assert identity.user_id == "user-2"


def test_missing_token():
    with pytest.raises(MissingCredential):
        authenticate(None)


def test_wrong_signature():
    with pytest.raises(InvalidCredential):
        authenticate(make_token("user-1", secret="other-secret"))


def test_expired_token():
    with pytest.raises(InvalidCredential):
        authenticate(make_token("user-1", exp=int(time.time()) - 60))


def test_garbage_token():
    with pytest.raises(InvalidCredential):
        authenticate("not-a-jwt")


def test_credential_errors_are_401():
    assert MissingCredential().status_code == 401
    assert InvalidCredential().status_code == 401


@pytest.mark.parametrize(
    "header, expected",
    [
        ("Bearer abc", "abc"),
        ("bearer abc", "abc"),
        ("Basic abc", None),
        ("Bearer ", None),
        (None, None),
    ],
)
def test_bearer_token_from_header(header, expected):
    assert bearer_token_from_header(header) == expected


def test_token_without_subject_is_rejected():
    token = jwt.encode({"iat": int(time.time()), "exp": int(time.time()) + 60}, "test-secret", algorithm="HS256")
    with pytest.raises(InvalidCredential):
        authenticate(token)


def test_token_without_expiry_is_rejected():
    token = jwt.encode({"sub": "user-1"}, "test-secret", algorithm="HS256")
    with pytest.raises(InvalidCredential):
        authenticate(token)
