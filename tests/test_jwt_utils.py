import time

import pytest

from okr.jwt_utils import JWTError, decode, encode, select_signing_secret


def test_roundtrip_normalizes_email():
    tok = encode({"sub": "user-1", "email": "  Ana@Example.TEST ", "name": "Ana"}, secret="s1")
    claims = decode(tok, secrets_list=["s1"])
    assert claims["sub"] == "user-1"
    assert claims["email"] == "ana@example.test"
    assert claims["name"] == "Ana"


def test_rotated_secret_still_verifies():
    tok = encode({"sub": "user-1"}, secret="old")
    assert decode(tok, secrets_list=["new", "old"])["sub"] == "user-1"


def test_bad_signature_rejected():
    tok = encode({"sub": "user-1"}, secret="other")
    with pytest.raises(JWTError):
        decode(tok, secrets_list=["s1"])


def test_expired_token_rejected_beyond_leeway():
    now = int(time.time())
    tok = encode({"sub": "user-1", "iat": now - 600, "exp": now - 120}, secret="s1")
    with pytest.raises(JWTError, match="expired"):
        decode(tok, secrets_list=["s1"], leeway=60)
    # within leeway the same token passes
    assert decode(tok, secrets_list=["s1"], leeway=300)["sub"] == "user-1"


def test_missing_sub_rejected():
    tok = encode({"email": "a@b.test"}, secret="s1")
    with pytest.raises(JWTError, match="sub"):
        decode(tok, secrets_list=["s1"])


def test_not_yet_valid_rejected():
    tok = encode({"sub": "u", "nbf": int(time.time()) + 3600}, secret="s1")
    with pytest.raises(JWTError):
        decode(tok, secrets_list=["s1"])


def test_issuer_and_audience_checked():
    tok = encode({"sub": "u", "iss": "https://idp.test", "aud": ["okr", "other"]}, secret="s1")
    assert decode(tok, secrets_list=["s1"], issuer="https://idp.test", audience="okr")["sub"] == "u"
    with pytest.raises(JWTError):
        decode(tok, secrets_list=["s1"], issuer="https://evil.test")
    with pytest.raises(JWTError):
        decode(tok, secrets_list=["s1"], audience="billing")


def test_malformed_token_and_empty_secrets():
    with pytest.raises(JWTError):
        decode("not-a-token", secrets_list=["s1"])
    tok = encode({"sub": "u"}, secret="s1")
    with pytest.raises(JWTError):
        decode(tok, secrets_list=[])


def test_select_signing_secret():
    assert select_signing_secret(["", "first", "second"]) == "first"
    with pytest.raises(JWTError):
        select_signing_secret(None)
