from types import SimpleNamespace

import jwt
import pytest
from fastapi import HTTPException

from auth import TokenVerifier

SECRET = "issuer-secret"


def make_verifier(**kwargs):
    verifier = TokenVerifier("https://issuer.test/jwks.json", kwargs.get("issuer"), kwargs.get("audience"), ["HS256"])
    verifier.jwks_client = SimpleNamespace(get_signing_key_from_jwt=lambda token: SimpleNamespace(key=SECRET))
    return verifier


def test_verify_returns_email_claim():
    token = jwt.encode({"email": "hr@acme.com", "iss": "https://issuer.test", "aud": "asset-app"}, SECRET, algorithm="HS256")
    verifier = make_verifier(issuer="https://issuer.test", audience="asset-app")
    assert verifier.verify(token) == "hr@acme.com"


def test_verify_rejects_wrong_audience():
    token = jwt.encode({"email": "hr@acme.com", "aud": "other-app"}, SECRET, algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        make_verifier(audience="asset-app").verify(token)
    assert exc.value.status_code == 401


def test_verify_rejects_bad_signature():
    token = jwt.encode({"email": "hr@acme.com"}, "someone-else", algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        make_verifier().verify(token)
    assert exc.value.detail == "Invalid token"


def test_verify_rejects_expired_token():
    token = jwt.encode({"email": "hr@acme.com", "exp": 1}, SECRET, algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        make_verifier().verify(token)
    assert exc.value.detail == "Token expired"


def test_verify_requires_email_claim():
    token = jwt.encode({"sub": "123"}, SECRET, algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        make_verifier().verify(token)
    assert exc.value.status_code == 401
