import os
import sys
import time

import jwt
import pytest
from fastapi.testclient import TestClient

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.main import app
from app.routers import auth

ME = "/api/v0/auth/me"
SECRET = "x" * 32


def _token(payload: dict, secret: str = SECRET) -> str:
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def client():
    auth.limiter.reset()
    with TestClient(app) as c:
        yield c


def test_me_returns_token_subject(client):
    token = _token({"sub": "user-42"})
    resp = client.get(ME, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json() == {"id": "user-42"}


@pytest.mark.parametrize(
    "headers, code",
    [
        ({}, "auth_missing_token"),
        ({"Authorization": "Basic abc"}, "auth_missing_token"),
        ({"Authorization": "Bearer "}, "auth_missing_token"),
        ({"Authorization": f"Bearer {_token({'sub': 'u'}, 'y' * 32)}"}, "auth_invalid_token"),
        ({"Authorization": f"Bearer {_token({'name': 'no subject'})}"}, "auth_invalid_token"),
        (
            {"Authorization": f"Bearer {_token({'sub': 'u', 'exp': int(time.time()) - 60})}"},
            "auth_token_expired",
        ),
    ],
    ids=["missing", "wrong-scheme", "empty", "bad-signature", "no-sub", "expired"],
)
def test_me_rejects_bad_credentials(client, headers, code):
    resp = client.get(ME, headers=headers)
    assert resp.status_code == 401
    assert resp.json()["code"] == code


def test_audience_is_checked_when_configured(client, monkeypatch):
    monkeypatch.setenv("JWT_AUDIENCE", "tt-ratings")
    good = _token({"sub": "u1", "aud": "tt-ratings"})
    other = _token({"sub": "u1", "aud": "someone-else"})

    assert client.get(ME, headers={"Authorization": f"Bearer {good}"}).status_code == 200
    resp = client.get(ME, headers={"Authorization": f"Bearer {other}"})
    assert resp.status_code == 401
    assert resp.json()["code"] == "auth_invalid_token"


def test_weak_secret_is_refused(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "changeme")
    with pytest.raises(RuntimeError):
        auth.get_jwt_secret()
    monkeypatch.delenv("JWT_SECRET")
    with pytest.raises(RuntimeError):
        auth.get_jwt_secret()


def test_client_ip_prefers_last_forwarded_hop():
    class FakeRequest:
        def __init__(self, headers):
            self.headers = headers
            self.client = None

    assert auth._get_client_ip(FakeRequest({"X-Forwarded-For": "1.1.1.1, 2.2.2.2"})) == "2.2.2.2"
    assert auth._get_client_ip(FakeRequest({"X-Real-IP": "3.3.3.3"})) == "3.3.3.3"
    assert auth._get_client_ip(FakeRequest({})) == ""


def test_write_rate_limit_follows_environment(monkeypatch):
    monkeypatch.setenv("DISABLE_RATE_LIMITS", "false")
    assert auth.write_rate_limit() == "30/minute"
    monkeypatch.setenv("DISABLE_RATE_LIMITS", "true")
    assert auth.write_rate_limit() == "1000/second"
