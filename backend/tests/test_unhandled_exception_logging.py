import logging
import os
import sys
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

# Ensure the app package is importable
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.exceptions import ConcurrentUpdateError, http_problem
from app.main import (
    domain_exception_handler,
    http_exception_handler,
    match_validation_handler,
    unhandled_exception_handler,
)
from app.services.validation import ValidationError


def _client(exc: Exception) -> TestClient:
    app = FastAPI()
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(ValidationError, match_validation_handler)
    app.add_exception_handler(ConcurrentUpdateError, domain_exception_handler)

    @app.get("/boom")
    def boom():
        raise exc

    return TestClient(app, raise_server_exceptions=False)


def test_unhandled_exception_logs_traceback(caplog):
    client = _client(ValueError("boom"))
    with caplog.at_level(logging.ERROR):
        response = client.get("/boom")

    assert response.status_code == 500
    assert response.json()["code"] == "internal_server_error"
    record = next((r for r in caplog.records if r.message == "Unhandled exception"), None)
    assert record is not None
    assert record.exc_info[0] is ValueError
    assert "ValueError: boom" in caplog.text


def test_match_validation_becomes_problem_response():
    response = _client(ValidationError("Scores cannot be a tie")).get("/boom")
    assert response.status_code == 422
    assert response.headers["content-type"].startswith("application/problem+json")
    body = response.json()
    assert body["code"] == "match_invalid"
    assert body["detail"] == "Scores cannot be a tie"


def test_conflict_maps_to_409():
    response = _client(ConcurrentUpdateError(3)).get("/boom")
    assert response.status_code == 409
    assert response.json()["code"] == "profile_conflict"


def test_http_problem_keeps_code_and_headers():
    exc = http_problem(401, "missing token", "auth_missing_token", headers={"WWW-Authenticate": "Bearer"})
    response = _client(exc).get("/boom")
    assert response.status_code == 401
    assert response.json()["code"] == "auth_missing_token"
    assert response.headers["www-authenticate"] == "Bearer"
