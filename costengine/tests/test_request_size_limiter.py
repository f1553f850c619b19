"""
Tests for request size limiting middleware.
"""
import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from costengine.middleware.request_size_limiter import RequestSizeLimiterMiddleware


@pytest.fixture
def limited_client():
    app = FastAPI()
    app.add_middleware(RequestSizeLimiterMiddleware, max_body_size=100)

    @app.post("/api/v1/echo")
    async def echo(request: Request):
        body = await request.body()
        return {"size": len(body)}

    @app.post("/upload")
    async def upload(request: Request):
        body = await request.body()
        return {"size": len(body)}

    return TestClient(app)


def test_small_body_passes(limited_client):
    response = limited_client.post("/api/v1/echo", content=b"x" * 50)
    assert response.status_code == 200
    assert response.json() == {"size": 50}


def test_body_at_limit_passes(limited_client):
    response = limited_client.post("/api/v1/echo", content=b"x" * 100)
    assert response.status_code == 200


def test_oversized_body_rejected(limited_client):
    response = limited_client.post("/api/v1/echo", content=b"x" * 101)
    assert response.status_code == 413
    assert response.json() == {
        "status": "error",
        "error": "request_too_large",
        "message": "Request body size exceeds allowed limit of 100 bytes.",
    }


def test_declared_length_rejected_before_reading(limited_client):
    response = limited_client.post(
        "/api/v1/echo",
        content=b"x" * 10,
        headers={"Content-Length": "5000"},
    )
    assert response.status_code == 413


def test_unprotected_path_is_not_limited(limited_client):
    response = limited_client.post("/upload", content=b"x" * 500)
    assert response.status_code == 200
    assert response.json() == {"size": 500}


def test_default_limit_from_config():
    from costengine.core.config import config

    middleware = RequestSizeLimiterMiddleware(FastAPI())
    assert middleware.max_body_size == config.MAX_REQUEST_BODY_SIZE
