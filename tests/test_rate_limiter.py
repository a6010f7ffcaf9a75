"""Tests for the rate limiter in memory-only mode (no REDIS_URL)."""

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app import rate_limiter
from app.rate_limiter import check_rate_limit, create_rate_limiter


def test_redis_is_optional():
    assert rate_limiter.get_redis_client() is None


def test_limit_per_key():
    results = [check_rate_limit("test:1.2.3.4", limit=3, window_seconds=60)[0] for _ in range(4)]

    assert results == [True, True, True, False]
    assert check_rate_limit("test:5.6.7.8", limit=3, window_seconds=60)[0] is True


def test_dependency_answers_429_with_retry_after():
    app = FastAPI()
    limited = create_rate_limiter(limit=2, window_seconds=60, key_prefix="test")

    @app.get("/ping")
    async def ping(_: None = Depends(limited)):
        return {"ok": True}

    client = TestClient(app)

    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 200
    response = client.get("/ping")
    assert response.status_code == 429
    assert int(response.headers["Retry-After"]) > 0
    assert response.json()["detail"]["limit"] == 2


def test_forwarded_for_header_identifies_client():
    app = FastAPI()
    limited = create_rate_limiter(limit=1, window_seconds=60, key_prefix="fwd")

    @app.get("/ping")
    async def ping(_: None = Depends(limited)):
        return {"ok": True}

    client = TestClient(app)

    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2, 10.0.0.1"}).status_code == 200
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429
