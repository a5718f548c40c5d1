"""Integration tests for promptgallery.api.middleware.

Tests cover:
- Security headers on success and error responses.
- CORS allowlist handling.
- Body size limit (declared and streamed bodies).
- Access log lines.
- Rate limiting per client address.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi.testclient import TestClient

from promptgallery.api.main import create_app
from promptgallery.api.middleware import client_address, format_access_line
from promptgallery.core.rate_limit import MemoryCounterStore, RateLimiter


def make_client(test_config, repository, gateway, **overrides) -> TestClient:
    cfg = test_config.model_copy(update=overrides)
    return TestClient(create_app(cfg, repository=repository, gateway=gateway))


class TestSecurityHeaders:
    """Test SecurityHeadersMiddleware."""

    def test_headers_on_success(self, test_client):
        resp = test_client.get("/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert "Content-Security-Policy" in resp.headers

    def test_headers_on_error(self, test_client):
        resp = test_client.put("/api/v1/post/missing/like")
        assert resp.status_code == 404
        assert resp.headers["Referrer-Policy"] == "no-referrer"


class TestCors:
    """Test CORS configuration."""

    def test_permissive_by_default(self, test_client):
        resp = test_client.get("/health", headers={"Origin": "https://anywhere.example"})
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_allowlist(self, test_config, repository, gateway):
        with make_client(
            test_config, repository, gateway, allowed_origins="https://gallery.example"
        ) as client:
            allowed = client.get("/health", headers={"Origin": "https://gallery.example"})
            denied = client.get("/health", headers={"Origin": "https://evil.example"})
        assert allowed.headers["access-control-allow-origin"] == "https://gallery.example"
        assert "access-control-allow-origin" not in denied.headers

    def test_preflight_for_like(self, test_client):
        resp = test_client.options(
            "/api/v1/post/abc/like",
            headers={
                "Origin": "https://gallery.example",
                "Access-Control-Request-Method": "PUT",
            },
        )
        assert resp.status_code == 200
        assert "PUT" in resp.headers["access-control-allow-methods"]


class TestBodySizeLimit:
    """Test BodySizeLimitMiddleware."""

    def test_declared_oversize_body_rejected(self, test_config, repository, gateway):
        with make_client(test_config, repository, gateway, max_body_bytes=64) as client:
            resp = client.post(
                "/api/v1/post",
                json={"name": "A", "prompt": "x" * 200, "photo": "https://img.test/cat.png"},
            )
        assert resp.status_code == 413
        assert resp.json()["status"] == "error"
        assert "limit" in resp.json()["message"]

    def test_streamed_oversize_body_rejected(self, test_config, repository, gateway):
        def chunks():
            for _ in range(10):
                yield b"x" * 16

        with make_client(test_config, repository, gateway, max_body_bytes=64) as client:
            resp = client.post(
                "/api/v1/post",
                content=chunks(),
                headers={"Content-Type": "application/json"},
            )
        assert resp.status_code == 413

    def test_body_within_limit_passes(self, test_config, repository, gateway):
        with make_client(test_config, repository, gateway, max_body_bytes=1024) as client:
            resp = client.post(
                "/api/v1/post",
                json={"name": "A", "prompt": "a cat", "photo": "https://img.test/cat.png"},
            )
        assert resp.status_code == 201


class TestAccessLog:
    """Test AccessLogMiddleware output."""

    def test_logs_combined_line(self, test_client, caplog):
        with caplog.at_level(logging.INFO, logger="promptgallery.access"):
            test_client.get("/health?probe=1", headers={"User-Agent": "probe/1.0"})
        lines = [r.getMessage() for r in caplog.records if r.name == "promptgallery.access"]
        assert len(lines) == 1
        assert '"GET /health?probe=1 HTTP/1.1" 200' in lines[0]
        assert '"probe/1.0"' in lines[0]

    def test_format_access_line(self):
        scope = {
            "type": "http",
            "method": "PUT",
            "path": "/api/v1/post/abc/like",
            "query_string": b"",
            "http_version": "1.1",
            "client": ("10.1.2.3", 5555),
            "headers": [(b"referer", b"https://gallery.example/")],
        }
        line = format_access_line(
            scope, 200, "123", now=datetime(2024, 3, 5, 14, 7, 9, tzinfo=timezone.utc)
        )
        assert line == (
            '10.1.2.3 - - [05/Mar/2024:14:07:09 +0000] '
            '"PUT /api/v1/post/abc/like HTTP/1.1" 200 123 '
            '"https://gallery.example/" "-"'
        )


class TestRateLimit:
    """Test RateLimitMiddleware."""

    def test_request_beyond_quota_is_429(self, test_config, repository, gateway):
        with make_client(test_config, repository, gateway, rate_limit_max=3) as client:
            statuses = [client.get("/health").status_code for _ in range(4)]
            rejected = client.get("/health")
        assert statuses == [200, 200, 200, 429]
        assert rejected.json() == {
            "status": "error",
            "message": "Too many requests, please try again later.",
        }
        assert int(rejected.headers["Retry-After"]) > 0
        assert rejected.headers["X-Content-Type-Options"] == "nosniff"

    def test_quota_headers(self, test_config, repository, gateway):
        with make_client(test_config, repository, gateway, rate_limit_max=5) as client:
            resp = client.get("/health")
        assert resp.headers["RateLimit-Limit"] == "5"
        assert resp.headers["RateLimit-Remaining"] == "4"

    def test_injected_limiter_is_used(self, test_config, repository, gateway):
        limiter = RateLimiter(MemoryCounterStore(), max_requests=1, window_seconds=60)
        app = create_app(test_config, repository=repository, gateway=gateway, rate_limiter=limiter)
        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
            assert client.get("/health").status_code == 429
            limiter.store.reset()
            assert client.get("/health").status_code == 200

    def test_forwarded_clients_counted_separately(self, test_config, repository, gateway):
        with make_client(
            test_config, repository, gateway, rate_limit_max=1, trust_proxy=True
        ) as client:
            first = client.get("/health", headers={"X-Forwarded-For": "1.1.1.1"})
            second = client.get("/health", headers={"X-Forwarded-For": "2.2.2.2, 10.0.0.1"})
            repeat = client.get("/health", headers={"X-Forwarded-For": "1.1.1.1"})
        assert (first.status_code, second.status_code, repeat.status_code) == (200, 200, 429)


class TestClientAddress:
    def test_socket_peer(self):
        assert client_address({"client": ("9.9.9.9", 1), "headers": []}) == "9.9.9.9"

    def test_forwarded_ignored_unless_trusted(self):
        scope = {"client": ("9.9.9.9", 1), "headers": [(b"x-forwarded-for", b"1.2.3.4")]}
        assert client_address(scope) == "9.9.9.9"
        assert client_address(scope, trust_proxy=True) == "1.2.3.4"

    def test_unknown_client(self):
        assert client_address({"headers": []}) == "unknown"
