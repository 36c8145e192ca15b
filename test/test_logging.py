"""
Tests for structured logging
"""

import json
import logging

import pytest

from orgtree.middleware.logging import RequestIdFilter, StructuredFormatter, get_request_id, request_id_var


class TestStructuredFormatter:
    def test_formats_json_with_request_id_and_extras(self):
        record = logging.LogRecord("orgtree.test", logging.INFO, __file__, 1, "moved %s", ("a1",), None)
        record.tenant_id = "tenant-t"
        record.status_code = 200
        token = request_id_var.set("req-1")
        try:
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "moved a1"
        assert data["request_id"] == "req-1"
        assert data["tenant_id"] == "tenant-t"
        assert data["status_code"] == 200
        assert data["level"] == "INFO"

    def test_request_id_defaults_to_empty(self):
        assert get_request_id() == ""


class TestLoggingMiddleware:
    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-abc"})

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req-abc"

    @pytest.mark.asyncio
    async def test_request_id_is_generated(self, client):
        response = await client.get("/api/v1/organizations/tree", params={"tenant_id": "tenant-t"})

        assert response.status_code == 200
        assert response.headers["X-Request-ID"]
