"""Tests for RequestHandler: the per-request pipeline and its error responses.

Tests cover:
- Route and method resolution (404, 405)
- Header and body checks (400)
- Response generation, status code lookup and the schema-not-found fallback
- Config snapshot swaps, delay, field overrides
- Request log recording, bounding and lock failure
- Unexpected exceptions and concurrent requests
"""

import asyncio
import json
import logging
import random
import threading
import time

import pytest

import api_mock.handler as handler_module
from api_mock.field_patterns import EnumPattern, MockFieldConfig
from api_mock.handler import SCHEMA_NOT_FOUND_BODY, RequestHandler, RequestLog
from api_mock.models import MockConfig, RequestLogEntry
from api_mock.schema_validator import SchemaValidator

from tests.conftest import make_request, run_handler

VALID_NEW_USER = json.dumps({"name": "Ann Lee", "email": "ann@example.com"}).encode()


# =============================================================================
# Routing
# =============================================================================


class TestRouting:
    def test_unknown_path(self, handler):
        response = run_handler(handler, make_request("get", "/unknown"))
        assert response.status_code == 404
        assert response.body == {
            "error": "Route not found",
            "requested_path": "/unknown",
            "method": "GET",
        }

    def test_method_not_declared(self, handler):
        response = run_handler(handler, make_request("PUT", "/users"))
        assert response.status_code == 405
        assert response.body["error"] == "Method not allowed"
        assert sorted(response.body["allowed_methods"]) == ["GET", "POST"]

    def test_method_is_case_insensitive(self, handler):
        assert run_handler(handler, make_request("get", "/users/42")).status_code == 200

    def test_error_is_logged(self, handler, caplog):
        with caplog.at_level(logging.WARNING, logger="api_mock.handler"):
            run_handler(handler, make_request("GET", "/unknown"))
        assert "-> 404" in caplog.text


# =============================================================================
# Request Checks
# =============================================================================


class TestRequestChecks:
    def test_missing_header(self, handler):
        response = run_handler(handler, make_request("POST", "/users", body=VALID_NEW_USER))
        assert response.status_code == 400
        assert response.body == {
            "error": "Missing required headers",
            "missing_headers": ["X-Request-Id"],
        }

    def test_path_level_header_required(self, handler):
        assert run_handler(handler, make_request("GET", "/items")).status_code == 400
        response = run_handler(handler, make_request("GET", "/items", {"x-api-key": "k"}))
        assert response.status_code == 200

    def test_headers_checked_before_body(self, handler):
        response = run_handler(handler, make_request("POST", "/users"))
        assert response.body["error"] == "Missing required headers"

    def test_missing_body(self, handler):
        response = run_handler(handler, make_request("POST", "/users", {"X-Request-Id": "1"}))
        assert response.status_code == 400
        assert response.body == {"error": "Missing required request body"}

    def test_malformed_body(self, handler):
        request = make_request("POST", "/users", {"X-Request-Id": "1"}, b'{"name": ')
        response = run_handler(handler, request)
        assert response.status_code == 400
        assert response.body["error"] == "Invalid JSON in request body"

    def test_body_schema_violation(self, handler):
        body = json.dumps({"name": "Ann", "email": "no-at-sign"}).encode()
        response = run_handler(handler, make_request("POST", "/users", {"X-Request-Id": "1"}, body))
        assert response.status_code == 400
        assert response.body == {
            "error": "String does not match pattern",
            "kind": "pattern_mismatch",
            "path": "$.email",
            "pattern": "^[^@]+@[^@]+$",
        }

    def test_valid_post(self, handler):
        request = make_request("POST", "/users", {"X-Request-Id": "1"}, VALID_NEW_USER)
        response = run_handler(handler, request)
        assert response.status_code == 200
        assert sorted(response.body) == ["email", "id", "name"]


# =============================================================================
# Response Generation
# =============================================================================


class TestResponses:
    def test_array_response_conforms(self, handler):
        response = run_handler(handler, make_request("GET", "/users"))
        assert 2 <= len(response.body) <= 4
        schema = {"$ref": "#/components/schemas/User"}
        validator = SchemaValidator(handler.registry)
        for user in response.body:
            validator.validate(user, schema)

    def test_literal_route_preferred(self, handler):
        response = run_handler(handler, make_request("GET", "/users/me"))
        assert list(response.body) == ["username"]

    def test_wildcard_status_response(self, handler):
        response = run_handler(handler, make_request("GET", "/users/7/posts"))
        assert response.status_code == 200
        for post in response.body:
            assert 5 <= len(post["title"]) <= 40
            assert 0 <= post["likes"] <= 1000

    def test_default_response(self, handler):
        response = run_handler(handler, make_request("GET", "/items", {"X-Api-Key": "k"}))
        assert isinstance(response.body["total"], int)
        assert 1 <= response.body["price"] <= 2

    def test_recursive_response_terminates(self, handler):
        response = run_handler(handler, make_request("GET", "/nodes"))
        assert response.body["children"] == []

    def test_no_json_content_falls_back(self, handler):
        response = run_handler(handler, make_request("GET", "/ping"))
        assert response.status_code == 200
        assert response.body == SCHEMA_NOT_FOUND_BODY

    def test_undeclared_status_falls_back(self, handler):
        handler.config = MockConfig(status_code=201)
        response = run_handler(handler, make_request("GET", "/users/1"))
        assert response.status_code == 201
        assert response.body == {"success": False, "message": "Schema not found", "data": None}

    def test_configured_headers(self, handler):
        handler.config = MockConfig(headers={"X-Mock": "yes"})
        response = run_handler(handler, make_request("GET", "/users/1"))
        assert response.headers == {"X-Mock": "yes"}

    def test_error_responses_skip_configured_headers(self, handler):
        handler.config = MockConfig(headers={"X-Mock": "yes"})
        response = run_handler(handler, make_request("GET", "/nowhere"))
        assert response.headers == {}

    def test_field_override_and_optional_properties(self, handler):
        handler.config = MockConfig(
            emit_optional_properties=True,
            fields=MockFieldConfig(patterns={"status": EnumPattern(values=["gold"])}),
        )
        response = run_handler(handler, make_request("GET", "/users/1"))
        assert response.body["status"] == "gold"
        assert "nickname" in response.body


# =============================================================================
# Delay
# =============================================================================


class TestDelay:
    def test_delay_applied_to_successful_requests(self, handler):
        handler.config = MockConfig(delay=50)
        start = time.perf_counter()
        run_handler(handler, make_request("GET", "/users/1"))
        assert time.perf_counter() - start >= 0.05

    def test_delay_not_applied_to_rejected_requests(self, handler):
        handler.config = MockConfig(delay=2000)
        start = time.perf_counter()
        response = run_handler(handler, make_request("GET", "/unknown"))
        assert response.status_code == 404
        assert time.perf_counter() - start < 1.0


# =============================================================================
# Request Log
# =============================================================================


class TestRequestLog:
    def test_successes_and_failures_recorded(self, handler):
        run_handler(handler, make_request("get", "/users/1", {"X-Test": "1"}))
        run_handler(handler, make_request("GET", "/unknown"))

        entries = handler.request_log.entries()
        assert [(e.method, e.path, e.response_status) for e in entries] == [
            ("GET", "/users/1", 200),
            ("GET", "/unknown", 404),
        ]
        assert entries[0].headers == {"X-Test": "1"}

    def test_limit_drops_oldest(self, handler):
        handler.config = MockConfig(request_log_limit=2)
        for i in range(3):
            run_handler(handler, make_request("GET", f"/users/{i}"))
        assert [e.path for e in handler.request_log.entries()] == ["/users/1", "/users/2"]

    def test_clear(self, handler):
        run_handler(handler, make_request("GET", "/users/1"))
        handler.request_log.clear()
        assert len(handler.request_log) == 0

    def test_lock_timeout_is_server_error(self, handler, monkeypatch):
        monkeypatch.setattr(handler_module, "LOCK_TIMEOUT_SECONDS", 0.01)
        held = threading.Lock()
        held.acquire()
        handler.request_log._lock = held

        response = run_handler(handler, make_request("GET", "/users/1"))
        assert response.status_code == 500
        assert response.body == {
            "error": "Internal server error",
            "details": "Failed to acquire state lock",
        }

    def test_lock_wait_does_not_block_event_loop(self, handler):
        held = threading.Lock()
        held.acquire()
        handler.request_log._lock = held
        releaser = threading.Timer(0.2, held.release)

        async def scenario():
            ticks = 0

            async def ticker():
                nonlocal ticks
                while True:
                    ticks += 1
                    await asyncio.sleep(0.01)

            task = asyncio.create_task(ticker())
            releaser.start()
            response = await handler.handle(make_request("GET", "/users/1"))
            task.cancel()
            return response, ticks

        response, ticks = asyncio.run(scenario())
        releaser.join()
        assert response.status_code == 200
        assert ticks >= 5
        assert len(handler.request_log) == 1

    def test_concurrent_requests_are_all_recorded(self, handler):
        async def scenario():
            requests = [make_request("GET", f"/users/{i}") for i in range(50)]
            return await asyncio.gather(*(handler.handle(r) for r in requests))

        responses = asyncio.run(scenario())
        assert {r.status_code for r in responses} == {200}
        assert sorted(e.path for e in handler.request_log.entries()) == sorted(
            f"/users/{i}" for i in range(50)
        )

    def test_resize_keeps_newest(self):
        log = RequestLog()
        for i in range(5):
            log.append(
                RequestLogEntry(
                    timestamp="2024-01-01T00:00:00Z", method="GET", path=f"/{i}", response_status=200
                )
            )
        log.resize(2)
        assert [e.path for e in log.entries()] == ["/3", "/4"]


# =============================================================================
# Reproducibility
# =============================================================================


def test_same_seed_same_responses(petstore_spec):
    bodies = []
    for _ in range(2):
        handler = RequestHandler.from_spec(petstore_spec, MockConfig(), rng=random.Random(5))
        bodies.append(run_handler(handler, make_request("GET", "/users")).body)
    assert bodies[0] == bodies[1]


@pytest.mark.parametrize("status_code", [204, 304])
def test_bodyless_status_still_generates_fallback(handler, status_code):
    handler.config = MockConfig(status_code=status_code)
    response = run_handler(handler, make_request("DELETE", "/users/1"))
    assert response.status_code == status_code
    assert response.body == SCHEMA_NOT_FOUND_BODY


# =============================================================================
# Unexpected Errors
# =============================================================================

SWAGGER2_STYLE_SPEC = {
    "openapi": "3.0.0",
    "paths": {
        "/things": {
            "post": {
                "requestBody": {
                    "required": True,
                    "content": {
                        "application/json": {
                            "schema": {
                                "type": "object",
                                "required": True,
                                "properties": {"id": {"type": "integer"}},
                            }
                        }
                    },
                },
                "responses": {
                    "200": {
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "object",
                                    "required": True,
                                    "properties": {"id": {"type": "integer"}},
                                }
                            }
                        }
                    }
                },
            }
        }
    },
}


class TestUnexpectedErrors:
    def test_unexpected_exception_is_server_error(self, handler, monkeypatch, caplog):
        def explode(operation, config):
            raise RuntimeError("boom")

        monkeypatch.setattr(handler, "_generate_response", explode)
        with caplog.at_level(logging.ERROR, logger="api_mock.handler"):
            response = run_handler(handler, make_request("GET", "/users/1"))

        assert response.status_code == 500
        assert response.body == {"error": "Internal server error", "details": "RuntimeError: boom"}
        assert "Unhandled error for GET /users/1" in caplog.text

        entries = handler.request_log.entries()
        assert [(e.path, e.response_status) for e in entries] == [("/users/1", 500)]

    def test_boolean_required_keyword_is_served(self):
        handler = RequestHandler.from_spec(SWAGGER2_STYLE_SPEC, rng=random.Random(3))
        response = run_handler(
            handler, make_request("POST", "/things", body=json.dumps({"id": 1}).encode())
        )
        assert response.status_code == 200
        assert isinstance(response.body["id"], int)
        assert handler.request_log.entries()[0].response_status == 200
