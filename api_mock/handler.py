"""Request handling - Route match, validate, delay, generate, log.

RequestHandler.handle() is the single entry point the transport calls per
request. Every failure raised along the way is converted into a JSON error
response here, and every request is recorded in the request log. The
registry, route table and config snapshot are read-only, so only the request
log takes a lock, and it is waited on from worker threads.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any

from faker import Faker

from api_mock.errors import (
    MethodNotAllowed,
    MockError,
    RouteNotFound,
    StateLockError,
    UnexpectedError,
)
from api_mock.models import MockConfig, MockRequest, MockResponse, RequestLogEntry
from api_mock.registry import ComponentRegistry
from api_mock.routes import RouteTable
from api_mock.schema_validator import SchemaValidator, validate_headers, validate_request_body
from api_mock.schema_value_generator import FAKER_LOCALE, MockGenerator, response_schema_for

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 5.0

SCHEMA_NOT_FOUND_BODY = {"success": False, "message": "Schema not found", "data": None}


class RequestLog:
    """Append-only record of handled requests, guarded by a lock.

    Unbounded unless ``max_entries`` is set, in which case the oldest entries
    are dropped.
    """

    def __init__(self, max_entries: int | None = None) -> None:
        self._entries: deque[RequestLogEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def append(self, entry: RequestLogEntry) -> None:
        """Append an entry.

        Raises:
            StateLockError: If the lock cannot be acquired in time.
        """
        if not self._lock.acquire(timeout=LOCK_TIMEOUT_SECONDS):
            raise StateLockError()
        try:
            self._entries.append(entry)
        finally:
            self._lock.release()

    def resize(self, max_entries: int | None) -> None:
        """Change the entry limit, dropping the oldest entries if needed."""
        with self._lock:
            self._entries = deque(self._entries, maxlen=max_entries)

    def entries(self) -> list[RequestLogEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RequestHandler:
    """Serves mock responses for one loaded OpenAPI document.

    Usage:
        handler = RequestHandler.from_spec(spec, config, rng=random.Random(7))
        response = await handler.handle(MockRequest("GET", "/users/42"))
    """

    def __init__(
        self,
        registry: ComponentRegistry,
        routes: RouteTable,
        config: MockConfig | None = None,
        rng: random.Random | None = None,
        request_log: RequestLog | None = None,
    ) -> None:
        self._registry = registry
        self._routes = routes
        self._rng = rng or random.Random()
        self._faker = Faker(FAKER_LOCALE)
        self._config = config or MockConfig()
        self.request_log = request_log or RequestLog(self._config.request_log_limit)

    @classmethod
    def from_spec(
        cls,
        spec: dict[str, Any],
        config: MockConfig | None = None,
        rng: random.Random | None = None,
    ) -> RequestHandler:
        return cls(ComponentRegistry.from_spec(spec), RouteTable.from_spec(spec), config, rng)

    @property
    def routes(self) -> RouteTable:
        return self._routes

    @property
    def registry(self) -> ComponentRegistry:
        return self._registry

    @property
    def config(self) -> MockConfig:
        return self._config

    @config.setter
    def config(self, config: MockConfig) -> None:
        # Requests already in flight keep the snapshot they started with
        if config.request_log_limit != self._config.request_log_limit:
            self.request_log.resize(config.request_log_limit)
        self._config = config

    async def handle(self, request: MockRequest) -> MockResponse:
        """Produce the response for one request. Never raises."""
        logger.debug("Received request: %s %s", request.method, request.path)
        config = self._config

        try:
            response = await self._process(request, config)
        except MockError as e:
            response = MockResponse(status_code=e.status_code, body=e.to_body())
            log = logger.error if e.status_code >= 500 else logger.warning
            log("%s %s -> %d: %s", request.method, request.path, e.status_code, e)
        except Exception as e:
            logger.exception("Unhandled error for %s %s", request.method, request.path)
            response = MockResponse(status_code=500, body=UnexpectedError(e).to_body())

        try:
            await self._log_request(request, response.status_code)
        except StateLockError as e:
            logger.error("Failed to acquire state lock for %s %s", request.method, request.path)
            response = MockResponse(status_code=e.status_code, body=e.to_body())

        return response

    async def _process(self, request: MockRequest, config: MockConfig) -> MockResponse:
        route = self._routes.find_route(request.path)
        if route is None:
            raise RouteNotFound(request.path, request.method.upper())
        logger.debug("Found matching route: %s", route.template)

        operation = route.operation_for(request.method)
        if operation is None:
            raise MethodNotAllowed(route.allowed_methods)

        validator = SchemaValidator(self._registry, max_depth=config.max_schema_depth)
        validate_headers(operation, request.headers)
        validate_request_body(operation, request.body, validator)

        if config.delay:
            logger.debug("Applying configured delay of %dms", config.delay)
            await asyncio.sleep(config.delay / 1000)

        return self._generate_response(operation, config)

    def _generate_response(self, operation: dict[str, Any], config: MockConfig) -> MockResponse:
        status_code = config.status_code
        schema = response_schema_for(operation, status_code)
        if schema is None:
            logger.debug("No response schema for status %d", status_code)
            body: Any = dict(SCHEMA_NOT_FOUND_BODY)
        else:
            generator = MockGenerator(
                self._registry,
                rng=self._rng,
                max_depth=config.max_schema_depth,
                emit_optional_properties=config.emit_optional_properties,
                faker=self._faker,
            )
            body = generator.generate(schema, config.fields)

        return MockResponse(status_code=status_code, body=body, headers=dict(config.headers))

    async def _log_request(self, request: MockRequest, status_code: int) -> None:
        entry = RequestLogEntry(
            timestamp=datetime.now(timezone.utc),
            method=request.method.upper(),
            path=request.path,
            headers=dict(request.headers),
            response_status=status_code,
        )
        # Waiting on the lock happens in a worker thread, not on the event loop
        await asyncio.to_thread(self.request_log.append, entry)
