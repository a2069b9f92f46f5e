"""FastAPI application serving mock responses.

Admin endpoints live under ``/__mock__``; every other path and method is
forwarded to RequestHandler. FastAPI's own docs routes are disabled so they
never shadow paths declared by the mocked API.
"""

from __future__ import annotations

import asyncio

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from api_mock.handler import RequestHandler
from api_mock.models import MockConfig, MockRequest, MockResponse, RequestLogEntry

ADMIN_PREFIX = "/__mock__"
MOCK_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS", "TRACE"]

# Status codes that must not carry a body
_BODYLESS_STATUSES = {204, 304}


def create_app(handler: RequestHandler) -> FastAPI:
    """Build the ASGI app around a configured RequestHandler."""
    app = FastAPI(
        title="api-mock",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.handler = handler

    # --- Admin endpoints ---

    @app.get(f"{ADMIN_PREFIX}/requests")
    async def list_requests() -> list[RequestLogEntry]:
        return await asyncio.to_thread(handler.request_log.entries)

    @app.delete(f"{ADMIN_PREFIX}/requests", status_code=204)
    async def clear_requests() -> Response:
        await asyncio.to_thread(handler.request_log.clear)
        return Response(status_code=204)

    @app.get(f"{ADMIN_PREFIX}/config")
    async def get_config() -> MockConfig:
        return handler.config

    @app.put(f"{ADMIN_PREFIX}/config")
    async def replace_config(config: MockConfig) -> MockConfig:
        handler.config = config
        return config

    # --- Mock endpoint ---

    @app.api_route("/{full_path:path}", methods=MOCK_METHODS)
    async def mock(request: Request, full_path: str) -> Response:
        body = await request.body()
        result = await handler.handle(
            MockRequest(
                method=request.method,
                path=request.url.path,
                headers=dict(request.headers),
                body=body or None,
            )
        )
        return to_http_response(result)

    return app


def to_http_response(result: MockResponse) -> Response:
    """Render a MockResponse as a JSON response (bodyless for 1xx/204/304)."""
    if result.status_code < 200 or result.status_code in _BODYLESS_STATUSES:
        return Response(status_code=result.status_code, headers=result.headers)
    return JSONResponse(content=result.body, status_code=result.status_code, headers=result.headers)
