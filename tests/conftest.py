"""Pytest configuration and fixtures for api-mock tests.

This file provides:
- reserve_port: Port allocation held open until the server starts
- MockServer: Subprocess management for the api-mock CLI server
- Fixtures: Shared test infrastructure (fixture spec, registry, routes, handler)
"""

from __future__ import annotations

import asyncio
import random
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Generator

import httpx
import pytest
import yaml

from api_mock.handler import RequestHandler
from api_mock.models import MockConfig, MockRequest, MockResponse
from api_mock.registry import ComponentRegistry
from api_mock.routes import RouteTable

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
PETSTORE_SPEC = FIXTURES_DIR / "petstore.yaml"
MOCK_CONFIG = FIXTURES_DIR / "mock_config.yaml"
CLI_MODULE = "api_mock.cli"


def load_fixture_spec() -> dict[str, Any]:
    """Parse tests/fixtures/petstore.yaml."""
    with open(PETSTORE_SPEC, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def make_request(
    method: str = "GET",
    path: str = "/",
    headers: dict[str, str] | None = None,
    body: bytes | None = None,
) -> MockRequest:
    """Create a MockRequest with sensible defaults for handler tests."""
    return MockRequest(method=method, path=path, headers=headers or {}, body=body)


def run_handler(handler: RequestHandler, request: MockRequest) -> MockResponse:
    """Drive the async handler from synchronous tests."""
    return asyncio.run(handler.handle(request))


def reserve_port() -> socket.socket:
    """Bind an ephemeral localhost port and keep the socket open.

    The caller closes the socket right before handing the port to the server,
    which keeps other processes from grabbing it in the meantime.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("127.0.0.1", 0))
    return sock


class MockServer:
    """Runs ``api-mock file`` against the fixture document as a subprocess.

    Readiness is detected by polling the admin config endpoint.
    """

    host = "127.0.0.1"

    def __init__(self, spec_path: Path = PETSTORE_SPEC, extra_args: list[str] | None = None) -> None:
        self._reserved = reserve_port()
        self.port: int = self._reserved.getsockname()[1]
        self.base_url = f"http://{self.host}:{self.port}"
        self._command = [
            sys.executable, "-m", CLI_MODULE, "file",
            "--path", str(spec_path),
            "--host", self.host,
            "--port", str(self.port),
            "--log-level", "warning",
            *(extra_args or []),
        ]
        self._process: subprocess.Popen | None = None

    def start(self, timeout: float = 10.0) -> None:
        """Start the subprocess and wait until it answers HTTP.

        Raises:
            RuntimeError: If the server exits or does not answer in time.
        """
        self._reserved.close()
        self._process = subprocess.Popen(
            self._command, stdout=subprocess.PIPE, stderr=subprocess.PIPE, cwd=PROJECT_ROOT
        )

        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline and self._process.poll() is None:
            try:
                httpx.get(f"{self.base_url}/__mock__/config", timeout=1.0)
                return
            except httpx.TransportError:
                time.sleep(0.1)

        self.stop()
        raise RuntimeError(f"api-mock did not start on port {self.port}")

    def stop(self) -> None:
        if self._process is None:
            return
        self._process.terminate()
        try:
            self._process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait(timeout=5)
        self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def petstore_spec() -> dict[str, Any]:
    """Parsed test OpenAPI document (tests/fixtures/petstore.yaml)."""
    return load_fixture_spec()


@pytest.fixture
def registry(petstore_spec: dict[str, Any]) -> ComponentRegistry:
    return ComponentRegistry.from_spec(petstore_spec)


@pytest.fixture
def route_table(petstore_spec: dict[str, Any]) -> RouteTable:
    return RouteTable.from_spec(petstore_spec)


@pytest.fixture
def handler(petstore_spec: dict[str, Any]) -> RequestHandler:
    """Handler with default config and a seeded random source."""
    return RequestHandler.from_spec(petstore_spec, MockConfig(), rng=random.Random(1234))


@pytest.fixture(scope="session")
def live_server() -> Generator[MockServer, None, None]:
    """Session-scoped api-mock subprocess serving the fixture spec."""
    with MockServer(extra_args=["--seed", "7"]) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Tag tests with unit/integration markers based on their directory."""
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
