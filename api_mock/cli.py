"""CLI entry point for api-mock.

Handles argument parsing and dispatches to serve (scan/file) or list-routes mode.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from dataclasses import dataclass
from pathlib import Path

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def non_negative_int(value: str) -> int:
    """Parse and validate a non-negative integer value.

    Raises:
        argparse.ArgumentTypeError: If value is not a non-negative integer.
    """
    try:
        result = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'.")
    if result < 0:
        raise argparse.ArgumentTypeError(f"Value must not be negative, got {result}.")
    return result


def port_number(value: str) -> int:
    """Parse and validate a TCP port number.

    Raises:
        argparse.ArgumentTypeError: If value is not in 1-65535.
    """
    result = non_negative_int(value)
    if not 1 <= result <= 65535:
        raise argparse.ArgumentTypeError(f"Port must be between 1 and 65535, got {result}.")
    return result


@dataclass
class ServeArgs:
    """Parsed arguments for the scan and file modes."""

    source: str
    host: str
    port: int
    delay: int | None
    config: Path | None
    seed: int | None
    log_level: str


@dataclass
class ListRoutesArgs:
    """Parsed arguments for list-routes mode."""

    spec: str


def _add_serve_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-p", "--port",
        type=port_number,
        default=DEFAULT_PORT,
        help=f"Port to listen on (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "-H", "--host",
        default=DEFAULT_HOST,
        help=f"Host to bind to (default: {DEFAULT_HOST})",
    )
    parser.add_argument(
        "-d", "--delay",
        type=non_negative_int,
        default=None,
        metavar="MS",
        help="Artificial response delay in milliseconds (config file value wins)",
    )
    parser.add_argument(
        "-C", "--config",
        type=Path,
        default=None,
        help="Path to mock configuration file (YAML or JSON)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducible mock data",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=DEFAULT_LOG_LEVEL,
        dest="log_level",
        help=f"Logging level (default: {DEFAULT_LOG_LEVEL})",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with scan, file and list-routes subcommands."""
    parser = argparse.ArgumentParser(
        prog="api-mock",
        description="Mock API server that serves synthetic responses from an OpenAPI specification.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Execution mode")

    scan_parser = subparsers.add_parser(
        "scan",
        help="Serve mocks for an OpenAPI specification fetched from a URL",
    )
    scan_parser.add_argument(
        "-u", "--url",
        type=str,
        required=True,
        help="URL of the OpenAPI specification (JSON or YAML)",
    )
    _add_serve_options(scan_parser)

    file_parser = subparsers.add_parser(
        "file",
        help="Serve mocks for an OpenAPI specification read from disk",
    )
    file_parser.add_argument(
        "--path",
        type=Path,
        required=True,
        help="Path to the OpenAPI specification file (YAML or JSON)",
    )
    _add_serve_options(file_parser)

    list_routes_parser = subparsers.add_parser(
        "list-routes",
        help="List the path templates and methods the mock server would serve",
    )
    list_routes_parser.add_argument(
        "--spec",
        type=str,
        required=True,
        help="Path or URL of the OpenAPI specification",
    )

    return parser


def parse_serve_args(namespace: argparse.Namespace) -> ServeArgs:
    """Convert parsed namespace to ServeArgs dataclass."""
    source = namespace.url if namespace.command == "scan" else str(namespace.path)
    return ServeArgs(
        source=source,
        host=namespace.host,
        port=namespace.port,
        delay=namespace.delay,
        config=namespace.config,
        seed=namespace.seed,
        log_level=namespace.log_level,
    )


def parse_args(args: list[str] | None = None) -> ServeArgs | ListRoutesArgs:
    """Parse command-line arguments and return typed args dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)

    if namespace.command in ("scan", "file"):
        return parse_serve_args(namespace)
    elif namespace.command == "list-routes":
        return ListRoutesArgs(spec=namespace.spec)
    else:
        # Should not happen with required=True on subparsers
        parser.error(f"Unknown command: {namespace.command}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        parsed = parse_args(argv)

        if isinstance(parsed, ListRoutesArgs):
            return run_list_routes(parsed)
        return run_serve(parsed)

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def run_list_routes(args: ListRoutesArgs) -> int:
    """Print every route template with its declared methods."""
    from api_mock.config_loader import SpecLoadError, load_spec
    from api_mock.routes import RouteTable

    try:
        spec = load_spec(args.spec)
    except SpecLoadError as e:
        print(f"Error loading spec: {e}", file=sys.stderr)
        return 1

    table = RouteTable.from_spec(spec)
    for route in table:
        print(f"{route.template}")
        print(f"  {', '.join(route.allowed_methods) or '(no operations)'}")

    print(f"Total: {len(table)} routes")
    return 0


def run_serve(args: ServeArgs) -> int:
    """Load the spec and config, then serve mocks until interrupted."""
    import uvicorn

    from api_mock.config_loader import ConfigError, SpecLoadError, load_mock_config, load_spec
    from api_mock.handler import RequestHandler
    from api_mock.server import create_app

    logging.basicConfig(level=args.log_level, format=LOG_FORMAT)

    try:
        config = load_mock_config(args.config)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    if config.delay is None and args.delay is not None:
        config = config.model_copy(update={"delay": args.delay})

    logger.info("Initializing mock server...")
    try:
        spec = load_spec(args.source)
    except SpecLoadError as e:
        print(f"Error loading spec: {e}", file=sys.stderr)
        return 1
    logger.info("Loaded OpenAPI document from %s", args.source)

    rng = random.Random(args.seed)
    handler = RequestHandler.from_spec(spec, config, rng=rng)
    logger.info(
        "Processed %d routes, %d components", len(handler.routes), len(handler.registry)
    )
    for route in handler.routes:
        logger.info("Route: %s - Methods: %s", route.template, route.allowed_methods)

    logger.info("Starting mock server on http://%s:%d", args.host, args.port)
    uvicorn.run(create_app(handler), host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
