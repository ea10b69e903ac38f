"""
Main entry point: serve the API, or run one execution from the command line.
"""

import argparse
import asyncio
import json
import sys

import uvicorn

from .config.container import setup_container
from .config.settings import get_settings
from .core.determinism import freeze_config_and_hash
from .observability.logging import get_logger, setup_logging
from .observability.metrics import create_meter, setup_metrics
from .observability.tracing import setup_tracing

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="sentiflow workflow server")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--workers", type=int, default=None, help="Number of workers")
    parser.add_argument(
        "--execute",
        metavar="JSON",
        default=None,
        help="Run a single execution with this JSON payload and print the result",
    )
    parser.add_argument("--version", action="store_true", help="Show version")
    return parser


async def run_once(payload: dict) -> dict:
    """Run one execution against the configured capabilities."""
    container = setup_container(get_settings())
    async with container.lifespan():
        result = await container.get_orchestrator().start_execution(payload)
    return result.to_dict()


def main(argv=None) -> int:
    """Main application entry point. Returns the process exit code."""
    parser = build_parser()
    # Empty list when no argv is given keeps pytest's own arguments out
    args = parser.parse_args([] if argv is None else argv)

    if args.version:
        from . import __version__

        print(f"sentiflow v{__version__}")
        return 0

    settings = get_settings()
    if settings.observability.enable_logging:
        setup_logging(settings.observability.log_level, settings.observability.log_format)
    if settings.observability.enable_tracing:
        setup_tracing(
            service_name=settings.observability.service_name,
            service_version=settings.observability.service_version,
            otlp_endpoint=settings.observability.otlp_endpoint,
        )
    if settings.observability.enable_metrics:
        setup_metrics(
            create_meter(
                service_name=settings.observability.service_name,
                service_version=settings.observability.service_version,
                otlp_endpoint=settings.observability.otlp_endpoint,
            )
        )

    if args.execute is not None:
        try:
            payload = json.loads(args.execute)
        except json.JSONDecodeError as e:
            parser.error(f"--execute expects a JSON object: {e}")
        if not isinstance(payload, dict):
            parser.error("--execute expects a JSON object")

        result = asyncio.run(run_once(payload))
        print(json.dumps(result, indent=2, default=str))
        return 0 if result["status"] == "SUCCEEDED" else 1

    config_hash = freeze_config_and_hash(settings)
    logger.info(
        "sentiflow initialized",
        config_hash=config_hash[:16] + "...",
        environment=settings.environment,
        workflow=settings.workflow.name,
    )

    uvicorn.run(
        "sentiflow.api.server:app",
        host=args.host or settings.api.host,
        port=args.port or settings.api.port,
        reload=args.reload or settings.api.reload,
        workers=args.workers or settings.api.workers,
    )
    return 0


def cli_main():
    """Console script entry point."""
    try:
        sys.exit(main(sys.argv[1:]))
    except KeyboardInterrupt:
        print("\nsentiflow shutdown")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        print(f"Startup failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
