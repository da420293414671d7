"""Command line entry point for kube-strace."""

import argparse
import asyncio

import pydantic

from .cluster import load_cluster
from .config import (
    DEFAULT_IMAGE,
    DEFAULT_OUTPUT,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SOCKET_PATH,
    DEFAULT_TRACE_TIMEOUT,
    LOG_LEVELS,
    TraceSettings,
    load_settings,
)
from .errors import KStraceError, RunError, ValidationError
from .logging_config import get_logger, setup_logging
from .orchestrator import Orchestrator
from .resolver import TargetResolver

logger = get_logger(__name__)

APPLICATION_NAME = "kube-strace"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APPLICATION_NAME,
        description=(
            f"{APPLICATION_NAME!r} is a CLI tool that provides the ability to easily perform "
            "debugging of system-calls and process state for applications running on the "
            "Kubernetes platform."
        ),
    )
    parser.add_argument("names", nargs="*", metavar="POD", help="Pods to trace: NAME or pod/NAME")

    # Cluster flags
    parser.add_argument("-n", "--namespace", help="Namespace of the target pods (default: from kubeconfig)")
    parser.add_argument("--kubeconfig", help="Path to the kubeconfig file")
    parser.add_argument("--context", help="Kubeconfig context to use")
    parser.add_argument(
        "--request-timeout",
        help=f"Timeout of a cluster request and of helper pod startup (default {DEFAULT_REQUEST_TIMEOUT})",
    )

    # Command-specific flags; None means "environment or default"
    parser.add_argument("--socket-path", help=f"The location of the CRI socket on the host machine (default {DEFAULT_SOCKET_PATH}).")
    parser.add_argument(
        "--image",
        help=(
            f"The trace image for use when performing the strace (default {DEFAULT_IMAGE}). "
            "The image must ship crictl, strace and the kstrace-helper command from this package; "
            "helper pods run kstrace-helper, not the image entrypoint."
        ),
    )
    parser.add_argument("--trace-timeout", help=f"The length of time to capture the strace output for (default {DEFAULT_TRACE_TIMEOUT}, until interrupted).")
    parser.add_argument("-o", "--output", help=f"The directory to store the strace data, or - for standard out (default {DEFAULT_OUTPUT}).")
    parser.add_argument("--concurrency", type=int, help="Maximum number of helper pods started at once.")

    # Logging
    parser.add_argument(
        "--log-level",
        help=f"The verbosity level of the output from the command. Available options are [{', '.join(LOG_LEVELS)}].",
    )
    parser.add_argument("--log-file", help="Also write JSON logs to this file")
    parser.add_argument("--log-format", choices=["json", "text"], default="json")
    return parser


def complete(args: argparse.Namespace) -> TraceSettings:
    """Turn flags into validated settings."""
    return load_settings(
        image=args.image,
        socket_path=args.socket_path,
        trace_timeout=args.trace_timeout,
        output=args.output,
        log_level=args.log_level,
        request_timeout=args.request_timeout,
        concurrency=args.concurrency,
    )


async def run(args: argparse.Namespace, settings: TraceSettings) -> int:
    """Resolve targets, validate and run. Returns the exit code."""
    try:
        if not args.names:
            raise ValidationError("a target pod must be defined")
        cluster = load_cluster(
            kubeconfig=args.kubeconfig,
            context=args.context,
            request_timeout=settings.request_timeout_seconds,
        )
        targets = await TargetResolver(cluster, args.namespace).resolve_targets(args.names)

        orchestrator = Orchestrator(cluster, settings)
        orchestrator.validate(targets)
        await orchestrator.run(targets)
    except ValidationError as e:
        logger.error("%s", e)
        return EXIT_INVALID
    except RunError as e:
        for failure in e.failures:
            logger.error("%s", failure)
        return EXIT_FAILED
    except KStraceError as e:
        logger.error("%s", e)
        return EXIT_FAILED

    for description, error in orchestrator.teardown_errors:
        logger.warning("Cleanup of %s incomplete: %s", description, error)
    if not settings.console_output:
        logger.info("Trace output written to %s", settings.output)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = complete(args)
    except pydantic.ValidationError as e:
        level = args.log_level if (args.log_level or "").lower() in LOG_LEVELS else "info"
        setup_logging(level, json_format=args.log_format == "json")
        logger.error("invalid configuration: %s", e)
        return EXIT_INVALID

    setup_logging(settings.log_level, args.log_file, json_format=args.log_format == "json")
    logger.info("Running with loglevel: %s", settings.log_level)

    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.warning("Interrupted, helper resources were cleaned up")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    raise SystemExit(main())
