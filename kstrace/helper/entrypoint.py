"""Helper pod entrypoint: resolve the target container's PID and exec strace."""

import argparse
import asyncio
import os

from ..errors import RuntimeSocketError
from ..logging_config import get_logger, setup_logging
from ..runtime import RuntimeSocketClient
from ..runtime.socket_client import DEFAULT_CRICTL, DEFAULT_TIMEOUT

logger = get_logger(__name__)

DEFAULT_STRACE = "strace"
TERMINATION_LOG = "/dev/termination-log"

EXIT_ATTACH_FAILED = 2
EXIT_EXEC_FAILED = 127


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kstrace-helper",
        description="Attach strace to a container's main process on this node",
    )
    parser.add_argument("--container-id", required=True, help="Runtime id of the container to trace")
    parser.add_argument("--runtime-endpoint", required=True, help="CRI endpoint, e.g. unix:///run/crio/crio.sock")
    parser.add_argument("--crictl", default=DEFAULT_CRICTL, help="crictl binary")
    parser.add_argument("--strace", default=DEFAULT_STRACE, help="strace binary")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Runtime request timeout in seconds")
    parser.add_argument("--log-level", default="warning")
    parser.add_argument(
        "strace_args",
        nargs=argparse.REMAINDER,
        help="Extra strace arguments after --",
    )
    return parser


def strace_command(pid: int, strace: str = DEFAULT_STRACE, extra_args: list[str] | None = None) -> list[str]:
    """strace invocation following forks, with microsecond timestamps."""
    extra = [arg for arg in extra_args or [] if arg != "--"]
    return [strace, "-f", "-tt", *extra, "-p", str(pid)]


def _write_termination_message(message: str) -> None:
    try:
        with open(TERMINATION_LOG, "w", encoding="utf-8") as f:
            f.write(message)
    except OSError as e:
        logger.debug("Cannot write termination message: %s", e)


def main(argv: list[str] | None = None) -> int:
    """Resolve the target and replace this process with strace."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, json_format=False)

    try:
        client = RuntimeSocketClient(args.runtime_endpoint, crictl=args.crictl, timeout=args.timeout)
        client.check_socket()
        pid = asyncio.run(client.container_pid(args.container_id))
    except RuntimeSocketError as e:
        logger.error("%s", e)
        _write_termination_message(str(e))
        return EXIT_ATTACH_FAILED

    command = strace_command(pid, args.strace, args.strace_args)
    logger.info("Attaching to pid %d of container %s", pid, args.container_id)
    try:
        os.execvp(command[0], command)
    except OSError as e:
        message = f"cannot run {command[0]}: {e.strerror}"
        logger.error("%s", message)
        _write_termination_message(message)
        return EXIT_EXEC_FAILED
    return 0  # unreachable after a successful exec
