"""Runtime Socket Client: container id to host PID through the CRI socket."""

import asyncio
import json
import os
import stat

from ..errors import RuntimeSocketError
from ..logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CRICTL = "crictl"
DEFAULT_TIMEOUT = 10.0


def normalize_endpoint(socket: str) -> str:
    """
    Accepts either:
      - '/run/crio/crio.sock' (plain path)
      - 'unix:///run/crio/crio.sock' (already normalized)
      - 'unix://run/crio/crio.sock' (missing leading slash)
    and returns 'unix:///run/crio/crio.sock'.
    """
    if not socket:
        raise RuntimeSocketError("runtime endpoint is empty")

    if socket.startswith("unix://"):
        after = socket[len("unix://"):]
        if after.startswith("/"):
            return socket
        return "unix:///" + after
    if not socket.startswith("/"):
        socket = "/" + socket
    return "unix://" + socket


def socket_path(endpoint: str) -> str:
    """Filesystem path of a unix endpoint."""
    return normalize_endpoint(endpoint)[len("unix://"):]


class RuntimeSocketClient:
    """Talks to the node-local container runtime through crictl."""

    def __init__(
        self,
        endpoint: str,
        crictl: str = DEFAULT_CRICTL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._endpoint = normalize_endpoint(endpoint)
        self._crictl = crictl
        self._timeout = timeout

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def check_socket(self) -> None:
        """
        Verify the runtime socket is mounted.

        Raises:
            RuntimeSocketError: the path is missing or not a socket.
        """
        path = socket_path(self._endpoint)
        try:
            mode = os.stat(path).st_mode
        except OSError as e:
            raise RuntimeSocketError(f"runtime socket {path} unreachable: {e.strerror}") from e
        if not stat.S_ISSOCK(mode):
            raise RuntimeSocketError(f"runtime socket {path} is not a socket")

    async def inspect(self, container_id: str) -> dict:
        """
        Run `crictl inspect` for a container.

        Raises:
            RuntimeSocketError: crictl is missing, fails, times out or prints invalid JSON.
        """
        command = [
            self._crictl,
            "--runtime-endpoint",
            self._endpoint,
            "--timeout",
            f"{max(int(self._timeout), 1)}s",
            "inspect",
            "--output",
            "json",
            container_id,
        ]
        logger.debug("Running %s", " ".join(command))
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise RuntimeSocketError(f"{self._crictl} not found in the trace image") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout + 5)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise RuntimeSocketError(
                f"runtime at {self._endpoint} did not answer within {self._timeout:g}s"
            ) from e

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise RuntimeSocketError(
                f"cannot inspect container {container_id} via {self._endpoint}: "
                f"{detail or f'exit code {process.returncode}'}"
            )

        try:
            return json.loads(stdout)
        except ValueError as e:
            raise RuntimeSocketError(f"invalid inspect output for container {container_id}: {e}") from e

    async def container_pid(self, container_id: str) -> int:
        """
        Resolve a container id to the host PID of its main process.

        Raises:
            RuntimeSocketError: the container is unknown or has no running process.
        """
        inspection = await self.inspect(container_id)
        pid = (inspection.get("info") or {}).get("pid")
        if not isinstance(pid, int) or pid <= 0:
            state = (inspection.get("status") or {}).get("state", "unknown")
            raise RuntimeSocketError(
                f"container {container_id} has no running process (state {state})"
            )
        logger.debug("Container %s runs as host pid %d", container_id, pid)
        return pid
