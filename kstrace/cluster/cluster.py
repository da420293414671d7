"""Cluster access over the Kubernetes API."""

import asyncio
import json
from typing import AsyncIterator, Callable, Protocol

import urllib3
from kubernetes import client

from ..errors import ClusterError, ConflictError, ForbiddenError, NotFoundError
from ..logging_config import get_logger
from ..models import ContainerStatus, PodStatus

logger = get_logger(__name__)

LOG_CHUNK_SIZE = 4096


class ICluster(Protocol):
    """The cluster operations kube-strace needs."""

    @property
    def default_namespace(self) -> str:
        """Namespace used for target names given without one."""
        ...

    async def create_namespace(self, name: str, labels: dict[str, str]) -> None:
        """Create a namespace. Raises ConflictError if it exists."""
        ...

    async def delete_namespace(self, name: str) -> None:
        """Delete a namespace. Raises NotFoundError if it is absent."""
        ...

    async def read_pod(self, namespace: str, name: str) -> client.V1Pod:
        """Read a pod. Raises NotFoundError if it is absent."""
        ...

    async def create_pod(self, namespace: str, pod: client.V1Pod) -> None:
        """Submit a pod manifest."""
        ...

    async def delete_pod(
        self, namespace: str, name: str, grace_period_seconds: int | None = None
    ) -> None:
        """Delete a pod. Raises NotFoundError if it is absent."""
        ...

    async def read_pod_status(self, namespace: str, name: str) -> PodStatus:
        """Read the observed state of a pod."""
        ...

    def stream_logs(self, namespace: str, name: str, container: str) -> AsyncIterator[bytes]:
        """Follow a container's log, yielding chunks in arrival order until it ends."""
        ...


def _api_message(exc: client.ApiException) -> str:
    """Extract the server-side message from an ApiException."""
    try:
        body = json.loads(exc.body or "")
    except (TypeError, ValueError):
        body = None
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return exc.reason or str(exc)


def translate_api_exception(exc: client.ApiException) -> ClusterError:
    """Map an ApiException onto the kube-strace cluster error types."""
    message = _api_message(exc)
    if exc.status == 404:
        return NotFoundError(message, status=exc.status, reason=exc.reason)
    if exc.status == 409:
        return ConflictError(message, status=exc.status, reason=exc.reason)
    if exc.status in (401, 403):
        return ForbiddenError(message, status=exc.status, reason=exc.reason)
    return ClusterError(message, status=exc.status, reason=exc.reason)


def pod_status_from(pod: client.V1Pod) -> PodStatus:
    """Convert a V1Pod into the PodStatus model."""
    status = pod.status or client.V1PodStatus()
    containers = []
    for container_status in status.container_statuses or []:
        state = container_status.state or client.V1ContainerState()
        observed = ContainerStatus(name=container_status.name)
        if state.running:
            observed.running = True
        elif state.waiting:
            observed.waiting_reason = state.waiting.reason
            observed.message = state.waiting.message
        elif state.terminated:
            observed.terminated = True
            observed.exit_code = state.terminated.exit_code
            observed.reason = state.terminated.reason
            observed.message = state.terminated.message
        containers.append(observed)

    return PodStatus(
        phase=status.phase or "Unknown",
        reason=status.reason,
        message=status.message,
        containers=containers,
    )


class KubeCluster:
    """ICluster implementation over kubernetes.client.CoreV1Api.

    The client is synchronous; every call runs in a worker thread.
    """

    def __init__(
        self,
        core_api: client.CoreV1Api,
        default_namespace: str = "default",
        request_timeout: float = 30.0,
    ):
        self._core = core_api
        self._default_namespace = default_namespace
        self._request_timeout = request_timeout

    @property
    def default_namespace(self) -> str:
        return self._default_namespace

    async def _call(self, method: Callable, *args, **kwargs):
        kwargs.setdefault("_request_timeout", self._request_timeout)
        try:
            return await asyncio.to_thread(method, *args, **kwargs)
        except client.ApiException as e:
            raise translate_api_exception(e) from e
        except urllib3.exceptions.HTTPError as e:
            raise ClusterError(f"cluster unreachable: {e}") from e

    async def create_namespace(self, name: str, labels: dict[str, str]) -> None:
        body = client.V1Namespace(metadata=client.V1ObjectMeta(name=name, labels=labels))
        await self._call(self._core.create_namespace, body=body)

    async def delete_namespace(self, name: str) -> None:
        await self._call(self._core.delete_namespace, name=name)

    async def read_pod(self, namespace: str, name: str) -> client.V1Pod:
        return await self._call(self._core.read_namespaced_pod, name=name, namespace=namespace)

    async def create_pod(self, namespace: str, pod: client.V1Pod) -> None:
        await self._call(self._core.create_namespaced_pod, namespace=namespace, body=pod)

    async def delete_pod(
        self, namespace: str, name: str, grace_period_seconds: int | None = None
    ) -> None:
        await self._call(
            self._core.delete_namespaced_pod,
            name=name,
            namespace=namespace,
            grace_period_seconds=grace_period_seconds,
        )

    async def read_pod_status(self, namespace: str, name: str) -> PodStatus:
        pod = await self._call(
            self._core.read_namespaced_pod_status, name=name, namespace=namespace
        )
        return pod_status_from(pod)

    async def stream_logs(
        self, namespace: str, name: str, container: str
    ) -> AsyncIterator[bytes]:
        # No request timeout: the stream stays open for as long as the trace runs
        response = await self._call(
            self._core.read_namespaced_pod_log,
            name=name,
            namespace=namespace,
            container=container,
            follow=True,
            _preload_content=False,
            _request_timeout=None,
        )
        chunks = response.stream(LOG_CHUNK_SIZE, decode_content=False)
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(next, chunks, None)
                except (urllib3.exceptions.ProtocolError, urllib3.exceptions.ReadTimeoutError) as e:
                    # The API server drops the stream when the pod goes away
                    logger.debug("Log stream for %s/%s ended: %s", name, container, e)
                    break
                if chunk is None:
                    break
                if chunk:
                    yield chunk
        finally:
            response.close()
