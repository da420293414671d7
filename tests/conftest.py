"""Pytest configuration and fixtures."""

import asyncio
import sys
from pathlib import Path

import pytest
from kubernetes import client

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from kstrace.errors import NotFoundError  # noqa: E402
from kstrace.models import ContainerRef, ContainerStatus, PodStatus, Target  # noqa: E402


def running_status(*names: str) -> PodStatus:
    return PodStatus(
        phase="Running",
        containers=[ContainerStatus(name=name, running=True) for name in names],
    )


def exited_status(exit_codes: dict[str, int], message: str | None = None) -> PodStatus:
    phase = "Failed" if any(exit_codes.values()) else "Succeeded"
    return PodStatus(
        phase=phase,
        containers=[
            ContainerStatus(
                name=name,
                terminated=True,
                exit_code=code,
                reason="Error" if code else "Completed",
                message=message if code else None,
            )
            for name, code in exit_codes.items()
        ],
    )


class FakeCluster:
    """In-memory ICluster recording every mutation.

    Helper pods run as soon as they are created. Their logs yield the
    configured chunks and then either end (the helper exits 0) or, with
    follow=True, stay open until the pod is deleted.
    """

    def __init__(self, default_namespace: str = "default"):
        self._default_namespace = default_namespace
        self.follow = False

        self.pods: dict[tuple[str, str], client.V1Pod] = {}
        self.namespaces: set[str] = set()
        self.created_namespaces: list[str] = []
        self.deleted_namespaces: list[str] = []
        self.created_pods: list[tuple[str, client.V1Pod]] = []
        self.deleted_pods: list[tuple[str, str, int | None]] = []

        self.logs: dict[str, list[bytes]] = {}
        self.statuses: dict[str, list[PodStatus]] = {}
        self.create_pod_errors: dict[str, Exception] = {}
        self.delete_pod_errors: dict[str, Exception] = {}
        self.create_namespace_error: Exception | None = None
        self.delete_namespace_error: Exception | None = None
        self.read_pod_error: Exception | None = None

        self._live: dict[str, client.V1Pod] = {}
        self._deleted: dict[str, asyncio.Event] = {}
        self._ended: dict[str, set[str]] = {}

    @property
    def default_namespace(self) -> str:
        return self._default_namespace

    @property
    def live_pods(self) -> list[str]:
        return list(self._live)

    def add_pod(self, pod: client.V1Pod) -> None:
        self.pods[(pod.metadata.namespace, pod.metadata.name)] = pod

    async def create_namespace(self, name: str, labels: dict[str, str]) -> None:
        if self.create_namespace_error is not None:
            raise self.create_namespace_error
        self.namespaces.add(name)
        self.created_namespaces.append(name)

    async def delete_namespace(self, name: str) -> None:
        if self.delete_namespace_error is not None:
            raise self.delete_namespace_error
        if name not in self.namespaces:
            raise NotFoundError(f'namespaces "{name}" not found', status=404)
        self.namespaces.discard(name)
        self.deleted_namespaces.append(name)
        for pod_name, pod in list(self._live.items()):
            if pod.metadata.namespace == name:
                self._remove(pod_name)

    async def read_pod(self, namespace: str, name: str) -> client.V1Pod:
        if self.read_pod_error is not None:
            raise self.read_pod_error
        try:
            return self.pods[(namespace, name)]
        except KeyError:
            raise NotFoundError(f'pods "{name}" not found', status=404) from None

    async def create_pod(self, namespace: str, pod: client.V1Pod) -> None:
        name = pod.metadata.name
        self.created_pods.append((namespace, pod))
        if name in self.create_pod_errors:
            raise self.create_pod_errors[name]
        self._live[name] = pod
        self._deleted[name] = asyncio.Event()
        self._ended[name] = set()

    async def delete_pod(
        self, namespace: str, name: str, grace_period_seconds: int | None = None
    ) -> None:
        self.deleted_pods.append((namespace, name, grace_period_seconds))
        if name in self.delete_pod_errors:
            raise self.delete_pod_errors[name]
        if name not in self._live:
            raise NotFoundError(f'pods "{name}" not found', status=404)
        self._remove(name)

    def _remove(self, name: str) -> None:
        del self._live[name]
        self._deleted[name].set()

    async def read_pod_status(self, namespace: str, name: str) -> PodStatus:
        sequence = self.statuses.get(name)
        if sequence:
            return sequence.pop(0) if len(sequence) > 1 else sequence[0]
        if name not in self._live:
            raise NotFoundError(f'pods "{name}" not found', status=404)
        names = [container.name for container in self._live[name].spec.containers]
        if set(names) <= self._ended[name]:
            return exited_status({container: 0 for container in names})
        return running_status(*names)

    async def stream_logs(self, namespace: str, name: str, container: str):
        for chunk in self.logs.get(container, []):
            await asyncio.sleep(0)
            yield chunk
        if self.follow:
            await self._deleted[name].wait()
        self._ended.setdefault(name, set()).add(container)

    def deletions_of(self, name: str) -> int:
        return sum(1 for _, pod_name, _ in self.deleted_pods if pod_name == name)


def make_pod(
    name: str = "web-1",
    namespace: str = "prod",
    node: str | None = "node-a",
    containers: tuple[str, ...] = ("app",),
    runtime: str = "cri-o",
) -> client.V1Pod:
    """A scheduled, running application pod as the API server returns it."""
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        spec=client.V1PodSpec(
            node_name=node,
            containers=[client.V1Container(name=c, image=f"registry/{c}:1") for c in containers],
        ),
        status=client.V1PodStatus(
            phase="Running",
            container_statuses=[
                client.V1ContainerStatus(
                    name=c,
                    image=f"registry/{c}:1",
                    image_id="",
                    ready=True,
                    restart_count=0,
                    container_id=f"{runtime}://{c}-{name}-id",
                )
                for c in containers
            ],
        ),
    )


@pytest.fixture
def cluster():
    """Create an in-memory cluster."""
    return FakeCluster()


@pytest.fixture
def tracker():
    """Create an in-memory tracker."""
    from kstrace.tracker import Tracker

    return Tracker()


@pytest.fixture
def settings(tmp_path):
    """Settings writing artifacts under tmp_path with fast polling."""
    from kstrace.config import TraceSettings

    return TraceSettings(
        output=str(tmp_path / "out"),
        request_timeout="1s",
        poll_interval=0.01,
    )


@pytest.fixture
def make_target():
    """Factory for targets."""

    def _make(
        pod: str = "web-1",
        namespace: str = "prod",
        node: str = "node-a",
        containers: tuple[str, ...] = ("app",),
    ) -> Target:
        return Target(
            pod=pod,
            namespace=namespace,
            node=node,
            containers=tuple(
                ContainerRef(name=c, image=f"registry/{c}:1", container_id=f"{c}-{pod}-id")
                for c in containers
            ),
        )

    return _make
