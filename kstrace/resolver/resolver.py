"""Resolution of command-line names into targets."""

from kubernetes import client

from ..cluster import ICluster
from ..errors import ClusterError, NotFoundError, ValidationError
from ..logging_config import get_logger
from ..models import ContainerRef, ResolvedObject, ResolvedPod, Target, UnsupportedKind

logger = get_logger(__name__)

POD_KINDS = frozenset({"pod", "pods", "po"})


def parse_name(arg: str) -> tuple[str, str]:
    """Split "kind/name" into (kind, name); a bare name is a pod."""
    kind, sep, name = arg.partition("/")
    if not sep:
        return "pod", arg
    if not kind or not name or "/" in name:
        raise ValidationError(f"invalid resource name {arg!r}, expected NAME or KIND/NAME")
    return kind.lower(), name


def _strip_runtime(container_id: str | None) -> str:
    """'cri-o://abc' -> 'abc'."""
    if not container_id:
        return ""
    return container_id.split("://", 1)[-1]


def target_from_pod(pod: client.V1Pod) -> Target:
    """
    Build a Target from a pod object.

    Raises:
        ValidationError: the pod is not scheduled or a container has no runtime id.
    """
    name = pod.metadata.name
    namespace = pod.metadata.namespace
    node = pod.spec.node_name
    if not node:
        raise ValidationError(f"pod {namespace}/{name} is not scheduled on a node yet")

    statuses = {}
    if pod.status:
        statuses = {status.name: status for status in pod.status.container_statuses or []}

    containers = []
    for container in pod.spec.containers:
        status = statuses.get(container.name)
        container_id = _strip_runtime(status.container_id if status else None)
        if not container_id:
            raise ValidationError(
                f"container {container.name!r} of pod {namespace}/{name} is not running"
            )
        containers.append(
            ContainerRef(name=container.name, image=container.image or "", container_id=container_id)
        )

    return Target(pod=name, namespace=namespace, node=node, containers=tuple(containers))


class TargetResolver:
    """Resolves NAME / KIND/NAME arguments against the cluster."""

    def __init__(self, cluster: ICluster, namespace: str | None = None):
        self._cluster = cluster
        self._namespace = namespace or cluster.default_namespace

    async def resolve(self, names: list[str]) -> list[ResolvedObject]:
        """Resolve each argument to a ResolvedPod or an UnsupportedKind."""
        resolved: list[ResolvedObject] = []
        for arg in names:
            kind, name = parse_name(arg)
            if kind not in POD_KINDS:
                resolved.append(UnsupportedKind(kind=kind, name=name))
                continue
            try:
                pod = await self._cluster.read_pod(self._namespace, name)
            except NotFoundError as e:
                raise ValidationError(f'pods "{name}" not found in namespace {self._namespace!r}') from e
            except ClusterError as e:
                raise ValidationError(f"cannot read pod {self._namespace}/{name}: {e}") from e
            target = target_from_pod(pod)
            logger.debug("Adding pod to strace list %s", target)
            resolved.append(ResolvedPod(target))
        return resolved

    async def resolve_targets(self, names: list[str]) -> list[Target]:
        """
        Resolve arguments into de-duplicated targets, in argument order.

        Raises:
            ValidationError: unsupported kind, missing pod or unusable pod.
        """
        targets: dict[tuple[str, str], Target] = {}
        for obj in await self.resolve(names):
            if isinstance(obj, UnsupportedKind):
                raise ValidationError(obj.message)
            targets.setdefault(obj.target.key, obj.target)
        logger.debug("Pod list: %s", [str(target) for target in targets.values()])
        return list(targets.values())
