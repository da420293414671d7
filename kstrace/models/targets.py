"""Target-related data models."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ContainerRef:
    """A container of a target pod."""

    name: str
    image: str  # identity only, never pulled by kube-strace
    container_id: str = ""  # runtime id without the "<runtime>://" prefix


@dataclass(frozen=True)
class Target:
    """An identified pod, on an identified node, whose containers are traced."""

    pod: str
    namespace: str
    node: str
    containers: tuple[ContainerRef, ...] = field(default_factory=tuple)

    @property
    def key(self) -> tuple[str, str]:
        """Identity used for de-duplication."""
        return (self.namespace, self.pod)

    @property
    def container_names(self) -> list[str]:
        return [container.name for container in self.containers]

    def __str__(self) -> str:
        return f"pod {self.namespace}/{self.pod}"


@dataclass(frozen=True)
class ResolvedPod:
    """A name argument resolved to a pod target."""

    target: Target


@dataclass(frozen=True)
class UnsupportedKind:
    """A name argument naming an object kind kube-strace cannot trace."""

    kind: str
    name: str

    @property
    def message(self) -> str:
        return f"{self.kind!r} not supported by kube-strace (requested {self.kind}/{self.name})"


ResolvedObject = ResolvedPod | UnsupportedKind
