"""Tracer lifecycle and observability data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .targets import Target


class TracerState(str, Enum):
    """Tracer lifecycle states, strictly ordered."""

    CREATED = "created"
    LAUNCHING = "launching"
    ATTACHED = "attached"
    STOPPING = "stopping"
    CLEANED = "cleaned"


@dataclass
class TraceEvent:
    """A single lifecycle event of a run."""

    id: str
    event_type: str  # e.g. "namespace_created", "helper_pod_deleted"
    actor: str  # who created this event
    data: dict  # full self-contained data for display
    timestamp: datetime


@dataclass
class TracerFailure:
    """A tracer failure captured for aggregate reporting."""

    target: Target
    phase: str  # "start", "attach", "output", "trace"
    error: Exception

    def __str__(self) -> str:
        return f"{self.target} failed during {self.phase}: {self.error}"


@dataclass
class ContainerStatus:
    """Observed state of one helper container."""

    name: str
    running: bool = False
    waiting_reason: str | None = None
    terminated: bool = False
    exit_code: int | None = None
    reason: str | None = None
    message: str | None = None


@dataclass
class PodStatus:
    """Observed state of a helper pod."""

    phase: str  # Pending, Running, Succeeded, Failed, Unknown
    reason: str | None = None
    message: str | None = None
    containers: list[ContainerStatus] = field(default_factory=list)
