"""Core data models for kube-strace."""

from .targets import ContainerRef, ResolvedObject, ResolvedPod, Target, UnsupportedKind
from .tracing import (
    ContainerStatus,
    PodStatus,
    TraceEvent,
    TracerFailure,
    TracerState,
)
from .naming import artifact_name, helper_pod_name, parse_artifact_name

__all__ = [
    # Targets
    "ContainerRef",
    "Target",
    "ResolvedPod",
    "UnsupportedKind",
    "ResolvedObject",
    # Tracing
    "TracerState",
    "TraceEvent",
    "TracerFailure",
    "PodStatus",
    "ContainerStatus",
    # Naming
    "helper_pod_name",
    "artifact_name",
    "parse_artifact_name",
]
