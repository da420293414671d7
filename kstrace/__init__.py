"""kube-strace: attach strace to running Kubernetes containers."""

from .cluster import ICluster, KubeCluster, load_cluster
from .config import TraceSettings, load_settings, parse_duration
from .errors import (
    AttachError,
    CleanupError,
    ClusterError,
    KStraceError,
    NamespaceError,
    OutputError,
    PlacementError,
    RunError,
    RuntimeSocketError,
    TracerError,
    ValidationError,
)
from .models import (
    ContainerRef,
    Target,
    TraceEvent,
    TracerFailure,
    TracerState,
)
from .namespace import INamespaceManager, NamespaceManager
from .orchestrator import IOrchestrator, Orchestrator
from .resolver import TargetResolver
from .runtime import RuntimeSocketClient
from .tracer import ITracer, Tracer
from .tracker import ITracker, Tracker

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "TraceSettings",
    "load_settings",
    "parse_duration",
    # Models
    "ContainerRef",
    "Target",
    "TraceEvent",
    "TracerFailure",
    "TracerState",
    # Errors
    "KStraceError",
    "ValidationError",
    "ClusterError",
    "NamespaceError",
    "RuntimeSocketError",
    "CleanupError",
    "TracerError",
    "PlacementError",
    "AttachError",
    "OutputError",
    "RunError",
    # Components
    "ICluster",
    "KubeCluster",
    "load_cluster",
    "INamespaceManager",
    "NamespaceManager",
    "ITracer",
    "Tracer",
    "IOrchestrator",
    "Orchestrator",
    "TargetResolver",
    "RuntimeSocketClient",
    "ITracker",
    "Tracker",
]
