"""
kube-strace error hierarchy.

Severity guide:
  ValidationError  raised before any cluster mutation; nothing to clean up
  NamespaceError   the run namespace could not be created; nothing to clean up
  RuntimeSocketError  the helper could not resolve the target PID; surfaces as AttachError
  TracerError      fatal to one tracer; its helper pod is still cleaned up
  CleanupError     logged and never escalated once the tracing work is done
  RunError         aggregate of every tracer failure in one run
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Target, TracerFailure


class KStraceError(RuntimeError):
    """Base for all kube-strace errors."""


class ValidationError(KStraceError):
    """Bad flags, targets or an illegal destination/cardinality combination."""


class ClusterError(KStraceError):
    """A cluster API call failed."""

    def __init__(self, message: str, status: int | None = None, reason: str | None = None):
        super().__init__(message)
        self.status = status
        self.reason = reason


class NotFoundError(ClusterError):
    """The requested object does not exist."""


class ConflictError(ClusterError):
    """The object already exists."""


class ForbiddenError(ClusterError):
    """The caller is not allowed to perform the operation, or admission rejected it."""


class NamespaceError(KStraceError):
    """The run namespace could not be created."""


class RuntimeSocketError(KStraceError):
    """The container runtime could not resolve a container to a host process."""


class CleanupError(KStraceError):
    """Deleting a helper resource failed."""


class TracerError(KStraceError):
    """A failure fatal to a single tracer."""

    phase = "trace"

    def __init__(self, target: Target, message: str):
        super().__init__(f"{target}: {message}")
        self.target = target
        self.detail = message


class PlacementError(TracerError):
    """The helper pod could not be admitted, scheduled or started on the target's node."""

    phase = "start"


class AttachError(TracerError):
    """The helper could not locate or attach to the target process, or exited early."""

    phase = "attach"


class OutputError(TracerError):
    """Trace output could not be written to its destination."""

    phase = "output"


class RunError(KStraceError):
    """One or more tracers failed during a run."""

    def __init__(self, failures: list[TracerFailure]):
        lines = [f"{len(failures)} tracer(s) failed:"]
        lines.extend(f"  {failure}" for failure in failures)
        super().__init__("\n".join(lines))
        self.failures = failures
