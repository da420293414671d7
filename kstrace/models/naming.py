"""Deterministic names derived from target identity."""

import hashlib

from .targets import Target

HELPER_POD_PREFIX = "kstrace"
ARTIFACT_SUFFIX = ".strace"

# Pod, namespace and container names are DNS names and never contain "_"
_SEPARATOR = "_"
_MAX_POD_NAME = 63


def helper_pod_name(target: Target) -> str:
    """
    Name of the helper pod tracing a target.

    The digest covers namespace and pod, so two targets only collide when
    they are the same pod; truncation of long pod names keeps it unique.
    """
    digest = hashlib.sha256(f"{target.namespace}/{target.pod}".encode("utf-8")).hexdigest()[:8]
    budget = _MAX_POD_NAME - len(HELPER_POD_PREFIX) - len(digest) - 2
    stem = target.pod[:budget].rstrip("-.")
    return f"{HELPER_POD_PREFIX}-{stem}-{digest}"


def artifact_name(pod: str, namespace: str, container: str) -> str:
    """File name of the trace output for one container."""
    return _SEPARATOR.join((pod, namespace, container)) + ARTIFACT_SUFFIX


def parse_artifact_name(name: str) -> tuple[str, str, str]:
    """Inverse of artifact_name: returns (pod, namespace, container)."""
    if not name.endswith(ARTIFACT_SUFFIX):
        raise ValueError(f"not a trace artifact: {name!r}")
    parts = name[: -len(ARTIFACT_SUFFIX)].split(_SEPARATOR)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"not a trace artifact: {name!r}")
    pod, namespace, container = parts
    return pod, namespace, container
