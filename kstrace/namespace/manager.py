"""Namespace Lifecycle Manager implementation."""

import random
import string
from typing import Protocol

from ..cluster import ICluster
from ..errors import CleanupError, ClusterError, NamespaceError, NotFoundError
from ..logging_config import get_logger
from ..tracker import ITracker

logger = get_logger(__name__)

NAMESPACE_PREFIX = "kstrace"
SUFFIX_LENGTH = 6

# Helper pods are privileged; pod security admission must allow them
NAMESPACE_LABELS = {
    "app.kubernetes.io/managed-by": "kube-strace",
    "pod-security.kubernetes.io/enforce": "privileged",
    "pod-security.kubernetes.io/audit": "privileged",
    "pod-security.kubernetes.io/warn": "privileged",
}


def namespace_name(rng: random.Random | None = None) -> str:
    """Generate a collision-resistant run namespace name."""
    rng = rng or random.SystemRandom()
    suffix = "".join(rng.choices(string.ascii_lowercase + string.digits, k=SUFFIX_LENGTH))
    return f"{NAMESPACE_PREFIX}-{suffix}"


class INamespaceManager(Protocol):
    """Creating and deleting the disposable run namespace."""

    async def create_namespace(self) -> str:
        """Create a new namespace and return its name."""
        ...

    async def cleanup_namespace(self, name: str) -> None:
        """Delete the namespace; already gone is success."""
        ...


class NamespaceManager:
    """Owns the run namespace holding every helper pod."""

    def __init__(self, cluster: ICluster, tracker: ITracker, rng: random.Random | None = None):
        self._cluster = cluster
        self._tracker = tracker
        self._rng = rng

    async def create_namespace(self) -> str:
        """Create a new namespace with a random suffix. No retries."""
        name = namespace_name(self._rng)
        try:
            await self._cluster.create_namespace(name, dict(NAMESPACE_LABELS))
        except ClusterError as e:
            raise NamespaceError(f"cannot create namespace {name!r}: {e}") from e

        logger.info("Created namespace %s", name)
        self._tracker.track("namespace_created", "namespace_manager", {"namespace": name})
        return name

    async def cleanup_namespace(self, name: str) -> None:
        """
        Delete the namespace and, transitively, anything left inside it.

        Raises:
            CleanupError: deletion failed for a reason other than absence.
        """
        try:
            await self._cluster.delete_namespace(name)
        except NotFoundError:
            logger.debug("Namespace %s already deleted", name)
            return
        except ClusterError as e:
            self._tracker.track(
                "namespace_cleanup_failed",
                "namespace_manager",
                {"namespace": name, "error": str(e)},
            )
            raise CleanupError(f"cannot delete namespace {name!r}: {e}") from e

        logger.info("Deleted namespace %s", name)
        self._tracker.track("namespace_deleted", "namespace_manager", {"namespace": name})
