"""Cluster credential discovery."""

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from ..errors import ClusterError
from ..logging_config import get_logger
from .cluster import KubeCluster

logger = get_logger(__name__)

IN_CLUSTER_NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"


def _kubeconfig_namespace(kubeconfig: str | None, context: str | None) -> str | None:
    """Namespace of the selected kubeconfig context, if it sets one."""
    contexts, active = config.list_kube_config_contexts(config_file=kubeconfig)
    selected = active
    if context:
        selected = next((c for c in contexts if c.get("name") == context), None)
    if not selected:
        return None
    return (selected.get("context") or {}).get("namespace")


def _in_cluster_namespace() -> str | None:
    try:
        with open(IN_CLUSTER_NAMESPACE_FILE, encoding="utf-8") as f:
            return f.read().strip() or None
    except OSError:
        return None


def load_cluster(
    kubeconfig: str | None = None,
    context: str | None = None,
    request_timeout: float = 30.0,
) -> KubeCluster:
    """
    Load credentials and build a KubeCluster.

    Tries the kubeconfig file (KUBECONFIG or ~/.kube/config unless given),
    then falls back to the in-cluster service account.

    Args:
        kubeconfig: Explicit kubeconfig path.
        context: Kubeconfig context to use instead of the active one.
        request_timeout: Timeout in seconds for each API request.

    Returns:
        KubeCluster whose default namespace comes from the context.
    """
    try:
        config.load_kube_config(config_file=kubeconfig, context=context)
        namespace = _kubeconfig_namespace(kubeconfig, context)
        logger.debug("Loaded kubeconfig (context=%s)", context or "current")
    except (ConfigException, OSError) as kube_error:
        if kubeconfig or context:
            raise ClusterError(f"cannot load kubeconfig: {kube_error}") from kube_error
        try:
            config.load_incluster_config()
        except ConfigException as e:
            raise ClusterError(
                f"no cluster configuration found: {kube_error}; in-cluster: {e}"
            ) from e
        namespace = _in_cluster_namespace()
        logger.debug("Loaded in-cluster configuration")

    return KubeCluster(
        client.CoreV1Api(),
        default_namespace=namespace or "default",
        request_timeout=request_timeout,
    )
