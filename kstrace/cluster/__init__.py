"""Cluster module."""

from .cluster import ICluster, KubeCluster, pod_status_from, translate_api_exception
from .kube import load_cluster
from .pod_spec import build_helper_pod, helper_args, runtime_endpoint

__all__ = [
    "ICluster",
    "KubeCluster",
    "load_cluster",
    "build_helper_pod",
    "helper_args",
    "runtime_endpoint",
    "pod_status_from",
    "translate_api_exception",
]
