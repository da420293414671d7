"""Namespace module."""

from .manager import NAMESPACE_LABELS, INamespaceManager, NamespaceManager, namespace_name

__all__ = ["INamespaceManager", "NamespaceManager", "NAMESPACE_LABELS", "namespace_name"]
