"""Runtime module."""

from .socket_client import RuntimeSocketClient, normalize_endpoint, socket_path

__all__ = ["RuntimeSocketClient", "normalize_endpoint", "socket_path"]
