"""Helper module, run inside the trace image."""

from .entrypoint import build_parser, main, strace_command

__all__ = ["build_parser", "main", "strace_command"]
