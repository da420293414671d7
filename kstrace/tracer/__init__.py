"""Tracer module."""

from .output import ConsoleSink, FileSink, IOutputSink, open_sinks
from .tracer import ITracer, Tracer

__all__ = [
    "ITracer",
    "Tracer",
    "IOutputSink",
    "FileSink",
    "ConsoleSink",
    "open_sinks",
]
