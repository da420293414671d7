"""Orchestrator module."""

from .orchestrator import IOrchestrator, Orchestrator, RunPlan
from .teardown import TeardownStack

__all__ = ["IOrchestrator", "Orchestrator", "RunPlan", "TeardownStack"]
