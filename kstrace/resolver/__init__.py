"""Resolver module."""

from .resolver import TargetResolver, parse_name, target_from_pod

__all__ = ["TargetResolver", "parse_name", "target_from_pod"]
