"""Metric registry and definitions exported at ``/metrics``."""

from . import metrics, registry

__all__ = ["metrics", "registry"]
