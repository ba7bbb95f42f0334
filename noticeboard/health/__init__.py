"""Feed health - failure tracking and derived health status."""

from .interfaces import FeedHealth, HealthStatus
from .tracker import HealthTracker, apply_outcome, classify

__all__ = ["FeedHealth", "HealthStatus", "HealthTracker", "apply_outcome", "classify"]
