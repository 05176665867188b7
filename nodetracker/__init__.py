"""Track, probe, and pick healthy gateway nodes of a distributed ledger network."""

from nodetracker.core.models import EndpointRecord, ProgressEvent
from nodetracker.tracker.service import NodeTracker

__all__ = ["NodeTracker", "EndpointRecord", "ProgressEvent"]

__version__ = "0.1.0"
