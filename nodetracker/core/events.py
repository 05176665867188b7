"""Structured log event name constants for the node tracker.

Every key transition emits a log record with an ``event`` field (passed via
``extra={"event": events.X}``).  In ``LOG_FORMAT=json`` mode the value
surfaces as ``extra.event``; in text mode the message is self-describing.

Usage example::

    import logging
    from nodetracker.core import events

    logger = logging.getLogger(__name__)

    logger.info("Sweep started", extra={"event": events.SWEEP_START})
"""

from __future__ import annotations

__all__ = [
    # Discovery
    "DISCOVERY_OK",
    "DISCOVERY_ERROR",
    # Sweep lifecycle
    "SWEEP_START",
    "SWEEP_COMPLETE",
    "SWEEP_ABORT",
    "ABORT_REQUESTED",
    # Probe outcomes
    "PROBE_OK",
    "PROBE_FAILED",
    "CHANNEL_FORCE_CLOSED",
    "HEALTH_CHECK",
    # Cache
    "CACHE_LOADED",
    "CACHE_WRITTEN",
]

# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

#: Stats service answered and the registry was replaced.
DISCOVERY_OK: str = "DISCOVERY_OK"

#: Stats service fetch or parse failed; registry left unchanged.
DISCOVERY_ERROR: str = "DISCOVERY_ERROR"

# ---------------------------------------------------------------------------
# Sweep lifecycle
# ---------------------------------------------------------------------------

#: Emitted once when :meth:`~nodetracker.tracker.service.NodeTracker.ping_all` starts.
SWEEP_START: str = "SWEEP_START"

#: Emitted once when every worker of a sweep has stopped.
SWEEP_COMPLETE: str = "SWEEP_COMPLETE"

#: A sweep ended early because of an abort request.
SWEEP_ABORT: str = "SWEEP_ABORT"

#: :meth:`~nodetracker.tracker.service.NodeTracker.abort_pinging` was called.
ABORT_REQUESTED: str = "ABORT_REQUESTED"

# ---------------------------------------------------------------------------
# Probe outcomes
# ---------------------------------------------------------------------------

#: Node answered the control call (and greeted on the push channel).
PROBE_OK: str = "PROBE_OK"

#: Probe failed; the reason was written to ``latest_error``.
PROBE_FAILED: str = "PROBE_FAILED"

#: An open push channel was closed by an abort request.
CHANNEL_FORCE_CLOSED: str = "CHANNEL_FORCE_CLOSED"

#: Single-node health check finished.
HEALTH_CHECK: str = "HEALTH_CHECK"

# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

#: Registry was warm-started from the cache file.
CACHE_LOADED: str = "CACHE_LOADED"

#: Discovered nodes were written to the cache file.
CACHE_WRITTEN: str = "CACHE_WRITTEN"
