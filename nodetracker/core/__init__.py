"""Core domain models, settings, logging configuration, and exceptions."""

from nodetracker.core.exceptions import (
    CacheError,
    ConfigError,
    ControlCallError,
    DiscoveryError,
    DiscoveryFetchError,
    DiscoveryParseError,
    NetworkMismatchError,
    NodeTrackerError,
    ProbeError,
    PushChannelError,
)
from nodetracker.core.logging_config import JsonFormatter, configure_logging
from nodetracker.core.models import EndpointRecord, ProgressEvent
from nodetracker.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "EndpointRecord",
    "ProgressEvent",
    # Settings
    "Settings",
    # Exceptions
    "NodeTrackerError",
    "ConfigError",
    "DiscoveryError",
    "DiscoveryFetchError",
    "DiscoveryParseError",
    "ProbeError",
    "ControlCallError",
    "NetworkMismatchError",
    "PushChannelError",
    "CacheError",
]
