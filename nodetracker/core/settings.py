"""Node tracker settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  The field name is the
**lowercase** version of the env-var name (e.g. ``MAX_PARALLELS`` →
``max_parallels``).

Typical usage::

    from nodetracker.core.settings import Settings
    from nodetracker.tracker import NodeTracker

    settings = Settings()
    tracker = NodeTracker.from_settings(settings)
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central tracker configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------
    stats_service_url: str = Field(
        default="",
        description="Stats service endpoint returning the JSON node list.",
    )
    network_type: int = Field(
        default=152,
        gt=0,
        description="Numeric network identifier nodes must declare (104 mainnet, 152 testnet).",
    )
    discovery_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total attempts for the stats service request.",
    )

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------
    max_parallels: int = Field(
        default=10,
        gt=0,
        description="Number of concurrent probe workers per sweep.",
    )
    websocket_timeout: int = Field(
        default=60000,
        gt=0,
        description="Milliseconds to wait for the push-channel greeting.",
    )
    no_websocket_challenge: bool = Field(
        default=False,
        description="Skip the push-channel phase of each probe.",
    )
    probe_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="Seconds allowed for the control-plane latency call.",
    )
    verify_network: bool = Field(
        default=True,
        description="Fail probes of nodes reporting a different network.",
    )

    # ------------------------------------------------------------------
    # Warm-start cache
    # ------------------------------------------------------------------
    cache_path: str = Field(
        default="",
        description="JSON file holding the last discovered nodes (empty = disabled).",
    )
    cache_max_age: int = Field(
        default=86400,
        ge=0,
        description="Seconds after which a cached node list is ignored.",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def cache_path_resolved(self) -> Path | None:
        """The cache path as a resolved :class:`~pathlib.Path`, or ``None``."""
        if not self.cache_path:
            return None
        return Path(self.cache_path).resolve()
