"""
Configuration for the evaluation engine and the repair pipeline.

Both configs are plain dataclasses with defaults matching the engine's
timing contract. ``from_env()`` reads ``XRAY_*`` overrides so the CLI and
hosting applications can tune behaviour without code changes.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, TypeVar

from locator_xray.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Debounce windows in seconds, keyed by event type
DEFAULT_DEBOUNCE_WINDOWS: Dict[str, float] = {
    "highlightsChanged": 0.100,
    "evaluationComplete": 0.050,
}
DEFAULT_DEBOUNCE_SECONDS = 0.030


def _env(name: str, cast: Callable[[str], T], default: T) -> T:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r} ({e})") from e


def _as_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError("expected a boolean")


@dataclass
class EngineConfig:
    """Timing and diagnostics settings for ``XRayEngine``."""
    soft_recovery_seconds: float = 1.0
    hard_recovery_seconds: float = 3.0
    debounce_windows: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_DEBOUNCE_WINDOWS))
    default_debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    redundant_update_seconds: float = 0.300
    document_cache_size: int = 5
    debug: bool = False

    def __post_init__(self):
        if self.soft_recovery_seconds <= 0 or self.hard_recovery_seconds <= 0:
            raise ConfigurationError("Recovery timeouts must be positive")
        if self.hard_recovery_seconds < self.soft_recovery_seconds:
            raise ConfigurationError("Hard recovery must not fire before soft recovery")
        if self.document_cache_size < 1:
            raise ConfigurationError("document_cache_size must be at least 1")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from ``XRAY_*`` environment variables."""
        return cls(
            soft_recovery_seconds=_env("XRAY_SOFT_RECOVERY_SECONDS", float, 1.0),
            hard_recovery_seconds=_env("XRAY_HARD_RECOVERY_SECONDS", float, 3.0),
            debug=_env("XRAY_DEBUG", _as_bool, False),
        )


@dataclass
class RepairConfig:
    """Settings for the locator repair pipeline."""
    batch_size: int = 10
    max_retries: int = 3
    retry_base_delay: float = 1.0
    client_type: str = "auto"  # auto, cloud, heuristic
    model: Optional[str] = None
    temperature: float = 0.2
    report_dir: Optional[str] = None

    def __post_init__(self):
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must not be negative")
        if self.retry_base_delay < 0:
            raise ConfigurationError("retry_base_delay must not be negative")

    @classmethod
    def from_env(cls) -> "RepairConfig":
        """Build a config from ``XRAY_*`` environment variables."""
        config = cls(
            batch_size=_env("XRAY_BATCH_SIZE", int, 10),
            max_retries=_env("XRAY_MAX_RETRIES", int, 3),
            retry_base_delay=_env("XRAY_RETRY_BASE_DELAY", float, 1.0),
            client_type=_env("XRAY_REPAIR_CLIENT", str, "auto"),
            model=_env("XRAY_REPAIR_MODEL", str, None),
            temperature=_env("XRAY_REPAIR_TEMPERATURE", float, 0.2),
        )
        logger.debug(f"[RepairConfig] Loaded from environment: {config}")
        return config
