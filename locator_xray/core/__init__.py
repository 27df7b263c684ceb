"""Core module - Engine, configuration and scheduling."""

from locator_xray.core.errors import ConfigurationError, RepairClientError, XRayError
from locator_xray.core.config import EngineConfig, RepairConfig
from locator_xray.core.scheduler import AsyncioScheduler, Scheduler, VirtualScheduler
from locator_xray.core.engine import XRayEngine

__all__ = [
    "AsyncioScheduler",
    "ConfigurationError",
    "EngineConfig",
    "RepairClientError",
    "RepairConfig",
    "Scheduler",
    "VirtualScheduler",
    "XRayEngine",
    "XRayError",
]
