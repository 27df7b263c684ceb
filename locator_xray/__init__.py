"""
Locator X-Ray - Live XPath evaluation and repair for mobile app snapshots.

Evaluates XPath locators against captured iOS/Android page sources with a
cached, debounced notification engine, and repairs locators that stopped
matching through batched AI-assisted candidate generation and validation.
"""

__version__ = "0.1.0"

from locator_xray.core.engine import XRayEngine
from locator_xray.core.config import EngineConfig, RepairConfig
from locator_xray.layers.repair.pipeline import RepairPipeline

__all__ = [
    "EngineConfig",
    "RepairConfig",
    "RepairPipeline",
    "XRayEngine",
    "__version__",
]
