"""Evaluation Layer - Context, cache and XPath evaluation."""

from locator_xray.layers.evaluation.models import (
    SENTINEL_XPATH,
    AlternativeXPath,
    EvaluationResult,
    Locator,
    NodeGeometry,
    XPathRecord,
    is_failing,
)
from locator_xray.layers.evaluation.xml_backend import LxmlBackend, XmlBackend
from locator_xray.layers.evaluation.context_store import Context, XmlContextStore
from locator_xray.layers.evaluation.cache import CacheKey, EvaluationCache
from locator_xray.layers.evaluation.evaluator import EvaluationCore, extract_geometry
from locator_xray.layers.evaluation.highlights import HighlightSet
from locator_xray.layers.evaluation.lifecycle import LifecycleState, LifecycleTracker, RecoveryMethod

__all__ = [
    "SENTINEL_XPATH",
    "AlternativeXPath",
    "CacheKey",
    "Context",
    "EvaluationCache",
    "EvaluationCore",
    "EvaluationResult",
    "HighlightSet",
    "LifecycleState",
    "LifecycleTracker",
    "Locator",
    "LxmlBackend",
    "NodeGeometry",
    "RecoveryMethod",
    "XPathRecord",
    "XmlBackend",
    "XmlContextStore",
    "extract_geometry",
    "is_failing",
]
