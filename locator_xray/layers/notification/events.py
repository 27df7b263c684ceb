"""
Events published by the engine.

Each event is a frozen dataclass tagged with a ``type`` string. Listeners
receive ``(event_type, event)`` and can dispatch on either.
"""

from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple, Union

from locator_xray.layers.evaluation.models import EvaluationResult, NodeGeometry

EVALUATION_COMPLETE = "evaluationComplete"
EVALUATION_ERROR = "evaluationError"
HIGHLIGHTS_CHANGED = "highlightsChanged"
XML_CHANGED = "xmlChanged"


@dataclass(frozen=True)
class EvaluationComplete:
    type: ClassVar[str] = EVALUATION_COMPLETE
    result: EvaluationResult
    expression: str
    element_id: Optional[str] = None
    highlight: bool = False
    platform: Optional[str] = None
    from_highlighter: bool = False  # consolidated update sent after highlighting
    self_fix: bool = False  # produced by soft recovery
    recovery: Optional[str] = None
    timestamp: float = 0.0


@dataclass(frozen=True)
class EvaluationError:
    type: ClassVar[str] = EVALUATION_ERROR
    result: EvaluationResult
    expression: str
    error: str
    element_id: Optional[str] = None
    highlight: bool = False
    platform: Optional[str] = None
    timestamp: float = 0.0


@dataclass(frozen=True)
class HighlightsChanged:
    type: ClassVar[str] = HIGHLIGHTS_CHANGED
    nodes: Tuple[NodeGeometry, ...] = ()
    expression: str = ""
    platform: Optional[str] = None
    element_id: Optional[str] = None
    timestamp: float = 0.0


@dataclass(frozen=True)
class XmlChanged:
    type: ClassVar[str] = XML_CHANGED
    xml_source: str
    state_id: str
    platform: Optional[str] = None
    has_document: bool = False
    expression: str = ""
    element_id: Optional[str] = None
    timestamp: float = 0.0


Event = Union[EvaluationComplete, EvaluationError, HighlightsChanged, XmlChanged]
