"""Notification Layer - Events and debounced dispatch."""

from locator_xray.layers.notification.events import (
    EVALUATION_COMPLETE,
    EVALUATION_ERROR,
    HIGHLIGHTS_CHANGED,
    XML_CHANGED,
    EvaluationComplete,
    EvaluationError,
    Event,
    HighlightsChanged,
    XmlChanged,
)
from locator_xray.layers.notification.dispatcher import NotificationDispatcher

__all__ = [
    "EVALUATION_COMPLETE",
    "EVALUATION_ERROR",
    "HIGHLIGHTS_CHANGED",
    "XML_CHANGED",
    "EvaluationComplete",
    "EvaluationError",
    "Event",
    "HighlightsChanged",
    "NotificationDispatcher",
    "XmlChanged",
]
