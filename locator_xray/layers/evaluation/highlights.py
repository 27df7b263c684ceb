"""Highlight set - the nodes currently highlighted on the screenshot."""

from typing import Optional, Tuple

from locator_xray.layers.evaluation.models import EvaluationResult, NodeGeometry


class HighlightSet:
    """Nodes from the last highlighted evaluation."""

    def __init__(self):
        self.nodes: Tuple[NodeGeometry, ...] = ()
        self.expression = ""
        self.platform: Optional[str] = None

    def set_from(self, result: EvaluationResult) -> None:
        self.nodes = tuple(result.nodes)
        self.expression = result.expression
        self.platform = result.platform

    def clear(self) -> None:
        self.nodes = ()
        self.expression = ""
        self.platform = None

    def __len__(self) -> int:
        return len(self.nodes)
