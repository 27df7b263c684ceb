"""
Data model for locators and XPath evaluation results.

``EvaluationResult`` is what the engine produces and caches; it is frozen so
a cached snapshot can be handed to any number of consumers. ``Locator`` and
its ``XPathRecord`` belong to the caller and are rebuilt (never mutated in
place) by the engine and the repair pipeline.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

# Reserved always-zero-match expression meaning "no locator could be determined"
SENTINEL_XPATH = "//*[99=0]"

PLATFORMS = ("ios", "android")

# Match count carried by results that are still being computed
IN_PROGRESS_MATCHES = -1


@dataclass(frozen=True)
class NodeGeometry:
    """Position data extracted from a single matched node."""
    index: int
    node_name: str
    serialized: str
    platform: Optional[str] = None
    bounds: Optional[str] = None
    x: Optional[int] = None
    y: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    x1: Optional[int] = None
    y1: Optional[int] = None
    x2: Optional[int] = None
    y2: Optional[int] = None

    @property
    def has_bounds(self) -> bool:
        return self.x is not None and self.y is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "nodeName": self.node_name,
            "serialized": self.serialized,
            "platform": self.platform,
            "bounds": self.bounds,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "x1": self.x1,
            "y1": self.y1,
            "x2": self.x2,
            "y2": self.y2,
        }


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one XPath expression against one document."""
    expression: str
    number_of_matches: int
    is_valid: bool
    success: bool
    matching_nodes: Tuple[str, ...] = ()
    nodes: Tuple[NodeGeometry, ...] = ()
    platform: Optional[str] = None
    error: Optional[str] = None
    in_progress: bool = False

    def __post_init__(self):
        # in-progress sentinels carry -1 while still flagged invalid
        if not self.is_valid and not self.in_progress and self.number_of_matches != 0:
            raise ValueError("An invalid result cannot report matches")

    @classmethod
    def empty(cls, expression: str, platform: Optional[str] = None) -> "EvaluationResult":
        """Result for an empty expression or a missing document."""
        return cls(expression=expression or "", number_of_matches=0, is_valid=False,
                   success=False, platform=platform)

    @classmethod
    def failure(cls, expression: str, error: str, platform: Optional[str] = None) -> "EvaluationResult":
        """Result for an expression that raised during evaluation."""
        return cls(expression=expression, number_of_matches=0, is_valid=False,
                   success=False, platform=platform, error=error)

    @classmethod
    def pending(cls, expression: str, platform: Optional[str] = None) -> "EvaluationResult":
        """Sentinel returned while the same element is already evaluating."""
        return cls(expression=expression, number_of_matches=IN_PROGRESS_MATCHES, is_valid=False,
                   success=False, platform=platform, in_progress=True)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "xpathExpression": self.expression,
            "numberOfMatches": self.number_of_matches,
            "matchingNodes": list(self.matching_nodes),
            "nodeDetails": [node.to_dict() for node in self.nodes],
            "isValid": self.is_valid,
            "success": self.success,
            "platform": self.platform,
        }
        if self.error:
            data["error"] = self.error
        if self.in_progress:
            data["inProgress"] = True
        return data


@dataclass
class AlternativeXPath:
    """A non-primary repair candidate kept for manual selection."""
    xpath: str
    confidence: str = "Low"
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"xpath": self.xpath, "confidence": self.confidence, "description": self.description}


@dataclass
class XPathRecord:
    """The locator's view of its expression and last evaluation."""
    expression: str = ""
    number_of_matches: int = 0
    is_valid: bool = False
    success: bool = False
    matching_nodes: List[str] = field(default_factory=list)
    original_xpath: Optional[str] = None
    alternative_xpaths: List[AlternativeXPath] = field(default_factory=list)

    def with_result(self, result: EvaluationResult) -> "XPathRecord":
        """Copy of this record carrying a fresh evaluation."""
        return replace(
            self,
            number_of_matches=result.number_of_matches,
            is_valid=result.is_valid,
            success=result.success,
            matching_nodes=list(result.matching_nodes),
        )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "XPathRecord":
        data = data or {}
        return cls(
            expression=data.get("xpathExpression") or "",
            number_of_matches=int(data.get("numberOfMatches", 0) or 0),
            is_valid=bool(data.get("isValid", False)),
            success=bool(data.get("success", False)),
            matching_nodes=list(data.get("matchingNodes") or []),
            original_xpath=data.get("originalXpath"),
            alternative_xpaths=[
                AlternativeXPath(
                    xpath=alt.get("xpath", SENTINEL_XPATH),
                    confidence=alt.get("confidence", "Low"),
                    description=alt.get("description"),
                )
                for alt in data.get("alternativeXpaths") or []
                if isinstance(alt, dict)
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "xpathExpression": self.expression,
            "numberOfMatches": self.number_of_matches,
            "isValid": self.is_valid,
            "success": self.success,
            "matchingNodes": list(self.matching_nodes),
        }
        if self.original_xpath is not None:
            data["originalXpath"] = self.original_xpath
        if self.alternative_xpaths:
            data["alternativeXpaths"] = [alt.to_dict() for alt in self.alternative_xpaths]
        return data


@dataclass
class Locator:
    """A named UI element descriptor paired with an XPath expression."""
    id: Optional[str]
    state_id: str
    platform: str
    dev_name: str
    name: str = ""
    description: str = ""
    value: str = ""
    is_dynamic_value: bool = False
    xpath: XPathRecord = field(default_factory=XPathRecord)

    @property
    def lookup_key(self) -> str:
        """Key used to merge repaired expressions back into a locator list."""
        return f"{self.id or self.dev_name}_{self.state_id}_{self.platform}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Locator":
        return cls(
            id=data.get("id"),
            state_id=str(data.get("stateId") or ""),
            platform=str(data.get("platform") or ""),
            dev_name=str(data.get("devName") or ""),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            value=str(data.get("value") or ""),
            is_dynamic_value=bool(data.get("isDynamicValue") or False),
            xpath=XPathRecord.from_dict(data.get("xpath")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "stateId": self.state_id,
            "platform": self.platform,
            "devName": self.dev_name,
            "name": self.name,
            "description": self.description,
            "value": self.value,
            "isDynamicValue": self.is_dynamic_value,
            "xpath": self.xpath.to_dict(),
        }


def is_failing(locator: Locator) -> bool:
    """True when a locator needs repair."""
    record = locator.xpath
    if not record.expression:
        return True
    return (
        not record.success
        or record.number_of_matches == 0
        or record.expression == SENTINEL_XPATH
    )
