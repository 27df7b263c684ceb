"""
Heuristic repair client - Offline attribute matching.

Looks for nodes whose stable attributes match what the failing locator
remembers about its element (value, name, string literals of the old
expression) and proposes attribute-based XPaths, unique matches first.
Used when no cloud provider is configured and as a deterministic stand-in
in tests.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from locator_xray.layers.evaluation.models import Locator
from locator_xray.layers.evaluation.xml_backend import LxmlBackend, XmlBackend
from locator_xray.layers.repair.clients.base import RepairClient, RepairRequest

logger = logging.getLogger(__name__)

PLATFORM_ATTRIBUTES = {
    "android": ("resource-id", "content-desc", "text"),
    "ios": ("name", "label", "value"),
}

_LITERAL_RE = re.compile(r"'([^']+)'|\"([^\"]+)\"")

# Ignore tokens too short to identify anything
MIN_TOKEN_LENGTH = 2


def escape_xpath_string(text: str) -> str:
    """Quote ``text`` as an XPath string literal, using concat() when it holds both quote kinds."""
    if "'" not in text:
        return f"'{text}'"
    if '"' not in text:
        return f'"{text}"'
    parts = text.split("'")
    return "concat(" + ", \"'\", ".join(f"'{p}'" for p in parts) + ")"


@dataclass
class _Suggestion:
    xpath: str
    attribute: str
    tag: str
    exact: bool
    matches: int
    rank: int

    @property
    def score(self) -> Tuple[int, int, int]:
        # unique first, then exact, then attribute preference
        return (0 if self.matches == 1 else 1, 0 if self.exact else 1, self.rank)

    @property
    def confidence(self) -> str:
        if self.matches == 1 and self.exact:
            return "High"
        if self.matches == 1 or self.exact:
            return "Medium"
        return "Low"


class HeuristicRepairClient(RepairClient):
    """
    Rule-based repair client that needs no network access.

    Example:
        >>> client = HeuristicRepairClient()
        >>> payload = asyncio.run(client.repair(request))
        >>> payload["elements"][0]["xpathFix"][0]["xpath"]
        "//*[@resource-id='com.app:id/login']"
    """

    name = "heuristic"

    def __init__(self, backend: Optional[XmlBackend] = None, max_candidates: int = 3):
        self.backend = backend or LxmlBackend()
        self.max_candidates = max_candidates

    async def repair(self, request: RepairRequest) -> Dict[str, Any]:
        try:
            document = self.backend.parse(request.page_source or "")
        except Exception as e:
            logger.warning(f"[HeuristicRepairClient] Cannot parse page source: {e}")
            document = None

        attributes = PLATFORM_ATTRIBUTES.get(request.platform.lower(), PLATFORM_ATTRIBUTES["android"])
        elements = []
        for locator in request.elements:
            fixes = []
            if document is not None:
                suggestions = self._suggest(locator, document, attributes)
                fixes = [
                    {
                        "priority": priority,
                        "xpath": s.xpath,
                        "confidence": s.confidence,
                        "description": f"{'Exact' if s.exact else 'Partial'} @{s.attribute} match on {s.tag}"
                                       f" ({s.matches} match{'es' if s.matches != 1 else ''})",
                        "fix": f"Replaced {locator.xpath.expression or 'missing expression'} "
                               f"with an @{s.attribute} locator",
                    }
                    for priority, s in enumerate(suggestions)
                ]
            logger.debug(f"[HeuristicRepairClient] {len(fixes)} candidates for {locator.dev_name or locator.id}")
            elements.append({
                "id": locator.id,
                "devName": locator.dev_name,
                "stateId": locator.state_id,
                "platform": locator.platform,
                "xpathFix": fixes,
            })
        return {"elements": elements}

    @staticmethod
    def tokens_for(locator: Locator) -> List[str]:
        """Strings the element might still carry in the new snapshot."""
        tokens = [locator.value, locator.name]
        for single, double in _LITERAL_RE.findall(locator.xpath.expression or ""):
            tokens.append(single or double)
        seen = []
        for token in tokens:
            token = (token or "").strip()
            if len(token) >= MIN_TOKEN_LENGTH and token not in seen:
                seen.append(token)
        return seen

    def _suggest(self, locator: Locator, document: Any, attributes: Tuple[str, ...]) -> List[_Suggestion]:
        tokens = self.tokens_for(locator)
        if not tokens:
            return []
        lowered = [t.lower() for t in tokens]

        suggestions: Dict[str, _Suggestion] = {}
        for node in document.iter():
            tag = node.tag if isinstance(node.tag, str) else None
            if tag is None:
                continue
            for rank, attribute in enumerate(attributes):
                actual = node.get(attribute)
                if not actual:
                    continue
                actual_lower = actual.lower()
                if actual_lower in lowered:
                    xpath = f"//*[@{attribute}={escape_xpath_string(actual)}]"
                    exact = True
                elif any(t in actual_lower for t in lowered):
                    token = next(t for t in tokens if t.lower() in actual_lower)
                    xpath = f"//{tag}[contains(@{attribute}, {escape_xpath_string(token)})]"
                    exact = False
                else:
                    continue
                if xpath in suggestions:
                    continue
                try:
                    matches = len(self.backend.select(xpath, document))
                except Exception as e:
                    logger.debug(f"[HeuristicRepairClient] Skipping {xpath}: {e}")
                    continue
                suggestions[xpath] = _Suggestion(
                    xpath=xpath, attribute=attribute, tag=tag, exact=exact, matches=matches, rank=rank,
                )

        ranked = sorted(suggestions.values(), key=lambda s: s.score)
        return ranked[:self.max_candidates]
