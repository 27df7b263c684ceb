"""
Repair response contract.

Repair clients return loosely structured JSON. This module turns whatever
came back into a list of ``RepairedElement`` models, one per chunk member,
substituting sentinel placeholders wherever the payload is unusable.
"""

import json
import logging
import re
from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from locator_xray.layers.evaluation.models import SENTINEL_XPATH, Locator

logger = logging.getLogger(__name__)

Confidence = Literal["High", "Medium", "Low"]

MAX_CANDIDATES = 3

API_ERROR = ("Placeholder due to API error", "Failed to generate repair due to API error")
PARSING_ERROR = ("Placeholder due to parsing error", "Failed to parse AI response")
MISSING_FIX = ("Default placeholder - missing xpathFix", "Created default xpathFix")
NO_VALID_XPATH = ("Placeholder due to no valid XPath found", "No valid XPath could be generated")

_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?\s*(.*?)\s*```\s*$", re.DOTALL)


class RepairCandidate(BaseModel):
    """One proposed replacement expression. Priority 0 is the primary."""

    model_config = ConfigDict(populate_by_name=True)

    priority: int = Field(ge=0)
    xpath: str = Field(min_length=1)
    confidence: Confidence = "Low"
    description: Optional[str] = None
    fix: str = ""
    valid: Optional[bool] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, value: Any) -> Any:
        if value is None:
            return "Low"
        if isinstance(value, str):
            return value.strip().capitalize()
        return value

    @field_validator("fix", mode="before")
    @classmethod
    def _fix_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def is_sentinel(self) -> bool:
        return self.xpath == SENTINEL_XPATH


class RepairedElement(BaseModel):
    """A chunk member together with its ranked candidates."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    dev_name: str = Field(default="", alias="devName")
    state_id: str = Field(default="", alias="stateId")
    platform: str = ""
    xpath_fix: List[RepairCandidate] = Field(default_factory=list, alias="xpathFix")

    @property
    def lookup_key(self) -> str:
        return f"{self.id or self.dev_name}_{self.state_id}_{self.platform}"

    @property
    def primary(self) -> Optional[RepairCandidate]:
        for candidate in self.xpath_fix:
            if candidate.priority == 0:
                return candidate
        return None

    @property
    def alternatives(self) -> List[RepairCandidate]:
        return sorted((c for c in self.xpath_fix if c.priority > 0), key=lambda c: c.priority)

    @property
    def is_fixed(self) -> bool:
        primary = self.primary
        return primary is not None and not primary.is_sentinel

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class RepairResponse(BaseModel):
    """Envelope a conforming client returns."""

    elements: List[RepairedElement] = Field(default_factory=list)


def placeholder_candidates(reason: Sequence[str] = API_ERROR) -> List[RepairCandidate]:
    """Three sentinel candidates (primary plus two alternatives) at ``Low``."""
    description, fix = reason
    return [
        RepairCandidate(priority=priority, xpath=SENTINEL_XPATH, confidence="Low",
                        description=description, fix=fix)
        for priority in range(MAX_CANDIDATES)
    ]


def placeholder_element(member: Locator, reason: Sequence[str] = API_ERROR) -> RepairedElement:
    return RepairedElement(
        id=member.id,
        dev_name=member.dev_name,
        state_id=member.state_id,
        platform=member.platform,
        xpath_fix=placeholder_candidates(reason),
    )


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text.strip()


def _load(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        return json.loads(strip_code_fences(raw))
    return raw


def _element_list(data: Any, depth: int = 0) -> Optional[List[Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, str) and depth < 2:
        # double-encoded JSON
        return _element_list(_load(data), depth + 1)
    if isinstance(data, dict):
        elements = data.get("elements")
        if isinstance(elements, (list, str)):
            return _element_list(elements, depth + 1)
        return [data]
    return None


def _candidates(raw_fix: Any) -> List[RepairCandidate]:
    if not isinstance(raw_fix, list):
        return []
    candidates = []
    for index, item in enumerate(raw_fix):
        if not isinstance(item, dict):
            continue
        item = dict(item)
        item.setdefault("priority", index)
        try:
            candidates.append(RepairCandidate.model_validate(item))
        except ValidationError as e:
            logger.debug(f"[RepairSchema] Dropping malformed candidate {index}: {e.error_count()} errors")
    # re-rank so priorities are always 0..n-1
    candidates.sort(key=lambda c: c.priority)
    return [c.model_copy(update={"priority": rank}) for rank, c in enumerate(candidates[:MAX_CANDIDATES])]


def _match_members(items: List[Dict[str, Any]], chunk: Sequence[Locator]) -> List[Optional[int]]:
    """Index of the chunk member each response item belongs to: id, then devName, then position."""
    used = set()
    matches: List[Optional[int]] = [None] * len(items)

    for attribute, field_name in (("id", "id"), ("dev_name", "devName")):
        for i, item in enumerate(items):
            if matches[i] is not None:
                continue
            wanted = item.get(field_name)
            if not wanted:
                continue
            for j, member in enumerate(chunk):
                if j not in used and getattr(member, attribute) == wanted:
                    matches[i] = j
                    used.add(j)
                    break

    for i in range(len(items)):
        if matches[i] is not None:
            continue
        if i < len(chunk) and i not in used:
            matches[i] = i
            used.add(i)
            continue
        free = next((j for j in range(len(chunk)) if j not in used), None)
        if free is not None:
            matches[i] = free
            used.add(free)
    return matches


def decode_repair_payload(raw: Any, chunk: Sequence[Locator]) -> List[RepairedElement]:
    """
    Normalize a repair client payload against the chunk it was asked about.

    Accepts an ``{"elements": [...]}`` envelope, a bare array, a single object
    or any of those encoded as a JSON string (code fences tolerated).

    Returns:
        One RepairedElement per chunk member, in chunk order
    """
    try:
        items = _element_list(_load(raw))
    except (ValueError, TypeError) as e:
        logger.warning(f"[RepairSchema] Failed to parse repair response as JSON: {e}")
        items = None

    if items is None:
        logger.warning(f"[RepairSchema] Unexpected repair response type: {type(raw).__name__}")
        return [placeholder_element(member, PARSING_ERROR) for member in chunk]

    items = [item for item in items if isinstance(item, dict)]
    matches = _match_members(items, chunk)
    decoded: Dict[int, RepairedElement] = {}

    for item, index in zip(items, matches):
        if index is None:
            logger.debug(f"[RepairSchema] Response element {item.get('devName')!r} matches no chunk member")
            continue
        member = chunk[index]
        candidates = _candidates(item.get("xpathFix"))
        if not candidates:
            logger.info(f"[RepairSchema] {member.dev_name or member.id} has no usable xpathFix, using placeholders")
            candidates = placeholder_candidates(MISSING_FIX)
        decoded[index] = RepairedElement(
            # identity comes from the member so the merge key matches the input locator
            id=member.id,
            dev_name=member.dev_name,
            state_id=member.state_id,
            platform=member.platform,
            xpath_fix=candidates,
        )

    result = []
    for index, member in enumerate(chunk):
        element = decoded.get(index)
        if element is None:
            logger.info(f"[RepairSchema] No repair returned for {member.dev_name or member.id}")
            element = placeholder_element(member, MISSING_FIX)
        result.append(element)
    return result
