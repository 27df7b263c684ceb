"""
Candidate Validator & Promoter.

Two selection policies live here and are intentionally different:

- ``CandidateValidator`` (repair pipeline): a candidate is usable when it
  evaluates without error against the group's XML. The primary is kept if
  usable, otherwise the first usable alternative swaps ranks with it.
- ``select_by_match_count`` (UI): exactly one match wins, then more than
  one match, then the sentinel.
"""

from dataclasses import replace
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Tuple
import logging

from locator_xray.layers.evaluation.models import (
    SENTINEL_XPATH,
    AlternativeXPath,
    EvaluationResult,
    Locator,
)
from locator_xray.layers.repair.schema import NO_VALID_XPATH, RepairCandidate, RepairedElement

if TYPE_CHECKING:
    from locator_xray.core.engine import XRayEngine

logger = logging.getLogger(__name__)


class CandidateValidator:
    """
    Validates repair candidates against real XML.

    Args:
        evaluator: Anything with ``evaluate_source(xml, expression, platform)``,
            normally the ``EvaluationCore`` or the ``XRayEngine``.
    """

    def __init__(self, evaluator: Any):
        self.evaluator = evaluator

    def is_usable(self, xpath: str, page_source: str, platform: Optional[str] = None) -> bool:
        result: EvaluationResult = self.evaluator.evaluate_source(page_source, xpath, platform)
        return result.success

    def validate(self, element: RepairedElement, page_source: str) -> RepairedElement:
        """Return a copy of ``element`` with a usable primary, or the sentinel primary."""
        name = element.dev_name or element.id or "unknown"
        candidates = sorted(element.xpath_fix, key=lambda c: c.priority)
        primary = next((c for c in candidates if c.priority == 0), None)

        if primary is not None and self.is_usable(primary.xpath, page_source, element.platform):
            primary = primary.model_copy(update={"valid": True})
            return self._with(element, [primary] + [c for c in candidates if c.priority != 0])

        logger.warning(f"[CandidateValidator] Primary XPath for {name} failed, trying alternatives")
        if primary is not None:
            primary = primary.model_copy(update={"valid": False})

        checked: List[RepairCandidate] = []
        alternatives = [c for c in candidates if c.priority > 0]
        for index, alternative in enumerate(alternatives):
            usable = self.is_usable(alternative.xpath, page_source, element.platform)
            alternative = alternative.model_copy(update={"valid": usable})
            if usable:
                logger.info(f"[CandidateValidator] Promoting alternative {alternative.priority} for {name}")
                promoted = alternative.model_copy(update={"priority": 0})
                rest = checked + alternatives[index + 1:]
                if primary is not None:
                    rest.append(primary.model_copy(update={"priority": alternative.priority}))
                return self._with(element, [promoted] + sorted(rest, key=lambda c: c.priority))
            checked.append(alternative)

        logger.warning(f"[CandidateValidator] All XPaths failed for {name}, using placeholder")
        description, fix = NO_VALID_XPATH
        placeholder = RepairCandidate(
            priority=0,
            xpath=SENTINEL_XPATH,
            confidence="Low",
            description=description,
            fix=fix,
            valid=False,
        )
        return self._with(element, [placeholder] + checked)

    def validate_all(self, elements: List[RepairedElement], page_source: str) -> List[RepairedElement]:
        return [self.validate(element, page_source) for element in elements]

    @staticmethod
    def _with(element: RepairedElement, candidates: List[RepairCandidate]) -> RepairedElement:
        return element.model_copy(update={"xpath_fix": candidates})


def select_by_match_count(counts: Sequence[Tuple[str, int]]) -> Tuple[str, int]:
    """
    Pick the expression a UI should show.

    Args:
        counts: ``(expression, match_count)`` pairs, primary first

    Returns:
        The first pair with exactly one match, else the first with more than
        one, else ``(SENTINEL_XPATH, 0)``
    """
    for expression, count in counts:
        if count == 1:
            return expression, count
    for expression, count in counts:
        if count > 1:
            return expression, count
    return SENTINEL_XPATH, 0


class AlternativeSelector:
    """
    Applies the match-count policy to locators carrying alternatives.

    Example:
        >>> selector = AlternativeSelector(engine)
        >>> best = selector.apply(locator)
        >>> best.xpath.number_of_matches
        1
    """

    def __init__(self, engine: "XRayEngine"):
        self.engine = engine

    def evaluate_candidates(self, locator: Locator) -> List[Tuple[str, EvaluationResult]]:
        expressions = [locator.xpath.expression or SENTINEL_XPATH]
        expressions += [alt.xpath for alt in locator.xpath.alternative_xpaths]
        evaluated = []
        for expression in expressions:
            if not expression or expression == SENTINEL_XPATH:
                evaluated.append((expression or SENTINEL_XPATH, EvaluationResult.empty(SENTINEL_XPATH)))
                continue
            result = self.engine.evaluate(
                expression,
                platform=locator.platform or None,
                highlight=False,
                update_ui=False,
            )
            evaluated.append((expression, result))
        return evaluated

    def apply(self, locator: Locator) -> Locator:
        """Copy of ``locator`` whose expression is the best-matching candidate."""
        if not locator.xpath.alternative_xpaths:
            return self.engine.evaluate_locator(locator)

        evaluated = self.evaluate_candidates(locator)
        chosen, _ = select_by_match_count([(expr, r.number_of_matches) for expr, r in evaluated])
        if chosen == SENTINEL_XPATH:
            logger.info(f"[AlternativeSelector] No candidate matches for {locator.dev_name or locator.id}")
            record = replace(
                locator.xpath,
                expression=SENTINEL_XPATH,
                number_of_matches=0,
                is_valid=False,
                success=False,
                matching_nodes=[],
            )
            return replace(locator, xpath=record)

        result = next(r for expr, r in evaluated if expr == chosen)
        return self._promote(locator, chosen, result)

    def choose_alternative(self, locator: Locator, xpath: str) -> Locator:
        """Promote a manually chosen alternative to be the locator's expression."""
        known = [alt.xpath for alt in locator.xpath.alternative_xpaths]
        if xpath not in known and xpath != locator.xpath.expression:
            raise ValueError(f"{xpath!r} is not an alternative of {locator.dev_name or locator.id}")
        result = self.engine.evaluate(xpath, platform=locator.platform or None, highlight=False, update_ui=False)
        return self._promote(locator, xpath, result)

    @staticmethod
    def _promote(locator: Locator, xpath: str, result: EvaluationResult) -> Locator:
        record = locator.xpath
        if xpath == record.expression:
            return replace(locator, xpath=record.with_result(result))

        alternatives = [alt for alt in record.alternative_xpaths if alt.xpath != xpath]
        if record.expression and record.expression != SENTINEL_XPATH:
            # the demoted primary keeps its slot as an alternative
            alternatives.insert(0, AlternativeXPath(
                xpath=record.expression,
                confidence="Low",
                description="Previous primary",
            ))
        logger.debug(f"[AlternativeSelector] {locator.dev_name or locator.id}: {record.expression!r} -> {xpath!r}")
        updated = replace(
            record,
            expression=xpath,
            original_xpath=record.original_xpath or record.expression or None,
            alternative_xpaths=alternatives,
        ).with_result(result)
        return replace(locator, xpath=updated)
