"""
Repair Pipeline - Failing locators in, repaired locators out.

Stages:

1. start:      select failing locators
2. grouping:   partition by (state, platform)
3. stateData:  attach screenshot and XML per group
4. processing: batched repair calls with retry
5. validation: validate and promote candidates, count fixes
6. updating:   merge repaired expressions into the original list
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional
import asyncio
import logging

from locator_xray.core.config import RepairConfig
from locator_xray.layers.evaluation.models import AlternativeXPath, Locator, is_failing
from locator_xray.layers.repair.batch_runner import ProgressCallback, RepairBatchRunner
from locator_xray.layers.repair.clients.base import RepairClient
from locator_xray.layers.repair.groups import ProcessingStatus, RepairGroup, RepairGroupBuilder
from locator_xray.layers.repair.schema import RepairedElement
from locator_xray.layers.repair.validator import CandidateValidator
from locator_xray.reporters.repair_recorder import RepairRecorder

logger = logging.getLogger(__name__)

# Match count of a merged locator until it is evaluated again
UNKNOWN_MATCHES = -1


@dataclass
class RepairOutcome:
    """Result of a repair pipeline run."""
    locators: List[Locator]
    groups: Dict[str, RepairGroup] = field(default_factory=dict)
    failing_count: int = 0
    fixed_count: int = 0
    error_count: int = 0
    record_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "failing_count": self.failing_count,
            "fixed_count": self.fixed_count,
            "error_count": self.error_count,
            "groups": {key: group.status.value for key, group in self.groups.items()},
            "record_path": self.record_path,
            "locators": [locator.to_dict() for locator in self.locators],
        }


def merge_repairs(locators: List[Locator], groups: Dict[str, RepairGroup]) -> List[Locator]:
    """
    Apply repaired primaries to the locators that needed them.

    Working locators are left alone. A failing locator whose
    ``(id or dev_name, state_id, platform)`` key matches a completed group's
    element with a non-sentinel primary gets that primary as its expression;
    the remaining candidates become its alternatives.
    """
    repaired: Dict[str, RepairedElement] = {}
    for group in groups.values():
        if group.status is not ProcessingStatus.COMPLETE:
            continue
        for element in group.fixed_elements:
            repaired[element.lookup_key] = element

    merged = []
    for locator in locators:
        element = repaired.get(locator.lookup_key) if is_failing(locator) else None
        if element is None or not element.is_fixed:
            merged.append(locator)
            continue
        primary = element.primary
        record = replace(
            locator.xpath,
            expression=primary.xpath,
            is_valid=True,
            success=True,
            number_of_matches=UNKNOWN_MATCHES,
            matching_nodes=[],
            original_xpath=locator.xpath.expression,
            alternative_xpaths=[
                AlternativeXPath(xpath=c.xpath, confidence=c.confidence, description=c.description)
                for c in element.alternatives
            ],
        )
        merged.append(replace(locator, xpath=record))
    return merged


class RepairPipeline:
    """
    End-to-end locator repair.

    Example:
        >>> pipeline = RepairPipeline(create_repair_client("heuristic"), engine)
        >>> outcome = asyncio.run(pipeline.run(locators, page))
        >>> print(f"Fixed {outcome.fixed_count} of {outcome.failing_count}")
    """

    def __init__(
        self,
        client: RepairClient,
        evaluator: Any,
        config: Optional[RepairConfig] = None,
        progress: Optional[ProgressCallback] = None,
        recorder: Optional[RepairRecorder] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        """
        Initialize the pipeline.

        Args:
            client: Repair client producing candidates
            evaluator: Engine or evaluation core used to validate candidates
            config: Batch size and retry settings
            progress: Optional ``(stage, message, data)`` callback
            recorder: Optional run recorder for stage snapshots
            sleep: Awaitable used between retries
        """
        self.config = config or RepairConfig()
        self.client = client
        self.validator = CandidateValidator(evaluator)
        self.progress = progress or (lambda stage, message, data: None)
        self.recorder = recorder
        self.runner = RepairBatchRunner(
            client,
            self.validator,
            batch_size=self.config.batch_size,
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            sleep=sleep,
            progress=self._report,
        )

    async def run(self, locators: List[Locator], page: Optional[Dict[str, Any]]) -> RepairOutcome:
        """
        Repair every failing locator in ``locators``.

        Args:
            locators: Full locator list; working locators pass through
            page: Snapshot with ``states[i].versions[platform]``

        Returns:
            RepairOutcome with the merged locator list and per-group results
        """
        logger.info("[RepairPipeline] Starting XPath repair pipeline")
        builder = RepairGroupBuilder(page)
        failing = builder.select_failing(locators)
        logger.info(f"[RepairPipeline] Found {len(failing)} failing XPaths out of {len(locators)} total")
        self._snapshot("failing_xpaths", [locator.to_dict() for locator in failing])
        self._report("start", "Selected failing locators",
                      {"totalFailingXPaths": len(failing), "totalElements": len(locators)})

        if not failing:
            logger.info("[RepairPipeline] No failing XPaths found, skipping repair")
            self._report("complete", "Nothing to repair", {"fixedCount": 0, "errorCount": 0})
            return self._finish(RepairOutcome(locators=list(locators)))

        try:
            groups = builder.group(failing)
            self._snapshot("failing_xpath_groups", {k: g.to_dict() for k, g in groups.items()})
            self._report("grouping", f"Created {len(groups)} groups", {"totalGroups": len(groups)})

            builder.attach_state_data(groups)
            self._report("stateData", "Associated screenshots and XML with groups",
                         {key: group.status.value for key, group in groups.items()})

            await self.runner.run(groups)
            self._snapshot("fixed_xpath_groups", {k: g.to_dict() for k, g in groups.items()})

            fixed_count, error_count = self.count_results(groups)
            self._report("validation", f"Validated {fixed_count + error_count} XPaths",
                         {"fixedCount": fixed_count, "errorCount": error_count})

            merged = merge_repairs(locators, groups)
            self._snapshot("elements_with_fixed_xpaths", [locator.to_dict() for locator in merged])
            self._report("updating", "Applied all XPath fixes", {})
        except Exception as e:
            logger.error(f"[RepairPipeline] Error in XPath repair pipeline: {e}")
            self._report("error", str(e), {})
            if self.recorder is not None:
                self.recorder.log_error("error", "Pipeline failed", e)
                self.recorder.finalize(success=False, error=str(e))
            raise

        self._report("complete", "Repair finished",
                     {"fixedCount": fixed_count, "errorCount": error_count, "totalFixed": len(failing)})
        outcome = RepairOutcome(
            locators=merged,
            groups=groups,
            failing_count=len(failing),
            fixed_count=fixed_count,
            error_count=error_count,
        )
        return self._finish(outcome)

    @staticmethod
    def count_results(groups: Dict[str, RepairGroup]):
        """(fixed, error) counts over every repaired element."""
        fixed = errors = 0
        for group in groups.values():
            for element in group.fixed_elements:
                if element.is_fixed:
                    fixed += 1
                else:
                    errors += 1
        return fixed, errors

    def _report(self, stage: str, message: str, data: Dict[str, Any]) -> None:
        if self.recorder is not None:
            self.recorder.log_stage(stage, message, data)
        try:
            self.progress(stage, message, data)
        except Exception as e:
            logger.warning(f"[RepairPipeline] Progress callback failed: {e}")

    def _snapshot(self, name: str, payload: Any) -> None:
        if self.recorder is not None:
            self.recorder.snapshot(name, payload)

    def _finish(self, outcome: RepairOutcome) -> RepairOutcome:
        if self.recorder is not None:
            outcome.record_path = self.recorder.finalize(
                success=True,
                failing_count=outcome.failing_count,
                fixed_count=outcome.fixed_count,
                error_count=outcome.error_count,
            )
        return outcome
