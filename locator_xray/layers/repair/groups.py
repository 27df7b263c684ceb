"""
Repair Group Builder - Partition failing locators by execution context.

A repair request only makes sense against the screenshot and XML the locator
was recorded on, so failing locators are grouped by ``(state_id, platform)``
and each group is paired with that state's snapshot.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from locator_xray.layers.evaluation.models import Locator, is_failing
from locator_xray.layers.repair.schema import RepairedElement

logger = logging.getLogger(__name__)


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    MISSING_STATE_DATA = "missing_state_data"
    MISSING_PLATFORM_VERSION = "missing_platform_version"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class RepairGroup:
    """Failing locators that share one state snapshot."""
    state_id: str
    platform: str
    platform_normalized: str
    elements: List[Locator] = field(default_factory=list)
    screenshot: Optional[str] = None
    page_source: Optional[str] = None
    status: ProcessingStatus = ProcessingStatus.PENDING
    fixed_elements: List[RepairedElement] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def key(self) -> str:
        return group_key(self.state_id, self.platform)

    @property
    def is_ready(self) -> bool:
        return self.status is ProcessingStatus.READY

    def to_dict(self, include_snapshot: bool = False) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: Dict[str, Any] = {
            "stateId": self.state_id,
            "platform": self.platform,
            "platformNormalized": self.platform_normalized,
            "processingStatus": self.status.value,
            "elements": [element.to_dict() for element in self.elements],
        }
        if self.fixed_elements:
            data["fixedElements"] = [element.to_dict() for element in self.fixed_elements]
        if self.error:
            data["error"] = self.error
        if include_snapshot:
            data["screenshot"] = self.screenshot
            data["pageSource"] = self.page_source
        else:
            data["screenshotSize"] = len(self.screenshot or "")
            data["pageSourceSize"] = len(self.page_source or "")
        return data


def group_key(state_id: str, platform: str) -> str:
    return f"{state_id or ''}::{(platform or '').lower()}"


class RepairGroupBuilder:
    """
    Builds ``RepairGroup`` objects from a locator list and a page snapshot.

    The page follows the snapshot layout
    ``page["states"][i]["versions"][platform] = {"screenShot", "pageSource"}``
    and is only read.

    Example:
        >>> builder = RepairGroupBuilder(page)
        >>> groups = builder.build_groups(locators)
        >>> [g.status for g in groups.values()]
        [<ProcessingStatus.READY: 'ready'>]
    """

    def __init__(self, page: Optional[Dict[str, Any]]):
        self.page = page or {}

    @staticmethod
    def select_failing(locators: List[Locator]) -> List[Locator]:
        return [locator for locator in locators if is_failing(locator)]

    def group(self, failing: List[Locator]) -> Dict[str, RepairGroup]:
        """Partition by ``(state_id, platform.lower())``, keeping first-seen order."""
        groups: Dict[str, RepairGroup] = {}
        for locator in failing:
            key = group_key(locator.state_id, locator.platform)
            if key not in groups:
                groups[key] = RepairGroup(
                    state_id=locator.state_id,
                    platform=locator.platform,
                    platform_normalized=(locator.platform or "").lower(),
                )
            groups[key].elements.append(locator)
        return groups

    def attach_state_data(self, groups: Dict[str, RepairGroup]) -> Dict[str, RepairGroup]:
        """Pair each group with its screenshot and XML, or mark why it cannot be repaired."""
        for group in groups.values():
            state = self.find_state(group.state_id)
            if state is None:
                logger.warning(f"[RepairGroupBuilder] State {group.state_id!r} not found")
                group.status = ProcessingStatus.MISSING_STATE_DATA
                continue

            versions = state.get("versions") or {}
            version_key = self._version_key(versions, group.platform)
            if version_key is None:
                logger.warning(
                    f"[RepairGroupBuilder] No {group.platform!r} version in state {group.state_id!r}"
                )
                group.status = ProcessingStatus.MISSING_PLATFORM_VERSION
                continue

            if version_key != group.platform:
                logger.info(
                    f"[RepairGroupBuilder] Using version {version_key!r} for platform {group.platform!r}"
                )
                group.platform = version_key
            version = versions[version_key] or {}
            group.screenshot = version.get("screenShot")
            group.page_source = version.get("pageSource")
            group.status = ProcessingStatus.READY
        return groups

    def build_groups(self, locators: List[Locator]) -> Dict[str, RepairGroup]:
        """Select failing locators, group them and attach state data."""
        failing = self.select_failing(locators)
        groups = self.group(failing)
        logger.info(
            f"[RepairGroupBuilder] {len(failing)} failing of {len(locators)} locators in {len(groups)} groups"
        )
        return self.attach_state_data(groups)

    def find_state(self, state_id: str) -> Optional[Dict[str, Any]]:
        for state in self.page.get("states") or []:
            if isinstance(state, dict) and state.get("id") == state_id:
                return state
        return None

    @staticmethod
    def _version_key(versions: Dict[str, Any], platform: str) -> Optional[str]:
        if platform in versions:
            return platform
        wanted = (platform or "").lower()
        for key in versions:
            if key.lower() == wanted:
                return key
        return None
