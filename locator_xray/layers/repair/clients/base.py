from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from locator_xray.layers.evaluation.models import Locator


@dataclass
class RepairRequest:
    """Everything a repair client gets for one chunk."""
    state_id: str
    platform: str
    page_source: str
    elements: List[Locator]
    screenshot: Optional[str] = None  # base64 PNG

    def elements_payload(self) -> List[Dict[str, Any]]:
        return [element.to_dict() for element in self.elements]


class RepairClient(ABC):
    """Abstract base class for locator repair clients."""

    name = "base"

    @abstractmethod
    async def repair(self, request: RepairRequest) -> Any:
        """
        Propose replacement expressions for the failing elements.

        Args:
            request: Snapshot and failing elements of one chunk.

        Returns:
            A payload shaped like
            ``{"elements": [{"devName": ..., "xpathFix": [...]}]}``, a bare
            list, or the same encoded as a JSON string.
        """
        pass
