"""
Repair Batch Runner - Chunked repair calls with retry and fallback.

For every ready group the failing locators are split into chunks. Each chunk
goes to the repair client; failures are retried with exponential backoff and
an exhausted chunk degrades to sentinel placeholders so the batch always
finishes with one repaired element per failing locator.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from locator_xray.layers.evaluation.models import Locator
from locator_xray.layers.repair.clients.base import RepairClient, RepairRequest
from locator_xray.layers.repair.groups import ProcessingStatus, RepairGroup
from locator_xray.layers.repair.schema import (
    API_ERROR,
    RepairedElement,
    decode_repair_payload,
    placeholder_element,
)
from locator_xray.layers.repair.validator import CandidateValidator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str, Dict[str, Any]], None]

SCREENSHOT_WARN_BYTES = 5 * 1024 * 1024
PAGE_SOURCE_WARN_BYTES = 1 * 1024 * 1024


def chunked(items: List[Locator], size: int) -> List[List[Locator]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class RepairBatchRunner:
    """
    Runs repair requests for ready groups, one chunk at a time.

    Example:
        >>> runner = RepairBatchRunner(client, CandidateValidator(engine))
        >>> groups = asyncio.run(runner.run(groups))
        >>> groups["login::android"].status
        <ProcessingStatus.COMPLETE: 'complete'>
    """

    def __init__(
        self,
        client: RepairClient,
        validator: Optional[CandidateValidator] = None,
        batch_size: int = 10,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        progress: Optional[ProgressCallback] = None,
    ):
        self.client = client
        self.validator = validator
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.sleep = sleep
        self.progress = progress or (lambda stage, message, data: None)

    async def run(self, groups: Dict[str, RepairGroup]) -> Dict[str, RepairGroup]:
        """Process every ready group. Other groups are skipped untouched."""
        ready = [group for group in groups.values() if group.is_ready]
        for key, group in groups.items():
            if not group.is_ready:
                logger.warning(f"[RepairBatchRunner] Skipping group {key} due to status: {group.status.value}")

        for index, group in enumerate(ready, start=1):
            self.progress(
                "processing",
                f"Processing group {index}/{len(ready)}: {group.state_id} ({group.platform})",
                {"currentGroup": index, "totalGroups": len(ready)},
            )
            try:
                await self.run_group(group)
            except Exception as e:
                logger.error(f"[RepairBatchRunner] Error processing group {group.key}: {e}")
                group.status = ProcessingStatus.ERROR
                group.error = str(e)
        return groups

    async def run_group(self, group: RepairGroup) -> RepairGroup:
        logger.info(f"[RepairBatchRunner] Repairing {len(group.elements)} elements in {group.state_id} ({group.platform})")
        self._check_sizes(group)

        chunks = chunked(group.elements, self.batch_size)
        fixed: List[RepairedElement] = []
        for index, chunk in enumerate(chunks, start=1):
            self.progress(
                "processing",
                f"Processing batch {index}/{len(chunks)} for {group.state_id} ({group.platform})",
                {"currentBatch": index, "totalBatches": len(chunks)},
            )
            fixed.extend(await self.run_chunk(group, chunk, index))

        if self.validator is not None and group.page_source:
            fixed = self.validator.validate_all(fixed, group.page_source)
        group.fixed_elements = fixed
        group.status = ProcessingStatus.COMPLETE
        return group

    async def run_chunk(self, group: RepairGroup, chunk: List[Locator], index: int = 1) -> List[RepairedElement]:
        """Call the client with retries; never raises for client failures."""
        request = RepairRequest(
            state_id=group.state_id,
            platform=group.platform,
            page_source=group.page_source or "",
            elements=chunk,
            screenshot=group.screenshot,
        )
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                payload = await self.client.repair(request)
            except Exception as e:
                logger.error(f"[RepairBatchRunner] Batch {index} attempt {attempt + 1}/{attempts} failed: {e}")
                if attempt + 1 >= attempts:
                    break
                await self.sleep(self.base_delay * (2 ** attempt))
                continue
            return decode_repair_payload(payload, chunk)

        logger.error(f"[RepairBatchRunner] Failed to process batch {index} after {attempts} attempts")
        return [placeholder_element(member, API_ERROR) for member in chunk]

    @staticmethod
    def _check_sizes(group: RepairGroup) -> None:
        screenshot_size = len(group.screenshot or "")
        page_source_size = len(group.page_source or "")
        logger.debug(
            f"[RepairBatchRunner] Screenshot {screenshot_size / 1024:.2f} KB, "
            f"XML {page_source_size / 1024:.2f} KB, elements {len(group.elements)}"
        )
        if screenshot_size > SCREENSHOT_WARN_BYTES:
            logger.warning(
                f"[RepairBatchRunner] Screenshot is very large ({screenshot_size / 1024 / 1024:.2f} MB), "
                "may exceed API limits"
            )
        if page_source_size > PAGE_SOURCE_WARN_BYTES:
            logger.warning(
                f"[RepairBatchRunner] Page source is very large ({page_source_size / 1024 / 1024:.2f} MB), "
                "may exceed API limits"
            )
