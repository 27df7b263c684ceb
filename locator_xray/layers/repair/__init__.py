"""Repair Layer - Grouping, batched repair calls and candidate validation."""

from locator_xray.layers.repair.schema import (
    RepairCandidate,
    RepairedElement,
    RepairResponse,
    decode_repair_payload,
    placeholder_candidates,
)
from locator_xray.layers.repair.groups import ProcessingStatus, RepairGroup, RepairGroupBuilder
from locator_xray.layers.repair.validator import (
    AlternativeSelector,
    CandidateValidator,
    select_by_match_count,
)
from locator_xray.layers.repair.batch_runner import RepairBatchRunner
from locator_xray.layers.repair.pipeline import RepairOutcome, RepairPipeline, merge_repairs

__all__ = [
    "AlternativeSelector",
    "CandidateValidator",
    "ProcessingStatus",
    "RepairBatchRunner",
    "RepairCandidate",
    "RepairGroup",
    "RepairGroupBuilder",
    "RepairOutcome",
    "RepairPipeline",
    "RepairResponse",
    "RepairedElement",
    "decode_repair_payload",
    "merge_repairs",
    "placeholder_candidates",
    "select_by_match_count",
]
