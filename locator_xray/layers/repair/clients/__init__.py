"""Repair clients - Cloud and offline candidate generators."""

import logging
from typing import Optional

from locator_xray.core.system_profiler import SystemProfiler
from locator_xray.layers.repair.clients.base import RepairClient, RepairRequest
from locator_xray.layers.repair.clients.cloud_client import CloudRepairClient
from locator_xray.layers.repair.clients.heuristic_client import HeuristicRepairClient

logger = logging.getLogger(__name__)


def create_repair_client(
    kind: str = "auto",
    model: Optional[str] = None,
    temperature: float = 0.2,
) -> RepairClient:
    """
    Build a repair client.

    Args:
        kind: 'auto', 'cloud' or 'heuristic'
        model: Provider model name for the cloud client
        temperature: Sampling temperature for the cloud client

    Raises:
        RepairClientError: If 'cloud' is requested but cannot be initialized
    """
    kind = (kind or "auto").lower()
    if kind == "auto":
        kind = SystemProfiler.recommend_client_type()
        logger.info(f"[RepairClients] Auto-selected client: {kind}")

    if kind == "cloud":
        return CloudRepairClient(model=model, temperature=temperature)
    if kind != "heuristic":
        logger.warning(f"Unknown repair client '{kind}', falling back to heuristic")
    return HeuristicRepairClient()


__all__ = [
    "CloudRepairClient",
    "HeuristicRepairClient",
    "RepairClient",
    "RepairRequest",
    "create_repair_client",
]
