"""Reporters - Run recording."""

from locator_xray.reporters.repair_recorder import RepairRecorder

__all__ = ["RepairRecorder"]
