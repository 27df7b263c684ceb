"""
Repair Recorder - Stage snapshots and run log for the repair pipeline.

Captures what every pipeline stage saw and produced so a repair run can be
inspected after the fact.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from datetime import datetime
import json
import logging
import os

logger = logging.getLogger(__name__)


@dataclass
class LogEntry:
    """A single entry in the repair record."""
    timestamp: datetime
    stage: str  # 'start', 'grouping', 'stateData', 'processing', 'validation', 'updating', 'complete', 'error'
    event_type: str  # 'info', 'warning', 'error', 'snapshot'
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "stage": self.stage,
            "event_type": self.event_type,
            "message": self.message,
            "data": self.data,
        }


class RepairRecorder:
    """
    Records a repair run.

    Stage snapshots are written as ``<stage>.json`` in the run directory as
    soon as they are captured; ``finalize()`` writes ``repair_record.json``
    with the metadata and every log entry.

    Example:
        >>> recorder = RepairRecorder("./xray_reports")
        >>> recorder.snapshot("failing_xpaths", [l.to_dict() for l in failing])
        >>> record_path = recorder.finalize(fixed_count=3, error_count=1)
    """

    def __init__(
        self,
        output_dir: str = "./xray_reports",
        run_name: Optional[str] = None,
    ):
        """
        Initialize the recorder.

        Args:
            output_dir: Directory for run records
            run_name: Optional name for this run
        """
        self.output_dir = output_dir
        self.run_name = run_name or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.entries: List[LogEntry] = []
        self.snapshots: List[str] = []
        self.metadata: Dict[str, Any] = {
            "start_time": datetime.now().isoformat(),
            "run_name": self.run_name,
        }

        self.run_dir = os.path.join(output_dir, self.run_name)
        os.makedirs(self.run_dir, exist_ok=True)

    def log_stage(self, stage: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Log pipeline progress."""
        self.entries.append(LogEntry(
            timestamp=datetime.now(),
            stage=stage,
            event_type="info",
            message=message,
            data=data or {},
        ))

    def log_warning(self, stage: str, message: str) -> None:
        self.entries.append(LogEntry(
            timestamp=datetime.now(),
            stage=stage,
            event_type="warning",
            message=message,
        ))

    def log_error(self, stage: str, message: str, exception: Optional[Exception] = None) -> None:
        self.entries.append(LogEntry(
            timestamp=datetime.now(),
            stage=stage,
            event_type="error",
            message=message,
            data={"exception": str(exception) if exception else None},
        ))

    def snapshot(self, name: str, payload: Any) -> Optional[str]:
        """
        Write a stage snapshot.

        Returns:
            Path to the written file, or None if writing failed
        """
        path = os.path.join(self.run_dir, f"{name}.json")
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, default=str)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"[RepairRecorder] Could not write snapshot {name}: {e}")
            self.log_error("snapshot", f"Could not write {name}", e)
            return None
        self.snapshots.append(path)
        self.entries.append(LogEntry(
            timestamp=datetime.now(),
            stage=name,
            event_type="snapshot",
            message=f"Wrote {name}.json",
            data={"path": path},
        ))
        return path

    def finalize(self, **summary: Any) -> str:
        """
        Write the run record.

        Returns:
            Path to ``repair_record.json``
        """
        self.metadata["end_time"] = datetime.now().isoformat()
        self.metadata.update(summary)
        record_path = os.path.join(self.run_dir, "repair_record.json")
        with open(record_path, "w", encoding="utf-8") as f:
            json.dump({
                "metadata": self.metadata,
                "snapshots": self.snapshots,
                "entries": [entry.to_dict() for entry in self.entries],
            }, f, indent=2, default=str)
        logger.info(f"[RepairRecorder] Run record written to {record_path}")
        return record_path
