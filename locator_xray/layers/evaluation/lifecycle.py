"""
Lifecycle Tracker - Per-element evaluation state and stuck-state recovery.

Tracks which elements are currently evaluating so a second request for the
same element gets an in-progress sentinel instead of a duplicate evaluation.

Completion is signalled by notification delivery, which is debounced and
deferred and can therefore be dropped. Two recovery tasks guarantee liveness:

- soft recovery re-evaluates the element directly and emits a self-fix update
- hard recovery unconditionally clears the evaluating flag

Both are cancelled when a normal completion or error arrives first.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional
import logging

from locator_xray.core.scheduler import ScheduledTask, Scheduler

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    COMPLETE = "complete"
    ERROR = "error"


class RecoveryMethod(str, Enum):
    NONE = "none"
    SELF_FIX = "self_fix"
    EMERGENCY_RESET = "emergency_reset"


@dataclass
class ElementLifecycle:
    """Lifecycle record for one element id."""
    element_id: str
    state: LifecycleState = LifecycleState.IDLE
    expression: str = ""
    platform: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    recovery_method: RecoveryMethod = RecoveryMethod.NONE
    soft_task: Optional[ScheduledTask] = None
    hard_task: Optional[ScheduledTask] = None

    def cancel_timers(self) -> None:
        for task in (self.soft_task, self.hard_task):
            if task is not None:
                task.cancel()
        self.soft_task = None
        self.hard_task = None


SoftRecoveryHandler = Callable[[ElementLifecycle], None]
HardResetHandler = Callable[[ElementLifecycle], None]


class LifecycleTracker:
    """
    State machine ``Idle -> Evaluating -> {Complete | Error}`` per element.

    ``begin`` and ``complete``/``fail`` are idempotent so rapid repeated calls
    from different call sites cannot corrupt the active set.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        soft_timeout: float = 1.0,
        hard_timeout: float = 3.0,
        on_soft_recovery: Optional[SoftRecoveryHandler] = None,
        on_hard_reset: Optional[HardResetHandler] = None,
    ):
        self.scheduler = scheduler
        self.soft_timeout = soft_timeout
        self.hard_timeout = hard_timeout
        self.on_soft_recovery = on_soft_recovery
        self.on_hard_reset = on_hard_reset
        self._records: Dict[str, ElementLifecycle] = {}

    def get(self, element_id: str) -> Optional[ElementLifecycle]:
        return self._records.get(element_id)

    def state_of(self, element_id: str) -> LifecycleState:
        record = self._records.get(element_id)
        return record.state if record else LifecycleState.IDLE

    def is_evaluating(self, element_id: str) -> bool:
        return self.state_of(element_id) is LifecycleState.EVALUATING

    @property
    def active_ids(self) -> List[str]:
        return [r.element_id for r in self._records.values() if r.state is LifecycleState.EVALUATING]

    def begin(self, element_id: str, expression: str = "", platform: Optional[str] = None) -> bool:
        """
        Enter ``Evaluating``.

        Returns:
            False if the element is already evaluating (duplicate request)
        """
        record = self._records.get(element_id)
        if record is None:
            record = ElementLifecycle(element_id=element_id)
            self._records[element_id] = record
        elif record.state is LifecycleState.EVALUATING:
            logger.debug(f"[LifecycleTracker] {element_id} already evaluating, suppressing duplicate")
            return False

        record.cancel_timers()
        record.state = LifecycleState.EVALUATING
        record.expression = expression
        record.platform = platform
        record.started_at = self.scheduler.now()
        record.finished_at = None
        record.recovery_method = RecoveryMethod.NONE
        record.soft_task = self.scheduler.call_later(self.soft_timeout, self._soft_recover, element_id)
        record.hard_task = self.scheduler.call_later(self.hard_timeout, self._hard_reset, element_id)
        return True

    def complete(self, element_id: str, recovery: RecoveryMethod = RecoveryMethod.NONE) -> bool:
        """Mark a normal (or recovered) completion."""
        return self._finish(element_id, LifecycleState.COMPLETE, recovery)

    def fail(self, element_id: str, recovery: RecoveryMethod = RecoveryMethod.NONE) -> bool:
        """Mark an evaluation error."""
        return self._finish(element_id, LifecycleState.ERROR, recovery)

    def reset(self) -> None:
        """Forget every element and cancel all pending recovery tasks."""
        for record in self._records.values():
            record.cancel_timers()
        self._records.clear()

    def _finish(self, element_id: str, state: LifecycleState, recovery: RecoveryMethod) -> bool:
        record = self._records.get(element_id)
        if record is None or record.state is not LifecycleState.EVALUATING:
            return False
        record.state = state
        record.finished_at = self.scheduler.now()
        record.recovery_method = recovery
        if recovery is RecoveryMethod.SELF_FIX:
            # hard reset keeps running as the backstop, it is a no-op once finished
            if record.soft_task is not None:
                record.soft_task.cancel()
                record.soft_task = None
        else:
            record.cancel_timers()
        return True

    def _soft_recover(self, element_id: str) -> None:
        record = self._records.get(element_id)
        if record is None:
            return
        record.soft_task = None
        if record.state is not LifecycleState.EVALUATING:
            return
        logger.warning(
            f"[LifecycleTracker] {element_id} still evaluating after {self.soft_timeout}s, attempting self-fix"
        )
        if self.on_soft_recovery is None:
            return
        try:
            self.on_soft_recovery(record)
        except Exception as e:
            logger.error(f"[LifecycleTracker] Self-fix for {element_id} failed: {e}")

    def _hard_reset(self, element_id: str) -> None:
        record = self._records.get(element_id)
        if record is None:
            return
        record.hard_task = None
        if record.state is not LifecycleState.EVALUATING:
            return
        logger.warning(f"[LifecycleTracker] Emergency reset of {element_id} after {self.hard_timeout}s")
        if record.soft_task is not None:
            record.soft_task.cancel()
            record.soft_task = None
        record.state = LifecycleState.IDLE
        record.finished_at = self.scheduler.now()
        record.recovery_method = RecoveryMethod.EMERGENCY_RESET
        if self.on_hard_reset is not None:
            try:
                self.on_hard_reset(record)
            except Exception as e:
                logger.error(f"[LifecycleTracker] Hard reset handler for {element_id} failed: {e}")
