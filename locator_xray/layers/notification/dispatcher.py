"""
Notification Dispatcher - Debounced fan-out to listeners.

Every event goes through one gate:

1. Debounce: a repeat of the same (type, element, expression, platform)
   inside its window is dropped.
2. Redundant-update suppression: a consolidated ``from_highlighter``
   completion that repeats a match count the element received less than
   300 ms ago is dropped.
3. Delivery: synchronously for ``immediate`` publishes, otherwise on the
   scheduler's next tick.
"""

from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Tuple
import logging

from locator_xray.core.config import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_DEBOUNCE_WINDOWS
from locator_xray.core.scheduler import Scheduler
from locator_xray.layers.notification.events import EVALUATION_COMPLETE, EvaluationComplete, Event

logger = logging.getLogger(__name__)

Listener = Callable[[str, Event], None]
DebounceKey = Tuple[str, str, str, str]

GLOBAL_ELEMENT = "global"


@dataclass
class _RecentUpdate:
    time: float
    count: int
    expression: str


class NotificationDispatcher:
    """
    Listener registry with per-event debouncing.

    Example:
        >>> dispatcher = NotificationDispatcher(scheduler)
        >>> unsubscribe = dispatcher.subscribe(lambda kind, event: print(kind))
        >>> dispatcher.publish(HighlightsChanged(expression="//a"), immediate=True)
        highlightsChanged
        True
    """

    def __init__(
        self,
        scheduler: Scheduler,
        debounce_windows: Optional[Dict[str, float]] = None,
        default_debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        redundant_window: float = 0.300,
        platform_provider: Optional[Callable[[], Optional[str]]] = None,
    ):
        self.scheduler = scheduler
        self.debounce_windows = dict(DEFAULT_DEBOUNCE_WINDOWS if debounce_windows is None else debounce_windows)
        self.default_debounce = default_debounce
        self.redundant_window = redundant_window
        self.platform_provider = platform_provider
        self._listeners: List[Listener] = []
        self._last_event_times: Dict[DebounceKey, float] = {}
        self._recent_updates: Dict[str, _RecentUpdate] = {}
        self.delivered = 0
        self.dropped = 0

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener; calling it twice is harmless
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def window_for(self, event_type: str) -> float:
        return self.debounce_windows.get(event_type, self.default_debounce)

    @property
    def history_size(self) -> int:
        return len(self._last_event_times) + len(self._recent_updates)

    def _prune(self, now: float) -> None:
        # entries older than every window can no longer suppress anything
        horizon = max([self.default_debounce, self.redundant_window, *self.debounce_windows.values()])
        stale = [key for key, last in self._last_event_times.items() if now - last >= horizon]
        for key in stale:
            del self._last_event_times[key]
        stale = [key for key, recent in self._recent_updates.items() if now - recent.time >= horizon]
        for key in stale:
            del self._recent_updates[key]

    def publish(
        self,
        event: Event,
        immediate: bool = False,
        bypass_debounce: bool = False,
        force: bool = False,
    ) -> bool:
        """
        Publish an event to all listeners.

        Args:
            event: One of the event dataclasses
            immediate: Deliver on the caller's stack
            bypass_debounce: Skip the debounce window check
            force: Skip both debounce and redundant-update suppression

        Returns:
            True if the event was accepted for delivery
        """
        now = self.scheduler.now()
        self._prune(now)
        event_type = event.type
        element_id = getattr(event, "element_id", None) or GLOBAL_ELEMENT
        platform = event.platform or (self.platform_provider() if self.platform_provider else None) or "unknown"
        key: DebounceKey = (event_type, element_id, event.expression, platform)

        if not bypass_debounce and not force:
            last = self._last_event_times.get(key)
            if last is not None and now - last < self.window_for(event_type):
                logger.debug(f"[NotificationDispatcher] Debounced {event_type} for {element_id}")
                self.dropped += 1
                return False
        self._last_event_times[key] = now

        if isinstance(event, EvaluationComplete) and element_id != GLOBAL_ELEMENT:
            count = event.result.number_of_matches
            recent = self._recent_updates.get(element_id)
            if (
                event.from_highlighter
                and recent is not None
                and not force
                and now - recent.time < self.redundant_window
                and recent.count == count
            ):
                logger.debug(
                    f"[NotificationDispatcher] Skipping redundant update for {element_id} ({count} matches)"
                )
                self.dropped += 1
                return False
            self._recent_updates[element_id] = _RecentUpdate(time=now, count=count, expression=event.expression)

        if not event.timestamp:
            event = replace(event, timestamp=now)
        if event.platform is None and platform != "unknown":
            event = replace(event, platform=platform)

        if immediate:
            self._deliver(event_type, event)
        else:
            self.scheduler.call_soon(self._deliver, event_type, event)
        return True

    def reset(self) -> None:
        """Forget debounce history. Listeners stay registered."""
        self._last_event_times.clear()
        self._recent_updates.clear()

    def _deliver(self, event_type: str, event: Event) -> None:
        # copy so listeners may unsubscribe during delivery
        for index, listener in enumerate(list(self._listeners)):
            try:
                listener(event_type, event)
            except Exception:
                logger.exception(f"[NotificationDispatcher] Listener #{index + 1} failed on {event_type}")
        self.delivered += 1
