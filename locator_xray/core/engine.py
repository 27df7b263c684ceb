"""
XRay Engine - The evaluation and notification root.

Wires the context store, evaluation cache and core, highlight set, lifecycle
tracker and notification dispatcher together. Hosting applications build one
engine and pass it around explicitly.
"""

from dataclasses import replace
from typing import Callable, List, Optional
import logging

from locator_xray.core.config import EngineConfig
from locator_xray.core.scheduler import AsyncioScheduler, Scheduler
from locator_xray.layers.evaluation import (
    Context,
    EvaluationCache,
    EvaluationCore,
    EvaluationResult,
    HighlightSet,
    LxmlBackend,
    XmlBackend,
    XmlContextStore,
)
from locator_xray.layers.evaluation.lifecycle import (
    ElementLifecycle,
    LifecycleTracker,
    RecoveryMethod,
)
from locator_xray.layers.evaluation.models import Locator
from locator_xray.layers.notification import (
    EVALUATION_COMPLETE,
    EVALUATION_ERROR,
    EvaluationComplete,
    EvaluationError,
    Event,
    HighlightsChanged,
    NotificationDispatcher,
    XmlChanged,
)

logger = logging.getLogger(__name__)


class XRayEngine:
    """
    Live XPath evaluation over one XML snapshot.

    Evaluation pipeline per request:

    1. Guard: an element already evaluating gets an in-progress sentinel.
    2. Read through the cache keyed by (state, platform, expression).
    3. Publish ``evaluationComplete`` or ``evaluationError`` and, when
       highlighting, ``highlightsChanged``.
    4. The element leaves ``Evaluating`` when its notification is delivered,
       or through soft/hard recovery if it never is.

    Example:
        >>> engine = XRayEngine(scheduler=VirtualScheduler())
        >>> engine.set_context(page_source, "login", "android")
        >>> result = engine.evaluate("//*[@text='Sign in']", element_id="btn-1")
        >>> result.number_of_matches
        1
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        scheduler: Optional[Scheduler] = None,
        backend: Optional[XmlBackend] = None,
    ):
        self.config = config or EngineConfig()
        self.scheduler = scheduler or AsyncioScheduler()
        self.backend = backend or LxmlBackend()

        if self.config.debug:
            logging.getLogger("locator_xray").setLevel(logging.DEBUG)

        self.store = XmlContextStore(self.backend)
        self.cache = EvaluationCache()
        self.core = EvaluationCore(
            self.store,
            self.cache,
            self.backend,
            document_cache_size=self.config.document_cache_size,
        )
        self.highlights = HighlightSet()
        self.tracker = LifecycleTracker(
            self.scheduler,
            soft_timeout=self.config.soft_recovery_seconds,
            hard_timeout=self.config.hard_recovery_seconds,
            on_soft_recovery=self._self_fix,
        )
        self.dispatcher = NotificationDispatcher(
            self.scheduler,
            debounce_windows=self.config.debounce_windows,
            default_debounce=self.config.default_debounce_seconds,
            redundant_window=self.config.redundant_update_seconds,
            platform_provider=lambda: self.store.platform or None,
        )
        # first listener: lifecycle completion follows delivery
        self.dispatcher.subscribe(self._on_delivered)

    # -- context ---------------------------------------------------------

    @property
    def context(self) -> Context:
        return self.store.context

    def set_context(self, xml_source: Optional[str], state_id: str, platform: str) -> Context:
        """
        Replace the active XML document.

        Clears the cache and highlights, then publishes ``xmlChanged``.
        """
        context = self.store.set_context(xml_source, state_id, platform)
        self.cache.clear()
        self.highlights.clear()
        logger.info(
            f"[XRayEngine] Context set to {context.state_id or '-'}/{context.platform or '-'} "
            f"({len(context.xml_source)} chars, document={'yes' if context.has_document else 'no'})"
        )
        now = self.scheduler.now()
        self.dispatcher.publish(
            XmlChanged(
                xml_source=context.xml_source,
                state_id=context.state_id,
                platform=context.platform or None,
                has_document=context.has_document,
                timestamp=now,
            ),
            immediate=True,
            force=True,
        )
        self.dispatcher.publish(
            HighlightsChanged(platform=context.platform or None, timestamp=now),
            immediate=True,
            force=True,
        )
        return context

    def get_source(self) -> str:
        return self.store.get_source()

    def subscribe(self, listener: Callable[[str, Event], None]) -> Callable[[], None]:
        """Register a ``(event_type, event)`` listener. Returns its unsubscribe callable."""
        return self.dispatcher.subscribe(listener)

    # -- evaluation ------------------------------------------------------

    def evaluate(
        self,
        expression: str,
        element_id: Optional[str] = None,
        platform: Optional[str] = None,
        highlight: bool = True,
        update_ui: bool = True,
        force: bool = False,
        immediate: bool = False,
    ) -> EvaluationResult:
        """
        Evaluate an XPath expression against the active document.

        Args:
            expression: XPath expression
            element_id: Locator the evaluation belongs to (enables duplicate suppression)
            platform: Override for the context platform
            highlight: Replace the highlight set with the matched nodes
            update_ui: Publish notifications
            force: Drop the cached entry before evaluating
            immediate: Deliver notifications synchronously

        Returns:
            EvaluationResult; never raises for bad expressions or documents
        """
        platform = platform or self.store.platform or None

        if not expression or self.store.document is None:
            result = EvaluationResult.empty(expression, platform)
            if highlight:
                self.clear_highlights(publish=update_ui)
            return result

        if element_id is not None and not self.tracker.begin(element_id, expression, platform):
            return EvaluationResult.pending(expression, platform)

        if force:
            self.invalidate(expression, platform)

        result, cache_hit = self.core.evaluate(expression, platform)
        logger.debug(
            f"[XRayEngine] {expression!r} -> {result.number_of_matches} matches"
            f"{' (cached)' if cache_hit else ''}"
        )

        if result.success:
            delivered = self._publish_success(result, element_id, platform, highlight, update_ui, immediate)
        else:
            delivered = self._publish_error(result, element_id, platform, highlight, update_ui, immediate)

        if element_id is not None and not update_ui:
            # no notification will ever arrive for this element
            if result.success:
                self.tracker.complete(element_id)
            else:
                self.tracker.fail(element_id)
        elif element_id is not None and not delivered:
            logger.debug(f"[XRayEngine] Notification for {element_id} dropped, recovery timers armed")

        return result

    def match_count(self, expression: str, platform: Optional[str] = None) -> int:
        """Match count without highlights or notifications."""
        result = self.evaluate(expression, platform=platform, highlight=False, update_ui=False)
        return result.number_of_matches

    def highlight_only(self, expression: str, platform: Optional[str] = None) -> EvaluationResult:
        """Highlight the matches of ``expression`` without per-element bookkeeping."""
        return self.evaluate(expression, platform=platform, highlight=True, update_ui=True, immediate=True)

    def evaluate_source(
        self,
        xml_source: str,
        expression: str,
        platform: Optional[str] = None,
    ) -> EvaluationResult:
        """Evaluate against an arbitrary XML string. The active context is untouched."""
        return self.core.evaluate_source(xml_source, expression, platform)

    def evaluate_locator(self, locator: Locator) -> Locator:
        """Copy of ``locator`` whose xpath record reflects a fresh evaluation."""
        result = self.evaluate(
            locator.xpath.expression,
            platform=locator.platform or None,
            highlight=False,
            update_ui=False,
        )
        return replace(locator, xpath=locator.xpath.with_result(result))

    def evaluate_locators(self, locators: List[Locator]) -> List[Locator]:
        return [self.evaluate_locator(locator) for locator in locators]

    def invalidate(self, expression: str, platform: Optional[str] = None) -> bool:
        """Drop the cached result for ``expression`` in the active context."""
        return self.cache.invalidate(self.core.cache_key(expression, platform))

    def clear_highlights(self, publish: bool = True) -> None:
        self.highlights.clear()
        if publish:
            self.dispatcher.publish(
                HighlightsChanged(platform=self.store.platform or None),
                immediate=True,
                force=True,
            )

    def shutdown(self) -> None:
        """Cancel outstanding recovery timers."""
        self.tracker.reset()

    # -- internals -------------------------------------------------------

    def _publish_success(
        self,
        result: EvaluationResult,
        element_id: Optional[str],
        platform: Optional[str],
        highlight: bool,
        update_ui: bool,
        immediate: bool,
    ) -> bool:
        if highlight:
            self.highlights.set_from(result)
        if not update_ui:
            return False

        delivered = self.dispatcher.publish(
            EvaluationComplete(
                result=result,
                expression=result.expression,
                element_id=element_id,
                highlight=highlight,
                platform=platform,
            ),
            immediate=immediate,
        )
        if highlight:
            self.dispatcher.publish(
                HighlightsChanged(
                    nodes=result.nodes,
                    expression=result.expression,
                    platform=platform,
                    element_id=element_id,
                ),
                immediate=immediate,
            )
            if element_id is not None:
                # consolidated update, usually suppressed as redundant
                consolidated = self.dispatcher.publish(
                    EvaluationComplete(
                        result=result,
                        expression=result.expression,
                        element_id=element_id,
                        highlight=True,
                        platform=platform,
                        from_highlighter=True,
                    ),
                    immediate=True,
                    bypass_debounce=True,
                )
                delivered = delivered or consolidated
        return delivered

    def _publish_error(
        self,
        result: EvaluationResult,
        element_id: Optional[str],
        platform: Optional[str],
        highlight: bool,
        update_ui: bool,
        immediate: bool,
    ) -> bool:
        if highlight:
            self.clear_highlights(publish=update_ui)
        if not update_ui:
            return False
        return self.dispatcher.publish(
            EvaluationError(
                result=result,
                expression=result.expression,
                error=result.error or "",
                element_id=element_id,
                highlight=highlight,
                platform=platform,
            ),
            immediate=immediate,
        )

    def _on_delivered(self, event_type: str, event: Event) -> None:
        element_id = getattr(event, "element_id", None)
        if element_id is None:
            return
        if event_type == EVALUATION_COMPLETE:
            recovery = RecoveryMethod.SELF_FIX if event.self_fix else RecoveryMethod.NONE
            self.tracker.complete(element_id, recovery)
        elif event_type == EVALUATION_ERROR:
            self.tracker.fail(element_id)

    def _self_fix(self, record: ElementLifecycle) -> None:
        result, _ = self.core.evaluate(record.expression, record.platform, bypass_cache=True)
        logger.info(
            f"[XRayEngine] Self-fix for {record.element_id}: {result.number_of_matches} matches"
        )
        if result.success:
            self.tracker.complete(record.element_id, RecoveryMethod.SELF_FIX)
            self.dispatcher.publish(
                EvaluationComplete(
                    result=result,
                    expression=result.expression,
                    element_id=record.element_id,
                    platform=record.platform,
                    self_fix=True,
                    recovery=RecoveryMethod.SELF_FIX.value,
                ),
                immediate=True,
                force=True,
            )
        else:
            self.tracker.fail(record.element_id, RecoveryMethod.SELF_FIX)
            self.dispatcher.publish(
                EvaluationError(
                    result=result,
                    expression=result.expression,
                    error=result.error or "",
                    element_id=record.element_id,
                    platform=record.platform,
                ),
                immediate=True,
                force=True,
            )
