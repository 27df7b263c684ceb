import pytest
from unittest.mock import MagicMock

from locator_xray.layers.evaluation.models import EvaluationResult
from locator_xray.layers.notification import (
    EVALUATION_COMPLETE,
    HIGHLIGHTS_CHANGED,
    XML_CHANGED,
    EvaluationComplete,
    HighlightsChanged,
    NotificationDispatcher,
    XmlChanged,
)


def _result(count=1, expression="//a"):
    return EvaluationResult(expression=expression, number_of_matches=count, is_valid=True, success=True)


def _complete(element_id="e1", count=1, from_highlighter=False):
    return EvaluationComplete(
        result=_result(count),
        expression="//a",
        element_id=element_id,
        platform="android",
        from_highlighter=from_highlighter,
    )


@pytest.fixture
def dispatcher(scheduler):
    return NotificationDispatcher(scheduler, platform_provider=lambda: "ios")


@pytest.fixture
def received(dispatcher):
    events = []
    dispatcher.subscribe(lambda event_type, event: events.append((event_type, event)))
    return events


def test_listeners_called_in_registration_order(dispatcher):
    calls = []
    dispatcher.subscribe(lambda t, e: calls.append("first"))
    dispatcher.subscribe(lambda t, e: calls.append("second"))

    dispatcher.publish(HighlightsChanged(expression="//a"), immediate=True)

    assert calls == ["first", "second"]


def test_failing_listener_does_not_block_others(dispatcher):
    broken = MagicMock(side_effect=RuntimeError("listener bug"))
    healthy = MagicMock()
    dispatcher.subscribe(broken)
    dispatcher.subscribe(healthy)

    dispatcher.publish(HighlightsChanged(expression="//a"), immediate=True)

    broken.assert_called_once()
    healthy.assert_called_once()
    assert dispatcher.delivered == 1


def test_deferred_delivery_waits_for_next_tick(dispatcher, scheduler, received):
    assert dispatcher.publish(HighlightsChanged(expression="//a")) is True
    assert received == []

    scheduler.run_pending()

    assert [t for t, _ in received] == [HIGHLIGHTS_CHANGED]


def test_debounce_windows_per_event_type(dispatcher):
    assert dispatcher.window_for(HIGHLIGHTS_CHANGED) == 0.100
    assert dispatcher.window_for(EVALUATION_COMPLETE) == 0.050
    assert dispatcher.window_for(XML_CHANGED) == 0.030


def test_repeat_inside_window_is_dropped(dispatcher, scheduler, received):
    event = HighlightsChanged(expression="//a", element_id="e1")

    assert dispatcher.publish(event, immediate=True) is True
    scheduler.advance(0.05)
    assert dispatcher.publish(event, immediate=True) is False
    scheduler.advance(0.05)
    assert dispatcher.publish(event, immediate=True) is True

    assert len(received) == 2
    assert dispatcher.dropped == 1


def test_debounce_is_leading_edge(dispatcher, scheduler, received):
    dispatcher.publish(HighlightsChanged(expression="//first", element_id="e1"), immediate=True)
    dispatcher.publish(HighlightsChanged(expression="//first", element_id="e1", nodes=()), immediate=True)

    assert len(received) == 1
    assert received[0][1].expression == "//first"


def test_debounce_key_distinguishes_elements_and_expressions(dispatcher, received):
    dispatcher.publish(HighlightsChanged(expression="//a", element_id="e1"), immediate=True)
    dispatcher.publish(HighlightsChanged(expression="//a", element_id="e2"), immediate=True)
    dispatcher.publish(HighlightsChanged(expression="//b", element_id="e1"), immediate=True)

    assert len(received) == 3


def test_bypass_debounce(dispatcher, received):
    event = XmlChanged(xml_source="<a/>", state_id="s1")

    dispatcher.publish(event, immediate=True)
    assert dispatcher.publish(event, immediate=True, bypass_debounce=True) is True

    assert len(received) == 2


def test_redundant_highlighter_update_is_dropped(dispatcher, scheduler, received):
    dispatcher.publish(_complete(), immediate=True)

    assert dispatcher.publish(_complete(from_highlighter=True), immediate=True, bypass_debounce=True) is False
    # a different count is news
    assert dispatcher.publish(_complete(count=2, from_highlighter=True), immediate=True, bypass_debounce=True) is True

    scheduler.advance(0.3)
    assert dispatcher.publish(_complete(count=2, from_highlighter=True), immediate=True, bypass_debounce=True) is True
    assert len(received) == 3


def test_regular_completion_is_never_treated_as_redundant(dispatcher, scheduler, received):
    dispatcher.publish(_complete(), immediate=True)
    scheduler.advance(0.06)

    assert dispatcher.publish(_complete(), immediate=True) is True


def test_force_skips_all_suppression(dispatcher, received):
    dispatcher.publish(_complete(), immediate=True)

    assert dispatcher.publish(_complete(from_highlighter=True), immediate=True, force=True) is True
    assert dispatcher.publish(_complete(), immediate=True, force=True) is True
    assert len(received) == 3


def test_timestamp_and_platform_are_filled_in(dispatcher, scheduler, received):
    scheduler.advance(2.5)

    dispatcher.publish(HighlightsChanged(expression="//a"), immediate=True)

    event = received[0][1]
    assert event.timestamp == 2.5
    assert event.platform == "ios"


def test_explicit_platform_wins(dispatcher, received):
    dispatcher.publish(HighlightsChanged(expression="//a", platform="android"), immediate=True)

    assert received[0][1].platform == "android"


def test_unsubscribe_is_idempotent(dispatcher):
    listener = MagicMock()
    unsubscribe = dispatcher.subscribe(listener)

    unsubscribe()
    unsubscribe()
    dispatcher.publish(HighlightsChanged(expression="//a"), immediate=True)

    listener.assert_not_called()
    assert dispatcher.listener_count == 0


def test_listener_may_unsubscribe_during_delivery(dispatcher):
    calls = []

    def once(event_type, event):
        calls.append(event_type)
        unsubscribe()

    unsubscribe = dispatcher.subscribe(once)
    other = MagicMock()
    dispatcher.subscribe(other)

    dispatcher.publish(HighlightsChanged(expression="//a"), immediate=True)
    dispatcher.publish(HighlightsChanged(expression="//b"), immediate=True)

    assert calls == [HIGHLIGHTS_CHANGED]
    assert other.call_count == 2


def test_reset_forgets_debounce_history(dispatcher, received):
    event = HighlightsChanged(expression="//a")
    dispatcher.publish(event, immediate=True)

    dispatcher.reset()

    assert dispatcher.publish(event, immediate=True) is True
    assert len(received) == 2


def test_stale_history_is_pruned(dispatcher, scheduler, received):
    for i in range(50):
        dispatcher.publish(HighlightsChanged(expression=f"//a[{i}]"), immediate=True)
        dispatcher.publish(_complete(element_id=f"e{i}"), immediate=True)
    assert dispatcher.history_size == 150

    scheduler.advance(0.3)
    dispatcher.publish(HighlightsChanged(expression="//b"), immediate=True)

    assert dispatcher.history_size == 1
    assert len(received) == 101


def test_recent_history_survives_pruning(dispatcher, scheduler):
    dispatcher.publish(_complete(), immediate=True)
    scheduler.advance(0.2)
    dispatcher.publish(HighlightsChanged(expression="//b"), immediate=True)

    assert dispatcher.publish(_complete(from_highlighter=True), immediate=True, bypass_debounce=True) is False


def test_custom_windows(scheduler):
    dispatcher = NotificationDispatcher(scheduler, debounce_windows={}, default_debounce=0.5)

    assert dispatcher.window_for(HIGHLIGHTS_CHANGED) == 0.5
