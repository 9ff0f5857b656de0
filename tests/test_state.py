"""
Tests for OrchestrationState: scheduling cursor, event cursor and windows.

The state is exercised directly, without an orchestration body, so each
test pins down one piece of bookkeeping.
"""

from datetime import UTC, datetime, timedelta

import pytest
from conftest import T0, HistoryBuilder

from pyreplay.config import ReplayConfig
from pyreplay.core import _PENDING, OrchestrationState, compute_input_hash
from pyreplay.models import (
    ActivityFailedError,
    CallActivity,
    CallSubOrchestrator,
    CreateTimer,
    History,
    HistoryFormatError,
    InvariantError,
    NonDeterminismError,
    SubOrchestrationFailedError,
)
from pyreplay.models.history import EventType, HistoryEvent


def test_empty_history_is_rejected():
    with pytest.raises(HistoryFormatError, match="empty"):
        OrchestrationState(History())


def test_plain_list_is_wrapped_in_history():
    state = OrchestrationState(
        [HistoryEvent(EventType.EXECUTION_STARTED, timestamp=T0, name="o")]
    )
    assert isinstance(state.history, History)


# =============================================================================
# Scheduling cursor
# =============================================================================


def test_new_action_when_history_has_no_scheduling_event(builder):
    state = OrchestrationState(builder.build())

    future = state.schedule_action(CallActivity("say_hello", "Tokyo"))

    assert future.event_index is None
    assert state.new_actions == [CallActivity("say_hello", "Tokyo")]


def test_scheduled_but_not_completed_is_not_new(builder):
    builder.task_scheduled("say_hello", "Tokyo")
    state = OrchestrationState(builder.build())

    future = state.schedule_action(CallActivity("say_hello", "Tokyo"))

    assert future.event_index is None
    assert state.new_actions == []


def test_completed_action_resolves_with_result(builder):
    task = builder.task_scheduled("say_hello", "Tokyo")
    completed_at = builder.task_completed(task, "Hello Tokyo!")
    state = OrchestrationState(builder.build())

    future = state.schedule_action(CallActivity("say_hello", "Tokyo"))

    assert future.event_index == completed_at
    assert future.poll() == "Hello Tokyo!"


def test_actions_bind_in_issuance_order(builder):
    """The k-th action binds to the k-th scheduling event, never a later same-named one."""
    first = builder.task_scheduled("say_hello", "Tokyo")
    second = builder.task_scheduled("say_hello", "London")
    builder.task_completed(second, "Hello London!")
    builder.task_completed(first, "Hello Tokyo!")
    state = OrchestrationState(builder.build())

    tokyo = state.schedule_action(CallActivity("say_hello", "Tokyo"))
    london = state.schedule_action(CallActivity("say_hello", "London"))

    assert tokyo.poll() == "Hello Tokyo!"
    assert london.poll() == "Hello London!"
    assert london.event_index < tokyo.event_index


def test_mismatched_name_is_nondeterminism(builder):
    builder.task_scheduled("say_hello", "Tokyo")
    state = OrchestrationState(builder.build())

    with pytest.raises(NonDeterminismError, match="say_goodbye"):
        state.schedule_action(CallActivity("say_goodbye", "Tokyo"))
    assert isinstance(state.fault, NonDeterminismError)


def test_mismatched_kind_is_nondeterminism(builder):
    builder.task_scheduled("child")
    state = OrchestrationState(builder.build())

    with pytest.raises(NonDeterminismError):
        state.schedule_action(CallSubOrchestrator("child"))


def test_mismatched_input_is_nondeterminism(builder):
    builder.task_scheduled("say_hello", "Tokyo")
    state = OrchestrationState(builder.build())

    with pytest.raises(NonDeterminismError, match="input"):
        state.schedule_action(CallActivity("say_hello", "Seattle"))


def test_input_check_can_be_disabled(builder):
    builder.task_scheduled("say_hello", "Tokyo")
    state = OrchestrationState(builder.build(), ReplayConfig.LENIENT)

    state.schedule_action(CallActivity("say_hello", "Seattle"))
    assert state.fault is None


def test_input_check_skipped_when_history_has_no_input(builder):
    builder.task_scheduled("say_hello")
    state = OrchestrationState(builder.build())

    state.schedule_action(CallActivity("say_hello", "Seattle"))
    assert state.fault is None


def test_input_hash_ignores_key_order():
    assert compute_input_hash({"a": 1, "b": [1, 2]}) == compute_input_hash({"b": [1, 2], "a": 1})
    assert compute_input_hash({"a": 1}) != compute_input_hash({"a": 2})
    assert compute_input_hash("x") >= 0


def test_failed_completions_decode_to_failure_values(builder):
    task = builder.task_scheduled("charge")
    child = builder.sub_created("child")
    builder.task_failed(task, "card declined", {"code": 51})
    builder.sub_failed(child, "child exploded")
    state = OrchestrationState(builder.build())

    activity = state.schedule_action(CallActivity("charge")).poll()
    sub = state.schedule_action(CallSubOrchestrator("child")).poll()

    assert activity == ActivityFailedError("charge", "card declined", {"code": 51})
    assert isinstance(sub, SubOrchestrationFailedError)
    assert sub.reason == "child exploded"


def test_fired_timer_resolves_to_none(builder):
    fire_at = T0 + timedelta(minutes=5)
    timer = builder.timer_created(fire_at)
    builder.timer_fired(timer, fire_at)
    state = OrchestrationState(builder.build())

    assert state.schedule_action(CreateTimer(fire_at)).poll() is None


def test_unconsumed_scheduled_events(builder):
    builder.task_scheduled("a")
    builder.task_scheduled("b")
    state = OrchestrationState(builder.build())

    state.schedule_action(CallActivity("a"))

    assert state.unconsumed_scheduled_events() == [3]


# =============================================================================
# Raised events
# =============================================================================


def test_waits_bind_to_raised_events_per_name(builder):
    first = builder.event_raised("approval", 1)
    builder.event_raised("other", "x")
    second = builder.event_raised("approval", 2)
    state = OrchestrationState(builder.build())

    a = state.wait_for_event("approval")
    b = state.wait_for_event("approval")
    c = state.wait_for_event("approval")

    assert (a.event_index, a.poll()) == (first, 1)
    assert (b.event_index, b.poll()) == (second, 2)
    assert c.event_index is None
    assert [action.describe() for action in state.new_actions] == ["waitForExternalEvent('approval')"]


# =============================================================================
# Event cursor
# =============================================================================


def test_update_is_monotonic(builder):
    for _ in range(4):
        builder.task_scheduled("a")
    state = OrchestrationState(builder.build())

    state.update(4)
    state.update(2)
    state.update(4)

    assert state.event_cursor == 4


def test_update_out_of_range_is_invariant_error(builder):
    state = OrchestrationState(builder.build())

    with pytest.raises(InvariantError):
        state.update(len(state.history))
    with pytest.raises(InvariantError):
        state.update(-1)
    assert isinstance(state.fault, InvariantError)


def test_record_fault_keeps_first():
    state = OrchestrationState(HistoryBuilder().build())
    first = InvariantError("first")

    assert state.record_fault(first) is first
    state.record_fault(NonDeterminismError("second"))

    assert state.fault is first


# =============================================================================
# Execution windows
# =============================================================================


def test_first_pass_is_not_replaying():
    state = OrchestrationState(HistoryBuilder().build())

    assert not state.is_replaying()
    assert state.current_time() == T0


def test_history_without_markers_is_not_replaying():
    builder = HistoryBuilder(markers=False)
    task = builder.task_scheduled("a")
    builder.task_completed(task, 1)
    state = OrchestrationState(builder.build())

    assert not state.is_replaying()
    assert state.current_time() == T0


def test_window_advances_with_the_cursor():
    builder = HistoryBuilder()
    first = builder.task_scheduled("a")
    builder.end_pass(seconds=10)
    builder.task_completed(first, 1)
    second = builder.task_scheduled("b")
    builder.end_pass(seconds=10)
    completed_b = builder.task_completed(second, 2)
    state = OrchestrationState(builder.build())

    assert state.is_replaying()
    assert state.current_time() == T0

    state.update(state.schedule_action(CallActivity("a")).event_index)
    assert state.is_replaying()
    assert state.current_time() == T0 + timedelta(seconds=10)

    state.update(completed_b)
    assert not state.is_replaying()
    assert state.current_time() == T0 + timedelta(seconds=20)


def test_current_time_falls_back_to_first_timestamp():
    history = History(
        [
            HistoryEvent(EventType.EXECUTION_STARTED, timestamp=datetime(2020, 1, 1, tzinfo=UTC), name="o"),
        ]
    )
    assert OrchestrationState(history).current_time() == datetime(2020, 1, 1, tzinfo=UTC)


# =============================================================================
# Output
# =============================================================================


def test_set_output_overwrites():
    state = OrchestrationState(HistoryBuilder().build())

    state.set_output(1)
    state.set_output(2)

    assert state.output == 2
    assert state.is_done


def test_output_none_is_still_done():
    state = OrchestrationState(HistoryBuilder().build())
    assert not state.is_done

    state.set_output(None)

    assert state.is_done
    assert state.output is None


def test_continue_as_new_alone_does_not_finish_the_pass():
    state = OrchestrationState(HistoryBuilder().build())

    state.continue_as_new({"n": 1})

    assert state.continued_as_new
    assert not state.is_done
    assert state.new_actions[-1].to_dict() == {"actionType": "continueAsNew", "input": {"n": 1}}


def test_result_envelope_is_json():
    state = OrchestrationState(HistoryBuilder().build())
    state.set_custom_status("working")
    state.schedule_action(CallActivity("say_hello", "Tokyo"))

    assert state.result() == (
        '{"status": "pending", "actions": [{"actionType": "callActivity", '
        '"functionName": "say_hello", "input": "Tokyo"}], "customStatus": "working"}'
    )


def test_pending_sentinel_is_not_none():
    assert _PENDING is not None
