"""Tests for ActionFuture, JoinAll and SelectAll."""

import pytest
from conftest import HistoryBuilder

from pyreplay.core import (
    _PENDING,
    ActionFuture,
    JoinAll,
    OrchestrationFuture,
    OrchestrationState,
    SelectAll,
)
from pyreplay.models import CallActivity, InvariantError


def _state_with_tasks(*completed: bool | str) -> tuple[OrchestrationState, list[ActionFuture]]:
    """Schedule one task per argument; truthy arguments are completed in reverse order."""
    builder = HistoryBuilder()
    ids = [builder.task_scheduled(f"task{n}") for n in range(len(completed))]
    builder.end_pass()
    for n in reversed(range(len(completed))):
        if completed[n]:
            builder.task_completed(ids[n], f"result{n}")
    state = OrchestrationState(builder.build())
    futures = [state.schedule_action(CallActivity(f"task{n}")) for n in range(len(completed))]
    return state, futures


# =============================================================================
# ActionFuture
# =============================================================================


def test_orchestration_future_is_abstract():
    state = OrchestrationState(HistoryBuilder().build())

    with pytest.raises(TypeError):
        OrchestrationFuture(state)

    class Incomplete(OrchestrationFuture):
        def poll(self):
            return _PENDING

    with pytest.raises(TypeError):
        Incomplete(state)


def test_action_future_requires_index_and_result_together():
    state = OrchestrationState(HistoryBuilder().build())
    with pytest.raises(InvariantError):
        ActionFuture(state, CallActivity("a"), event_index=1)
    with pytest.raises(InvariantError):
        ActionFuture(state, CallActivity("a"), result="x")


def test_action_future_result_taken_once():
    state, (future,) = _state_with_tasks(True)

    assert future.poll() == "result0"
    with pytest.raises(InvariantError, match="already resolved"):
        future.poll()
    assert isinstance(state.fault, InvariantError)


def test_unresolved_future_polls_pending():
    state, (future,) = _state_with_tasks(False)

    assert future.poll() is _PENDING
    assert not future.done()
    assert repr(future) == "ActionFuture(callActivity('task0'), pending)"


def test_polling_advances_cursor():
    state, (future,) = _state_with_tasks(True)

    future.poll()

    assert state.event_cursor == future.event_index


def test_inner_future_leaves_cursor_alone():
    state, (future,) = _state_with_tasks(True)
    future.notify_inner()

    future.poll()

    assert state.event_cursor == -1


def test_future_resolved_to_none_is_not_pending():
    builder = HistoryBuilder()
    task = builder.task_scheduled("noop")
    builder.task_completed(task, None)
    state = OrchestrationState(builder.build())

    future = state.schedule_action(CallActivity("noop"))

    assert future.done()
    assert future.poll() is None


# =============================================================================
# JoinAll
# =============================================================================


def test_join_all_complete_returns_results_in_member_order():
    state, futures = _state_with_tasks(True, True, True)
    join = JoinAll(state, futures)

    assert all(member.is_inner for member in futures)
    assert join.event_index == max(member.event_index for member in futures)
    assert join.poll() == ["result0", "result1", "result2"]
    assert state.event_cursor == join.event_index


def test_join_all_with_missing_member_is_pending():
    state, futures = _state_with_tasks(True, False, True)
    join = JoinAll(state, futures)

    assert join.event_index is None
    assert join.poll() is _PENDING
    assert state.event_cursor == -1
    assert repr(join) == "JoinAll(2/3 resolved, event_index=None)"


def test_join_all_empty_completes_immediately():
    state = OrchestrationState(HistoryBuilder().build())
    join = JoinAll(state, [])

    assert join.done()
    assert join.poll() == []
    assert state.event_cursor == -1


def test_join_all_result_taken_once():
    state, futures = _state_with_tasks(True)
    join = JoinAll(state, futures)
    join.poll()

    with pytest.raises(InvariantError):
        join.poll()


def test_nested_join_defers_to_outer():
    state, futures = _state_with_tasks(True, True, True, True)
    inner_a = JoinAll(state, futures[:2])
    inner_b = JoinAll(state, futures[2:])
    outer = JoinAll(state, [inner_a, inner_b])

    assert inner_a.is_inner and inner_b.is_inner
    assert outer.poll() == [["result0", "result1"], ["result2", "result3"]]
    assert state.event_cursor == outer.event_index


# =============================================================================
# SelectAll
# =============================================================================


def test_select_all_requires_members():
    state = OrchestrationState(HistoryBuilder().build())
    with pytest.raises(ValueError, match="at least one"):
        SelectAll(state, [])


def test_select_all_picks_earliest_completion_in_history():
    # Completions are appended in reverse, so task2 completes first
    state, futures = _state_with_tasks(True, True, True)
    select = SelectAll(state, futures)

    value, position, remaining = select.poll()

    assert (value, position) == ("result2", 2)
    assert remaining == futures[:2]
    assert state.event_cursor == futures[2].event_index


def test_select_all_ignores_unresolved_members():
    state, futures = _state_with_tasks(False, True)
    select = SelectAll(state, futures)

    value, position, remaining = select.poll()

    assert (value, position) == ("result1", 1)
    assert remaining == [futures[0]]


def test_select_all_pending_when_nothing_completed():
    state, futures = _state_with_tasks(False, False)
    select = SelectAll(state, futures)

    assert select.event_index is None
    assert select.poll() is _PENDING


def test_select_all_remaining_can_be_selected_again():
    state, futures = _state_with_tasks(True, True, True)

    _, _, remaining = SelectAll(state, futures).poll()
    value, position, remaining = SelectAll(state, remaining).poll()

    assert (value, position) == ("result1", 1)
    assert remaining == [futures[0]]
    assert state.event_cursor == futures[1].event_index


def test_select_all_remaining_members_are_awaitable_directly():
    state, futures = _state_with_tasks(True, True)
    _, _, remaining = SelectAll(state, futures).poll()

    (leftover,) = remaining
    assert not leftover.is_inner
    assert leftover.poll() == "result0"
    assert state.event_cursor == leftover.event_index
