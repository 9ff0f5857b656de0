"""Tests for action descriptors, retry options, invocation payloads and errors."""

import json
from datetime import UTC, datetime

import pytest

from pyreplay.models import (
    ActivityFailedError,
    CallActivity,
    CallActivityWithRetry,
    CallSubOrchestrator,
    CallSubOrchestratorWithRetry,
    ContinueAsNew,
    CreateTimer,
    EventType,
    HistoryEvent,
    HistoryFormatError,
    InstanceStatus,
    InvocationPayload,
    PassStatus,
    RetryOptions,
    SubOrchestrationFailedError,
    WaitForExternalEvent,
    is_task_failure,
)

T = datetime(2019, 7, 18, 6, 22, 26, tzinfo=UTC)


# =============================================================================
# Actions
# =============================================================================


def test_call_activity_wire_form():
    assert CallActivity("say_hello", "Tokyo").to_dict() == {
        "actionType": "callActivity",
        "functionName": "say_hello",
        "input": "Tokyo",
    }


def test_retry_actions_carry_retry_options():
    options = RetryOptions(first_retry_interval_ms=500, max_number_of_attempts=3)

    activity = CallActivityWithRetry("charge", options, {"amount": 5}).to_dict()
    assert activity["actionType"] == "callActivityWithRetry"
    assert activity["retryOptions"] == {
        "firstRetryIntervalInMilliseconds": 500,
        "maxNumberOfAttempts": 3,
    }

    sub = CallSubOrchestratorWithRetry("child", options, None, "child-1").to_dict()
    assert sub["actionType"] == "callSubOrchestratorWithRetry"
    assert sub["instanceId"] == "child-1"


def test_timer_and_event_wire_forms():
    assert CreateTimer(T).to_dict() == {
        "actionType": "createTimer",
        "fireAt": "2019-07-18T06:22:26Z",
        "isCancelled": False,
    }
    assert WaitForExternalEvent("approval").to_dict() == {
        "actionType": "waitForExternalEvent",
        "externalEventName": "approval",
    }
    assert ContinueAsNew(3).to_dict() == {"actionType": "continueAsNew", "input": 3}


def test_actions_are_json_serializable():
    actions = [
        CallActivity("a", [1, 2]),
        CallSubOrchestrator("child", {"x": 1}),
        CreateTimer(T),
        WaitForExternalEvent("e"),
        ContinueAsNew(None),
    ]
    json.dumps([action.to_dict() for action in actions])


def test_matches_checks_kind_and_name():
    scheduled = HistoryEvent(EventType.TASK_SCHEDULED, event_id=0, timestamp=T, name="say_hello")

    assert CallActivity("say_hello").matches(scheduled)
    assert CallActivityWithRetry("say_hello", RetryOptions.STANDARD).matches(scheduled)
    assert not CallActivity("say_goodbye").matches(scheduled)
    assert not CallSubOrchestrator("say_hello").matches(scheduled)


def test_timer_matches_any_timer_created():
    created = HistoryEvent(EventType.TIMER_CREATED, event_id=0, timestamp=T, fire_at=T)
    assert CreateTimer(datetime(2030, 1, 1, tzinfo=UTC)).matches(created)
    assert not CreateTimer(T).matches(
        HistoryEvent(EventType.TASK_SCHEDULED, event_id=0, timestamp=T, name="a")
    )


def test_wait_and_continue_never_match_scheduling_events():
    scheduled = HistoryEvent(EventType.TASK_SCHEDULED, event_id=0, timestamp=T, name="approval")
    assert not WaitForExternalEvent("approval").matches(scheduled)
    assert not ContinueAsNew().matches(scheduled)


def test_describe():
    assert CallActivity("say_hello").describe() == "callActivity('say_hello')"
    assert WaitForExternalEvent("approval").describe() == "waitForExternalEvent('approval')"
    assert CreateTimer(T).describe() == "createTimer(2019-07-18T06:22:26Z)"


# =============================================================================
# RetryOptions
# =============================================================================


def test_retry_delays_back_off_and_stop():
    options = RetryOptions(
        first_retry_interval_ms=1000,
        max_number_of_attempts=4,
        backoff_coefficient=2.0,
        max_retry_interval_ms=3000,
    )

    assert options.delay_for_attempt(1) == 1000
    assert options.delay_for_attempt(2) == 2000
    assert options.delay_for_attempt(3) == 3000
    assert options.delay_for_attempt(4) is None


def test_retry_presets():
    assert RetryOptions.NONE.delay_for_attempt(1) is None
    assert RetryOptions.STANDARD.max_number_of_attempts == 3
    assert RetryOptions.with_max_attempts(5).max_number_of_attempts == 5


@pytest.mark.parametrize(
    "kwargs",
    [
        {"first_retry_interval_ms": -1, "max_number_of_attempts": 1},
        {"first_retry_interval_ms": 0, "max_number_of_attempts": 0},
        {"first_retry_interval_ms": 0, "max_number_of_attempts": 2, "backoff_coefficient": 0.5},
    ],
)
def test_retry_options_validation(kwargs):
    with pytest.raises(ValueError):
        RetryOptions(**kwargs)


def test_retry_options_dict_round_trip():
    options = RetryOptions(
        first_retry_interval_ms=250,
        max_number_of_attempts=6,
        backoff_coefficient=1.5,
        max_retry_interval_ms=2000,
    )
    assert RetryOptions.from_dict(options.to_dict()) == options


# =============================================================================
# InvocationPayload
# =============================================================================


def test_invocation_payload_parse():
    payload = InvocationPayload.parse(
        json.dumps(
            {
                "instanceId": "abc",
                "isReplaying": True,
                "parentInstanceId": None,
                "input": ["Tokyo"],
                "history": [{"EventType": 0, "Name": "o", "Timestamp": "2019-07-18T06:22:26Z"}],
            }
        )
    )

    assert payload.instance_id == "abc"
    assert payload.input == ["Tokyo"]
    assert payload.is_replaying is True
    assert len(payload.history) == 1


@pytest.mark.parametrize(
    "raw, message",
    [
        ("{", "not valid JSON"),
        ("[]", "must be an object"),
        ({"history": []}, "no instanceId"),
        ({"instanceId": "abc"}, "no history"),
        ({"instanceId": "abc", "history": [], "parentInstanceId": 5}, "parentInstanceId"),
        ({"instanceId": "abc", "history": "nope"}, "not valid JSON"),
    ],
)
def test_invocation_payload_rejects_malformed_input(raw, message):
    with pytest.raises(HistoryFormatError, match=message):
        InvocationPayload.parse(raw)


def test_invocation_payload_to_dict_round_trip():
    raw = {
        "instanceId": "abc",
        "parentInstanceId": "parent",
        "isReplaying": False,
        "input": {"k": 1},
        "history": [{"EventType": 0, "Name": "o", "Timestamp": "2019-07-18T06:22:26Z"}],
    }
    payload = InvocationPayload.parse(raw)
    assert InvocationPayload.parse(payload.to_dict()) == payload


# =============================================================================
# Status and errors
# =============================================================================


def test_pass_status_values():
    assert str(PassStatus.SUCCESS) == "success"
    assert PassStatus.FAILED.is_done
    assert not PassStatus.PENDING.is_done


def test_instance_status_terminal():
    assert InstanceStatus.COMPLETED.is_terminal
    assert InstanceStatus.TERMINATED.is_terminal
    assert not InstanceStatus.CONTINUED_AS_NEW.is_terminal
    assert not InstanceStatus.RUNNING.is_terminal


def test_task_failures_are_values():
    failure = ActivityFailedError("charge", "card declined", {"code": 51})

    assert is_task_failure(failure)
    assert not is_task_failure("card declined")
    assert str(failure) == "charge: card declined"
    assert failure == ActivityFailedError("charge", "card declined", {"code": 51})
    assert failure != SubOrchestrationFailedError("charge", "card declined", {"code": 51})


def test_task_failure_without_reason():
    assert str(SubOrchestrationFailedError("child", None)) == "child failed"
