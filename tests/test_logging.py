"""Tests for replay-safe logging inside orchestration bodies."""

import logging

from conftest import HistoryBuilder

from pyreplay import Orchestrator, ReplayConfig, ReplaySafeLogger

LOGGER_NAME = "pyreplay.orchestration"


async def chatty(context):
    context.logger.info("before greeting")
    greeting = await context.call_activity("say_hello", "Tokyo")
    context.logger.info(f"after greeting: {greeting}")
    return greeting


def _second_pass_history():
    builder = HistoryBuilder()
    task = builder.task_scheduled("say_hello", "Tokyo")
    builder.end_pass()
    builder.task_completed(task, "Hello Tokyo!")
    return builder.build()


def test_replayed_steps_are_not_logged(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)

    Orchestrator(chatty).run(_second_pass_history(), instance_id="abc")

    messages = [record.getMessage() for record in caplog.records if record.name == LOGGER_NAME]
    assert messages == ["after greeting: Hello Tokyo!"]


def test_first_pass_logs_once(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)

    Orchestrator(chatty).run(HistoryBuilder().build(), instance_id="abc")

    messages = [record.getMessage() for record in caplog.records if record.name == LOGGER_NAME]
    assert messages == ["before greeting"]


def test_records_carry_instance_id(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)

    Orchestrator(chatty).run(HistoryBuilder().build(), instance_id="abc")

    (record,) = [record for record in caplog.records if record.name == LOGGER_NAME]
    assert record.instance_id == "abc"


def test_replay_filtering_can_be_disabled(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    config = ReplayConfig(replay_safe_logging=False)

    Orchestrator(chatty, config).run(_second_pass_history(), instance_id="abc")

    messages = [record.getMessage() for record in caplog.records if record.name == LOGGER_NAME]
    assert messages == ["before greeting", "after greeting: Hello Tokyo!"]


def test_adapter_respects_level_and_extra(caplog):
    caplog.set_level(logging.WARNING, logger="tests.replay")
    adapter = ReplaySafeLogger(logging.getLogger("tests.replay"), "xyz", lambda: False)

    adapter.info("hidden by level")
    adapter.warning("shown", extra={"step": 3})

    (record,) = caplog.records
    assert record.getMessage() == "shown"
    assert record.instance_id == "xyz"
    assert record.step == 3


def test_adapter_silent_while_replaying(caplog):
    caplog.set_level(logging.DEBUG, logger="tests.replay")
    replaying = [True]
    adapter = ReplaySafeLogger(logging.getLogger("tests.replay"), "xyz", lambda: replaying[0])

    adapter.error("dropped")
    replaying[0] = False
    adapter.error("kept")

    assert [record.getMessage() for record in caplog.records] == ["kept"]
