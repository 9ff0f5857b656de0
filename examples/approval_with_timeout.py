import asyncio
import logging
from datetime import timedelta

from pyreplay import (
    InMemoryHistoryStore,
    LocalHost,
    Registry,
    ReplayConfig,
    activity,
    orchestrator,
)

logging.basicConfig(level=logging.INFO)


@activity
def request_approval(amount: int) -> str:
    print(f"Approval requested for {amount}")
    return "sent"


@activity
def escalate(amount: int) -> str:
    return f"Escalated request for {amount}"


@orchestrator
async def approval_workflow(context):
    await context.call_activity("request_approval", context.input)

    approval = context.wait_for_event("Approval")
    timeout = context.create_timer(timedelta(seconds=2))
    value, position, _ = await context.select_all([approval, timeout])

    if position == 0:
        return f"Approved: {value}"
    return await context.call_activity("escalate", context.input)


async def main():
    registry = Registry()
    for func in (request_approval, escalate, approval_workflow):
        registry.register(func)

    store = InMemoryHistoryStore()
    host = LocalHost(store, registry)

    # Returns once only the timer is left; nobody waits on it
    approved_id = await host.start_new("approval_workflow", 250)
    await host.run_until_idle(approved_id)
    await host.raise_event(approved_id, "Approval", "manager@example.com")
    record = await host.run_until_idle(approved_id)
    print(record.output)

    # Nobody answers: this host sleeps until the timer fires
    waiting_host = LocalHost(store, registry, ReplayConfig.STRICT)
    timed_out_id = await waiting_host.start_new("approval_workflow", 9000)
    record = await waiting_host.run_until_idle(timed_out_id)
    print(record.output)


if __name__ == "__main__":
    asyncio.run(main())
