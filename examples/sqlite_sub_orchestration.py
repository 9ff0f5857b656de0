import asyncio
import logging

from pyreplay import (
    LocalHost,
    Registry,
    RetryOptions,
    SqliteHistoryStore,
    activity,
    is_task_failure,
    orchestrator,
)

logging.basicConfig(level=logging.WARNING)

attempts = {"charge": 0}


@activity
def charge(order: dict) -> str:
    attempts["charge"] += 1
    if attempts["charge"] < 3:
        raise ConnectionError("payment gateway unavailable")
    return f"charged {order['total']}"


@activity
def ship(order: dict) -> str:
    return f"shipped {order['id']}"


@orchestrator
async def process_order(context):
    retry = RetryOptions(first_retry_interval_ms=100, max_number_of_attempts=5)
    receipt = await context.call_activity_with_retry("charge", retry, context.input)
    if is_task_failure(receipt):
        raise receipt
    tracking = await context.call_activity("ship", context.input)
    return {"receipt": receipt, "tracking": tracking}


@orchestrator
async def process_orders(context):
    results = await context.join_all(
        [context.call_sub_orchestrator("process_order", order) for order in context.input]
    )
    return [result if not is_task_failure(result) else str(result) for result in results]


async def main():
    registry = Registry()
    for func in (charge, ship, process_order, process_orders):
        registry.register(func)

    store = SqliteHistoryStore("data/orders.db")
    await store.connect()
    async with store:
        await store.reset()
        host = LocalHost(store, registry)

        orders = [{"id": "A-1", "total": 30}, {"id": "A-2", "total": 12}]
        instance_id = await host.start_new("process_orders", orders)
        record = await host.run_until_idle(instance_id)

        print(f"{record.status.value}: {record.output}")
        print(f"charge attempts: {attempts['charge']}")


if __name__ == "__main__":
    asyncio.run(main())
