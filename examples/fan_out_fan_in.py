import asyncio
import logging

from pyreplay import InMemoryHistoryStore, LocalHost, Registry, activity, orchestrator

logging.basicConfig(level=logging.WARNING)


@activity
def list_files(directory: str) -> list[str]:
    return [f"{directory}/part-{n}.csv" for n in range(5)]


@activity
async def count_rows(path: str) -> int:
    await asyncio.sleep(0.01)
    return len(path) * 10


@orchestrator
async def row_count(context):
    files = await context.call_activity("list_files", context.input)

    # One batch of activities; results come back in issuance order
    counts = await context.join_all([context.call_activity("count_rows", path) for path in files])

    context.set_custom_status({"files": len(files)})
    return sum(counts)


async def main():
    registry = Registry()
    for func in (list_files, count_rows, row_count):
        registry.register(func)

    host = LocalHost(InMemoryHistoryStore(), registry)
    instance_id = await host.start_new("row_count", "/data/2019-07-18")
    record = await host.run_until_idle(instance_id)

    print(f"Total rows: {record.output} (status {record.custom_status})")


if __name__ == "__main__":
    asyncio.run(main())
