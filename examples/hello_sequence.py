import asyncio
import logging

from pyreplay import InMemoryHistoryStore, LocalHost, Registry, activity, orchestrator

logging.basicConfig(level=logging.INFO)


@activity
def say_hello(name: str) -> str:
    return f"Hello {name}!"


@orchestrator
async def hello_cities(context):
    context.logger.info("Greeting cities")
    outputs = []
    for city in context.input:
        outputs.append(await context.call_activity("say_hello", city))
    return outputs


async def main():
    registry = Registry()
    registry.register(say_hello)
    registry.register(hello_cities)

    host = LocalHost(InMemoryHistoryStore(), registry)
    instance_id = await host.start_new("hello_cities", ["Tokyo", "Seattle", "London"])
    record = await host.run_until_idle(instance_id)

    print(f"{record.status.value}: {record.output}")
    for event in await host.get_history(instance_id):
        print(f"  {event.event_id:>3} {event.event_type.name} {event.name or ''}")


if __name__ == "__main__":
    asyncio.run(main())
