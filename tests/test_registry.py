"""Tests for the @orchestrator/@activity decorators and the Registry."""

import pytest

from pyreplay import Orchestrator, Registry, ReplayConfig, activity, orchestrator
from pyreplay.decorators import (
    ACTIVITY_KIND,
    ORCHESTRATOR_KIND,
    registration_kind,
    registration_name,
)


@orchestrator
async def hello_cities(context):
    return None


@orchestrator(name="HelloCitiesV2")
async def hello_cities_v2(context):
    return None


@activity
def say_hello(name):
    return f"Hello {name}!"


@activity(name="SayGoodbye")
async def say_goodbye(name):
    return f"Goodbye {name}!"


def plain(context):
    return None


# =============================================================================
# Decorators
# =============================================================================


def test_decorators_mark_kind_and_name():
    assert registration_kind(hello_cities) == ORCHESTRATOR_KIND
    assert registration_name(hello_cities) == "hello_cities"
    assert registration_name(hello_cities_v2) == "HelloCitiesV2"
    assert registration_kind(say_goodbye) == ACTIVITY_KIND
    assert registration_name(say_goodbye) == "SayGoodbye"


def test_decorators_return_the_function():
    assert say_hello("Tokyo") == "Hello Tokyo!"


def test_undecorated_function_has_no_kind():
    assert registration_kind(plain) is None
    assert registration_name(plain) == "plain"


def test_decorator_rejects_non_callable():
    with pytest.raises(TypeError, match="callable"):
        activity(42)


# =============================================================================
# Registry
# =============================================================================


def test_register_by_mark():
    registry = Registry()
    for func in (hello_cities, hello_cities_v2, say_hello, say_goodbye):
        registry.register(func)

    assert registry.orchestrator_names == ["HelloCitiesV2", "hello_cities"]
    assert registry.activity_names == ["SayGoodbye", "say_hello"]
    assert len(registry) == 4
    assert isinstance(registry.get_orchestrator("hello_cities"), Orchestrator)
    assert registry.get_activity("say_hello") is say_hello


def test_register_undecorated_requires_explicit_kind():
    registry = Registry()

    with pytest.raises(ValueError, match="not decorated"):
        registry.register(plain)

    driver = registry.register_orchestrator(plain, name="Plain")
    assert driver.name == "Plain"
    assert registry.get_orchestrator("Plain") is driver


def test_duplicate_names_are_rejected():
    registry = Registry()
    registry.register(say_hello)

    with pytest.raises(ValueError, match="already registered"):
        registry.register_activity(lambda name: name, name="say_hello")


def test_registry_config_reaches_orchestrators():
    registry = Registry(ReplayConfig.LENIENT)

    assert registry.register_orchestrator(hello_cities).config is ReplayConfig.LENIENT
    assert (
        registry.register_orchestrator(plain, config=ReplayConfig.STRICT).config
        is ReplayConfig.STRICT
    )


def test_unknown_names_return_none():
    registry = Registry()

    assert registry.is_empty()
    assert registry.get_orchestrator("missing") is None
    assert registry.get_activity("missing") is None
