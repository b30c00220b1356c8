"""Tests for agent configuration and handler bindings."""
from __future__ import annotations

import json

import pytest

from agentmux.core.errors import HandlerNotRegistered, NotFoundError, ValidationError
from agentmux.core.models import parse_agent_config
from agentmux.orchestration.registry import AgentRegistry
from agentmux.orchestration.store import InMemoryConfigStore, JsonFileConfigStore, load_config_directory


def make_config(agent_id: str = "echo-agent", **overrides) -> dict:
    config = {
        "id": agent_id,
        "name": f"{agent_id} name",
        "enabled": True,
        "version": "1.0.0",
        "capabilities": ["run"],
    }
    config.update(overrides)
    return config


class FailingStore(InMemoryConfigStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def save_all(self, configs) -> None:
        if self.fail:
            raise OSError("disk full")
        super().save_all(configs)


@pytest.mark.anyio
async def test_create_then_get_returns_equivalent_config() -> None:
    registry = AgentRegistry()
    agent_id = await registry.create(make_config(description="echoes", metadata={"team": "infra"}))

    stored = registry.get(agent_id)
    assert stored is not None
    assert stored.model_dump() == {
        **make_config(),
        "description": "echoes",
        "metadata": {"team": "infra"},
    }


@pytest.mark.anyio
async def test_list_preserves_insertion_order() -> None:
    registry = AgentRegistry()
    for agent_id in ("b-agent", "a-agent", "c-agent"):
        await registry.create(make_config(agent_id))

    assert [config.id for config in registry.list()] == ["b-agent", "a-agent", "c-agent"]


@pytest.mark.anyio
@pytest.mark.parametrize(
    "overrides",
    [
        {"version": "1.0"},
        {"version": "v1.0.0"},
        {"id": ""},
        {"enabled": "yes"},
        {"unexpected": 1},
    ],
)
async def test_create_rejects_invalid_config(overrides: dict) -> None:
    registry = AgentRegistry()
    with pytest.raises(ValidationError):
        await registry.create(make_config(**overrides))
    assert registry.list() == []


@pytest.mark.anyio
async def test_create_requires_enabled_flag() -> None:
    config = make_config()
    del config["enabled"]
    with pytest.raises(ValidationError):
        await AgentRegistry().create(config)


@pytest.mark.anyio
async def test_capabilities_are_an_ordered_set() -> None:
    registry = AgentRegistry()
    await registry.create(make_config(capabilities=["b", "a", "b", "c", "a"]))
    assert registry.get("echo-agent").capabilities == ["b", "a", "c"]


@pytest.mark.anyio
async def test_duplicate_create_replaces_existing_config() -> None:
    registry = AgentRegistry()
    await registry.create(make_config(name="first"))
    await registry.create(make_config(name="second"))

    assert len(registry.list()) == 1
    assert registry.get("echo-agent").name == "second"


@pytest.mark.anyio
async def test_update_unknown_id_fails_and_leaves_registry_unchanged() -> None:
    store = InMemoryConfigStore()
    registry = AgentRegistry(store)
    await registry.create(make_config())
    before = [config.model_dump() for config in registry.list()]
    saves = store.save_count

    with pytest.raises(NotFoundError):
        await registry.update("missing", {"name": "x"})

    assert [config.model_dump() for config in registry.list()] == before
    assert store.save_count == saves


@pytest.mark.anyio
async def test_update_merges_and_persists() -> None:
    store = InMemoryConfigStore()
    registry = AgentRegistry(store)
    await registry.create(make_config())

    updated = await registry.update("echo-agent", {"version": "1.1.0", "enabled": False})

    assert updated.version == "1.1.0"
    assert updated.enabled is False
    assert updated.name == "echo-agent name"
    assert store.load_all()[0].version == "1.1.0"


@pytest.mark.anyio
async def test_invalid_update_is_rejected_atomically() -> None:
    registry = AgentRegistry()
    await registry.create(make_config())

    with pytest.raises(ValidationError):
        await registry.update("echo-agent", {"name": "renamed", "version": "not-semver"})

    config = registry.get("echo-agent")
    assert config.name == "echo-agent name"
    assert config.version == "1.0.0"


@pytest.mark.anyio
async def test_update_cannot_change_id() -> None:
    registry = AgentRegistry()
    await registry.create(make_config())
    with pytest.raises(ValidationError):
        await registry.update("echo-agent", {"id": "other"})


@pytest.mark.anyio
async def test_failed_persist_leaves_prior_state() -> None:
    store = FailingStore()
    registry = AgentRegistry(store)
    await registry.create(make_config())
    store.fail = True

    with pytest.raises(OSError):
        await registry.update("echo-agent", {"name": "renamed"})

    assert registry.get("echo-agent").name == "echo-agent name"


@pytest.mark.anyio
async def test_register_handler_overwrite_invalidates_memoized_handler() -> None:
    registry = AgentRegistry()

    async def first(task):
        return "first"

    async def second(task):
        return "second"

    registry.register_handler("echo-agent", lambda: first)
    assert await registry.resolve_handler("echo-agent") is first

    registry.register_handler("echo-agent", lambda: second)
    assert registry.slot("echo-agent").handler is None
    assert await registry.resolve_handler("echo-agent") is second


@pytest.mark.anyio
async def test_invalidate_handler_forces_reload() -> None:
    registry = AgentRegistry()

    async def handler(task):
        return None

    registry.register_handler("echo-agent", lambda: handler)
    await registry.resolve_handler("echo-agent")
    registry.invalidate_handler("echo-agent")
    await registry.resolve_handler("echo-agent")

    assert registry.slot("echo-agent").load_count == 2


def test_invalidate_unknown_handler_raises() -> None:
    with pytest.raises(HandlerNotRegistered):
        AgentRegistry().invalidate_handler("ghost")


def test_register_handler_without_config_is_allowed() -> None:
    registry = AgentRegistry()
    registry.register_handler("early-agent", lambda: None)
    assert registry.has_handler("early-agent")
    assert registry.get("early-agent") is None


@pytest.mark.anyio
async def test_bootstrap_keeps_existing_configs_and_persists_once() -> None:
    store = InMemoryConfigStore()
    registry = AgentRegistry(store)
    await registry.create(make_config("echo-agent", name="runtime"))
    saves = store.save_count

    added = await registry.bootstrap(
        [
            parse_agent_config(make_config("echo-agent", name="from-disk")),
            parse_agent_config(make_config("tmux-agent")),
        ]
    )

    assert added == ["tmux-agent"]
    assert registry.get("echo-agent").name == "runtime"
    assert [config.id for config in store.load_all()] == ["echo-agent", "tmux-agent"]
    assert store.save_count == saves + 1


def test_load_config_directory_skips_invalid_files(tmp_path) -> None:
    (tmp_path / "a.json").write_text(json.dumps(make_config("a-agent")), "utf-8")
    (tmp_path / "b.json").write_text("{not json", "utf-8")
    (tmp_path / "c.json").write_text(json.dumps(make_config("c-agent", version="1")), "utf-8")
    (tmp_path / "notes.txt").write_text("ignored", "utf-8")

    configs = load_config_directory(tmp_path)

    assert [config.id for config in configs] == ["a-agent"]


def test_load_config_directory_missing_returns_empty(tmp_path) -> None:
    assert load_config_directory(tmp_path / "nope") == []


@pytest.mark.anyio
async def test_json_file_store_survives_restart(tmp_path) -> None:
    path = tmp_path / "state" / "agents.json"
    registry = AgentRegistry(JsonFileConfigStore(path))
    await registry.create(make_config("a-agent"))
    await registry.create(make_config("b-agent"))

    restarted = AgentRegistry(JsonFileConfigStore(path))
    assert await restarted.load() == 2
    assert [config.id for config in restarted.list()] == ["a-agent", "b-agent"]
