"""Entity registry: concurrent drain, failure isolation and stats."""
import logging

import anyio
import pytest

from teamcity_harness.entity_registry import (
    CleanupFailure,
    EntityKind,
    EntityRegistry,
    RegisteredEntity,
    RegistryStats,
)


def make_entity(kind, entity_id, calls=None, error=None):
    async def cleanup():
        if calls is not None:
            calls.append(entity_id)
        if error is not None:
            raise error

    return RegisteredEntity(kind=EntityKind(kind), id=entity_id, cleanup=cleanup)


@pytest.mark.asyncio
async def test_failing_cleanup_does_not_block_siblings(registry, caplog):
    calls = []
    registry.add(make_entity("project", "P1", calls, error=RuntimeError("boom")))
    registry.add(make_entity("user", "alice", calls))

    with caplog.at_level(logging.WARNING, logger="teamcity_harness.entity_registry"):
        failures = await registry.cleanup_all()

    assert sorted(calls) == ["P1", "alice"]
    assert len(registry) == 0
    assert [f.entity.id for f in failures] == ["P1"]
    assert isinstance(failures[0], CleanupFailure)
    assert isinstance(failures[0].cause, RuntimeError)
    warnings = [
        r.getMessage()
        for r in caplog.records
        if r.name == "teamcity_harness.entity_registry" and r.levelno == logging.WARNING
    ]
    assert warnings == ["Failed to cleanup project P1: boom"]


@pytest.mark.asyncio
async def test_cleanup_runs_callbacks_concurrently(registry):
    started = 0
    all_started = anyio.Event()

    async def wait_for_siblings():
        nonlocal started
        started += 1
        if started == 3:
            all_started.set()
        # Deadlocks unless every callback is in flight at the same time.
        with anyio.fail_after(2):
            await all_started.wait()

    for index in range(3):
        registry.add(RegisteredEntity(EntityKind.PROJECT, f"P{index}", wait_for_siblings))

    failures = await registry.cleanup_all()

    assert failures == []
    assert started == 3


@pytest.mark.asyncio
async def test_entities_added_during_drain_are_kept(registry):
    late = make_entity("user", "late")

    async def add_late():
        registry.add(late)

    registry.add(RegisteredEntity(EntityKind.PROJECT, "P1", add_late))

    await registry.cleanup_all()

    assert registry.entities() == [late]


@pytest.mark.asyncio
async def test_cleanup_by_type_leaves_other_kinds(registry):
    calls = []
    registry.add(make_entity("project", "P1", calls))
    registry.add(make_entity("buildType", "BT1", calls))
    registry.add(make_entity("project", "P2", calls))

    await registry.cleanup_by_type("project")

    assert sorted(calls) == ["P1", "P2"]
    assert [e.id for e in registry.entities()] == ["BT1"]
    assert registry.get_stats() == RegistryStats(total=1, by_type={"buildType": 1})


@pytest.mark.asyncio
async def test_cleanup_of_empty_registry(registry):
    assert await registry.cleanup_all() == []


@pytest.mark.asyncio
async def test_drained_entities_removed_even_when_cancelled(registry):
    async def hang():
        await anyio.sleep_forever()

    registry.add(RegisteredEntity(EntityKind.PROJECT, "P1", hang))

    with anyio.move_on_after(0.05):
        await registry.cleanup_all()

    assert len(registry) == 0


def test_add_does_not_deduplicate(registry):
    entity = make_entity("project", "P1")
    registry.add(entity)
    registry.add(entity)

    assert registry.get_stats().total == 2


def test_clear_resets_stats(registry):
    registry.add(make_entity("project", "P1"))
    registry.add(make_entity("user", "u"))

    registry.clear()

    assert registry.get_stats() == RegistryStats(total=0, by_type={})


def test_stats_are_a_snapshot(registry):
    registry.add(make_entity("project", "P1"))
    stats = registry.get_stats()

    registry.add(make_entity("project", "P2"))

    assert stats.by_type == {"project": 1}
    assert registry.get_stats().by_type == {"project": 2}


def test_registries_are_independent():
    first, second = EntityRegistry(), EntityRegistry()
    first.add(make_entity("project", "P1"))

    assert len(second) == 0
