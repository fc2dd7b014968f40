"""Tracks entities created during a test so they can be deleted afterwards.

One registry lives per worker process; the test lifecycle hooks call
``clear()`` before each test and ``await cleanup_all()`` after it.

Cleanup callbacks run concurrently and in no particular order: deleting a
project may race the deletion of a build type inside it, in which case the
build type's callback fails with a 404 and is logged as a warning.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List

import anyio

logger = logging.getLogger(__name__)

CleanupCallback = Callable[[], Awaitable[None]]


class EntityKind(str, Enum):
    PROJECT = "project"
    BUILD_TYPE = "buildType"
    USER = "user"
    UNKNOWN = "unknown"


@dataclass(frozen=True, eq=False)
class RegisteredEntity:
    kind: EntityKind
    id: str
    cleanup: CleanupCallback = field(repr=False)
    display_name: str | None = None
    source_url: str | None = None

    def describe(self) -> str:
        label = f"{self.kind.value} {self.id}"
        if self.display_name and self.display_name != self.id:
            label += f" ({self.display_name})"
        return label


@dataclass(frozen=True)
class RegistryStats:
    total: int
    by_type: Dict[str, int]


class CleanupFailure(Exception):
    """A cleanup callback raised; returned by the drain, never raised by it."""

    def __init__(self, entity: RegisteredEntity, cause: BaseException):
        super().__init__(f"Failed to cleanup {entity.kind.value} {entity.id}: {cause}")
        self.entity = entity
        self.cause = cause


class EntityRegistry:
    """Ordered, per-process collection of created entities."""

    def __init__(self) -> None:
        self._entities: List[RegisteredEntity] = []

    def add(self, entity: RegisteredEntity) -> None:
        self._entities.append(entity)
        logger.debug(f"Registered {entity.describe()} for cleanup")

    def entities(self) -> List[RegisteredEntity]:
        return list(self._entities)

    def entities_by_type(self, kind: EntityKind | str) -> List[RegisteredEntity]:
        wanted = EntityKind(kind)
        return [entity for entity in self._entities if entity.kind is wanted]

    def clear(self) -> None:
        """Forget every entity without deleting anything."""
        if self._entities:
            logger.debug(f"Clearing {len(self._entities)} registered entities without cleanup")
        self._entities = []

    def get_stats(self) -> RegistryStats:
        counts = Counter(entity.kind.value for entity in self._entities)
        return RegistryStats(total=len(self._entities), by_type=dict(counts))

    def __len__(self) -> int:
        return len(self._entities)

    async def cleanup_all(self) -> List[CleanupFailure]:
        """Run every cleanup callback concurrently and drop the drained entities."""
        return await self._drain(list(self._entities))

    async def cleanup_by_type(self, kind: EntityKind | str) -> List[CleanupFailure]:
        """Same as ``cleanup_all`` restricted to one kind; others stay registered."""
        return await self._drain(self.entities_by_type(kind))

    async def _drain(self, batch: List[RegisteredEntity]) -> List[CleanupFailure]:
        if not batch:
            return []

        logger.info(f"Cleaning up {len(batch)} registered entities")
        failures: List[CleanupFailure] = []

        async def run(entity: RegisteredEntity) -> None:
            try:
                await entity.cleanup()
            except Exception as exc:
                failure = CleanupFailure(entity, exc)
                logger.warning(str(failure))
                failures.append(failure)
            else:
                logger.debug(f"Cleaned up {entity.describe()}")

        try:
            async with anyio.create_task_group() as tg:
                for entity in batch:
                    tg.start_soon(run, entity)
        finally:
            drained = {id(entity) for entity in batch}
            self._entities = [entity for entity in self._entities if id(entity) not in drained]

        if failures:
            logger.info(f"Cleanup finished with {len(failures)} failure(s) out of {len(batch)}")
        return failures
