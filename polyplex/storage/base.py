"""Task store interface.

The store holds one JSON-shaped document (:class:`StoreSnapshot`).  Every
decision that depends on stored state is made on a freshly read snapshot
inside :meth:`TaskStore.edit`, which serializes read-modify-write sections
with an :class:`asyncio.Lock`.  No lock is ever held across a completion
call; callers keep those outside ``edit`` blocks.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from pydantic import BaseModel, ValidationError

from polyplex.core.task.models import (
    OrchestratorState,
    RuntimeSettings,
    StoreSnapshot,
    StreamEntry,
    Task,
)
from polyplex.utils.logging import get_logger

logger = get_logger("storage")


def heal(document: Any) -> StoreSnapshot:
    """Build a snapshot from a raw document, repairing what it can.

    Missing or malformed top-level fields fall back to defaults; individually
    malformed tasks and stream entries are dropped with a warning.
    """
    if not isinstance(document, dict):
        if document is not None:
            logger.warning("store_document_malformed", kind=type(document).__name__)
        return StoreSnapshot()

    tasks = _heal_items(document.get("tasks"), Task, "task")
    stream = _heal_items(document.get("stream"), StreamEntry, "stream_entry")

    wisdom_raw = document.get("wisdom")
    wisdom = [item for item in wisdom_raw if isinstance(item, str)] if isinstance(wisdom_raw, list) else []

    return StoreSnapshot(
        tasks=tasks,
        stream=stream,
        wisdom=wisdom,
        settings=_heal_one(document.get("settings"), RuntimeSettings),
        orchestrator=_heal_one(document.get("orchestrator"), OrchestratorState),
    )


def _heal_items(raw: Any, model: type[BaseModel], kind: str) -> list:
    if not isinstance(raw, list):
        return []
    healed = []
    for index, item in enumerate(raw):
        try:
            healed.append(model.model_validate(item))
        except ValidationError as exc:
            item_id = item.get("id") if isinstance(item, dict) else None
            logger.warning(
                "store_item_dropped",
                kind=kind,
                index=index,
                item_id=item_id,
                errors=exc.error_count(),
            )
    return healed


def _heal_one(raw: Any, model: type[BaseModel]):
    if isinstance(raw, dict):
        try:
            return model.model_validate(raw)
        except ValidationError as exc:
            logger.warning("store_section_reset", section=model.__name__, errors=exc.error_count())
    return model()


class TaskStore(ABC):
    """Abstract whole-document store.

    Subclasses implement :meth:`_load` and :meth:`_save` on raw
    JSON-compatible documents; this base class handles healing, encoding and
    locking.  Persistence failures raise
    :class:`~polyplex.utils.exceptions.StoreError`.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @abstractmethod
    async def _load(self) -> Any:
        """Return the raw stored document, or ``None`` when nothing is stored."""

    @abstractmethod
    async def _save(self, document: dict[str, Any]) -> None:
        """Replace the stored document."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def read(self) -> StoreSnapshot:
        return heal(await self._load())

    async def write(self, snapshot: StoreSnapshot) -> None:
        async with self._lock:
            await self._save(snapshot.model_dump(mode="json"))

    @asynccontextmanager
    async def edit(self) -> AsyncIterator[StoreSnapshot]:
        """Locked read-modify-write.

        Yields a fresh snapshot; it is written back when the block exits
        normally.  If the block raises, nothing is written.
        """
        async with self._lock:
            snapshot = heal(await self._load())
            yield snapshot
            await self._save(snapshot.model_dump(mode="json"))
