"""In-process task store, used by tests and ephemeral deployments."""

from __future__ import annotations

import copy
from typing import Any

from polyplex.storage.base import TaskStore


class MemoryStore(TaskStore):
    """Keeps the document in a dict.

    Documents are deep-copied on the way in and out, so snapshots never
    alias stored state.
    """

    def __init__(self, document: dict[str, Any] | None = None) -> None:
        super().__init__()
        self._document = copy.deepcopy(document)

    async def _load(self) -> Any:
        return copy.deepcopy(self._document)

    async def _save(self, document: dict[str, Any]) -> None:
        self._document = copy.deepcopy(document)
