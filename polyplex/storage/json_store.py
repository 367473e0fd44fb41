"""JSON document file store.

Writes go to a sibling temp file which then replaces the target with
:func:`os.replace`, so readers never observe a half-written document.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import aiofiles  # type: ignore[import-untyped]

from polyplex.storage.base import TaskStore
from polyplex.utils.exceptions import StoreError
from polyplex.utils.logging import get_logger

logger = get_logger("storage.json")


class JsonFileStore(TaskStore):
    """Stores the whole document as one JSON file at *path*.

    A file that exists but does not parse is moved aside to
    ``<path>.corrupt`` and the store starts over from defaults.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._tmp_path = self.path.with_name(self.path.name + ".tmp")

    async def _load(self) -> Any:
        if not self.path.exists():
            return None
        try:
            async with aiofiles.open(self.path, mode="r", encoding="utf-8") as fh:
                text = await fh.read()
        except OSError as exc:
            raise StoreError(f"Cannot read store at {self.path}: {exc}") from exc

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            corrupt_path = self.path.with_name(self.path.name + ".corrupt")
            logger.error(
                "store_file_corrupt",
                path=str(self.path),
                moved_to=str(corrupt_path),
                error=str(exc),
            )
            try:
                os.replace(self.path, corrupt_path)
            except OSError as move_exc:
                raise StoreError(f"Cannot move corrupt store aside: {move_exc}") from move_exc
            return None

    async def _save(self, document: dict[str, Any]) -> None:
        payload = json.dumps(document, indent=2, ensure_ascii=False)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self._tmp_path, mode="w", encoding="utf-8") as fh:
                await fh.write(payload)
            os.replace(self._tmp_path, self.path)
        except OSError as exc:
            raise StoreError(f"Cannot write store at {self.path}: {exc}") from exc
        logger.debug("store_saved", path=str(self.path), size_bytes=len(payload))
