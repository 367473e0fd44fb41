"""Rejection feedback memory.

Wisdom is the ordered list of free-text lessons recorded when an operator
rejects a task.  It lives in the store snapshot and survives a reset.
"""

from __future__ import annotations


class WisdomMemory:
    """View over a snapshot's wisdom list.

    Mutations go straight to the wrapped list, so they are persisted with
    the snapshot that owns it.
    """

    def __init__(self, entries: list[str]) -> None:
        self.entries = entries

    def append(self, feedback: str | None) -> bool:
        """Record *feedback*; blank feedback is ignored.

        Returns ``True`` when an entry was added.
        """
        text = (feedback or "").strip()
        if not text:
            return False
        self.entries.append(text)
        return True

    def recent(self, n: int) -> list[str]:
        """The last *n* entries, most recent last."""
        if n <= 0:
            return []
        return list(self.entries[-n:])

    def __len__(self) -> int:
        return len(self.entries)


def render_wisdom(entries: list[str]) -> str:
    if not entries:
        return "(none)"
    return "\n".join(f"- {entry}" for entry in entries)
