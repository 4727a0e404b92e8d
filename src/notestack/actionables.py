"""Actionable items gathered across notes.

A line is actionable when it carries the actionable marker or a task checkbox
(recognised by :meth:`notestack.parser.NoteParser.extract_actionables`)::

    - [ ] fix the importer #actionable #high      open, high priority
    - [x] ship release notes                      done
    ~~call the vendor~~ #actionable                done (strikethrough)
    Follow up on org/repo#42 #actionable          open, linked to org/repo#42

:class:`ActionableIndex` groups the items of many notes and filters them by
status and priority.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from notestack.note import ActionableItem

STATUSES = ("open", "done")
PRIORITIES = ("high", "medium", "low")


@dataclass
class ActionableIndex:
    items: list[ActionableItem] = field(default_factory=list)

    @property
    def open(self) -> list[ActionableItem]:
        return [a for a in self.items if a.status == "open"]

    @property
    def done(self) -> list[ActionableItem]:
        return [a for a in self.items if a.status == "done"]

    @property
    def by_note(self) -> dict[str, list[ActionableItem]]:
        result: dict[str, list[ActionableItem]] = {}
        for item in self.items:
            result.setdefault(item.source_note, []).append(item)
        return result

    @property
    def by_priority(self) -> dict[str | None, list[ActionableItem]]:
        result: dict[str | None, list[ActionableItem]] = {}
        for item in self.items:
            result.setdefault(item.priority, []).append(item)
        return result

    def filter(self, status: str = "all", priority: str | None = None) -> "ActionableIndex":
        """Keep items with *status* (``open``, ``done`` or ``all``) and *priority*."""
        if status != "all" and status not in STATUSES:
            raise ValueError(f"status must be one of open, done, all; got {status!r}")
        if priority is not None and priority not in PRIORITIES:
            raise ValueError(f"priority must be one of high, medium, low; got {priority!r}")
        return ActionableIndex(
            [
                a
                for a in self.items
                if (status == "all" or a.status == status) and (priority is None or a.priority == priority)
            ]
        )

    def __len__(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict[str, Any]:
        return {"total": len(self.items), "items": [a.to_dict() for a in self.items]}
