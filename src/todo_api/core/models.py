"""Domain models for Todo API."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Priority(str, Enum):
    """Priority level for a todo item."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class HistoryAction(str, Enum):
    """Action recorded in a todo's history log."""

    CREATED = "CREATED"
    UPDATED = "UPDATED"
    COMPLETED = "COMPLETED"
    REOPENED = "REOPENED"


@dataclass
class TodoFilter:
    """Predicate over todos. Set fields AND together; unset fields match all."""

    completed: bool | None = None
    search: str | None = None
    priority: Priority | None = None
    category_id: int | None = None
    user_id: int | None = None
    tag_id: int | None = None
    tag_ids: list[int] | None = None
    exclude_id: int | None = None
    uncategorized: bool = False


@dataclass
class NewTodo:
    title: str
    description: str | None = None
    priority: Priority = Priority.MEDIUM
    user_id: int | None = None
    category_id: int | None = None
    tag_ids: list[int] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    dependencies: list[int] = field(default_factory=list)


@dataclass
class TodoChanges:
    """Partial update of a todo.

    ``fields`` only holds the columns present in the request, so an absent
    column is left untouched while an explicit ``None`` clears it.
    """

    fields: dict = field(default_factory=dict)
    add_tags: list[int] = field(default_factory=list)
    remove_tags: list[int] = field(default_factory=list)
    add_notes: list[str] = field(default_factory=list)
    remove_notes: list[int] = field(default_factory=list)
    add_dependencies: list[int] = field(default_factory=list)
    remove_dependencies: list[int] = field(default_factory=list)
    changed_fields: list[str] = field(default_factory=list)
