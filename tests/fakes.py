"""In-memory stand-in for ``TodoRepository``.

Returns rows shaped exactly like the SQL repository (plain dicts keyed by
column name) so orchestrators and routes can be exercised without a
database.
"""

from __future__ import annotations

import copy
import itertools
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from todo_api.core.models import HistoryAction, NewTodo, Priority, TodoChanges, TodoFilter

_TODO_FIELDS = (
    "id",
    "title",
    "description",
    "completed",
    "priority",
    "user_id",
    "category_id",
    "created_at",
    "updated_at",
)


class InMemoryTodoRepository:
    def __init__(self):
        self.users: dict[int, dict] = {}
        self.categories: dict[int, dict] = {}
        self.tags: dict[int, dict] = {}
        self.todos: dict[int, dict] = {}
        self.tag_links: dict[tuple[int, int], datetime] = {}
        self.notes: dict[int, dict] = {}
        self.history: dict[int, dict] = {}
        self.attachments: dict[int, dict] = {}
        self.edges: set[tuple[int, int]] = set()

        self._counters = defaultdict(lambda: itertools.count(1))
        # writes tick forward 1 ms from here, so stamps stay behind utc_now()
        self._clock = datetime.now(timezone.utc) - timedelta(minutes=1)

    # --- Fixture helpers ---

    def _now(self) -> datetime:
        self._clock += timedelta(milliseconds=1)
        return self._clock

    def _next_id(self, table: str) -> int:
        return next(self._counters[table])

    def add_user(self, name: str, email: str) -> int:
        user_id = self._next_id("users")
        now = self._now()
        self.users[user_id] = {
            "id": user_id,
            "name": name,
            "email": email,
            "created_at": now,
            "updated_at": now,
        }
        return user_id

    def add_category(self, name: str, description: str | None = None) -> int:
        category_id = self._next_id("categories")
        now = self._now()
        self.categories[category_id] = {
            "id": category_id,
            "name": name,
            "description": description,
            "created_at": now,
            "updated_at": now,
        }
        return category_id

    def add_tag(self, name: str) -> int:
        tag_id = self._next_id("tags")
        now = self._now()
        self.tags[tag_id] = {
            "id": tag_id,
            "name": name,
            "created_at": now,
            "updated_at": now,
        }
        return tag_id

    def add_attachment(self, todo_id: int, filename: str, mime_type: str = "text/plain") -> int:
        attachment_id = self._next_id("attachments")
        self.attachments[attachment_id] = {
            "id": attachment_id,
            "filename": filename,
            "filepath": f"/uploads/{filename}",
            "mime_type": mime_type,
            "todo_id": todo_id,
            "created_at": self._now(),
        }
        return attachment_id

    def history_of(self, todo_id: int) -> list[dict]:
        """History rows of a todo, oldest first."""
        rows = [h for h in self.history.values() if h["todo_id"] == todo_id]
        return sorted(rows, key=lambda h: (h["created_at"], h["id"]))

    # --- Internals ---

    @contextmanager
    def _transaction(self):
        state = copy.deepcopy(
            (
                self.todos,
                self.tag_links,
                self.notes,
                self.history,
                self.attachments,
                self.edges,
            )
        )
        try:
            yield
        except Exception:
            (
                self.todos,
                self.tag_links,
                self.notes,
                self.history,
                self.attachments,
                self.edges,
            ) = state
            raise

    def _matches(self, todo: dict, todo_filter: TodoFilter | None) -> bool:
        if todo_filter is None:
            return True
        f = todo_filter
        if f.completed is not None and todo["completed"] != f.completed:
            return False
        if f.search:
            needle = f.search.lower()
            haystacks = (todo["title"].lower(), (todo["description"] or "").lower())
            if not any(needle in h for h in haystacks):
                return False
        if f.priority is not None and todo["priority"] != Priority(f.priority).value:
            return False
        if f.category_id is not None:
            if todo["category_id"] != f.category_id:
                return False
        elif f.uncategorized and todo["category_id"] is not None:
            return False
        if f.user_id is not None and todo["user_id"] != f.user_id:
            return False
        if f.tag_id is not None and (todo["id"], f.tag_id) not in self.tag_links:
            return False
        if f.tag_ids is not None and not any(
            (todo["id"], tag_id) in self.tag_links for tag_id in f.tag_ids
        ):
            return False
        if f.exclude_id is not None and todo["id"] == f.exclude_id:
            return False
        return True

    def _filtered(self, todo_filter: TodoFilter | None) -> list[dict]:
        return [t for t in self.todos.values() if self._matches(t, todo_filter)]

    def _summary(self, todo_id: int) -> dict:
        todo = self.todos[todo_id]
        return {
            "id": todo["id"],
            "title": todo["title"],
            "completed": todo["completed"],
            "priority": todo["priority"],
        }

    def _tags_of(self, todo_id: int) -> list[dict]:
        links = sorted(
            ((assigned, tag_id) for (t_id, tag_id), assigned in self.tag_links.items() if t_id == todo_id)
        )
        return [dict(self.tags[tag_id]) for _, tag_id in links]

    def _with_relations(self, todo: dict, history_limit: int | None) -> dict:
        todo_id = todo["id"]
        row = dict(todo)
        row["category"] = copy.copy(self.categories.get(todo["category_id"]))
        row["user"] = copy.copy(self.users.get(todo["user_id"]))
        row["tags"] = self._tags_of(todo_id)
        row["notes"] = sorted(
            (dict(n) for n in self.notes.values() if n["todo_id"] == todo_id),
            key=lambda n: (n["created_at"], n["id"]),
            reverse=True,
        )
        row["dependencies"] = [
            self._summary(dep) for (owner, dep) in sorted(self.edges) if owner == todo_id
        ]
        row["dependency_of"] = [
            self._summary(owner)
            for (owner, dep) in sorted(self.edges, key=lambda e: e[0])
            if dep == todo_id
        ]
        history = list(reversed(self.history_of(todo_id)))
        row["history"] = [dict(h) for h in (history if history_limit is None else history[:history_limit])]
        row["attachments"] = sorted(
            (dict(a) for a in self.attachments.values() if a["todo_id"] == todo_id),
            key=lambda a: a["id"],
        )
        return row

    def _append_history(self, todo_id: int, action: HistoryAction, description: str) -> None:
        history_id = self._next_id("history")
        self.history[history_id] = {
            "id": history_id,
            "todo_id": todo_id,
            "action": action.value,
            "description": description,
            "created_at": self._now(),
        }

    # --- Reads ---

    def count_todos(self, todo_filter: TodoFilter | None = None) -> int:
        return len(self._filtered(todo_filter))

    def list_todos(self, todo_filter=None, page: int = 1, limit: int = 10) -> list[dict]:
        todos = sorted(
            self._filtered(todo_filter),
            key=lambda t: (t["created_at"], t["id"]),
            reverse=True,
        )
        offset = (page - 1) * limit
        return [self._with_relations(t, 5) for t in todos[offset : offset + limit]]

    def get_todo(self, todo_id: int, history_limit: int | None = None) -> dict | None:
        todo = self.todos.get(todo_id)
        if todo is None:
            return None
        return self._with_relations(todo, history_limit)

    def find_todo_summaries(self, todo_filter=None, limit: int = 5) -> list[dict]:
        todos = sorted(self._filtered(todo_filter), key=lambda t: t["id"])
        return [self._summary(t["id"]) for t in todos[:limit]]

    def related_by_tags(self, todo_id: int, tag_ids: list[int], limit: int = 5) -> list[dict]:
        if not tag_ids:
            return []
        todos = self.find_todo_summaries(
            TodoFilter(tag_ids=tag_ids, exclude_id=todo_id), limit=limit
        )
        return [
            {"id": t["id"], "title": t["title"], "tags": self._tags_of(t["id"])}
            for t in todos
        ]

    def count_by_priority(self) -> list[dict]:
        counts: dict[str, int] = defaultdict(int)
        for todo in self.todos.values():
            counts[todo["priority"]] += 1
        return [{"priority": p, "count": c} for p, c in sorted(counts.items())]

    def count_by_category(self) -> list[dict]:
        return [
            {
                "name": category["name"],
                "count": sum(1 for t in self.todos.values() if t["category_id"] == category_id),
            }
            for category_id, category in sorted(self.categories.items())
        ]

    def recently_updated(self, window_days: int = 7, limit: int = 5) -> list[dict]:
        since = datetime.now(timezone.utc) - timedelta(days=window_days)
        todos = sorted(
            (t for t in self.todos.values() if t["updated_at"] >= since),
            key=lambda t: t["updated_at"],
            reverse=True,
        )
        return [
            {"id": t["id"], "title": t["title"], "updated_at": t["updated_at"]}
            for t in todos[:limit]
        ]

    def most_used_tags(self, limit: int = 5) -> list[dict]:
        usage = [
            {
                "id": tag_id,
                "name": tag["name"],
                "count": sum(1 for (_, t_id) in self.tag_links if t_id == tag_id),
            }
            for tag_id, tag in self.tags.items()
        ]
        usage.sort(key=lambda u: (-u["count"], u["id"]))
        return usage[:limit]

    def existing_ids(self, entity: str, ids) -> set[int]:
        table = {
            "users": self.users,
            "categories": self.categories,
            "tags": self.tags,
            "todos": self.todos,
        }[entity]
        return {i for i in ids if i in table}

    def note_ids_of(self, todo_id: int, note_ids) -> set[int]:
        return {
            i for i in note_ids if i in self.notes and self.notes[i]["todo_id"] == todo_id
        }

    def dependent_ids(self, todo_id: int, transitive: bool = False) -> set[int]:
        found: set[int] = set()
        frontier = {todo_id}
        while frontier:
            step = {owner for (owner, dep) in self.edges if dep in frontier} - found
            found |= step
            if not transitive:
                break
            frontier = step
        return found

    def unblocked_dependents(self, todo_id: int) -> list[dict]:
        result = []
        for owner in sorted(self.dependent_ids(todo_id)):
            others = [
                dep for (o, dep) in self.edges if o == owner and dep != todo_id
            ]
            if all(self.todos[dep]["completed"] for dep in others):
                result.append({"id": owner, "title": self.todos[owner]["title"]})
        return result

    # --- Mutations ---

    def create_todo(self, new_todo: NewTodo, before_link=None) -> int:
        with self._transaction():
            todo_id = self._next_id("todos")
            now = self._now()
            self.todos[todo_id] = {
                "id": todo_id,
                "title": new_todo.title,
                "description": new_todo.description,
                "completed": False,
                "priority": Priority(new_todo.priority).value,
                "user_id": new_todo.user_id,
                "category_id": new_todo.category_id,
                "created_at": now,
                "updated_at": now,
            }
            for tag_id in dict.fromkeys(new_todo.tag_ids):
                self.tag_links[(todo_id, tag_id)] = self._now()
            for content in new_todo.notes:
                self._add_note(todo_id, content)
            self._append_history(todo_id, HistoryAction.CREATED, "Todo was created")

            if before_link is not None:
                before_link(todo_id, self)
            for dep_id in new_todo.dependencies:
                if dep_id == todo_id or dep_id not in self.todos:
                    raise ValueError(f"invalid dependency {dep_id}")
                self.edges.add((todo_id, dep_id))
        return todo_id

    def _add_note(self, todo_id: int, content: str) -> None:
        note_id = self._next_id("notes")
        now = self._now()
        self.notes[note_id] = {
            "id": note_id,
            "content": content,
            "todo_id": todo_id,
            "created_at": now,
            "updated_at": now,
        }

    def update_todo(self, todo_id: int, changes: TodoChanges) -> bool:
        if todo_id not in self.todos:
            return False
        with self._transaction():
            todo = self.todos[todo_id]
            for column, value in changes.fields.items():
                if column == "priority" and value is not None:
                    value = Priority(value).value
                todo[column] = value
            todo["updated_at"] = self._now()

            for tag_id in changes.remove_tags:
                self.tag_links.pop((todo_id, tag_id), None)
            for tag_id in changes.add_tags:
                self.tag_links.setdefault((todo_id, tag_id), self._now())
            for content in changes.add_notes:
                self._add_note(todo_id, content)
            for note_id in changes.remove_notes:
                if self.notes.get(note_id, {}).get("todo_id") == todo_id:
                    del self.notes[note_id]
            for dep_id in changes.add_dependencies:
                self.edges.add((todo_id, dep_id))
            for dep_id in changes.remove_dependencies:
                self.edges.discard((todo_id, dep_id))

            self._append_history(
                todo_id,
                HistoryAction.UPDATED,
                f"Updated fields: {', '.join(changes.changed_fields)}",
            )
        return True

    def delete_todo(self, todo_id: int) -> bool:
        if todo_id not in self.todos:
            return False
        with self._transaction():
            del self.todos[todo_id]
            self.tag_links = {k: v for k, v in self.tag_links.items() if k[0] != todo_id}
            self.notes = {k: v for k, v in self.notes.items() if v["todo_id"] != todo_id}
            self.history = {k: v for k, v in self.history.items() if v["todo_id"] != todo_id}
            self.attachments = {
                k: v for k, v in self.attachments.items() if v["todo_id"] != todo_id
            }
            self.edges = {e for e in self.edges if todo_id not in e}
        return True

    def toggle_completion(self, todo_id: int) -> dict | None:
        todo = self.todos.get(todo_id)
        if todo is None:
            return None
        with self._transaction():
            todo["completed"] = not todo["completed"]
            todo["updated_at"] = self._now()
            if todo["completed"]:
                self._append_history(
                    todo_id, HistoryAction.COMPLETED, "Todo was marked as completed"
                )
            else:
                self._append_history(todo_id, HistoryAction.REOPENED, "Todo was reopened")
        return {name: todo[name] for name in _TODO_FIELDS}
