"""Todo repository: explicit SQL over the pooled psycopg connection.

Relations are never loaded lazily. A page of todos costs one query for the
rows plus one batched ``= ANY(ids)`` query per relation.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

import psycopg
import structlog

from todo_api.core.models import HistoryAction, NewTodo, Priority, TodoChanges, TodoFilter
from todo_api.db.postgres import PostgresDB, TransactionScope, get_db

logger = structlog.get_logger()

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
_TODO_COLUMNS = ", ".join(f"t.{name}" for name in _TODO_FIELDS)
_TODO_RETURNING = ", ".join(_TODO_FIELDS)

_UPDATABLE_COLUMNS = (
    "title",
    "description",
    "completed",
    "priority",
    "category_id",
    "user_id",
)

_REFERENCE_TABLES = {
    "users": "users",
    "categories": "categories",
    "tags": "tags",
    "todos": "todos",
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _todo_where(todo_filter: TodoFilter | None) -> tuple[str, list]:
    if todo_filter is None:
        return "", []

    conditions = []
    params: list = []

    if todo_filter.completed is not None:
        conditions.append("t.completed = %s")
        params.append(todo_filter.completed)
    if todo_filter.search:
        pattern = f"%{_escape_like(todo_filter.search)}%"
        conditions.append("(t.title ILIKE %s OR t.description ILIKE %s)")
        params.extend([pattern, pattern])
    if todo_filter.priority is not None:
        conditions.append("t.priority = %s")
        params.append(Priority(todo_filter.priority).value)
    if todo_filter.category_id is not None:
        conditions.append("t.category_id = %s")
        params.append(todo_filter.category_id)
    elif todo_filter.uncategorized:
        conditions.append("t.category_id IS NULL")
    if todo_filter.user_id is not None:
        conditions.append("t.user_id = %s")
        params.append(todo_filter.user_id)
    if todo_filter.tag_id is not None:
        conditions.append(
            "EXISTS (SELECT 1 FROM tags_on_todos tt"
            " WHERE tt.todo_id = t.id AND tt.tag_id = %s)"
        )
        params.append(todo_filter.tag_id)
    if todo_filter.tag_ids is not None:
        conditions.append(
            "EXISTS (SELECT 1 FROM tags_on_todos tt"
            " WHERE tt.todo_id = t.id AND tt.tag_id = ANY(%s))"
        )
        params.append(list(todo_filter.tag_ids))
    if todo_filter.exclude_id is not None:
        conditions.append("t.id <> %s")
        params.append(todo_filter.exclude_id)

    if not conditions:
        return "", params
    return "WHERE " + " AND ".join(conditions), params


def _unique(ids: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(ids))


class TodoRepository:
    """Typed find/count/aggregate/mutate operations over the todo schema.

    Reads return plain dicts keyed by column name. Missing todos come back
    as ``None`` (reads, toggle) or ``False`` (update, delete).
    """

    def __init__(self, db: PostgresDB | TransactionScope | None = None):
        self._db = db or get_db()

    # --- Reads ---

    def count_todos(self, todo_filter: TodoFilter | None = None) -> int:
        where_clause, params = _todo_where(todo_filter)
        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT COUNT(*) AS count FROM todos t {where_clause}",
                    params,
                )
                row = cur.fetchone()
        return int(row["count"])

    def list_todos(
        self,
        todo_filter: TodoFilter | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> list[dict]:
        where_clause, params = _todo_where(todo_filter)
        offset = (page - 1) * limit

        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT {_TODO_COLUMNS}
                    FROM todos t
                    {where_clause}
                    ORDER BY t.created_at DESC, t.id DESC
                    LIMIT %s OFFSET %s
                    """,
                    [*params, limit, offset],
                )
                todos = cur.fetchall()
                self._attach_relations(cur, todos, history_limit=5)

        return todos

    def get_todo(self, todo_id: int, history_limit: int | None = None) -> dict | None:
        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {_TODO_COLUMNS} FROM todos t WHERE t.id = %s",
                    (todo_id,),
                )
                todo = cur.fetchone()
                if todo is None:
                    return None
                self._attach_relations(cur, [todo], history_limit=history_limit)

        return todo

    def find_todo_summaries(
        self, todo_filter: TodoFilter | None = None, limit: int = 5
    ) -> list[dict]:
        where_clause, params = _todo_where(todo_filter)
        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT t.id, t.title, t.completed, t.priority
                    FROM todos t
                    {where_clause}
                    ORDER BY t.id
                    LIMIT %s
                    """,
                    [*params, limit],
                )
                return cur.fetchall()

    def related_by_tags(
        self, todo_id: int, tag_ids: list[int], limit: int = 5
    ) -> list[dict]:
        if not tag_ids:
            return []

        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT t.id, t.title
                    FROM todos t
                    WHERE t.id <> %s
                      AND EXISTS (
                          SELECT 1 FROM tags_on_todos tt
                          WHERE tt.todo_id = t.id AND tt.tag_id = ANY(%s)
                      )
                    ORDER BY t.id
                    LIMIT %s
                    """,
                    (todo_id, list(tag_ids), limit),
                )
                todos = cur.fetchall()
                for todo in todos:
                    todo["tags"] = []
                self._attach_tags(cur, {todo["id"]: todo for todo in todos})

        return todos

    def count_by_priority(self) -> list[dict]:
        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT priority, COUNT(*) AS count
                    FROM todos
                    GROUP BY priority
                    ORDER BY priority
                    """
                )
                rows = cur.fetchall()
        return [{"priority": r["priority"], "count": int(r["count"])} for r in rows]

    def count_by_category(self) -> list[dict]:
        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT c.name, COUNT(t.id) AS count
                    FROM categories c
                    LEFT JOIN todos t ON t.category_id = c.id
                    GROUP BY c.id, c.name
                    ORDER BY c.id
                    """
                )
                rows = cur.fetchall()
        return [{"name": r["name"], "count": int(r["count"])} for r in rows]

    def recently_updated(self, window_days: int = 7, limit: int = 5) -> list[dict]:
        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id, title, updated_at
                    FROM todos
                    WHERE updated_at >= NOW() - make_interval(days => %s)
                    ORDER BY updated_at DESC
                    LIMIT %s
                    """,
                    (window_days, limit),
                )
                return cur.fetchall()

    def most_used_tags(self, limit: int = 5) -> list[dict]:
        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT tg.id, tg.name, COUNT(tt.todo_id) AS count
                    FROM tags tg
                    LEFT JOIN tags_on_todos tt ON tt.tag_id = tg.id
                    GROUP BY tg.id, tg.name
                    ORDER BY count DESC, tg.id
                    LIMIT %s
                    """,
                    (limit,),
                )
                rows = cur.fetchall()
        return [{"id": r["id"], "name": r["name"], "count": int(r["count"])} for r in rows]

    def existing_ids(self, entity: str, ids: Iterable[int]) -> set[int]:
        """Subset of ``ids`` present in ``entity`` (users, categories, tags, todos)."""
        table = _REFERENCE_TABLES[entity]
        ids = _unique(ids)
        if not ids:
            return set()

        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT id FROM {table} WHERE id = ANY(%s)", (ids,))
                return {row["id"] for row in cur.fetchall()}

    def note_ids_of(self, todo_id: int, note_ids: Iterable[int]) -> set[int]:
        note_ids = _unique(note_ids)
        if not note_ids:
            return set()

        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id FROM notes WHERE todo_id = %s AND id = ANY(%s)",
                    (todo_id, note_ids),
                )
                return {row["id"] for row in cur.fetchall()}

    def dependent_ids(self, todo_id: int, transitive: bool = False) -> set[int]:
        """Ids of todos that depend on ``todo_id``.

        With ``transitive`` the result also holds todos reaching it through
        other todos.
        """
        if transitive:
            query = """
                WITH RECURSIVE dependents(id) AS (
                    SELECT todo_id FROM todo_dependencies WHERE depends_on_id = %s
                    UNION
                    SELECT d.todo_id
                    FROM todo_dependencies d
                    JOIN dependents ON d.depends_on_id = dependents.id
                )
                SELECT id FROM dependents
            """
        else:
            query = "SELECT todo_id AS id FROM todo_dependencies WHERE depends_on_id = %s"

        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (todo_id,))
                return {row["id"] for row in cur.fetchall()}

    def unblocked_dependents(self, todo_id: int) -> list[dict]:
        """Dependents of ``todo_id`` whose every other dependency is complete."""
        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT t.id, t.title
                    FROM todos t
                    JOIN todo_dependencies d
                      ON d.todo_id = t.id AND d.depends_on_id = %s
                    WHERE NOT EXISTS (
                        SELECT 1
                        FROM todo_dependencies other
                        JOIN todos dep ON dep.id = other.depends_on_id
                        WHERE other.todo_id = t.id
                          AND other.depends_on_id <> %s
                          AND dep.completed = false
                    )
                    ORDER BY t.id
                    """,
                    (todo_id, todo_id),
                )
                return cur.fetchall()

    # --- Mutations ---

    def create_todo(
        self,
        new_todo: NewTodo,
        before_link: Callable[[int, TodoRepository], None] | None = None,
    ) -> int:
        """Insert a todo with its tags, notes, history and dependency edges.

        ``before_link`` receives the new id and a repository bound to the
        open transaction, before the dependency edges are written; raising
        from it rolls back the whole creation.
        """
        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO todos (title, description, priority, user_id, category_id)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (
                        new_todo.title,
                        new_todo.description,
                        Priority(new_todo.priority).value,
                        new_todo.user_id,
                        new_todo.category_id,
                    ),
                )
                todo_id = cur.fetchone()["id"]

                tag_ids = _unique(new_todo.tag_ids)
                if tag_ids:
                    cur.executemany(
                        "INSERT INTO tags_on_todos (todo_id, tag_id) VALUES (%s, %s)",
                        [(todo_id, tag_id) for tag_id in tag_ids],
                    )
                if new_todo.notes:
                    cur.executemany(
                        "INSERT INTO notes (todo_id, content) VALUES (%s, %s)",
                        [(todo_id, content) for content in new_todo.notes],
                    )
                self._append_history(
                    cur, todo_id, HistoryAction.CREATED, "Todo was created"
                )

                if before_link is not None:
                    before_link(todo_id, TodoRepository(TransactionScope(conn)))

                dependencies = _unique(new_todo.dependencies)
                if dependencies:
                    cur.executemany(
                        """
                        INSERT INTO todo_dependencies (todo_id, depends_on_id)
                        VALUES (%s, %s)
                        """,
                        [(todo_id, dep_id) for dep_id in dependencies],
                    )

        logger.info(
            "todo_created",
            todo_id=todo_id,
            tags=len(tag_ids),
            notes=len(new_todo.notes),
            dependencies=len(dependencies),
        )
        return todo_id

    def update_todo(self, todo_id: int, changes: TodoChanges) -> bool:
        assignments = []
        params: list = []
        for column in _UPDATABLE_COLUMNS:
            if column not in changes.fields:
                continue
            value = changes.fields[column]
            if column == "priority" and value is not None:
                value = Priority(value).value
            assignments.append(f"{column} = %s")
            params.append(value)
        assignments.append("updated_at = NOW()")

        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE todos SET {', '.join(assignments)} WHERE id = %s RETURNING id",
                    [*params, todo_id],
                )
                if cur.fetchone() is None:
                    return False

                if changes.remove_tags:
                    cur.execute(
                        "DELETE FROM tags_on_todos WHERE todo_id = %s AND tag_id = ANY(%s)",
                        (todo_id, _unique(changes.remove_tags)),
                    )
                if changes.add_tags:
                    cur.executemany(
                        """
                        INSERT INTO tags_on_todos (todo_id, tag_id) VALUES (%s, %s)
                        ON CONFLICT (todo_id, tag_id) DO NOTHING
                        """,
                        [(todo_id, tag_id) for tag_id in _unique(changes.add_tags)],
                    )
                if changes.add_notes:
                    cur.executemany(
                        "INSERT INTO notes (todo_id, content) VALUES (%s, %s)",
                        [(todo_id, content) for content in changes.add_notes],
                    )
                if changes.remove_notes:
                    cur.execute(
                        "DELETE FROM notes WHERE todo_id = %s AND id = ANY(%s)",
                        (todo_id, _unique(changes.remove_notes)),
                    )
                if changes.add_dependencies:
                    cur.executemany(
                        """
                        INSERT INTO todo_dependencies (todo_id, depends_on_id)
                        VALUES (%s, %s)
                        ON CONFLICT (todo_id, depends_on_id) DO NOTHING
                        """,
                        [
                            (todo_id, dep_id)
                            for dep_id in _unique(changes.add_dependencies)
                        ],
                    )
                if changes.remove_dependencies:
                    cur.execute(
                        """
                        DELETE FROM todo_dependencies
                        WHERE todo_id = %s AND depends_on_id = ANY(%s)
                        """,
                        (todo_id, _unique(changes.remove_dependencies)),
                    )

                self._append_history(
                    cur,
                    todo_id,
                    HistoryAction.UPDATED,
                    f"Updated fields: {', '.join(changes.changed_fields)}",
                )

        logger.info("todo_updated", todo_id=todo_id, changed=changes.changed_fields)
        return True

    def delete_todo(self, todo_id: int) -> bool:
        # notes, history, attachments, tag joins and dependency edges cascade
        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM todos WHERE id = %s", (todo_id,))
                deleted = cur.rowcount > 0

        if deleted:
            logger.info("todo_deleted", todo_id=todo_id)
        return deleted

    def toggle_completion(self, todo_id: int) -> dict | None:
        with self._db.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE todos
                    SET completed = NOT completed, updated_at = NOW()
                    WHERE id = %s
                    RETURNING {_TODO_RETURNING}
                    """,
                    (todo_id,),
                )
                todo = cur.fetchone()
                if todo is None:
                    return None

                if todo["completed"]:
                    self._append_history(
                        cur, todo_id, HistoryAction.COMPLETED, "Todo was marked as completed"
                    )
                else:
                    self._append_history(
                        cur, todo_id, HistoryAction.REOPENED, "Todo was reopened"
                    )

        logger.info("todo_toggled", todo_id=todo_id, completed=todo["completed"])
        return todo

    # --- Helpers ---

    @staticmethod
    def _append_history(
        cur: psycopg.Cursor, todo_id: int, action: HistoryAction, description: str
    ) -> None:
        cur.execute(
            "INSERT INTO todo_history (todo_id, action, description) VALUES (%s, %s, %s)",
            (todo_id, action.value, description),
        )

    @staticmethod
    def _attach_tags(cur: psycopg.Cursor, by_id: dict[int, dict]) -> None:
        if not by_id:
            return
        cur.execute(
            """
            SELECT tt.todo_id, tg.id, tg.name, tg.created_at, tg.updated_at
            FROM tags_on_todos tt
            JOIN tags tg ON tg.id = tt.tag_id
            WHERE tt.todo_id = ANY(%s)
            ORDER BY tt.assigned_at, tg.id
            """,
            (list(by_id),),
        )
        for row in cur.fetchall():
            by_id[row.pop("todo_id")]["tags"].append(row)

    def _attach_relations(
        self,
        cur: psycopg.Cursor,
        todos: list[dict],
        history_limit: int | None = None,
    ) -> None:
        if not todos:
            return

        by_id = {todo["id"]: todo for todo in todos}
        ids = list(by_id)
        for todo in todos:
            todo.update(
                category=None,
                user=None,
                tags=[],
                notes=[],
                dependencies=[],
                dependency_of=[],
                history=[],
                attachments=[],
            )

        category_ids = _unique(t["category_id"] for t in todos if t["category_id"] is not None)
        if category_ids:
            cur.execute(
                """
                SELECT id, name, description, created_at, updated_at
                FROM categories WHERE id = ANY(%s)
                """,
                (category_ids,),
            )
            categories = {row["id"]: row for row in cur.fetchall()}
            for todo in todos:
                todo["category"] = categories.get(todo["category_id"])

        user_ids = _unique(t["user_id"] for t in todos if t["user_id"] is not None)
        if user_ids:
            cur.execute(
                """
                SELECT id, name, email, created_at, updated_at
                FROM users WHERE id = ANY(%s)
                """,
                (user_ids,),
            )
            users = {row["id"]: row for row in cur.fetchall()}
            for todo in todos:
                todo["user"] = users.get(todo["user_id"])

        self._attach_tags(cur, by_id)

        cur.execute(
            """
            SELECT id, content, todo_id, created_at, updated_at
            FROM notes
            WHERE todo_id = ANY(%s)
            ORDER BY created_at DESC, id DESC
            """,
            (ids,),
        )
        for row in cur.fetchall():
            by_id[row["todo_id"]]["notes"].append(row)

        cur.execute(
            """
            SELECT d.todo_id AS owner_id, t.id, t.title, t.completed, t.priority
            FROM todo_dependencies d
            JOIN todos t ON t.id = d.depends_on_id
            WHERE d.todo_id = ANY(%s)
            ORDER BY t.id
            """,
            (ids,),
        )
        for row in cur.fetchall():
            by_id[row.pop("owner_id")]["dependencies"].append(row)

        cur.execute(
            """
            SELECT d.depends_on_id AS owner_id, t.id, t.title, t.completed, t.priority
            FROM todo_dependencies d
            JOIN todos t ON t.id = d.todo_id
            WHERE d.depends_on_id = ANY(%s)
            ORDER BY t.id
            """,
            (ids,),
        )
        for row in cur.fetchall():
            by_id[row.pop("owner_id")]["dependency_of"].append(row)

        if history_limit is None:
            cur.execute(
                """
                SELECT id, todo_id, action, description, created_at
                FROM todo_history
                WHERE todo_id = ANY(%s)
                ORDER BY created_at DESC, id DESC
                """,
                (ids,),
            )
        else:
            cur.execute(
                """
                SELECT id, todo_id, action, description, created_at
                FROM (
                    SELECT h.*, row_number() OVER (
                        PARTITION BY h.todo_id ORDER BY h.created_at DESC, h.id DESC
                    ) AS rn
                    FROM todo_history h
                    WHERE h.todo_id = ANY(%s)
                ) ranked
                WHERE rn <= %s
                ORDER BY created_at DESC, id DESC
                """,
                (ids, history_limit),
            )
        for row in cur.fetchall():
            by_id[row["todo_id"]]["history"].append(row)

        cur.execute(
            """
            SELECT id, filename, filepath, mime_type, todo_id, created_at
            FROM attachments
            WHERE todo_id = ANY(%s)
            ORDER BY id
            """,
            (ids,),
        )
        for row in cur.fetchall():
            by_id[row["todo_id"]]["attachments"].append(row)


_repository: TodoRepository | None = None


def get_repository() -> TodoRepository:
    global _repository
    if _repository is None:
        _repository = TodoRepository()
    return _repository
