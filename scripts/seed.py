"""Load sample data into the Todo API database.

Clears every table, then inserts users, categories, tags and todos with
dependencies, tag assignments, notes, history and attachments. Connection
settings come from DATABASE_URL (see ``todo_api.config``).

Usage:
    uv run python scripts/seed.py                    # migrate, then seed
    uv run python scripts/seed.py --skip-migrations  # seed only
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import psycopg  # noqa: E402

from todo_api.db.postgres import close_db, get_db  # noqa: E402

USERS = [
    ("John Doe", "john@example.com"),
    ("Jane Smith", "jane@example.com"),
    ("Admin User", "admin@example.com"),
]

CATEGORIES = [
    ("Work", "Work-related tasks"),
    ("Personal", "Personal tasks"),
    ("Health", "Health and fitness tasks"),
    ("Learning", "Educational tasks"),
    ("Home", "Home and household tasks"),
]

TAGS = [
    "urgent",
    "important",
    "easy",
    "hard",
    "bug",
    "feature",
    "api",
    "frontend",
    "backend",
    "database",
]

# title, description, completed, priority, user index, category index
TODOS = [
    ("Setup development environment", "Install Python, PostgreSQL, and configure the project", True, "HIGH", 0, 0),
    ("Learn the database schema", "Go through the tables and understand the relations", False, "MEDIUM", 0, 3),
    ("Build REST API endpoints", "Create CRUD operations for todo management", True, "HIGH", 1, 0),
    ("Add input validation", "Implement proper request validation and error handling", False, "MEDIUM", 1, 0),
    ("Write API documentation", "Document all API endpoints with examples", False, "LOW", 2, 0),
    ("Go for a run", "Run 5km in the park", False, "MEDIUM", 0, 2),
    ("Grocery shopping", "Buy vegetables, fruits, and milk", False, "LOW", 1, 4),
    ("Read book on design patterns", "Finish chapter on Factory pattern", False, "LOW", 2, 3),
    ("Fix the kitchen sink", "Check for leaks and repair if needed", False, "URGENT", 0, 4),
    ("Plan team meeting", "Prepare agenda and send invites", False, "HIGH", 1, 0),
]

# (todo index, depends on todo index)
DEPENDENCIES = [(3, 2), (4, 2), (4, 3)]

ATTACHMENTS = [
    ("screenshot.png", "image/png", "/uploads/screenshot.png"),
    ("document.pdf", "application/pdf", "/uploads/document.pdf"),
    ("notes.txt", "text/plain", "/uploads/notes.txt"),
]


def _run_migrations() -> None:
    """Run alembic upgrade head."""
    project_root = Path(__file__).resolve().parents[1]
    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        cwd=project_root,
    )
    if result.returncode != 0:
        print("\nMigrations failed. You can retry with:")
        print("  uv run alembic upgrade head")
        sys.exit(1)


def _insert_ids(cur: psycopg.Cursor, query: str, rows: list[tuple]) -> list[int]:
    ids = []
    for row in rows:
        cur.execute(query, row)
        ids.append(cur.fetchone()["id"])
    return ids


def seed(cur: psycopg.Cursor) -> None:
    print("Clearing existing data...")
    cur.execute(
        """
        TRUNCATE attachments, todo_history, notes, tags_on_todos,
                 todo_dependencies, tags, todos, categories, users
        RESTART IDENTITY
        """
    )

    print("Creating users, categories and tags...")
    user_ids = _insert_ids(
        cur, "INSERT INTO users (name, email) VALUES (%s, %s) RETURNING id", USERS
    )
    category_ids = _insert_ids(
        cur,
        "INSERT INTO categories (name, description) VALUES (%s, %s) RETURNING id",
        CATEGORIES,
    )
    tag_ids = _insert_ids(
        cur, "INSERT INTO tags (name) VALUES (%s) RETURNING id", [(t,) for t in TAGS]
    )

    print("Creating todos...")
    todo_ids = _insert_ids(
        cur,
        """
        INSERT INTO todos (title, description, completed, priority, user_id, category_id)
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        [
            (title, desc, done, priority, user_ids[u], category_ids[c])
            for title, desc, done, priority, u, c in TODOS
        ],
    )

    cur.executemany(
        "INSERT INTO todo_dependencies (todo_id, depends_on_id) VALUES (%s, %s)",
        [(todo_ids[a], todo_ids[b]) for a, b in DEPENDENCIES],
    )

    print("Assigning tags, notes and history...")
    for i, todo_id in enumerate(todo_ids):
        title, _, done, priority, _, _ = TODOS[i]

        for offset in (0, 3, 5):
            cur.execute(
                "INSERT INTO tags_on_todos (todo_id, tag_id) VALUES (%s, %s)",
                (todo_id, tag_ids[(i + offset) % len(tag_ids)]),
            )

        for j in range(i % 3 + 1):
            cur.execute(
                "INSERT INTO notes (todo_id, content) VALUES (%s, %s)",
                (todo_id, f"Note {j + 1} for task: {title}"),
            )

        history = [("CREATED", "Todo was created")]
        if done:
            history.append(("COMPLETED", "Todo was marked as completed"))
        elif i % 2 == 0:
            history.append(("UPDATED", f"Priority was changed to {priority}"))
        cur.executemany(
            "INSERT INTO todo_history (todo_id, action, description) VALUES (%s, %s, %s)",
            [(todo_id, action, description) for action, description in history],
        )

    print("Adding attachments...")
    for i, todo_id in enumerate(todo_ids[:5]):
        filename, mime_type, filepath = ATTACHMENTS[i % len(ATTACHMENTS)]
        cur.execute(
            """
            INSERT INTO attachments (todo_id, filename, filepath, mime_type)
            VALUES (%s, %s, %s, %s)
            """,
            (todo_id, f"{todo_id}_{filename}", filepath, mime_type),
        )

    print(
        f"  {len(user_ids)} users, {len(category_ids)} categories, "
        f"{len(tag_ids)} tags, {len(todo_ids)} todos"
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the Todo API database")
    parser.add_argument(
        "--skip-migrations", action="store_true", help="Skip running alembic migrations"
    )
    args = parser.parse_args()

    if args.skip_migrations:
        print("Skipping migrations (--skip-migrations)")
    else:
        print("Running migrations...")
        _run_migrations()

    db = get_db()
    try:
        with db.session() as conn, conn.cursor() as cur:
            seed(cur)
    except psycopg.Error as e:
        print(f"\nSeed failed: {e}")
        sys.exit(1)
    finally:
        close_db()

    print("\nSeed completed.")
    print("Start the server:")
    print("  uv run python app.py")


if __name__ == "__main__":
    main()
