"""todo schema

Revision ID: 3f1c2a9d7b64
Revises:
Create Date: 2026-10-16 10:12:41.208113

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7b64'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def _todo_fk(name: str = "todo_id") -> sa.Column:
    return sa.Column(
        name,
        sa.Integer(),
        sa.ForeignKey("todos.id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("email", name="users_email_key"),
    )
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("name", name="tags_name_key"),
    )
    op.create_table(
        "todos",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "priority",
            sa.Text(),
            nullable=False,
            server_default=sa.text("'MEDIUM'"),
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL", onupdate="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="SET NULL", onupdate="CASCADE"),
            nullable=True,
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "priority IN ('LOW', 'MEDIUM', 'HIGH', 'URGENT')",
            name="ck_todos_priority",
        ),
    )
    op.create_index("idx_todos_user_id", "todos", ["user_id"])
    op.create_index("idx_todos_category_id", "todos", ["category_id"])
    op.create_index("idx_todos_completed", "todos", ["completed"])
    op.create_index("idx_todos_created_at", "todos", ["created_at"])
    op.create_index("idx_todos_updated_at", "todos", ["updated_at"])

    op.create_table(
        "tags_on_todos",
        _todo_fk(),
        sa.Column(
            "tag_id",
            sa.Integer(),
            sa.ForeignKey("tags.id", ondelete="CASCADE", onupdate="CASCADE"),
            nullable=False,
        ),
        _timestamp("assigned_at"),
        sa.PrimaryKeyConstraint("todo_id", "tag_id"),
    )
    op.create_index("idx_tags_on_todos_tag_id", "tags_on_todos", ["tag_id"])

    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("content", sa.Text(), nullable=False),
        _todo_fk(),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("idx_notes_todo_id", "notes", ["todo_id"])

    op.create_table(
        "todo_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        _todo_fk(),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("idx_todo_history_todo_id", "todo_history", ["todo_id"])

    op.create_table(
        "attachments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("filepath", sa.Text(), nullable=False),
        sa.Column("mime_type", sa.Text(), nullable=False),
        _todo_fk(),
        _timestamp("created_at"),
    )
    op.create_index("idx_attachments_todo_id", "attachments", ["todo_id"])

    op.create_table(
        "todo_dependencies",
        _todo_fk(),
        _todo_fk("depends_on_id"),
        sa.PrimaryKeyConstraint("todo_id", "depends_on_id"),
        sa.CheckConstraint("todo_id <> depends_on_id", name="ck_todo_dependencies_no_self"),
    )
    op.create_index(
        "idx_todo_dependencies_depends_on_id", "todo_dependencies", ["depends_on_id"]
    )


def downgrade() -> None:
    op.drop_table("todo_dependencies")
    op.drop_table("attachments")
    op.drop_table("todo_history")
    op.drop_table("notes")
    op.drop_table("tags_on_todos")
    op.drop_index("idx_todos_updated_at", table_name="todos")
    op.drop_index("idx_todos_created_at", table_name="todos")
    op.drop_index("idx_todos_completed", table_name="todos")
    op.drop_index("idx_todos_category_id", table_name="todos")
    op.drop_index("idx_todos_user_id", table_name="todos")
    op.drop_table("todos")
    op.drop_table("tags")
    op.drop_table("categories")
    op.drop_table("users")
