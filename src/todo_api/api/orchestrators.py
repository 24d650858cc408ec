"""Request orchestrators: one method per endpoint.

Each method runs the same sequence: validate the request, run the
pre-condition reads, validate dependency edges, perform the mutation in one
transaction, re-fetch the post-state and assemble the statistics.
Statistics come from reads issued before the mutation, outside its
transaction, so under concurrent writers they are informational only.
"""

from __future__ import annotations

from collections.abc import Iterable
from contextlib import contextmanager

import psycopg
import structlog

from todo_api.api import assembler
from todo_api.api.schemas import (
    CreateTodoRequest,
    CreateTodoResponse,
    DeleteTodoResponse,
    TodoDetailEnvelope,
    TodoListResponse,
    ToggleTodoResponse,
    UpdateTodoRequest,
    UpdateTodoResponse,
)
from todo_api.core.dependencies import DependencyValidator
from todo_api.core.errors import (
    InvalidReferenceError,
    NotFoundError,
    StoreFailure,
    ValidationFailure,
)
from todo_api.core.models import NewTodo, Priority, TodoChanges, TodoFilter
from todo_api.core.stats import completion_stats, percentage, utc_now, whole_days_between
from todo_api.db.repository import TodoRepository

logger = structlog.get_logger()


@contextmanager
def _store_errors(message: str):
    try:
        yield
    except psycopg.Error as e:
        logger.error("store_failure", message=message, error=str(e), exc_info=True)
        raise StoreFailure(message) from e


def _unique(ids: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(ids))


class TodoOrchestrator:
    def __init__(
        self,
        repository: TodoRepository,
        validator: DependencyValidator | None = None,
    ):
        self._repo = repository
        self._validator = validator or DependencyValidator(repository)

    # --- GET /api/todos ---

    def list_todos(
        self, todo_filter: TodoFilter, page: int = 1, limit: int = 10
    ) -> TodoListResponse:
        with _store_errors("Failed to fetch todos"):
            total = self._repo.count_todos()
            logger.debug("todo_list_filters", filters=todo_filter)

            todos = self._repo.list_todos(todo_filter, page=page, limit=limit)
            filtered_count = self._repo.count_todos(todo_filter)
            completed = self._repo.count_todos(TodoFilter(completed=True))
            by_priority = self._repo.count_by_priority()
            by_category = self._repo.count_by_category()
            recently_updated = self._repo.recently_updated(window_days=7, limit=5)
            most_used_tags = self._repo.most_used_tags(limit=5)

        logger.info(
            "todos_listed",
            returned=len(todos),
            filtered=filtered_count,
            total=total,
            page=page,
        )
        return assembler.todo_list(
            todos,
            filtered_count=filtered_count,
            page=page,
            limit=limit,
            total=total,
            completed=completed,
            by_priority=by_priority,
            by_category=by_category,
            recently_updated=recently_updated,
            most_used_tags=most_used_tags,
        )

    # --- GET /api/todos/{id} ---

    def get_todo(self, todo_id: int) -> TodoDetailEnvelope:
        with _store_errors("Failed to fetch todo"):
            todo = self._repo.get_todo(todo_id)
            if todo is None:
                logger.info("todo_not_found", todo_id=todo_id)
                raise NotFoundError("Todo not found")

            if todo["category_id"] is not None:
                similar_filter = TodoFilter(
                    category_id=todo["category_id"], exclude_id=todo_id
                )
            else:
                similar_filter = TodoFilter(uncategorized=True, exclude_id=todo_id)
            similar_todos = self._repo.find_todo_summaries(similar_filter, limit=5)

            user_todos = []
            if todo["user_id"] is not None:
                user_todos = self._repo.find_todo_summaries(
                    TodoFilter(user_id=todo["user_id"], exclude_id=todo_id), limit=5
                )

            tag_ids = [tag["id"] for tag in todo["tags"]]
            related_by_tags = self._repo.related_by_tags(todo_id, tag_ids, limit=5)

            same_priority_count = self._repo.count_todos(
                TodoFilter(priority=todo["priority"], exclude_id=todo_id)
            )

        logger.info(
            "todo_fetched",
            todo_id=todo_id,
            similar=len(similar_todos),
            by_user=len(user_todos),
            by_tags=len(related_by_tags),
        )
        return assembler.todo_envelope(
            todo,
            similar_todos=similar_todos,
            user_todos=user_todos,
            related_by_tags=related_by_tags,
            same_priority_count=same_priority_count,
            recent_changes=todo["history"][:10],
        )

    # --- POST /api/todos ---

    def create_todo(self, body: CreateTodoRequest) -> CreateTodoResponse:
        if not body.title:
            raise ValidationFailure("Title is required")

        priority = body.priority or Priority.MEDIUM
        tag_ids = _unique(body.tag_ids)
        dependencies = _unique(body.dependencies)

        with _store_errors("Failed to create todo"):
            self._check_category(body.category_id)
            self._check_user(body.user_id)
            self._check_tags(tag_ids)

            user_todo_count = 0
            if body.user_id is not None:
                user_todo_count = self._repo.count_todos(TodoFilter(user_id=body.user_id))
            category_todo_count = 0
            if body.category_id is not None:
                category_todo_count = self._repo.count_todos(
                    TodoFilter(category_id=body.category_id)
                )
            priority_todo_count = self._repo.count_todos(TodoFilter(priority=priority))
            total_todo_count = self._repo.count_todos()
            logger.debug(
                "todo_create_counts",
                user=user_todo_count,
                category=category_todo_count,
                priority=priority_todo_count,
                total=total_todo_count,
            )

            def before_link(new_id: int, tx_repo: TodoRepository) -> None:
                # the new id only exists inside the creating transaction
                if not dependencies:
                    return
                self._validator.validate(new_id, dependencies, lookup=tx_repo)
                self._check_dependencies(dependencies, repository=tx_repo)

            todo_id = self._repo.create_todo(
                NewTodo(
                    title=body.title,
                    description=body.description or None,
                    priority=priority,
                    user_id=body.user_id,
                    category_id=body.category_id,
                    tag_ids=tag_ids,
                    notes=body.notes,
                    dependencies=dependencies,
                ),
                before_link=before_link,
            )
            todo = self._repo.get_todo(todo_id)

        return assembler.created(
            todo,
            {
                "user_todo_count": user_todo_count + 1,
                "category_todo_count": category_todo_count + 1,
                "total_todo_count": total_todo_count + 1,
            },
        )

    # --- PUT /api/todos/{id} ---

    def update_todo(self, todo_id: int, body: UpdateTodoRequest) -> UpdateTodoResponse:
        present = body.model_fields_set

        with _store_errors("Failed to update todo"):
            existing = self._repo.get_todo(todo_id, history_limit=0)
            if existing is None:
                raise NotFoundError("Todo not found")

            if "category_id" in present:
                self._check_category(body.category_id)
            if "user_id" in present:
                self._check_user(body.user_id)

            changes = self._collect_changes(existing, body)
            logger.debug("todo_changes_detected", todo_id=todo_id, fields=changes.changed_fields)

            if changes.add_tags:
                self._check_tags(changes.add_tags)
            if changes.add_dependencies:
                self._check_dependencies(changes.add_dependencies)
                self._validator.validate(todo_id, changes.add_dependencies)
            if changes.remove_notes:
                owned = self._repo.note_ids_of(todo_id, changes.remove_notes)
                if len(owned) != len(changes.remove_notes):
                    raise InvalidReferenceError("Some notes to remove not found")

            if not self._repo.update_todo(todo_id, changes):
                raise NotFoundError("Todo not found")
            todo = self._repo.get_todo(todo_id, history_limit=5)

        return assembler.updated(todo, changes.changed_fields)

    @staticmethod
    def _collect_changes(existing: dict, body: UpdateTodoRequest) -> TodoChanges:
        present = body.model_fields_set
        changes = TodoChanges(
            add_tags=_unique(body.tag_ids),
            remove_tags=_unique(body.remove_tags),
            add_notes=list(body.notes),
            remove_notes=_unique(body.remove_notes),
            add_dependencies=_unique(body.dependencies),
            remove_dependencies=_unique(body.remove_dependencies),
        )
        changed = changes.changed_fields

        if "title" in present:
            if not body.title:
                raise ValidationFailure("Title cannot be empty")
            changes.fields["title"] = body.title
            if body.title != existing["title"]:
                changed.append("title")
        if "description" in present:
            changes.fields["description"] = body.description
            if body.description != existing["description"]:
                changed.append("description")
        if "completed" in present and body.completed is not None:
            changes.fields["completed"] = body.completed
            if body.completed != existing["completed"]:
                changed.append("completed")
        if "priority" in present and body.priority is not None:
            changes.fields["priority"] = body.priority
            if body.priority != Priority(existing["priority"]):
                changed.append("priority")
        if "category_id" in present:
            changes.fields["category_id"] = body.category_id
            if body.category_id != existing["category_id"]:
                changed.append("category")
        if "user_id" in present:
            changes.fields["user_id"] = body.user_id
            if body.user_id != existing["user_id"]:
                changed.append("user")
        if changes.add_tags:
            changed.append("tags")
        if changes.add_notes:
            changed.append("notes")
        if changes.add_dependencies:
            changed.append("dependencies")

        return changes

    # --- DELETE /api/todos/{id} ---

    def delete_todo(self, todo_id: int) -> DeleteTodoResponse:
        with _store_errors("Failed to delete todo"):
            todo = self._repo.get_todo(todo_id)
            if todo is None:
                raise NotFoundError("Todo not found")

            dependents = todo["dependency_of"]
            logger.debug("todo_dependents_found", todo_id=todo_id, count=len(dependents))

            user_todo_count = 0
            if todo["user_id"] is not None:
                user_todo_count = self._repo.count_todos(TodoFilter(user_id=todo["user_id"]))
            category_todo_count = 0
            if todo["category_id"] is not None:
                category_todo_count = self._repo.count_todos(
                    TodoFilter(category_id=todo["category_id"])
                )

            tag_ids = [tag["id"] for tag in todo["tags"]]
            if tag_ids:
                similar_tagged = self._repo.count_todos(
                    TodoFilter(tag_ids=tag_ids, exclude_id=todo_id)
                )
                logger.debug("todos_with_similar_tags", todo_id=todo_id, count=similar_tagged)

            age_in_days = whole_days_between(todo["created_at"], utc_now())
            completion_time = None
            if todo["completed"]:
                completion_time = whole_days_between(todo["created_at"], todo["updated_at"])

            total_todo_count = self._repo.count_todos()
            percent_of_system = percentage(1, total_todo_count)

            if not self._repo.delete_todo(todo_id):
                raise NotFoundError("Todo not found")

        if dependents:
            # the edges went with the cascade; dependents get no history row
            logger.info(
                "dependents_detached",
                todo_id=todo_id,
                dependent_ids=[d["id"] for d in dependents],
            )

        return assembler.deleted(
            todo,
            impact={
                "user_todo_count": user_todo_count - 1,
                "category_todo_count": category_todo_count - 1,
                "total_todo_count": total_todo_count - 1,
                "percent_of_system": percent_of_system,
            },
            age={"age_in_days": age_in_days, "completion_time": completion_time},
        )

    # --- PATCH /api/todos/{id}/toggle ---

    def toggle_todo(self, todo_id: int) -> ToggleTodoResponse:
        with _store_errors("Failed to toggle todo"):
            todo = self._repo.get_todo(todo_id, history_limit=0)
            if todo is None:
                raise NotFoundError("Todo not found")

            uncompleted = []
            if not todo["completed"]:
                uncompleted = [d for d in todo["dependencies"] if not d["completed"]]
                if uncompleted:
                    logger.warning(
                        "uncompleted_dependencies_found",
                        todo_id=todo_id,
                        dependency_ids=[d["id"] for d in uncompleted],
                    )

            user_stats = None
            if todo["user_id"] is not None:
                user_stats = completion_stats(
                    self._repo.count_todos(TodoFilter(user_id=todo["user_id"])),
                    self._repo.count_todos(
                        TodoFilter(user_id=todo["user_id"], completed=True)
                    ),
                )
            category_stats = None
            if todo["category_id"] is not None:
                category_stats = completion_stats(
                    self._repo.count_todos(TodoFilter(category_id=todo["category_id"])),
                    self._repo.count_todos(
                        TodoFilter(category_id=todo["category_id"], completed=True)
                    ),
                )

            age_in_days = whole_days_between(todo["created_at"], utc_now())
            total_todos = self._repo.count_todos()
            total_completed = self._repo.count_todos(TodoFilter(completed=True))
            previous_rate = percentage(total_completed, total_todos)

            dependent_todos_count = len(todo["dependency_of"])
            unblocked = self._repo.unblocked_dependents(todo_id)

            similar = self._repo.count_todos(
                TodoFilter(
                    priority=todo["priority"],
                    completed=todo["completed"],
                    exclude_id=todo_id,
                )
            )
            logger.debug(
                "toggle_precheck",
                todo_id=todo_id,
                dependents=dependent_todos_count,
                unblocked=len(unblocked),
                similar=similar,
            )

            result = self._repo.toggle_completion(todo_id)
            if result is None:
                raise NotFoundError("Todo not found")

        now_completed = result["completed"]
        new_completed_total = total_completed + 1 if now_completed else total_completed - 1

        return assembler.toggled(
            result,
            uncompleted_dependencies=uncompleted,
            dependent_todos_count=dependent_todos_count,
            blocked_todos=unblocked if now_completed else [],
            stats={
                "user": user_stats,
                "category": category_stats,
                "system": {
                    "previous_completion_rate": previous_rate,
                    "new_completion_rate": percentage(new_completed_total, total_todos),
                    "total_todos": total_todos,
                    "total_completed_todos": new_completed_total,
                },
                "todo": {
                    "age_in_days": age_in_days,
                    "time_to_complete": age_in_days if now_completed else None,
                },
            },
        )

    # --- Reference checks ---

    def _check_category(self, category_id: int | None) -> None:
        if category_id is None:
            return
        if not self._repo.existing_ids("categories", [category_id]):
            raise InvalidReferenceError("Category not found")

    def _check_user(self, user_id: int | None) -> None:
        if user_id is None:
            return
        if not self._repo.existing_ids("users", [user_id]):
            raise InvalidReferenceError("User not found")

    def _check_tags(self, tag_ids: list[int]) -> None:
        if not tag_ids:
            return
        if set(tag_ids) - self._repo.existing_ids("tags", tag_ids):
            raise InvalidReferenceError("Some tags not found")

    def _check_dependencies(
        self, dependency_ids: list[int], repository: TodoRepository | None = None
    ) -> None:
        if not dependency_ids:
            return
        repository = repository or self._repo
        if set(dependency_ids) - repository.existing_ids("todos", dependency_ids):
            raise InvalidReferenceError("Some dependencies not found")
