"""Shape repository rows into the response contracts."""

from __future__ import annotations

import math

from todo_api.api.schemas import (
    CategoryCount,
    CreateStats,
    CreateTodoResponse,
    DeleteImpact,
    DeletedTodoStats,
    DeleteStats,
    DeleteTodoResponse,
    DependencyState,
    DependencyStatus,
    HistoryResponse,
    ListStats,
    Pagination,
    PriorityCount,
    RecentlyUpdated,
    RelatedTodos,
    RelationCounts,
    TaggedTodo,
    TagUsage,
    TodoDetailEnvelope,
    TodoDetailResponse,
    TodoDetailStats,
    TodoListResponse,
    TodoRef,
    TodoResponse,
    TodoSummary,
    ToggleStats,
    ToggleTodoResponse,
    UpdateTodoResponse,
)


def todo_detail(todo: dict) -> TodoDetailResponse:
    return TodoDetailResponse.model_validate(todo)


def todo_list(
    todos: list[dict],
    *,
    filtered_count: int,
    page: int,
    limit: int,
    total: int,
    completed: int,
    by_priority: list[dict],
    by_category: list[dict],
    recently_updated: list[dict],
    most_used_tags: list[dict],
) -> TodoListResponse:
    return TodoListResponse(
        data=[todo_detail(t) for t in todos],
        pagination=Pagination(
            total=filtered_count,
            total_pages=math.ceil(filtered_count / limit),
            current_page=page,
            limit=limit,
        ),
        stats=ListStats(
            total=total,
            completed=completed,
            by_priority=[PriorityCount.model_validate(r) for r in by_priority],
            by_category=[CategoryCount.model_validate(r) for r in by_category],
        ),
        recently_updated=[RecentlyUpdated.model_validate(r) for r in recently_updated],
        most_used_tags=[TagUsage.model_validate(r) for r in most_used_tags],
    )


def todo_envelope(
    todo: dict,
    *,
    similar_todos: list[dict],
    user_todos: list[dict],
    related_by_tags: list[dict],
    same_priority_count: int,
    recent_changes: list[dict],
) -> TodoDetailEnvelope:
    uncompleted = [d for d in todo["dependencies"] if not d["completed"]]
    return TodoDetailEnvelope(
        todo=todo_detail(todo),
        related=RelatedTodos(
            similar_todos=[TodoSummary.model_validate(t) for t in similar_todos],
            user_todos=[TodoSummary.model_validate(t) for t in user_todos],
            related_by_tags=[TaggedTodo.model_validate(t) for t in related_by_tags],
        ),
        stats=TodoDetailStats(
            history_count=len(todo["history"]),
            notes_count=len(todo["notes"]),
            attachments_count=len(todo["attachments"]),
            dependencies_count=len(todo["dependencies"]),
            all_dependencies_completed=not uncompleted,
            same_priority_count=same_priority_count,
        ),
        recent_changes=[HistoryResponse.model_validate(h) for h in recent_changes],
    )


def created(todo: dict, stats: dict) -> CreateTodoResponse:
    return CreateTodoResponse(todo=todo_detail(todo), stats=CreateStats(**stats))


def updated(todo: dict, changed_fields: list[str]) -> UpdateTodoResponse:
    return UpdateTodoResponse(todo=todo_detail(todo), changed_fields=changed_fields)


def deleted(todo: dict, *, impact: dict, age: dict) -> DeleteTodoResponse:
    dependents = todo["dependency_of"]
    return DeleteTodoResponse(
        id=todo["id"],
        deleted=True,
        stats=DeleteStats(
            relations=RelationCounts(
                tags=len(todo["tags"]),
                notes=len(todo["notes"]),
                attachments=len(todo["attachments"]),
                history=len(todo["history"]),
                dependencies=len(todo["dependencies"]),
                dependents=len(dependents),
            ),
            impact=DeleteImpact(**impact),
            todo=DeletedTodoStats(**age),
        ),
        dependent_todos=[TodoRef.model_validate(d) for d in dependents],
    )


def toggled(
    todo: dict,
    *,
    uncompleted_dependencies: list[dict],
    dependent_todos_count: int,
    blocked_todos: list[dict],
    stats: dict,
) -> ToggleTodoResponse:
    return ToggleTodoResponse(
        todo=TodoResponse.model_validate(todo),
        dependency_status=DependencyStatus(
            uncompleted_dependencies=[
                DependencyState.model_validate(d) for d in uncompleted_dependencies
            ],
            dependent_todos_count=dependent_todos_count,
            blocked_todos=[TodoRef.model_validate(t) for t in blocked_todos],
        ),
        stats=ToggleStats.model_validate(stats),
    )
