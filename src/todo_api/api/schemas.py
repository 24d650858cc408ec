"""Pydantic request/response schemas for Todo API.

Fields are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from todo_api.core.models import Priority


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# --- Requests ---


class CreateTodoRequest(ApiModel):
    # title is checked by the orchestrator so a missing title reads "Title is required"
    title: str | None = None
    description: str | None = None
    priority: Priority | None = None
    category_id: int | None = None
    user_id: int | None = None
    tag_ids: list[int] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    dependencies: list[int] = Field(default_factory=list)


class UpdateTodoRequest(ApiModel):
    """Partial update; only the fields present in the body are applied."""

    title: str | None = None
    description: str | None = None
    completed: bool | None = None
    priority: Priority | None = None
    category_id: int | None = None
    user_id: int | None = None
    tag_ids: list[int] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    dependencies: list[int] = Field(default_factory=list)
    remove_tags: list[int] = Field(default_factory=list)
    remove_notes: list[int] = Field(default_factory=list)
    remove_dependencies: list[int] = Field(default_factory=list)


# --- Entities ---


class UserResponse(ApiModel):
    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime


class CategoryResponse(ApiModel):
    id: int
    name: str
    description: str | None
    created_at: datetime
    updated_at: datetime


class TagResponse(ApiModel):
    id: int
    name: str
    created_at: datetime
    updated_at: datetime


class NoteResponse(ApiModel):
    id: int
    content: str
    todo_id: int
    created_at: datetime
    updated_at: datetime


class HistoryResponse(ApiModel):
    id: int
    todo_id: int
    action: str
    description: str
    created_at: datetime


class AttachmentResponse(ApiModel):
    id: int
    filename: str
    filepath: str
    mime_type: str
    todo_id: int
    created_at: datetime


class TodoRef(ApiModel):
    id: int
    title: str


class TodoSummary(TodoRef):
    completed: bool
    priority: Priority


class TodoResponse(ApiModel):
    id: int
    title: str
    description: str | None
    completed: bool
    priority: Priority
    user_id: int | None
    category_id: int | None
    created_at: datetime
    updated_at: datetime


class TodoDetailResponse(TodoResponse):
    category: CategoryResponse | None = None
    user: UserResponse | None = None
    tags: list[TagResponse] = Field(default_factory=list)
    notes: list[NoteResponse] = Field(default_factory=list)
    dependencies: list[TodoSummary] = Field(default_factory=list)
    dependency_of: list[TodoSummary] = Field(default_factory=list)
    history: list[HistoryResponse] = Field(default_factory=list)
    attachments: list[AttachmentResponse] = Field(default_factory=list)


class HealthResponse(ApiModel):
    status: str
    timestamp: datetime


class ErrorResponse(ApiModel):
    error: str


# --- GET /api/todos ---


class Pagination(ApiModel):
    total: int
    total_pages: int
    current_page: int
    limit: int


class PriorityCount(ApiModel):
    priority: Priority
    count: int


class CategoryCount(ApiModel):
    name: str
    count: int


class ListStats(ApiModel):
    total: int
    completed: int
    by_priority: list[PriorityCount]
    by_category: list[CategoryCount]


class RecentlyUpdated(ApiModel):
    id: int
    title: str
    updated_at: datetime


class TagUsage(ApiModel):
    id: int
    name: str
    count: int


class TodoListResponse(ApiModel):
    data: list[TodoDetailResponse]
    pagination: Pagination
    stats: ListStats
    recently_updated: list[RecentlyUpdated]
    most_used_tags: list[TagUsage]


# --- GET /api/todos/{id} ---


class TaggedTodo(TodoRef):
    tags: list[TagResponse]


class RelatedTodos(ApiModel):
    similar_todos: list[TodoSummary]
    user_todos: list[TodoSummary]
    related_by_tags: list[TaggedTodo]


class TodoDetailStats(ApiModel):
    history_count: int
    notes_count: int
    attachments_count: int
    dependencies_count: int
    all_dependencies_completed: bool
    same_priority_count: int


class TodoDetailEnvelope(ApiModel):
    todo: TodoDetailResponse
    related: RelatedTodos
    stats: TodoDetailStats
    recent_changes: list[HistoryResponse]


# --- POST /api/todos ---


class CreateStats(ApiModel):
    user_todo_count: int
    category_todo_count: int
    total_todo_count: int


class CreateTodoResponse(ApiModel):
    todo: TodoDetailResponse
    stats: CreateStats


# --- PUT /api/todos/{id} ---


class UpdateTodoResponse(ApiModel):
    todo: TodoDetailResponse
    changed_fields: list[str]


# --- DELETE /api/todos/{id} ---


class RelationCounts(ApiModel):
    tags: int
    notes: int
    attachments: int
    history: int
    dependencies: int
    dependents: int


class DeleteImpact(ApiModel):
    user_todo_count: int
    category_todo_count: int
    total_todo_count: int
    percent_of_system: str


class DeletedTodoStats(ApiModel):
    age_in_days: int
    completion_time: int | None


class DeleteStats(ApiModel):
    relations: RelationCounts
    impact: DeleteImpact
    todo: DeletedTodoStats


class DeleteTodoResponse(ApiModel):
    id: int
    deleted: bool
    stats: DeleteStats
    dependent_todos: list[TodoRef]


# --- PATCH /api/todos/{id}/toggle ---


class DependencyState(ApiModel):
    id: int
    title: str
    completed: bool


class DependencyStatus(ApiModel):
    uncompleted_dependencies: list[DependencyState]
    dependent_todos_count: int
    blocked_todos: list[TodoRef]


class CompletionStats(ApiModel):
    total: int
    completed: int
    completion_rate: str


class SystemCompletion(ApiModel):
    previous_completion_rate: str
    new_completion_rate: str
    total_todos: int
    total_completed_todos: int


class ToggledTodoStats(ApiModel):
    age_in_days: int
    time_to_complete: int | None


class ToggleStats(ApiModel):
    user: CompletionStats | None
    category: CompletionStats | None
    system: SystemCompletion
    todo: ToggledTodoStats


class ToggleTodoResponse(ApiModel):
    todo: TodoResponse
    dependency_status: DependencyStatus
    stats: ToggleStats
