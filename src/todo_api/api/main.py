"""FastAPI application for Todo API."""

from contextlib import asynccontextmanager
from pathlib import Path

import structlog
import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from todo_api import __version__
from todo_api.api.orchestrators import TodoOrchestrator
from todo_api.api.schemas import (
    CreateTodoRequest,
    CreateTodoResponse,
    DeleteTodoResponse,
    ErrorResponse,
    HealthResponse,
    TodoDetailEnvelope,
    TodoListResponse,
    ToggleTodoResponse,
    UpdateTodoRequest,
    UpdateTodoResponse,
)
from todo_api.config import get_settings
from todo_api.core.dependencies import DependencyValidator
from todo_api.core.errors import TodoApiError
from todo_api.core.logging import configure_logging
from todo_api.core.models import Priority, TodoFilter
from todo_api.core.stats import utc_now
from todo_api.db.postgres import close_db, get_db
from todo_api.db.repository import get_repository

logger = structlog.get_logger()

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def _check_migrations() -> None:
    """Warn on startup if the database has pending migrations."""
    try:
        from alembic.config import Config
        from alembic.script import ScriptDirectory

        alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
        alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
        head = ScriptDirectory.from_config(alembic_cfg).get_current_head()

        db = get_db()
        with db.session() as conn, conn.cursor() as cur:
            cur.execute("SELECT version_num FROM alembic_version")
            row = cur.fetchone()
            current = row["version_num"] if row else None

        if current is None:
            logger.warning(
                "migrations_not_initialized",
                hint="Run 'alembic upgrade head' to initialize the database",
            )
        elif current != head:
            logger.warning(
                "migrations_pending",
                current=current,
                head=head,
                hint="Run 'alembic upgrade head' to apply pending migrations",
            )
        else:
            logger.info("migrations_up_to_date", revision=current)
    except Exception as e:
        logger.warning("migration_check_failed", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    get_db()
    _check_migrations()
    logger.info("todo_api_started", version=__version__, port=settings.port)
    yield
    close_db()


app = FastAPI(
    title="Todo API",
    description="Todos with users, categories, tags, notes, history and dependencies",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error handling ---


@app.exception_handler(TodoApiError)
async def todo_api_error_handler(request: Request, exc: TodoApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request: {location} {first.get('msg', '')}".strip()
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # a known path with the wrong method is an unknown route too
    if exc.status_code in (404, 405):
        return JSONResponse(status_code=404, content={"error": "Route not found"})
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_error",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Something went wrong!"})


# --- Dependencies ---


def get_orchestrator() -> TodoOrchestrator:
    repository = get_repository()
    transitive = get_settings().dependency_check == "transitive"
    return TodoOrchestrator(
        repository, DependencyValidator(repository, transitive=transitive)
    )


_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# --- Routes ---


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=utc_now())


@app.get("/api/todos", response_model=TodoListResponse, responses=_ERRORS)
def list_todos(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    completed: str | None = None,
    search: str | None = None,
    priority: Priority | None = None,
    category: int | None = None,
    user: int | None = None,
    tag: int | None = None,
    orchestrator: TodoOrchestrator = Depends(get_orchestrator),
) -> TodoListResponse:
    todo_filter = TodoFilter(
        completed=None if completed is None else completed == "true",
        search=search or None,
        priority=priority,
        category_id=category,
        user_id=user,
        tag_id=tag,
    )
    return orchestrator.list_todos(todo_filter, page=page, limit=limit)


@app.get("/api/todos/{todo_id}", response_model=TodoDetailEnvelope, responses=_ERRORS)
def get_todo(
    todo_id: int,
    orchestrator: TodoOrchestrator = Depends(get_orchestrator),
) -> TodoDetailEnvelope:
    return orchestrator.get_todo(todo_id)


@app.post(
    "/api/todos",
    response_model=CreateTodoResponse,
    status_code=201,
    responses=_ERRORS,
)
def create_todo(
    body: CreateTodoRequest,
    orchestrator: TodoOrchestrator = Depends(get_orchestrator),
) -> CreateTodoResponse:
    return orchestrator.create_todo(body)


@app.put("/api/todos/{todo_id}", response_model=UpdateTodoResponse, responses=_ERRORS)
def update_todo(
    todo_id: int,
    body: UpdateTodoRequest,
    orchestrator: TodoOrchestrator = Depends(get_orchestrator),
) -> UpdateTodoResponse:
    return orchestrator.update_todo(todo_id, body)


@app.delete("/api/todos/{todo_id}", response_model=DeleteTodoResponse, responses=_ERRORS)
def delete_todo(
    todo_id: int,
    orchestrator: TodoOrchestrator = Depends(get_orchestrator),
) -> DeleteTodoResponse:
    return orchestrator.delete_todo(todo_id)


@app.patch(
    "/api/todos/{todo_id}/toggle",
    response_model=ToggleTodoResponse,
    responses=_ERRORS,
)
def toggle_todo(
    todo_id: int,
    orchestrator: TodoOrchestrator = Depends(get_orchestrator),
) -> ToggleTodoResponse:
    return orchestrator.toggle_todo(todo_id)


def run() -> None:
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
