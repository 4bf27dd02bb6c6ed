from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException

from . import boards as board_service
from . import tasks as task_service
from .auth import Identity, get_current_user
from .config import get_settings
from .db import get_session, init_db, now_utc
from .errors import KanbanError
from .logging import RequestLoggingMiddleware, configure_logging, get_logger
from .schemas import (
    BoardCreate,
    BoardUpdate,
    ColumnCreate,
    ColumnOrder,
    ColumnsReplace,
    CommentIn,
    ErrorBody,
    ErrorEnvelope,
    InviteIn,
    MemberAdd,
    RoleUpdate,
    SubtaskIn,
    TaskCreate,
    TaskMove,
    TaskUpdate,
)
from .serializers import (
    board_out,
    column_out,
    comment_out,
    export_all_out,
    export_out,
    invitation_out,
    member_out,
    ok,
    pagination,
    subtask_out,
    task_out,
)
from .storage import Store

settings = get_settings()
logger = get_logger(__name__)

_SETTINGS_FIELDS = {
    "allowTaskCreation": "allow_task_creation",
    "allowTaskDeletion": "allow_task_deletion",
    "allowColumnModification": "allow_column_modification",
}
_TASK_FIELDS = {"dueDate": "due_date"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    logger.info("startup", app=settings.app_name, environment=settings.environment)
    yield


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

router = APIRouter()


# === Helpers ===


def _error(request: Request, status_code: int, code: str, message: str, details=None) -> JSONResponse:
    body = ErrorEnvelope(
        error=ErrorBody(
            code=code,
            message=message,
            details=details or None,
            requestId=getattr(request.state, "request_id", None),
        )
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(KanbanError)
async def kanban_error_handler(request: Request, exc: KanbanError) -> JSONResponse:
    return _error(request, exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return _error(request, 400, "validation_error", "Validation failed", {"errors": errors})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = exc.detail if isinstance(exc.detail, str) else "http_error"
    return _error(request, exc.status_code, code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", error=str(exc))
    return _error(request, 500, "internal_error", "Unexpected error")


def get_store(session: Session = Depends(get_session)) -> Store:
    return Store(session)


def current_identity(
    identity: Identity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Identity:
    board_service.register_identity(store, identity)
    return identity


def page_limit(limit: Optional[int]) -> int:
    return min(limit or settings.default_page_size, settings.max_page_size)


# === Health & metadata ===


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/version")
def version() -> dict:
    return {"version": settings.app_version}


# === Board endpoints ===


@router.post("/boards", response_model=dict, status_code=201)
def create_board(
    payload: BoardCreate,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    columns = [c.model_dump(exclude_none=True) for c in payload.columns] if payload.columns else None
    board = board_service.create_board(
        store, user, title=payload.title.strip(), description=payload.description.strip(), columns=columns
    )
    return ok(board_out(board, user.user_id), "Board created successfully")


@router.get("/boards", response_model=dict)
def list_boards(
    search: Optional[str] = None,
    archived: bool = False,
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    limit = page_limit(limit)
    boards, total = board_service.list_boards(
        store, user, search=search, archived=archived, page=page, limit=limit
    )
    return ok(
        [board_out(b, user.user_id) for b in boards],
        pagination=pagination(page, limit, total),
    )


@router.get("/boards/export/all", response_model=dict)
def export_all_boards(store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    boards, tasks, users = board_service.export_all_boards(store, user)
    return ok(export_all_out(user.user_id, boards, tasks, users))


@router.get("/boards/{board_id}", response_model=dict)
def get_board(board_id: str, store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    board, _, tasks = board_service.get_board(store, user, board_id)
    return ok({"board": board_out(board, user.user_id), "tasks": [task_out(t) for t in tasks]})


@router.put("/boards/{board_id}", response_model=dict)
def update_board(
    board_id: str,
    payload: BoardUpdate,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    settings_patch = None
    if payload.settings is not None:
        settings_patch = {
            _SETTINGS_FIELDS[key]: value
            for key, value in payload.settings.model_dump(exclude_none=True).items()
        }
    board = board_service.update_board(
        store,
        user,
        board_id,
        title=payload.title,
        description=payload.description,
        settings=settings_patch,
    )
    return ok(board_out(board, user.user_id), "Board updated successfully")


@router.patch("/boards/{board_id}/archive", response_model=dict)
def archive_board(board_id: str, store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    board = board_service.toggle_archive_board(store, user, board_id)
    message = "Board archived successfully" if board.is_archived else "Board unarchived successfully"
    return ok(board_out(board, user.user_id), message)


@router.delete("/boards/{board_id}", response_model=dict)
def delete_board(board_id: str, store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    board_service.delete_board(store, user, board_id)
    return ok(message="Board deleted successfully")


@router.get("/boards/{board_id}/export", response_model=dict)
def export_board(board_id: str, store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    board, tasks, users = board_service.export_board(store, user, board_id)
    return ok(export_out(board, tasks, users))


# === Column endpoints ===


@router.put("/boards/{board_id}/columns", response_model=dict)
def replace_columns(
    board_id: str,
    payload: ColumnsReplace,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    columns = [c.model_dump(exclude_none=True) for c in payload.columns]
    board = board_service.replace_columns(store, user, board_id, columns)
    return ok(board_out(board, user.user_id), "Columns updated successfully")


@router.post("/boards/{board_id}/columns", response_model=dict, status_code=201)
def add_column(
    board_id: str,
    payload: ColumnCreate,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    _, column = board_service.add_column(store, user, board_id, payload.name.strip(), payload.color)
    return ok(column_out(column), "Column added successfully")


@router.put("/boards/{board_id}/columns/order", response_model=dict)
def reorder_columns(
    board_id: str,
    payload: ColumnOrder,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    board = board_service.reorder_columns(store, user, board_id, payload.columnIds)
    return ok(board_out(board, user.user_id), "Columns reordered successfully")


@router.delete("/boards/{board_id}/columns/{column_id}", response_model=dict)
def remove_column(
    board_id: str,
    column_id: str,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    board = board_service.remove_column(store, user, board_id, column_id)
    return ok(board_out(board, user.user_id), "Column removed successfully")


# === Member endpoints ===


@router.get("/boards/{board_id}/members", response_model=dict)
def list_members(board_id: str, store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    board, users = board_service.list_members(store, user, board_id)
    now = now_utc()
    return ok(
        {
            "members": [member_out(m, users.get(m.user_id)) for m in board.members],
            "invitations": [invitation_out(i, now=now) for i in board.invitations],
        }
    )


@router.post("/boards/{board_id}/invite", response_model=dict, status_code=201)
def invite_member(
    board_id: str,
    payload: InviteIn,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    invitation, token = board_service.invite(
        store, user, board_id, payload.email, payload.role, ttl_days=settings.invitation_ttl_days
    )
    return ok(invitation_out(invitation, token=token), "Invitation sent successfully")


@router.post("/boards/invite/{token}/accept", response_model=dict)
def accept_invitation(token: str, store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    board, _ = board_service.accept(store, user, token)
    return ok(board_out(board, user.user_id), "Invitation accepted successfully")


@router.post("/boards/invite/{token}/decline", response_model=dict)
def decline_invitation(token: str, store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    board_service.decline(store, user, token)
    return ok(message="Invitation declined")


@router.post("/boards/{board_id}/members", response_model=dict, status_code=201)
def add_member(
    board_id: str,
    payload: MemberAdd,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    member = board_service.add_member_by_email(store, user, board_id, payload.email, payload.role)
    added = store.users_by_id([member.user_id]).get(member.user_id)
    return ok(member_out(member, added), "Member added successfully")


@router.delete("/boards/{board_id}/members/{user_id}", response_model=dict)
def remove_member(
    board_id: str,
    user_id: str,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    board_service.remove_member(store, user, board_id, user_id)
    return ok(message="Member removed successfully")


@router.put("/boards/{board_id}/members/{user_id}/role", response_model=dict)
def update_member_role(
    board_id: str,
    user_id: str,
    payload: RoleUpdate,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    member = board_service.update_member_role(store, user, board_id, user_id, payload.role)
    return ok(member_out(member), "Member role updated successfully")


# === Task endpoints ===


@router.get("/tasks", response_model=dict)
def list_tasks(
    boardId: str,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    labels: Optional[str] = None,
    assignee: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    limit = page_limit(limit)
    wanted = [label.strip() for label in labels.split(",") if label.strip()] if labels else None
    tasks, total = task_service.list_tasks(
        store,
        user,
        boardId,
        status=status,
        priority=priority,
        labels=wanted,
        assignee=assignee,
        search=search,
        page=page,
        limit=limit,
    )
    return ok([task_out(t) for t in tasks], pagination=pagination(page, limit, total))


@router.post("/tasks", response_model=dict, status_code=201)
def create_task(payload: TaskCreate, store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    task = task_service.create_task(
        store,
        user,
        payload.boardId,
        title=payload.title.strip(),
        status=payload.status,
        description=payload.description.strip(),
        priority=payload.priority,
        due_date=payload.dueDate,
        labels=payload.labels,
        assignee=payload.assignee,
    )
    return ok(task_out(task), "Task created successfully")


@router.get("/tasks/{task_id}", response_model=dict)
def get_task(task_id: str, store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    return ok(task_out(task_service.get_task(store, user, task_id)))


@router.put("/tasks/{task_id}", response_model=dict)
def update_task(
    task_id: str,
    payload: TaskUpdate,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    changes = {_TASK_FIELDS.get(k, k): v for k, v in payload.model_dump(exclude_unset=True).items()}
    task = task_service.update_task(store, user, task_id, changes)
    return ok(task_out(task), "Task updated successfully")


@router.put("/tasks/{task_id}/move", response_model=dict)
def move_task(
    task_id: str,
    payload: TaskMove,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    task = task_service.move_task(
        store,
        user,
        task_id,
        status=payload.status,
        position=payload.position,
        expected_version=payload.expectedVersion,
    )
    return ok(task_out(task), "Task moved successfully")


@router.delete("/tasks/{task_id}", response_model=dict)
def delete_task(task_id: str, store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    task_service.delete_task(store, user, task_id)
    return ok(message="Task deleted successfully")


@router.patch("/tasks/{task_id}/archive", response_model=dict)
def archive_task(task_id: str, store: Store = Depends(get_store), user: Identity = Depends(current_identity)):
    task = task_service.toggle_archive_task(store, user, task_id)
    message = "Task archived successfully" if task.is_archived else "Task unarchived successfully"
    return ok(task_out(task), message)


@router.post("/tasks/{task_id}/subtasks", response_model=dict, status_code=201)
def add_subtask(
    task_id: str,
    payload: SubtaskIn,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    task, subtask = task_service.add_subtask(store, user, task_id, payload.title.strip())
    return ok({"task": task_out(task), "subtask": subtask_out(subtask)}, "Subtask added successfully")


@router.patch("/tasks/{task_id}/subtasks/{index}", response_model=dict)
def toggle_subtask(
    task_id: str,
    index: int,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    task, subtask = task_service.toggle_subtask(store, user, task_id, index)
    return ok({"task": task_out(task), "subtask": subtask_out(subtask)}, "Subtask updated successfully")


@router.post("/tasks/{task_id}/comments", response_model=dict, status_code=201)
def add_comment(
    task_id: str,
    payload: CommentIn,
    store: Store = Depends(get_store),
    user: Identity = Depends(current_identity),
):
    task, comment = task_service.add_comment(store, user, task_id, payload.content.strip())
    return ok({"task": task_out(task), "comment": comment_out(comment)}, "Comment added successfully")


app.include_router(router, prefix=settings.api_prefix)
