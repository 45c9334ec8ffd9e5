import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

# Import the Pydantic schemas and the database wrapper
from config import Settings, get_settings
from database import LockedDatabase, open_database
from errors import ErrorSeverity, TaskManagerError, TaskNotFoundError
from observability import setup_logging
from schemas import LoginRequest, Task, User

logger = logging.getLogger(__name__)

LOGIN_OK = "User Logged in!"
LOGIN_INVALID = "Invalid Username or Password"


# Logging is configured once the server starts; the store is already open by then
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    setup_logging(settings.log_level, settings.log_format)
    logger.info("Task manager API started on %s:%s", settings.host, settings.port)
    yield
    logger.info("Task manager API shutting down")


# Dependency that hands each request the shared, locked database
def get_database(request: Request) -> LockedDatabase:
    return request.app.state.db


# --- Error handlers ---

def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(TaskManagerError)
    async def task_manager_error_handler(request: Request, exc: TaskManagerError):
        logger.warning(
            "%s: %s",
            exc.code,
            exc.message,
            extra={"error_code": exc.code, "path": request.url.path},
        )
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    # Malformed bodies and path ids are the client's fault
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Invalid request data",
                    "severity": ErrorSeverity.ERROR.value,
                    "details": [
                        {
                            "field": ".".join(str(loc) for loc in e["loc"]),
                            "message": e["msg"],
                            "type": e["type"],
                        }
                        for e in exc.errors()
                    ],
                }
            },
        )

    # Catch-all, never leaks internal details
    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s: %s",
            request.url.path,
            exc,
            exc_info=True,
            extra={"path": request.url.path},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "severity": ErrorSeverity.CRITICAL.value,
                }
            },
        )


# --- API Endpoints ---

def register_routes(app: FastAPI) -> None:
    # Root endpoint, doubles as a liveness check
    @app.get("/")
    def read_root(db: LockedDatabase = Depends(get_database)):
        with db.read() as store:
            return {
                "message": "Task manager API",
                "tasks": len(store.tasks),
                "users": len(store.users),
            }

    # Endpoint to create a task. An existing id is overwritten.
    @app.post("/task")
    def create_task(task: Task, db: LockedDatabase = Depends(get_database)):
        with db.write() as store:
            store.insert_task(task)
        logger.debug("Inserted task", extra={"task_id": task.id})
        return Response(status_code=status.HTTP_200_OK)

    # Endpoint to list every task, in no particular order
    @app.get("/tasks", response_model=List[Task])
    def get_all_tasks(db: LockedDatabase = Depends(get_database)):
        with db.read() as store:
            return store.get_all_tasks()

    # Endpoint to update a task. An unknown id creates it.
    @app.put("/task")
    def update_task(task: Task, db: LockedDatabase = Depends(get_database)):
        with db.write() as store:
            store.update_task(task)
        logger.debug("Updated task", extra={"task_id": task.id})
        return Response(status_code=status.HTTP_200_OK)

    # Endpoint to fetch a single task by id
    @app.get("/task/{task_id}", response_model=Task)
    def get_task(task_id: int, db: LockedDatabase = Depends(get_database)):
        with db.read() as store:
            task = store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    # Endpoint to delete a task. Deleting an unknown id still succeeds.
    @app.delete("/task/{task_id}")
    def delete_task(task_id: int, db: LockedDatabase = Depends(get_database)):
        with db.write() as store:
            store.delete_task(task_id)
        logger.debug("Deleted task", extra={"task_id": task_id})
        return Response(status_code=status.HTTP_200_OK)

    # Endpoint for user registration. The password is stored as sent.
    @app.post("/register")
    def register_user(user: User, db: LockedDatabase = Depends(get_database)):
        with db.write() as store:
            store.insert_user(user)
        logger.info("Registered user %s", user.username, extra={"user_id": user.id})
        return Response(status_code=status.HTTP_200_OK)

    # Endpoint for user login. Only the username is checked.
    @app.post("/login", response_class=PlainTextResponse)
    def login(credentials: LoginRequest, db: LockedDatabase = Depends(get_database)):
        with db.read() as store:
            user = store.find_user_by_username(credentials.username)
        if user is not None and user.username == credentials.username:
            logger.info("User %s logged in", user.username, extra={"user_id": user.id})
            return PlainTextResponse(LOGIN_OK)
        logger.info("Rejected login for %s", credentials.username)
        return PlainTextResponse(LOGIN_INVALID, status_code=status.HTTP_400_BAD_REQUEST)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API around the database snapshot named in settings."""
    settings = settings or get_settings()

    app = FastAPI(title="Task Manager API", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = open_database(
        settings.database_path, lock_timeout=settings.lock_timeout_seconds
    )

    # Configure CORS so local frontends (and pages opened from disk) can call the API
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=settings.cors_origin_regex,
        allow_origins=["null"] if settings.cors_allow_null_origin else [],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "PUT"],
        allow_headers=["Authorization", "Accept", "Content-Type"],
        max_age=settings.cors_max_age,
    )

    register_error_handlers(app)
    register_routes(app)
    return app


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
