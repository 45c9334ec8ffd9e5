from enum import Enum

# Reported to clients alongside the error code
class ErrorSeverity(str, Enum):
    ERROR = "error"
    CRITICAL = "critical"


# Base exception for everything the API turns into a structured response
class TaskManagerError(Exception):
    def __init__(
        self,
        message: str,
        code: str,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.http_status = http_status

    def to_response(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "severity": self.severity.value,
            }
        }


# --- Lookup misses (400-level) ---

class TaskNotFoundError(TaskManagerError):
    def __init__(self, task_id: int):
        super().__init__(
            f"Task {task_id} not found",
            "TASK_NOT_FOUND",
            ErrorSeverity.ERROR,
            404,
        )
        self.task_id = task_id


# --- Store failures (500-level) ---

class StoreUnavailableError(TaskManagerError):
    """The store lock could not be taken within the configured timeout."""

    def __init__(self, timeout: float):
        super().__init__(
            f"Store is busy, gave up waiting after {timeout:g}s",
            "STORE_UNAVAILABLE",
            ErrorSeverity.CRITICAL,
            503,
        )
        self.timeout = timeout
