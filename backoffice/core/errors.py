from __future__ import annotations

from fastapi import HTTPException, status


class ApiError(HTTPException):
    """HTTPException carrying a machine-readable ``code`` for ErrorResponse."""

    def __init__(self, status_code: int, detail: str, *, code: str | None = None) -> None:
        super().__init__(status_code=status_code, detail=detail)
        self.code = code


class StorageError(Exception):
    """Persistence failure (connection loss, unexpected constraint violation).

    Raised after the session has been rolled back, so the same call can be
    retried safely.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "storage_error"

    def __init__(self, operation: str) -> None:
        super().__init__(f"storage failure during {operation}")
        self.operation = operation
