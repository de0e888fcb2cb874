from __future__ import annotations

from typing import Optional


class EditorError(Exception):
    """Base class for failures raised by the editor's collaborators."""


class AuthError(EditorError):
    pass


class StorageError(EditorError):
    pass


class JobNotFoundError(EditorError):
    pass


class JobFetchError(EditorError):
    """The job could not be read: server unreachable or timing out after retries."""


class PersistError(EditorError):
    """The job API refused or failed to store a payload.

    ``details`` keeps the server-provided reason, when there was one.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details
