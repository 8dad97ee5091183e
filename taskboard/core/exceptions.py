"""Custom exceptions."""
from typing import Optional


class TaskBoardError(Exception):
    """Base error for the sync engine."""

    default_detail = "Task board error"

    def __init__(self, detail: Optional[str] = None):
        if detail is None:
            detail = self.default_detail
        self.detail = detail
        super().__init__(detail)


class ValidationError(TaskBoardError):
    """Malformed mutation request, rejected before any remote call."""

    default_detail = "Validation error"


class ScopeError(TaskBoardError):
    """Operation requires an open scope."""

    default_detail = "No scope is open"


class RemoteRejectionError(TaskBoardError):
    """The remote store refused a request."""

    default_detail = "Remote store rejected the request"

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(detail)
        self.status_code = status_code
        self.code = code


class SchemaMismatchError(RemoteRejectionError):
    """The remote schema does not know one of the submitted columns."""

    default_detail = "Remote schema rejected a column"

    def __init__(
        self,
        field: str,
        detail: Optional[str] = None,
        *,
        status_code: Optional[int] = 400,
        code: Optional[str] = None,
    ):
        if detail is None:
            detail = f"Remote schema has no column '{field}'"
        super().__init__(detail, status_code=status_code, code=code)
        self.field = field


class RemoteUnavailableError(RemoteRejectionError):
    """Remote store could not be reached."""

    default_detail = "Remote store is unavailable"
