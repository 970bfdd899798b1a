"""
Application errors

Every error raised by the services carries an HTTP-equivalent status code
so the API layer can turn it into a response envelope without guessing.
"""
from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base error with an HTTP-equivalent status code"""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class ValidationError(AppError):
    """Local input rejected before any remote or transactional work"""

    def __init__(self, message: str):
        super().__init__(message, 400)


class NotFoundError(AppError):
    def __init__(self, message: str):
        super().__init__(message, 404)


class RemoteApiError(AppError):
    """
    Error reported by the remote catalog API.
    `operation` is the mutation/query name, `user_errors` the raw
    field-level errors when the API returned any.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        user_errors: Optional[List[Dict[str, Any]]] = None,
        status_code: int = 400,
    ):
        super().__init__(message, status_code)
        self.operation = operation
        self.user_errors = user_errors or []

    @property
    def messages(self) -> List[str]:
        return [e.get("message", "") for e in self.user_errors]


class TransientApiError(RemoteApiError):
    """Throttling, 5xx or transport failure; safe to retry"""

    def __init__(self, message: str, operation: Optional[str] = None, status_code: int = 503):
        super().__init__(message, operation=operation, status_code=status_code)
