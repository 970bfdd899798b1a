from .config import settings
from .database import engine, SessionLocal, get_db, Base
from .exceptions import AppError, ValidationError, NotFoundError, RemoteApiError, TransientApiError

__all__ = [
    "settings", "engine", "SessionLocal", "get_db", "Base",
    "AppError", "ValidationError", "NotFoundError", "RemoteApiError", "TransientApiError",
]
