"""
Sync Log Model - Track bulk synchronization runs
"""
from sqlalchemy import Column, String, DateTime, JSON
import enum
from datetime import datetime

from app.core import Base
from .base import UUIDMixin


class SyncStatus(str, enum.Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class SyncLog(Base, UUIDMixin):
    """Log of bulk sync operations"""
    __tablename__ = "sync_log"

    started_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True))
    status = Column(String(20), default=SyncStatus.RUNNING.value, nullable=False)

    # Requested products and stores
    product_ids = Column(JSON, default=list)
    store_ids = Column(JSON, default=list)

    # Stats JSON: {"total": 10, "succeeded": 9, "failed": 1}
    stats = Column(JSON, default=dict)

    # Error message if failed
    error_message = Column(String(500))
