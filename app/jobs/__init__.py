# Jobs Package - Scheduled background tasks
from .sync_retry import FailedSyncRetryScheduler, start_scheduler, stop_scheduler

__all__ = ["FailedSyncRetryScheduler", "start_scheduler", "stop_scheduler"]
