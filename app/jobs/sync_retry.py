"""
Failed Sync Retry Scheduler - Periodically re-sync products whose last sync failed
"""
import asyncio
from datetime import datetime
from typing import Optional
import logging

from app.core.config import settings
from app.core.database import SessionLocal
from app.services import sync_service

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None

JOB_ID = "retry_failed_syncs"


class FailedSyncRetryScheduler:
    """
    Re-runs sync for products in the failed state. Re-sync is idempotent,
    so a retry either converges or records the same failure again.
    """

    def __init__(self, interval_minutes: Optional[int] = None, batch_limit: int = 50):
        from apscheduler.schedulers.asyncio import AsyncIOScheduler
        self.scheduler = AsyncIOScheduler()
        self.interval_minutes = interval_minutes or settings.RETRY_FAILED_SYNC_INTERVAL_MINUTES
        self.batch_limit = batch_limit
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if not self.is_running:
            from apscheduler.triggers.interval import IntervalTrigger
            self.scheduler.add_job(
                func=self.run_retry,
                trigger=IntervalTrigger(minutes=self.interval_minutes),
                id=JOB_ID,
                name="Retry failed product syncs",
                replace_existing=True,
                max_instances=1,  # Prevent overlapping retries
            )
            self.scheduler.start()
            self.is_running = True
            logger.info(f"Failed sync retry scheduler started, every {self.interval_minutes} minutes")

    def stop(self):
        """Stop the scheduler"""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Failed sync retry scheduler stopped")

    async def run_retry(self, session_factory=None, client_factory=None) -> dict:
        """Re-sync each failed product to the stores recorded as failed"""
        session_factory = session_factory or SessionLocal
        stats = {"products": 0, "succeeded": 0, "failed": 0}

        db = session_factory()
        try:
            product_ids = sync_service.get_failed_product_ids(db, self.batch_limit)
            if not product_ids:
                logger.info("No failed product syncs to retry")
                return stats

            logger.info(f"Retrying sync for {len(product_ids)} failed products")
            service = sync_service.ProductSyncService(db, client_factory, session_factory)
            for product_id in product_ids:
                stats["products"] += 1
                store_ids = sync_service.failed_store_ids(db, product_id)
                try:
                    result = await service.sync_product(product_id, store_ids=store_ids)
                except Exception as e:
                    logger.error(f"Retry failed for product {product_id}: {e}")
                    stats["failed"] += 1
                    continue

                if result["summary"]["failed_syncs"]:
                    stats["failed"] += 1
                else:
                    stats["succeeded"] += 1
        finally:
            db.close()

        logger.info(
            f"Failed sync retry completed: products={stats['products']}, "
            f"succeeded={stats['succeeded']}, failed={stats['failed']}"
        )
        return stats

    def trigger_now(self):
        """Queue an immediate retry run"""
        self.scheduler.add_job(
            func=self.run_retry,
            trigger="date",
            run_date=datetime.now(),
            id=f"{JOB_ID}_immediate",
            replace_existing=True,
        )
        logger.info("Triggered immediate failed sync retry")


# ========== Global Functions ==========

def get_scheduler() -> "FailedSyncRetryScheduler":
    """Get or create the global scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = FailedSyncRetryScheduler()
    return _scheduler


def start_scheduler():
    """Start the global scheduler"""
    scheduler = get_scheduler()
    scheduler.start()


def stop_scheduler():
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None


# ========== CLI Commands ==========

if __name__ == "__main__":
    """
    Run one retry pass:
    python -m app.jobs.sync_retry
    """
    from app.core.logging import setup_logging

    setup_logging()
    asyncio.run(get_scheduler().run_retry())
