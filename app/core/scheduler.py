import asyncio
import logging
import os
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from app.core.config import settings
from app.core.database import SessionLocal
from app.services.notification import result_notification_service
from app.services.reconciliation import reconciliation_service
from app.utils.events import event_bus

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def _run_reconciliation():
    db = SessionLocal()
    try:
        stats = reconciliation_service.run(db)
        if any(stats.values()):
            logger.info(f"Attempt reconciliation: {stats}")
    except Exception as e:
        db.rollback()
        logger.error(f"Error reconciling attempts: {e}", exc_info=True)
    finally:
        db.close()


async def reconcile_attempts():
    # Blocking DB work stays off the event loop that serves requests.
    await asyncio.to_thread(_run_reconciliation)


async def dispatch_due_notifications():
    db = SessionLocal()
    try:
        stats = await result_notification_service.process_due(db)
        if any(stats.values()):
            logger.info(f"Result notifications dispatched: {stats}")
    except Exception as e:
        db.rollback()
        logger.error(f"Error dispatching result notifications: {e}", exc_info=True)
    finally:
        db.close()


def start_scheduler():
    if os.getenv("TESTING") == "true":
        logger.info("Scheduler disabled in test environment")
        return

    if not scheduler.running:
        event_bus.bind_loop(asyncio.get_running_loop())
        scheduler.add_job(
            reconcile_attempts,
            'interval',
            seconds=settings.RECONCILE_INTERVAL_SECONDS,
            id='reconcile_attempts',
            name='Expire overdue attempts and retry failed finalization',
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        scheduler.add_job(
            dispatch_due_notifications,
            'interval',
            seconds=settings.NOTIFICATION_DISPATCH_INTERVAL_SECONDS,
            id='dispatch_result_notifications',
            name='Dispatch due result notifications',
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        scheduler.start()
        logger.info("Scheduler started with reconciliation and notification jobs")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown()
        event_bus.bind_loop(None)
        logger.info("Scheduler stopped")
