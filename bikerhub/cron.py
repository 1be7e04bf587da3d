"""
Scheduled maintenance jobs, registered on an APScheduler AsyncIOScheduler.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from bikerhub import database
from bikerhub.config import settings
from bikerhub.services import orders as order_service
from bikerhub.services import products as product_service

STRAY_FILE_MAX_AGE_SECONDS = 24 * 60 * 60


async def cleanup_old_files(max_age: int = STRAY_FILE_MAX_AGE_SECONDS) -> int:
    """Delete files in the upload dir that no upload record points at."""
    directory = Path(settings.UPLOAD_DIR)
    if not directory.is_dir():
        return 0
    known = {
        d["filename"]
        for d in await database.get_documents(database.UPLOADS, {}, limit=0, projection={"filename": 1})
    }
    removed = 0
    cutoff = time.time() - max_age
    for path in directory.iterdir():
        if path.is_file() and path.name not in known and path.stat().st_mtime < cutoff:
            path.unlink()
            removed += 1
    if removed:
        logger.info("Removed {} stray upload file(s)", removed)
    return removed


async def daily_cleanup() -> None:
    logger.info("Running daily cleanup job...")
    await cleanup_old_files()
    flags = await product_service.refresh_product_flags()
    logger.info("Product flags refreshed: {}", flags)


async def weekly_analytics() -> None:
    logger.info("Running weekly analytics job...")
    stats = await order_service.get_statistics()
    sales = await order_service.sales_breakdown()
    logger.info("Weekly report: {} orders, revenue {:.2f}", stats["total_orders"], stats["total_revenue"])
    logger.info("Last 7 days: {}", sales["daily"])


async def monthly_maintenance() -> None:
    logger.info("Running monthly maintenance job...")
    stats = await database.get_database_stats()
    if stats:
        logger.info("Database stats: {}", stats)
    sales = await order_service.sales_breakdown()
    logger.info("Monthly report: {}", sales["monthly"][-1])


async def health_check() -> None:
    health = await database.check_database_health()
    if health["status"] != "healthy":
        logger.warning("Database unhealthy: {}", health)
    else:
        logger.debug("System health check completed")


async def inventory_check() -> None:
    logger.debug("Running inventory check...")
    for product in await product_service.low_stock_products():
        if product.is_out_of_stock:
            logger.warning("Out of stock: {} ({})", product.name, product.id)
        else:
            logger.warning("Low stock: {} ({}) has {} left", product.name, product.id, product.stock.quantity)


async def order_status_updates() -> None:
    logger.debug("Running order status updates...")
    cancelled = await order_service.cancel_stale_orders(settings.PENDING_ORDER_TTL_HOURS)
    if cancelled:
        logger.info("Cancelled {} unpaid order(s)", cancelled)


JOBS: list[tuple[str, str, Callable[[], Awaitable[None]]]] = [
    ("daily-cleanup", "0 2 * * *", daily_cleanup),
    ("weekly-analytics", "0 3 * * sun", weekly_analytics),
    ("monthly-maintenance", "0 4 1 * *", monthly_maintenance),
    ("health-check", "*/5 * * * *", health_check),
    ("inventory-check", "0 * * * *", inventory_check),
    ("order-status-updates", "*/30 * * * *", order_status_updates),
]


def _guarded(name: str, job: Callable[[], Awaitable[None]]) -> Callable[[], Awaitable[None]]:
    async def run() -> None:
        try:
            await job()
        except Exception:
            logger.exception("{} job failed", name)

    return run


def setup_cron_jobs(scheduler: Optional[AsyncIOScheduler] = None) -> AsyncIOScheduler:
    scheduler = scheduler or AsyncIOScheduler(timezone=settings.CRON_TIMEZONE)
    for name, expression, job in JOBS:
        scheduler.add_job(
            _guarded(name, job),
            CronTrigger.from_crontab(expression, timezone=settings.CRON_TIMEZONE),
            id=name,
            name=name,
            replace_existing=True,
        )
    logger.info("Scheduled {} cron jobs", len(JOBS))
    return scheduler
