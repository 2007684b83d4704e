"""
Admin daily appointment summary service.

Once a day, counts today's appointments by status plus tomorrow's scheduled
appointments and sends the report to every active admin as an in-app
notification. Scheduled using APScheduler.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.cron import CronTrigger  # type: ignore
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import DAILY_SUMMARY_HOUR
from core.constants import DAILY_SUMMARY_CANCELLED_WARNING, DAILY_SUMMARY_PENDING_WARNING
from core.database import get_db_context
from models import Appointment, AppointmentStatus, UserRole
from services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher
from utils.datetime_utils import CLINIC_TZ, clinic_now

logger = logging.getLogger(__name__)

DAILY_SUMMARY_TITLE = "📊 Daily Appointment Report"
DAILY_SUMMARY_LINK = "/admin/appointments"


@dataclass
class DailySummaryStats:
    day: date
    total: int = 0
    pending: int = 0
    scheduled: int = 0
    completed: int = 0
    cancelled: int = 0
    tomorrow_scheduled: int = 0


def format_summary_message(stats: DailySummaryStats) -> str:
    """Render the admin report text, with warnings appended when thresholds are crossed."""
    lines = [
        "📊 Daily Appointment Summary",
        "",
        "Today's Stats:",
        f"• Total: {stats.total} appointments",
        f"• Pending: {stats.pending} | Scheduled: {stats.scheduled}",
        f"• Completed: {stats.completed} | Cancelled: {stats.cancelled}",
        "",
        f"Tomorrow: {stats.tomorrow_scheduled} scheduled appointments",
    ]

    warnings = []
    if stats.cancelled > DAILY_SUMMARY_CANCELLED_WARNING:
        warnings.append("⚠️ High cancellation rate detected!")
    if stats.pending > DAILY_SUMMARY_PENDING_WARNING:
        warnings.append("⚠️ Many pending approvals!")
    if warnings:
        lines.append("")
        lines.extend(warnings)

    return "\n".join(lines)


class AdminDailySummaryService:
    """
    Service for the end-of-day appointment report sent to admins.

    Database sessions are created fresh for each scheduler run.
    """

    def __init__(self, dispatcher: Optional[NotificationDispatcher] = None):
        self.scheduler = AsyncIOScheduler(timezone=CLINIC_TZ)
        self._dispatcher = dispatcher
        self._is_started = False

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher or get_notification_dispatcher()

    async def start_scheduler(self) -> None:
        """
        Start the background scheduler.

        This should be called during application startup.
        """
        if self._is_started:
            logger.warning("Admin daily summary scheduler is already started")
            return

        self.scheduler.add_job(  # type: ignore
            self._send_scheduled_summary,
            CronTrigger(hour=DAILY_SUMMARY_HOUR, minute=0, timezone=CLINIC_TZ),
            id="send_admin_daily_summary",
            name="Send admin daily appointment summary",
            max_instances=1,
            replace_existing=True
        )

        self.scheduler.start()
        self._is_started = True
        logger.info(f"Admin daily summary scheduler started (runs daily at {DAILY_SUMMARY_HOUR:02d}:00)")

    async def stop_scheduler(self) -> None:
        """
        Stop the background scheduler.

        This should be called during application shutdown.
        """
        if self._is_started:
            self.scheduler.shutdown(wait=False)
            self._is_started = False
            logger.info("Admin daily summary scheduler stopped")

    @staticmethod
    def collect_stats(db: Session, today: date) -> DailySummaryStats:
        """
        Count today's appointments by status and tomorrow's scheduled ones.

        Args:
            db: Database session
            today: Clinic-local day the report is for
        """
        stats = DailySummaryStats(day=today)

        rows = db.query(
            Appointment.status, func.count(Appointment.id)
        ).filter(
            Appointment.appointment_date == today
        ).group_by(Appointment.status).all()

        for status, count in rows:
            stats.total += count
            if status == AppointmentStatus.PENDING.value:
                stats.pending = count
            elif status == AppointmentStatus.SCHEDULED.value:
                stats.scheduled = count
            elif status == AppointmentStatus.COMPLETED.value:
                stats.completed = count
            elif status == AppointmentStatus.CANCELLED.value:
                stats.cancelled = count

        stats.tomorrow_scheduled = db.query(func.count(Appointment.id)).filter(
            Appointment.appointment_date == today + timedelta(days=1),
            Appointment.status == AppointmentStatus.SCHEDULED.value
        ).scalar() or 0

        return stats

    def send_daily_summary(self, db: Session, now: Optional[datetime] = None) -> DailySummaryStats:
        """
        Build today's report and notify every active admin.

        Returns:
            The counted statistics
        """
        current_time = now or clinic_now()
        stats = self.collect_stats(db, current_time.date())
        message = format_summary_message(stats)

        notifications = self.dispatcher.notify_role(
            db,
            UserRole.ADMIN.value,
            DAILY_SUMMARY_TITLE,
            message,
            DAILY_SUMMARY_LINK,
        )
        logger.info(
            f"Daily summary for {stats.day} sent to {len(notifications)} admin(s): "
            f"{stats.total} today, {stats.tomorrow_scheduled} scheduled tomorrow"
        )
        return stats

    async def _send_scheduled_summary(self) -> None:
        """Scheduler entry point."""
        with get_db_context() as db:
            try:
                self.send_daily_summary(db)
            except Exception as e:
                logger.exception(f"Error sending admin daily summary: {e}")


# Global service instance
_admin_daily_summary_service: Optional[AdminDailySummaryService] = None


def get_admin_daily_summary_service() -> AdminDailySummaryService:
    """
    Get the global admin daily summary service instance.

    Returns:
        The global service instance
    """
    global _admin_daily_summary_service
    if _admin_daily_summary_service is None:
        _admin_daily_summary_service = AdminDailySummaryService()
    return _admin_daily_summary_service


async def start_admin_daily_summary_scheduler() -> None:
    """Start the global admin daily summary scheduler."""
    service = get_admin_daily_summary_service()
    await service.start_scheduler()


async def stop_admin_daily_summary_scheduler() -> None:
    """Stop the global admin daily summary scheduler."""
    global _admin_daily_summary_service
    if _admin_daily_summary_service is not None:
        await _admin_daily_summary_service.stop_scheduler()
