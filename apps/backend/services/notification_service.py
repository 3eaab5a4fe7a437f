"""
Notification Service
====================
Maintenance email notifications.

Mail goes through the SendGrid v3 REST API when an API key is configured.
Without a key, messages are logged and counted as simulated sends.

Features:
- Async HTTP client with connection pooling
- Automatic retry with exponential backoff on 429/5xx responses
- One message per recipient; success when any recipient was reached
"""

import logging
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy import select
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

import metrics as app_metrics
from config import Settings, get_settings
from exceptions import NotificationError
from models import Equipment, MaintenanceSchedule, UserRole, utcnow
from services.base import BaseService
from services.user_service import UserService

logger = logging.getLogger(__name__)

RECIPIENT_ROLES = (UserRole.TECHNICIAN.value, UserRole.ADMIN.value)


class MailServiceBusyError(NotificationError):
    """Mail API rate limited or temporarily unavailable."""


# =============================================================================
# SendGrid Client
# =============================================================================

class SendGridClient:
    """
    Minimal async client for the SendGrid v3 mail send endpoint.

    Usage:
        async with SendGridClient(api_key) as client:
            await client.send("tech@example.com", "Subject", "Body")
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.sendgrid.com",
        mail_from: str = "notifications@assetlogix.local",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.mail_from = mail_from
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(15.0, connect=5.0),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @retry(
        retry=retry_if_exception_type(MailServiceBusyError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"Mail service busy, retrying in {retry_state.next_action.sleep}s "
            f"(attempt {retry_state.attempt_number}/3)"
        ),
    )
    async def send(self, to: str, subject: str, text: str, html: Optional[str] = None) -> None:
        """
        Send a single message.

        Raises:
            MailServiceBusyError: 429 or 5xx response (retried)
            NotificationError: Any other failure
        """
        body = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.mail_from},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": html or text.replace("\n", "<br>")},
            ],
        }

        try:
            response = await self._get_client().post("/v3/mail/send", json=body)
        except httpx.RequestError as e:
            raise NotificationError(f"Mail service connection error: {e}", recipient=to, original_error=e) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise MailServiceBusyError(f"Mail service returned {response.status_code}", recipient=to)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationError(f"Mail request failed: {e}", recipient=to, original_error=e) from e


# =============================================================================
# Message Formatting
# =============================================================================

def format_when(value: datetime) -> str:
    return value.strftime("%A, %d %B %Y at %H:%M")


def days_until(value: datetime, now: Optional[datetime] = None) -> int:
    """Whole days until `value`, rounded up."""
    delta = value - (now or utcnow())
    days, remainder = divmod(delta.total_seconds(), 86400)
    return int(days) + (1 if remainder > 0 else 0)


def _maintenance_kind(schedule: MaintenanceSchedule) -> str:
    return "preventive" if schedule.type == "preventive" else "corrective"


def build_schedule_message(schedule: MaintenanceSchedule, equipment: Equipment) -> Dict[str, str]:
    subject = f"Maintenance scheduled: {equipment.name} ({equipment.code})"
    text = (
        "MAINTENANCE SCHEDULED\n"
        "=====================\n\n"
        f"A {_maintenance_kind(schedule)} maintenance has been scheduled for:\n\n"
        f"Equipment: {equipment.name}\n"
        f"Code: {equipment.code}\n"
        f"Date: {format_when(schedule.next_date)}\n\n"
        f"Description: {schedule.description or 'Not specified'}\n\n"
        "This is an automated message, please do not reply."
    )
    return {"subject": subject, "text": text}


def build_reminder_message(
    schedule: MaintenanceSchedule,
    equipment: Equipment,
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    days = days_until(schedule.next_date, now)
    subject = f"REMINDER: Maintenance of {equipment.name} in {days} day(s)"
    text = (
        "MAINTENANCE REMINDER\n"
        "====================\n\n"
        f"Reminder: {_maintenance_kind(schedule)} maintenance is due in {days} day(s):\n\n"
        f"Equipment: {equipment.name}\n"
        f"Code: {equipment.code}\n"
        f"Date: {format_when(schedule.next_date)}\n\n"
        f"Description: {schedule.description or 'Not specified'}\n\n"
        "This is an automated message, please do not reply."
    )
    return {"subject": subject, "text": text}


# =============================================================================
# Notification Service
# =============================================================================

class NotificationService(BaseService):
    """
    Usage:
        service = NotificationService.from_session(session)
        sent = await service.send_maintenance_notification(schedule_id)
    """

    _mailer: Optional[SendGridClient] = None
    _settings: Optional[Settings] = None

    @classmethod
    def from_session(cls, session, mailer: Optional[SendGridClient] = None, settings: Optional[Settings] = None):
        instance = super().from_session(session)
        instance._mailer = mailer
        instance._settings = settings
        return instance

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def _get_mailer(self) -> SendGridClient:
        if self._mailer is None:
            self._mailer = SendGridClient(
                api_key=self.settings.sendgrid_api_key,
                base_url=self.settings.sendgrid_base_url,
                mail_from=self.settings.mail_from,
            )
        return self._mailer

    async def send_email(self, to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
        """Send one message. Failures are logged and reported as False."""
        if not self.settings.notifications_enabled:
            logger.info(f"Email simulated (no mail API key): to={to}, subject={subject!r}")
            app_metrics.notifications_sent_total.labels(outcome="simulated").inc()
            return True

        try:
            await self._get_mailer().send(to, subject, text, html)
        except NotificationError as e:
            logger.error(f"Failed to send email to {to}: {e.message}")
            app_metrics.notifications_sent_total.labels(outcome="failed").inc()
            return False

        app_metrics.notifications_sent_total.labels(outcome="sent").inc()
        logger.info(f"Email sent: to={to}, subject={subject!r}")
        return True

    async def recipients(self) -> List[str]:
        """Emails of active technicians and administrators."""
        users = await UserService.from_session(self._session).users_by_roles(RECIPIENT_ROLES)
        return sorted({user.email for user in users if user.email})

    async def _load(self, schedule_id: int):
        schedule = await self._session.get(MaintenanceSchedule, schedule_id)
        if schedule is None:
            logger.warning(f"Maintenance schedule {schedule_id} not found for notification")
            return None, None
        equipment = await self._session.get(Equipment, schedule.equipment_id)
        if equipment is None:
            logger.warning(f"Equipment {schedule.equipment_id} not found for notification")
            return schedule, None
        return schedule, equipment

    async def _broadcast(self, message: Dict[str, str]) -> bool:
        recipients = await self.recipients()
        if not recipients:
            logger.warning("No recipients found for maintenance notification")
            return False

        results = [await self.send_email(to, message["subject"], message["text"]) for to in recipients]
        return any(results)

    async def send_maintenance_notification(self, schedule_id: int) -> bool:
        """Announce a newly scheduled maintenance to technicians and admins."""
        schedule, equipment = await self._load(schedule_id)
        if schedule is None or equipment is None:
            return False
        return await self._broadcast(build_schedule_message(schedule, equipment))

    async def send_maintenance_reminder(self, schedule_id: int, now: Optional[datetime] = None) -> bool:
        schedule, equipment = await self._load(schedule_id)
        if schedule is None or equipment is None:
            return False
        return await self._broadcast(build_reminder_message(schedule, equipment, now))

    async def dispatch_due_reminders(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Send reminders for schedules due within their own reminder window.

        Returns:
            Dict with the number of schedules checked, due, sent and failed
        """
        now = now or utcnow()
        today = datetime.combine(now.date(), time.min)

        result = await self._session.execute(
            select(MaintenanceSchedule).where(MaintenanceSchedule.next_date >= today)
        )
        schedules = list(result.scalars().all())

        stats = {"checked": len(schedules), "due": 0, "sent": 0, "failed": 0}
        for schedule in schedules:
            window_end = datetime.combine((today + timedelta(days=schedule.reminder_days)).date(), time.max)
            if schedule.next_date > window_end:
                continue

            stats["due"] += 1
            if await self.send_maintenance_reminder(schedule.id, now=now):
                stats["sent"] += 1
            else:
                stats["failed"] += 1

        logger.info(
            f"Reminder dispatch complete: checked={stats['checked']}, due={stats['due']}, "
            f"sent={stats['sent']}, failed={stats['failed']}"
        )
        return stats

    async def close(self) -> None:
        if self._mailer is not None:
            await self._mailer.close()
