"""
Unit Tests - Maintenance Notifications
======================================
Mail is captured with an httpx MockTransport; nothing leaves the process.
"""

import json
from datetime import datetime, timedelta

import httpx
import pytest
from tenacity import wait_none

from config import Settings
from exceptions import NotificationError
from models import Equipment, MaintenanceSchedule
from services.equipment_service import EquipmentService
from services.maintenance_service import MaintenanceService
from services.notification_service import (
    MailServiceBusyError,
    NotificationService,
    SendGridClient,
    build_reminder_message,
    build_schedule_message,
    days_until,
)

pytestmark = pytest.mark.unit

NOW = datetime(2024, 6, 3, 9, 0)


class MailRecorder:
    """Transport handler answering with a scripted list of status codes."""

    def __init__(self, *statuses: int):
        self.statuses = list(statuses) or [202]
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status)

    @property
    def recipients(self):
        return [json.loads(r.content)["personalizations"][0]["to"][0]["email"] for r in self.requests]


def _mailer(recorder: MailRecorder) -> SendGridClient:
    return SendGridClient("SG.test", transport=httpx.MockTransport(recorder))


def _service(session, recorder: MailRecorder) -> NotificationService:
    return NotificationService.from_session(
        session, mailer=_mailer(recorder), settings=Settings(sendgrid_api_key="SG.test")
    )


async def _schedule(session, next_date, reminder_days=7, code="EQ-7"):
    pump = await EquipmentService.from_session(session).create_equipment({"name": "Boiler", "code": code})
    return await MaintenanceService.from_session(session).create_schedule({
        "equipment_id": pump.id,
        "type": "preventive",
        "next_date": next_date,
        "reminder_days": reminder_days,
        "description": "Annual inspection",
    })


class TestMessages:

    def test_days_until_rounds_up(self):
        assert days_until(NOW + timedelta(days=1, hours=12), NOW) == 2
        assert days_until(NOW + timedelta(days=3), NOW) == 3
        assert days_until(NOW, NOW) == 0

    def test_schedule_message(self):
        schedule = MaintenanceSchedule(type="corrective", next_date=NOW, description=None)
        equipment = Equipment(name="Boiler", code="EQ-7")

        message = build_schedule_message(schedule, equipment)

        assert message["subject"] == "Maintenance scheduled: Boiler (EQ-7)"
        assert "corrective maintenance" in message["text"]
        assert "Monday, 03 June 2024 at 09:00" in message["text"]
        assert "Not specified" in message["text"]

    def test_reminder_message(self):
        schedule = MaintenanceSchedule(type="preventive", next_date=NOW + timedelta(days=2))
        equipment = Equipment(name="Boiler", code="EQ-7")

        message = build_reminder_message(schedule, equipment, now=NOW)

        assert message["subject"] == "REMINDER: Maintenance of Boiler in 2 day(s)"


class TestSendGridClient:

    @pytest.mark.asyncio
    async def test_posts_mail_send_payload(self):
        recorder = MailRecorder(202)
        async with _mailer(recorder) as client:
            await client.send("tech@example.com", "Subject", "line one\nline two")

        request = recorder.requests[0]
        body = json.loads(request.content)
        assert request.url.path == "/v3/mail/send"
        assert request.headers["Authorization"] == "Bearer SG.test"
        assert body["content"][1]["value"] == "line one<br>line two"

    @pytest.mark.asyncio
    async def test_busy_responses_are_retried(self):
        recorder = MailRecorder(503, 429, 202)
        client = _mailer(recorder)

        await SendGridClient.send.retry_with(wait=wait_none())(client, "tech@example.com", "S", "T")
        await client.close()

        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_retries_give_up_after_three_attempts(self):
        recorder = MailRecorder(503)
        client = _mailer(recorder)

        with pytest.raises(MailServiceBusyError):
            await SendGridClient.send.retry_with(wait=wait_none())(client, "tech@example.com", "S", "T")
        await client.close()

        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        recorder = MailRecorder(400)

        with pytest.raises(NotificationError):
            async with _mailer(recorder) as client:
                await client.send("tech@example.com", "S", "T")

        assert len(recorder.requests) == 1


class TestNotificationService:

    @pytest.mark.asyncio
    async def test_without_api_key_sends_are_simulated(self, session):
        service = NotificationService.from_session(session, settings=Settings(sendgrid_api_key=None))
        assert await service.send_email("a@example.com", "S", "T") is True

    @pytest.mark.asyncio
    async def test_failed_send_reports_false(self, session):
        service = _service(session, MailRecorder(400))

        assert await service.send_email("a@example.com", "S", "T") is False
        await service.close()

    @pytest.mark.asyncio
    async def test_recipients_are_active_staff(self, session, seeded_users):
        recipients = await NotificationService.from_session(session).recipients()
        assert recipients == ["root@example.com", "tech@example.com"]

    @pytest.mark.asyncio
    async def test_schedule_notification_goes_to_staff(self, session, seeded_users):
        recorder = MailRecorder(202)
        service = _service(session, recorder)
        schedule = await _schedule(session, NOW)

        assert await service.send_maintenance_notification(schedule.id) is True
        await service.close()

        assert recorder.recipients == ["root@example.com", "tech@example.com"]

    @pytest.mark.asyncio
    async def test_notification_without_recipients(self, session):
        recorder = MailRecorder(202)
        schedule = await _schedule(session, NOW)

        assert await _service(session, recorder).send_maintenance_notification(schedule.id) is False
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_notification_for_unknown_schedule(self, session, seeded_users):
        assert await _service(session, MailRecorder()).send_maintenance_notification(404) is False

    @pytest.mark.asyncio
    async def test_dispatch_due_reminders(self, session, seeded_users):
        recorder = MailRecorder(202)
        service = _service(session, recorder)
        await _schedule(session, NOW + timedelta(days=2), reminder_days=3, code="EQ-1")
        await _schedule(session, NOW + timedelta(days=10), reminder_days=3, code="EQ-2")
        await _schedule(session, NOW - timedelta(days=2), reminder_days=3, code="EQ-3")

        stats = await service.dispatch_due_reminders(now=NOW)
        await service.close()

        assert stats == {"checked": 2, "due": 1, "sent": 1, "failed": 0}
        assert len(recorder.requests) == 2
        assert "in 2 day(s)" in json.loads(recorder.requests[0].content)["subject"]
