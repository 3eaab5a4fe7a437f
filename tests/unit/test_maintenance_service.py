"""
Unit Tests - Equipment and Maintenance
======================================
Inventory rules, schedule arithmetic and intervention-driven equipment status.
"""

from datetime import datetime, timedelta

import pytest

from exceptions import ConflictError, NotFoundError, ValidationError
from models import MaintenanceAttachment
from services import storage
from services.equipment_service import EquipmentService
from services.maintenance_service import MaintenanceService, add_months, advance_date

pytestmark = pytest.mark.unit

NOW = datetime(2024, 3, 15, 12, 0)


@pytest.fixture
def make_equipment(session):
    async def make(code="EQ-001", **extra):
        data = {"name": f"Pump {code}", "code": code}
        data.update(extra)
        return await EquipmentService.from_session(session).create_equipment(data)

    return make


class TestScheduleArithmetic:

    @pytest.mark.parametrize("start,months,expected", [
        (datetime(2024, 1, 31), 1, datetime(2024, 2, 29)),
        (datetime(2023, 1, 31), 1, datetime(2023, 2, 28)),
        (datetime(2024, 11, 30, 8, 15), 3, datetime(2025, 2, 28, 8, 15)),
        (datetime(2024, 2, 29), 12, datetime(2025, 2, 28)),
    ])
    def test_add_months_clamps_day(self, start, months, expected):
        assert add_months(start, months) == expected

    @pytest.mark.parametrize("frequency,expected", [
        ("daily", datetime(2024, 3, 16, 12, 0)),
        ("weekly", datetime(2024, 3, 22, 12, 0)),
        ("monthly", datetime(2024, 4, 15, 12, 0)),
        ("quarterly", datetime(2024, 6, 15, 12, 0)),
        ("yearly", datetime(2025, 3, 15, 12, 0)),
        (None, NOW),
    ])
    def test_advance_date(self, frequency, expected):
        assert advance_date(NOW, frequency) == expected


class TestEquipmentService:

    @pytest.mark.asyncio
    async def test_create_defaults_to_operational(self, session, make_equipment):
        pump = await make_equipment()
        assert pump.status == "operational"

    @pytest.mark.asyncio
    async def test_invalid_status_and_unknown_type(self, session, make_equipment):
        with pytest.raises(ValidationError):
            await make_equipment(status="broken")
        with pytest.raises(NotFoundError):
            await make_equipment(type_id=42)

    @pytest.mark.asyncio
    async def test_filters_and_search(self, session, make_equipment):
        service = EquipmentService.from_session(session)
        pumps = await service.create_type("Pumps")
        await make_equipment("EQ-001", type_id=pumps.id, location="Basement")
        await make_equipment("EQ-002", status="out_of_service", location="Roof")

        assert [e.code for e in await service.list_equipment(type_id=pumps.id)] == ["EQ-001"]
        assert [e.code for e in await service.list_equipment(status="out_of_service")] == ["EQ-002"]
        assert [e.code for e in await service.search_equipment("roof")] == ["EQ-002"]
        assert [e.code for e in await service.search_equipment("eq-00")] == ["EQ-001", "EQ-002"]

    @pytest.mark.asyncio
    async def test_detail_includes_type(self, session, make_equipment):
        service = EquipmentService.from_session(session)
        chillers = await service.create_type("Chillers")
        unit = await make_equipment(type_id=chillers.id, specifications={"kw": 40})

        detail = await service.get_equipment_detail(unit.id)

        assert detail["type"] == {"id": chillers.id, "name": "Chillers"}
        assert detail["specifications"] == {"kw": 40}

    @pytest.mark.asyncio
    async def test_type_in_use_cannot_be_deleted(self, session, make_equipment):
        service = EquipmentService.from_session(session)
        pumps = await service.create_type("Pumps")
        await make_equipment(type_id=pumps.id)

        with pytest.raises(ConflictError) as exc_info:
            await service.delete_type(pumps.id)

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_duplicate_code(self, session, make_equipment):
        await make_equipment("EQ-100")

        with pytest.raises(ConflictError) as exc_info:
            await make_equipment("EQ-100")

        assert exc_info.value.status_code == 400


class TestSchedules:

    @pytest.mark.asyncio
    async def test_required_fields(self, session, make_equipment):
        pump = await make_equipment()
        service = MaintenanceService.from_session(session)

        with pytest.raises(ValidationError, match="next_date"):
            await service.create_schedule({"equipment_id": pump.id, "type": "preventive"})
        with pytest.raises(ValidationError):
            await service.create_schedule(
                {"equipment_id": pump.id, "type": "routine", "next_date": NOW}
            )

    @pytest.mark.asyncio
    async def test_reminder_days_default(self, session, make_equipment):
        pump = await make_equipment()
        schedule = await MaintenanceService.from_session(session).create_schedule(
            {"equipment_id": pump.id, "type": "preventive", "next_date": NOW}
        )
        assert schedule.reminder_days == 7

    @pytest.mark.asyncio
    async def test_upcoming_window(self, session, make_equipment):
        pump = await make_equipment()
        service = MaintenanceService.from_session(session)
        for due in (
            NOW.replace(hour=0, minute=30),
            NOW + timedelta(days=2),
            NOW + timedelta(days=7, hours=11),
            NOW + timedelta(days=8, hours=1),
            NOW - timedelta(days=1),
        ):
            await service.create_schedule({"equipment_id": pump.id, "type": "preventive", "next_date": due})

        upcoming = await service.upcoming_schedules(days=7, now=NOW)

        assert [s["next_date"] for s in upcoming] == [
            NOW.replace(hour=0, minute=30),
            NOW + timedelta(days=2),
            NOW + timedelta(days=7, hours=11),
        ]
        assert upcoming[0]["equipment"]["code"] == "EQ-001"

    @pytest.mark.asyncio
    async def test_complete_advances_and_records_intervention(self, session, seeded_users, make_equipment):
        pump = await make_equipment(status="maintenance")
        service = MaintenanceService.from_session(session)
        schedule = await service.create_schedule({
            "equipment_id": pump.id,
            "type": "preventive",
            "frequency": "monthly",
            "next_date": datetime(2024, 1, 31, 9, 0),
        })

        result = await service.complete_schedule(
            schedule.id, seeded_users["technician"].id, findings="Seal worn", parts=["seal"]
        )

        assert result["schedule"].next_date == datetime(2024, 2, 29, 9, 0)
        intervention = result["intervention"]
        assert intervention.type == "preventive"
        assert intervention.status == "completed"
        assert intervention.schedule_id == schedule.id
        assert intervention.parts == ["seal"]
        assert pump.status == "operational"


class TestInterventions:

    @pytest.mark.asyncio
    async def test_status_drives_equipment(self, session, seeded_users, make_equipment):
        pump = await make_equipment()
        service = MaintenanceService.from_session(session)

        job = await service.create_intervention(
            {"equipment_id": pump.id, "type": "corrective", "status": "in_progress", "start_date": NOW},
            seeded_users["technician"].id,
        )
        assert pump.status == "maintenance"

        await service.update_intervention(job.id, {"status": "completed"})
        assert pump.status == "maintenance"

        await service.update_intervention(job.id, {"end_date": NOW + timedelta(hours=3)})
        assert pump.status == "operational"

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, session, make_equipment):
        pump = await make_equipment()

        with pytest.raises(ValidationError):
            await MaintenanceService.from_session(session).create_intervention(
                {
                    "equipment_id": pump.id,
                    "type": "corrective",
                    "start_date": NOW,
                    "end_date": NOW - timedelta(hours=1),
                },
                None,
            )

    @pytest.mark.asyncio
    async def test_date_window_is_half_open(self, session, make_equipment):
        pump = await make_equipment()
        service = MaintenanceService.from_session(session)
        for start in (datetime(2024, 3, 1), datetime(2024, 3, 31, 23, 59), datetime(2024, 4, 1)):
            await service.create_intervention(
                {"equipment_id": pump.id, "type": "preventive", "start_date": start}, None
            )

        march = await service.list_interventions(
            start_date=datetime(2024, 3, 1), end_date=datetime(2024, 4, 1)
        )

        assert [i["start_date"] for i in march] == [datetime(2024, 3, 31, 23, 59), datetime(2024, 3, 1)]

    @pytest.mark.asyncio
    async def test_recent_and_past(self, session, seeded_users, make_equipment):
        pump = await make_equipment()
        service = MaintenanceService.from_session(session)
        for days_ago in (1, 13, 15, 40):
            await service.create_intervention(
                {"equipment_id": pump.id, "type": "preventive", "start_date": NOW - timedelta(days=days_ago)},
                seeded_users["technician"].id,
            )

        recent = await service.recent_interventions(now=NOW)
        past = await service.past_interventions(page=1, page_size=1, now=NOW)
        second_page = await service.past_interventions(page=2, page_size=1, now=NOW)

        assert [i["start_date"] for i in recent] == [NOW - timedelta(days=1), NOW - timedelta(days=13)]
        assert recent[0]["technician_data"]["username"] == "tech"
        assert [i["start_date"] for i in past] == [NOW - timedelta(days=15)]
        assert [i["start_date"] for i in second_page] == [NOW - timedelta(days=40)]

    @pytest.mark.asyncio
    async def test_attachments(self, session, make_equipment, upload_dir):
        pump = await make_equipment()
        service = MaintenanceService.from_session(session)
        job = await service.create_intervention({"equipment_id": pump.id, "type": "emergency"}, None)
        storage.write_bytes(b"jpeg", "attachments/photo.jpg")

        attachment = await service.add_attachment(
            job.id, "photo.jpg", "attachments/photo.jpg", None, type="image/jpeg", size=4
        )
        detail = await service.get_intervention_detail(job.id)

        assert [a["name"] for a in detail["attachments"]] == ["photo.jpg"]

        await service.delete_attachment(attachment.id)

        assert not (upload_dir / "attachments" / "photo.jpg").exists()
        assert await session.get(MaintenanceAttachment, attachment.id) is None

    @pytest.mark.asyncio
    async def test_deleting_equipment_removes_attachment_files(self, session, make_equipment, upload_dir):
        pump = await make_equipment()
        other = await make_equipment("EQ-002")
        service = MaintenanceService.from_session(session)
        job = await service.create_intervention({"equipment_id": pump.id, "type": "corrective"}, None)
        kept_job = await service.create_intervention({"equipment_id": other.id, "type": "corrective"}, None)
        storage.write_bytes(b"pdf", "attachments/report.pdf")
        storage.write_bytes(b"png", "attachments/gauge.png")
        attachment_id = (await service.add_attachment(job.id, "report.pdf", "attachments/report.pdf", None)).id
        await service.add_attachment(kept_job.id, "gauge.png", "attachments/gauge.png", None)

        await EquipmentService.from_session(session).delete_equipment(pump.id)

        assert not (upload_dir / "attachments" / "report.pdf").exists()
        assert (upload_dir / "attachments" / "gauge.png").exists()
        session.expunge_all()
        assert await session.get(MaintenanceAttachment, attachment_id) is None

    @pytest.mark.asyncio
    async def test_attachment_needs_intervention(self, session):
        with pytest.raises(NotFoundError):
            await MaintenanceService.from_session(session).add_attachment(99, "x", "attachments/x", None)
