"""
Maintenance Service
===================
Maintenance schedules, interventions and intervention attachments.

Intervention status drives equipment status: an intervention in progress
puts the equipment in maintenance, a completed one with an end date
returns it to operation.
"""

import calendar
import logging
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from exceptions import NotFoundError, ValidationError
from models import (
    Equipment,
    EquipmentStatus,
    Frequency,
    InterventionStatus,
    InterventionType,
    MaintenanceAttachment,
    MaintenanceIntervention,
    MaintenanceSchedule,
    ScheduleType,
    User,
    row_to_dict,
    utcnow,
)
from services.base import BaseService
from services.equipment_service import EquipmentService
from services import storage

logger = logging.getLogger(__name__)

RECENT_WINDOW_DAYS = 14

SCHEDULE_FIELDS = ("equipment_id", "type", "frequency", "next_date", "description", "reminder_days")
INTERVENTION_FIELDS = (
    "equipment_id", "schedule_id", "type", "status", "start_date",
    "end_date", "findings", "actions", "parts",
)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def advance_date(value: datetime, frequency: Optional[str]) -> datetime:
    """Next occurrence of a schedule. Schedules without a frequency do not move."""
    if frequency == Frequency.DAILY.value:
        return value + timedelta(days=1)
    if frequency == Frequency.WEEKLY.value:
        return value + timedelta(days=7)
    if frequency == Frequency.MONTHLY.value:
        return add_months(value, 1)
    if frequency == Frequency.QUARTERLY.value:
        return add_months(value, 3)
    if frequency == Frequency.YEARLY.value:
        return add_months(value, 12)
    return value


def _check_choice(value: Optional[str], choices: tuple, field: str) -> None:
    if value is not None and value not in choices:
        raise ValidationError(f"Invalid {field}. Must be one of: {', '.join(choices)}", field=field, value=value)


def _equipment_summary(equipment: Optional[Equipment]) -> Optional[Dict[str, Any]]:
    if equipment is None:
        return None
    return {
        "id": equipment.id,
        "name": equipment.name,
        "code": equipment.code,
        "status": equipment.status,
        "type_id": equipment.type_id,
    }


def _technician_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "username": user.username, "avatar": user.avatar}


class MaintenanceService(BaseService):
    """
    Usage:
        service = MaintenanceService.from_session(session)
        due = await service.upcoming_schedules(days=7)
    """

    # =========================================================================
    # Schedules
    # =========================================================================

    async def list_schedules(self, equipment_id: Optional[int] = None) -> List[Dict[str, Any]]:
        stmt = select(MaintenanceSchedule, Equipment).join(
            Equipment, Equipment.id == MaintenanceSchedule.equipment_id
        )
        if equipment_id is not None:
            stmt = stmt.where(MaintenanceSchedule.equipment_id == equipment_id)
        result = await self._session.execute(stmt.order_by(MaintenanceSchedule.next_date))
        return [self._schedule_entry(schedule, equipment) for schedule, equipment in result.all()]

    async def upcoming_schedules(self, days: int = 7, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Schedules due between the start of today and the end of today + `days`."""
        now = now or utcnow()
        window_start = datetime.combine(now.date(), time.min)
        window_end = datetime.combine((now + timedelta(days=days)).date(), time.max)

        stmt = (
            select(MaintenanceSchedule, Equipment)
            .join(Equipment, Equipment.id == MaintenanceSchedule.equipment_id)
            .where(
                MaintenanceSchedule.next_date >= window_start,
                MaintenanceSchedule.next_date <= window_end,
            )
            .order_by(MaintenanceSchedule.next_date.asc())
        )
        result = await self._session.execute(stmt)
        return [self._schedule_entry(schedule, equipment) for schedule, equipment in result.all()]

    async def get_schedule(self, schedule_id: int) -> Optional[MaintenanceSchedule]:
        return await self._session.get(MaintenanceSchedule, schedule_id)

    async def require_schedule(self, schedule_id: int) -> MaintenanceSchedule:
        schedule = await self.get_schedule(schedule_id)
        if schedule is None:
            raise NotFoundError("Maintenance schedule", schedule_id)
        return schedule

    async def create_schedule(self, data: Dict[str, Any]) -> MaintenanceSchedule:
        """
        Raises:
            ValidationError: Missing or invalid type, equipment or next date
            NotFoundError: Unknown equipment
        """
        for required in ("type", "equipment_id", "next_date"):
            if data.get(required) is None:
                raise ValidationError(f"Field '{required}' is required", field=required)

        self._check_schedule(data)
        await EquipmentService.from_session(self._session).require_equipment(data["equipment_id"])

        values = {k: v for k, v in data.items() if k in SCHEDULE_FIELDS and v is not None}
        schedule = MaintenanceSchedule(**values)
        self._session.add(schedule)
        await self._flush("Could not create schedule", resource="maintenance_schedule")

        logger.info(
            f"Created maintenance schedule: id={schedule.id}, equipment_id={schedule.equipment_id}, "
            f"next_date={schedule.next_date}"
        )
        return schedule

    async def update_schedule(self, schedule_id: int, changes: Dict[str, Any]) -> MaintenanceSchedule:
        schedule = await self.require_schedule(schedule_id)
        self._check_schedule(changes)

        for key, value in changes.items():
            if key in SCHEDULE_FIELDS and key != "equipment_id" and value is not None:
                setattr(schedule, key, value)
        await self._session.flush()
        return schedule

    async def delete_schedule(self, schedule_id: int) -> bool:
        schedule = await self.require_schedule(schedule_id)
        await self._session.delete(schedule)
        await self._session.flush()
        return True

    async def complete_schedule(
        self,
        schedule_id: int,
        user_id: Optional[int],
        findings: Optional[str] = None,
        actions: Optional[str] = None,
        parts: Optional[List[Any]] = None,
    ) -> Dict[str, Any]:
        """
        Record a completed preventive intervention and move the schedule on.

        Returns:
            Dict with the updated ``schedule`` and the new ``intervention``
        """
        schedule = await self.require_schedule(schedule_id)
        now = utcnow()

        intervention = MaintenanceIntervention(
            equipment_id=schedule.equipment_id,
            schedule_id=schedule.id,
            type=InterventionType.PREVENTIVE.value,
            status=InterventionStatus.COMPLETED.value,
            start_date=now,
            end_date=now,
            technician=user_id,
            findings=findings,
            actions=actions,
            parts=parts,
        )
        self._session.add(intervention)

        schedule.next_date = advance_date(schedule.next_date, schedule.frequency)
        await self._flush("Could not complete schedule", resource="maintenance_schedule")
        await self._sync_equipment_status(intervention)

        logger.info(
            f"Completed maintenance schedule: id={schedule.id}, next_date={schedule.next_date}, "
            f"intervention_id={intervention.id}"
        )
        return {"schedule": schedule, "intervention": intervention}

    @staticmethod
    def _check_schedule(data: Dict[str, Any]) -> None:
        _check_choice(data.get("type"), tuple(t.value for t in ScheduleType), "type")
        _check_choice(data.get("frequency"), tuple(f.value for f in Frequency), "frequency")
        reminder_days = data.get("reminder_days")
        if reminder_days is not None and reminder_days < 0:
            raise ValidationError("reminder_days must not be negative", field="reminder_days")

    @staticmethod
    def _schedule_entry(schedule: MaintenanceSchedule, equipment: Optional[Equipment]) -> Dict[str, Any]:
        entry = row_to_dict(schedule)
        entry["equipment"] = _equipment_summary(equipment)
        return entry

    # =========================================================================
    # Interventions
    # =========================================================================

    def _intervention_query(self):
        return (
            select(MaintenanceIntervention, Equipment, User)
            .join(Equipment, Equipment.id == MaintenanceIntervention.equipment_id)
            .outerjoin(User, User.id == MaintenanceIntervention.technician)
        )

    async def list_interventions(
        self,
        equipment_id: Optional[int] = None,
        type: Optional[str] = None,
        equipment_type_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Interventions filtered on equipment, type and a start_date window [start, end)."""
        stmt = self._intervention_query()
        if equipment_id is not None:
            stmt = stmt.where(MaintenanceIntervention.equipment_id == equipment_id)
        if type:
            stmt = stmt.where(MaintenanceIntervention.type == type)
        if equipment_type_id is not None:
            stmt = stmt.where(Equipment.type_id == equipment_type_id)
        if start_date is not None:
            stmt = stmt.where(MaintenanceIntervention.start_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(MaintenanceIntervention.start_date < end_date)

        result = await self._session.execute(stmt.order_by(MaintenanceIntervention.start_date.desc()))
        return [self._intervention_entry(*row) for row in result.all()]

    async def recent_interventions(self, limit: int = 10, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        cutoff = (now or utcnow()) - timedelta(days=RECENT_WINDOW_DAYS)
        stmt = (
            self._intervention_query()
            .where(MaintenanceIntervention.start_date >= cutoff)
            .order_by(MaintenanceIntervention.start_date.desc(), MaintenanceIntervention.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [self._intervention_entry(*row) for row in result.all()]

    async def past_interventions(
        self,
        page: int = 1,
        page_size: int = 10,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Interventions older than the recent window, newest first, one page at a time."""
        page = max(page, 1)
        cutoff = (now or utcnow()) - timedelta(days=RECENT_WINDOW_DAYS)
        stmt = (
            self._intervention_query()
            .where(MaintenanceIntervention.start_date < cutoff)
            .order_by(MaintenanceIntervention.start_date.desc(), MaintenanceIntervention.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self._session.execute(stmt)
        return [self._intervention_entry(*row) for row in result.all()]

    async def get_intervention(self, intervention_id: int) -> Optional[MaintenanceIntervention]:
        return await self._session.get(MaintenanceIntervention, intervention_id)

    async def require_intervention(self, intervention_id: int) -> MaintenanceIntervention:
        intervention = await self.get_intervention(intervention_id)
        if intervention is None:
            raise NotFoundError("Maintenance intervention", intervention_id)
        return intervention

    async def get_intervention_detail(self, intervention_id: int) -> Dict[str, Any]:
        result = await self._session.execute(
            self._intervention_query().where(MaintenanceIntervention.id == intervention_id)
        )
        row = result.first()
        if row is None:
            raise NotFoundError("Maintenance intervention", intervention_id)

        entry = self._intervention_entry(*row)
        entry["attachments"] = [row_to_dict(a) for a in await self.list_attachments(intervention_id)]
        return entry

    async def create_intervention(self, data: Dict[str, Any], user_id: Optional[int]) -> MaintenanceIntervention:
        """Create an intervention performed by `user_id` and update the equipment status."""
        self._check_intervention(data)
        await EquipmentService.from_session(self._session).require_equipment(data["equipment_id"])
        if data.get("schedule_id") is not None:
            await self.require_schedule(data["schedule_id"])

        values = {k: v for k, v in data.items() if k in INTERVENTION_FIELDS and v is not None}
        intervention = MaintenanceIntervention(technician=user_id, **values)
        self._session.add(intervention)
        await self._flush("Could not create intervention", resource="maintenance_intervention")

        await self._sync_equipment_status(intervention)
        logger.info(
            f"Created intervention: id={intervention.id}, equipment_id={intervention.equipment_id}, "
            f"status={intervention.status}"
        )
        return intervention

    async def update_intervention(self, intervention_id: int, changes: Dict[str, Any]) -> MaintenanceIntervention:
        intervention = await self.require_intervention(intervention_id)
        self._check_intervention(changes)

        for key, value in changes.items():
            if key in INTERVENTION_FIELDS and key not in ("equipment_id", "schedule_id") and value is not None:
                setattr(intervention, key, value)
        await self._session.flush()

        await self._sync_equipment_status(intervention)
        return intervention

    async def _sync_equipment_status(self, intervention: MaintenanceIntervention) -> None:
        equipment = EquipmentService.from_session(self._session)
        if intervention.status == InterventionStatus.IN_PROGRESS.value:
            await equipment.set_status(intervention.equipment_id, EquipmentStatus.MAINTENANCE.value)
        elif intervention.status == InterventionStatus.COMPLETED.value and intervention.end_date is not None:
            await equipment.set_status(intervention.equipment_id, EquipmentStatus.OPERATIONAL.value)

    @staticmethod
    def _check_intervention(data: Dict[str, Any]) -> None:
        _check_choice(data.get("type"), tuple(t.value for t in InterventionType), "type")
        _check_choice(data.get("status"), tuple(s.value for s in InterventionStatus), "status")
        start, end = data.get("start_date"), data.get("end_date")
        if start is not None and end is not None and end < start:
            raise ValidationError("end_date must not be before start_date", field="end_date")

    @staticmethod
    def _intervention_entry(
        intervention: MaintenanceIntervention,
        equipment: Optional[Equipment],
        technician: Optional[User],
    ) -> Dict[str, Any]:
        entry = row_to_dict(intervention)
        entry["equipment"] = _equipment_summary(equipment)
        entry["technician_data"] = _technician_summary(technician)
        return entry

    # =========================================================================
    # Attachments
    # =========================================================================

    async def list_attachments(self, intervention_id: int) -> List[MaintenanceAttachment]:
        result = await self._session.execute(
            select(MaintenanceAttachment)
            .where(MaintenanceAttachment.intervention_id == intervention_id)
            .order_by(MaintenanceAttachment.created_at, MaintenanceAttachment.id)
        )
        return list(result.scalars().all())

    async def add_attachment(
        self,
        intervention_id: int,
        name: str,
        path: str,
        user_id: Optional[int],
        type: Optional[str] = None,
        size: int = 0,
    ) -> MaintenanceAttachment:
        await self.require_intervention(intervention_id)

        attachment = MaintenanceAttachment(
            intervention_id=intervention_id,
            name=name,
            path=path,
            type=type,
            size=size,
            uploaded_by=user_id,
        )
        self._session.add(attachment)
        await self._flush("Could not add attachment", resource="maintenance_attachment")
        return attachment

    async def delete_attachment(self, attachment_id: int) -> bool:
        attachment = await self._session.get(MaintenanceAttachment, attachment_id)
        if attachment is None:
            raise NotFoundError("Maintenance attachment", attachment_id)

        storage.remove_file(attachment.path)
        await self._session.delete(attachment)
        await self._session.flush()
        return True
