"""
Maintenance Router
==================
Maintenance schedules, interventions, attachments and email reminders.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile as StarletteUploadFile

from config import get_settings
from database.session import get_session
from dependencies import get_current_user, require_admin, require_roles
from logging_config import get_logger
from models import User
from schemas import (
    AttachmentCreate,
    AttachmentResponse,
    InterventionCreate,
    InterventionResponse,
    InterventionUpdate,
    InterventionWithContext,
    ReminderDispatchResponse,
    ScheduleCompleteRequest,
    ScheduleCompleteResponse,
    ScheduleCreate,
    ScheduleNotificationResponse,
    ScheduleResponse,
    ScheduleUpdate,
    ScheduleWithEquipment,
    ScheduleWithNotificationRequest,
    to_naive_utc,
)
from services import storage
from services.document_service import file_extension
from services.maintenance_service import MaintenanceService
from services.notification_service import NotificationService

logger = get_logger(__name__)

router = APIRouter()

schedule_maintenance = require_roles("admin", "technician", permission="can_schedule_maintenance")
complete_maintenance = require_roles("admin", "technician", permission="can_complete_maintenance")


# =============================================================================
# Schedules
# =============================================================================

@router.get("/maintenance-schedules", response_model=List[ScheduleWithEquipment])
async def list_schedules(
    equipment_id: Optional[int] = None,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await MaintenanceService.from_session(session).list_schedules(equipment_id)


@router.get("/maintenance-schedules/upcoming", response_model=List[ScheduleWithEquipment])
async def upcoming_schedules(
    days: int = Query(7, ge=0, le=366),
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Schedules due from the start of today to the end of today + `days`."""
    return await MaintenanceService.from_session(session).upcoming_schedules(days)


@router.post("/maintenance-schedules", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    request: ScheduleCreate,
    _: User = Depends(schedule_maintenance),
    session: AsyncSession = Depends(get_session),
):
    return await MaintenanceService.from_session(session).create_schedule(request.model_dump())


@router.post("/maintenance/schedule", response_model=ScheduleNotificationResponse, status_code=201)
async def schedule_with_notification(
    request: ScheduleWithNotificationRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """
    Schedule maintenance from the scheduling form.

    With ``send_email`` the technicians and administrators are notified.
    A failed notification does not undo the schedule.
    """
    data = request.model_dump(exclude={"send_email"})
    schedule = await MaintenanceService.from_session(session).create_schedule(data)

    email_sent = False
    if request.send_email:
        notifications = NotificationService.from_session(session)
        try:
            email_sent = await notifications.send_maintenance_notification(schedule.id)
        finally:
            await notifications.close()

    logger.info(
        "Maintenance scheduled",
        schedule_id=schedule.id,
        user_id=user.id,
        email_requested=request.send_email,
        email_sent=email_sent,
    )
    return ScheduleNotificationResponse(
        **ScheduleResponse.model_validate(schedule).model_dump(),
        email_sent=email_sent,
    )


@router.post("/maintenance/reminders/dispatch", response_model=ReminderDispatchResponse)
async def dispatch_reminders(
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Send reminders for every schedule inside its reminder window."""
    notifications = NotificationService.from_session(session)
    try:
        return await notifications.dispatch_due_reminders()
    finally:
        await notifications.close()


@router.put("/maintenance-schedules/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: int,
    request: ScheduleUpdate,
    _: User = Depends(schedule_maintenance),
    session: AsyncSession = Depends(get_session),
):
    return await MaintenanceService.from_session(session).update_schedule(
        schedule_id, request.model_dump(exclude_unset=True)
    )


@router.delete("/maintenance-schedules/{schedule_id}", status_code=204)
async def delete_schedule(
    schedule_id: int,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    await MaintenanceService.from_session(session).delete_schedule(schedule_id)
    return Response(status_code=204)


@router.post("/maintenance-schedules/{schedule_id}/complete", response_model=ScheduleCompleteResponse)
async def complete_schedule(
    schedule_id: int,
    request: Optional[ScheduleCompleteRequest] = None,
    user: User = Depends(complete_maintenance),
    session: AsyncSession = Depends(get_session),
):
    """Record a completed preventive intervention and move next_date on by the frequency."""
    request = request or ScheduleCompleteRequest()
    result = await MaintenanceService.from_session(session).complete_schedule(
        schedule_id,
        user.id,
        findings=request.findings,
        actions=request.actions,
        parts=request.parts,
    )
    return ScheduleCompleteResponse(
        schedule=ScheduleResponse.model_validate(result["schedule"]),
        intervention=InterventionResponse.model_validate(result["intervention"]),
    )


# =============================================================================
# Interventions
# =============================================================================

@router.get("/maintenance-interventions", response_model=List[InterventionWithContext])
async def list_interventions(
    equipment_id: Optional[int] = None,
    type: Optional[str] = None,
    equipment_type_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Interventions whose start_date falls in [start_date, end_date)."""
    return await MaintenanceService.from_session(session).list_interventions(
        equipment_id=equipment_id,
        type=type,
        equipment_type_id=equipment_type_id,
        start_date=to_naive_utc(start_date),
        end_date=to_naive_utc(end_date),
    )


@router.get("/maintenance-interventions/recent", response_model=List[InterventionWithContext])
async def recent_interventions(
    limit: int = Query(10, ge=1, le=100),
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await MaintenanceService.from_session(session).recent_interventions(limit)


@router.get("/maintenance-interventions/past", response_model=List[InterventionWithContext])
async def past_interventions(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await MaintenanceService.from_session(session).past_interventions(page, page_size)


@router.post("/maintenance-interventions", response_model=InterventionResponse, status_code=201)
async def create_intervention(
    request: InterventionCreate,
    user: User = Depends(complete_maintenance),
    session: AsyncSession = Depends(get_session),
):
    """Create an intervention performed by the caller. Equipment status follows its status."""
    return await MaintenanceService.from_session(session).create_intervention(request.model_dump(), user.id)


@router.get("/maintenance-interventions/{intervention_id}", response_model=InterventionWithContext)
async def get_intervention(
    intervention_id: int,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await MaintenanceService.from_session(session).get_intervention_detail(intervention_id)


@router.put("/maintenance-interventions/{intervention_id}", response_model=InterventionResponse)
async def update_intervention(
    intervention_id: int,
    request: InterventionUpdate,
    _: User = Depends(complete_maintenance),
    session: AsyncSession = Depends(get_session),
):
    return await MaintenanceService.from_session(session).update_intervention(
        intervention_id, request.model_dump(exclude_unset=True)
    )


# =============================================================================
# Attachments
# =============================================================================

@router.get("/maintenance-interventions/{intervention_id}/attachments", response_model=List[AttachmentResponse])
async def list_attachments(
    intervention_id: int,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = MaintenanceService.from_session(session)
    await service.require_intervention(intervention_id)
    return await service.list_attachments(intervention_id)


@router.post(
    "/maintenance-interventions/{intervention_id}/attachments",
    response_model=AttachmentResponse,
    status_code=201,
)
async def add_attachment(
    intervention_id: int,
    request: Request,
    user: User = Depends(complete_maintenance),
    session: AsyncSession = Depends(get_session),
):
    """
    Attach a file to an intervention.

    Accepts JSON metadata for a file stored beforehand, or a multipart
    ``file`` which is stored under the attachments directory.
    """
    service = MaintenanceService.from_session(session)
    await service.require_intervention(intervention_id)

    if request.headers.get("content-type", "").startswith("multipart/form-data"):
        form = await request.form()
        upload = form.get("file")
        if not isinstance(upload, StarletteUploadFile) or not upload.filename:
            raise HTTPException(status_code=400, detail="No file uploaded")

        filename = storage.unique_name("attachment-", file_extension(upload.filename))
        relative, size = storage.save_upload(
            upload,
            storage.ATTACHMENTS_DIR,
            filename,
            max_bytes=get_settings().max_upload_size_mb * 1024 * 1024,
            kind="attachment",
        )
        try:
            return await service.add_attachment(
                intervention_id,
                name=upload.filename,
                path=relative,
                user_id=user.id,
                type=upload.content_type,
                size=size,
            )
        except Exception:
            storage.remove_file(relative)
            raise

    try:
        payload = AttachmentCreate.model_validate(await request.json())
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors())
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON or multipart")

    return await service.add_attachment(
        intervention_id,
        name=payload.name,
        path=payload.path,
        user_id=user.id,
        type=payload.type,
        size=payload.size,
    )


@router.delete("/maintenance-attachments/{attachment_id}", status_code=204)
async def delete_attachment(
    attachment_id: int,
    _: User = Depends(complete_maintenance),
    session: AsyncSession = Depends(get_session),
):
    """Remove the attachment and its stored file."""
    await MaintenanceService.from_session(session).delete_attachment(attachment_id)
    return Response(status_code=204)
