"""
System Management Router
========================
Operator endpoints: storage consistency check and session cleanup.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from dependencies import require_admin
from logging_config import get_logger
from models import User
from schemas import StorageCheckResponse
from services.auth_service import AuthService
from services.document_service import DocumentService

logger = get_logger(__name__)

router = APIRouter()


@router.post("/storage-check", response_model=StorageCheckResponse)
async def storage_check(
    user: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """
    Verify that every document's stored file exists.

    Documents whose files are gone are reported, never deleted.
    """
    stats = await DocumentService.from_session(session).storage_check()
    logger.info(
        "Storage check requested",
        user_id=user.id,
        checked=stats["checked"],
        missing=stats["missing"],
    )
    return stats


@router.post("/sessions/purge")
async def purge_sessions(
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    purged = await AuthService.from_session(session).purge_expired_sessions()
    return {"purged": purged}
