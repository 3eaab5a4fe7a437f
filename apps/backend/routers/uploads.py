"""
Uploads Router
==============
Generic file upload used by forms that only need a stored file and its URL.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from config import get_settings
from dependencies import get_current_user
from logging_config import get_logger
from models import User
from schemas import FileUploadResponse
from services import storage
from services.document_service import file_extension

logger = get_logger(__name__)

router = APIRouter()


@router.post("/upload", response_model=FileUploadResponse, status_code=201)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_user),
):
    """
    Store a file under a generated name.

    The client's file name is only reported back, never used as a path.
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    filename = storage.unique_name("", file_extension(file.filename))
    relative, _ = storage.save_upload(
        file,
        "",
        filename,
        max_bytes=get_settings().max_upload_size_mb * 1024 * 1024,
    )

    logger.info("File uploaded", filename=filename, user_id=user.id)
    return FileUploadResponse(
        filename=filename,
        original_name=file.filename,
        path=relative,
        url=storage.public_url(relative),
    )
