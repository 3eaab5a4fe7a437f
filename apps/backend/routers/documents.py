"""
Documents Router
================
Document records, file uploads and downloads, versions and activity log.

Files live under ``<upload_dir>/documents``; records keep the path relative
to the upload root.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile as StarletteUploadFile

from config import get_settings
from database.session import get_session
from dependencies import get_current_user, require_roles
from exceptions import StorageError, ValidationError
from logging_config import get_logger
from models import DocumentAction, User
from schemas import (
    ActivityCreate,
    ActivityResponse,
    ActivityWithContext,
    DocumentCreate,
    DocumentResponse,
    DocumentUpdate,
    DocumentUploadResponse,
    PrepareUploadRequest,
    PrepareUploadResponse,
    UploadedFileInfo,
    VersionCreate,
    VersionResponse,
)
from services import storage
from services.document_service import DocumentService, download_name, file_extension

logger = get_logger(__name__)

router = APIRouter()


def _max_upload_bytes() -> int:
    return get_settings().max_upload_size_mb * 1024 * 1024


# =============================================================================
# Listing & Search
# =============================================================================

@router.get("/documents", response_model=List[DocumentResponse])
async def list_documents(
    folder_id: Optional[int] = None,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Documents in a folder, or the unfiled ones when no folder is given."""
    return await DocumentService.from_session(session).list_documents(folder_id)


@router.get("/documents/search", response_model=List[DocumentResponse])
async def search_documents(
    q: Optional[str] = None,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Search query is required")
    return await DocumentService.from_session(session).search_documents(q)


# =============================================================================
# Upload
# =============================================================================

@router.post("/documents", response_model=DocumentResponse, status_code=201)
async def create_document(
    request: DocumentCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Register a file already stored through PUT /upload-file."""
    return await DocumentService.from_session(session).create_document(
        user_id=user.id,
        **request.model_dump(),
    )


@router.post("/documents/upload", response_model=DocumentUploadResponse, status_code=201)
async def upload_document(
    file: Optional[UploadFile] = File(None),
    folder_id: Optional[int] = Form(None),
    description: Optional[str] = Form(None),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """
    Upload a file and create its document record.

    The type is detected from the extension and mimetype. AutoCAD, Revit and
    3D model extensions are remembered for downloads.
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    filename = storage.unique_name("document-", file_extension(file.filename))
    relative, size = storage.save_upload(
        file,
        storage.DOCUMENTS_DIR,
        filename,
        max_bytes=_max_upload_bytes(),
        kind="document",
    )

    try:
        document = await DocumentService.from_session(session).create_document(
            name=file.filename,
            path=relative,
            user_id=user.id,
            size=size,
            description=description,
            folder_id=folder_id,
            mimetype=file.content_type,
        )
    except Exception:
        storage.remove_file(relative)
        raise

    logger.info("Document uploaded", document_id=document.id, size=size, user_id=user.id)

    response = DocumentUploadResponse.model_validate(
        {
            **DocumentResponse.model_validate(document).model_dump(),
            "file_info": UploadedFileInfo(
                original_name=file.filename,
                filename=filename,
                path=relative,
                size=size,
                mimetype=file.content_type,
            ),
        }
    )
    return response


@router.post("/documents/prepare-upload", response_model=PrepareUploadResponse)
async def prepare_upload(
    request: PrepareUploadRequest,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Reserve a storage filename for a following PUT /upload-file."""
    return await DocumentService.from_session(session).prepare_upload(
        request.file_extension, document_id=request.document_id
    )


@router.put("/upload-file")
async def upload_file_body(
    request: Request,
    filename: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """
    Store the raw request body as ``documents/<filename>``.

    The name must be a plain file name; anything that looks like a path is rejected.
    """
    if not filename:
        raise HTTPException(status_code=400, detail="A file name is required")
    safe_name = storage.sanitize_filename(filename)

    body = await request.body()
    if len(body) > _max_upload_bytes():
        raise ValidationError(
            f"File exceeds the maximum size of {get_settings().max_upload_size_mb} MB", field="file"
        )

    relative = f"{storage.DOCUMENTS_DIR}/{safe_name}"
    size = storage.write_bytes(body, relative, kind="document")

    logger.info("Raw file stored", path=relative, size=size, user_id=user.id)
    return {"message": "File uploaded", "path": relative, "size": size}


# =============================================================================
# Single Document
# =============================================================================

@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: int,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await DocumentService.from_session(session).require_document(document_id)


@router.get("/documents/{document_id}/download")
async def download_document(
    document_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Stream the current file of a document and log the download."""
    service = DocumentService.from_session(session)
    document = await service.require_document(document_id)

    try:
        path = storage.resolve_stored_path(document.path)
    except StorageError:
        raise HTTPException(status_code=404, detail="File not found on server")
    if not path.is_file():
        logger.warning("Document file missing", document_id=document_id, path=document.path)
        raise HTTPException(status_code=404, detail="File not found on server")

    await service.log_activity(
        document.id, user.id, DocumentAction.DOWNLOAD.value, f"Document {document.name} downloaded"
    )
    return FileResponse(path, filename=download_name(document), media_type="application/octet-stream")


@router.put("/documents/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: int,
    request: DocumentUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await DocumentService.from_session(session).update_document(
        document_id, request.model_dump(exclude_unset=True), user_id=user.id
    )


@router.patch("/documents/{document_id}", response_model=DocumentResponse)
async def patch_document(
    document_id: int,
    request: DocumentUpdate,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Partial update without an activity entry."""
    return await DocumentService.from_session(session).update_document(
        document_id, request.model_dump(exclude_unset=True), log=False
    )


@router.delete("/documents/{document_id}", status_code=204)
async def delete_document(
    document_id: int,
    user: User = Depends(require_roles("admin", permission="can_delete_documents")),
    session: AsyncSession = Depends(get_session),
):
    await DocumentService.from_session(session).delete_document(document_id, user_id=user.id)
    return Response(status_code=204)


# =============================================================================
# Versions
# =============================================================================

@router.get("/documents/{document_id}/versions", response_model=List[VersionResponse])
async def list_versions(
    document_id: int,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await DocumentService.from_session(session).list_versions(document_id)


@router.post("/documents/{document_id}/versions", response_model=VersionResponse, status_code=201)
async def create_version(
    document_id: int,
    request: Request,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """
    Add a new version.

    Accepts either JSON ``{path, size}`` for a file stored beforehand, or a
    multipart ``file`` which is stored here.
    """
    service = DocumentService.from_session(session)

    if request.headers.get("content-type", "").startswith("multipart/form-data"):
        form = await request.form()
        upload = form.get("file")
        if not isinstance(upload, StarletteUploadFile) or not upload.filename:
            raise HTTPException(status_code=400, detail="No file uploaded")

        reserved = await service.prepare_upload(file_extension(upload.filename) or ".bin", document_id)
        relative, size = storage.save_upload(
            upload,
            storage.DOCUMENTS_DIR,
            reserved["filename"],
            max_bytes=_max_upload_bytes(),
            kind="document",
        )
        try:
            return await service.create_version(document_id, relative, size, user.id)
        except Exception:
            storage.remove_file(relative)
            raise

    try:
        payload = VersionCreate.model_validate(await request.json())
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors())
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON or multipart")

    return await service.create_version(document_id, payload.path, payload.size, user.id)


# =============================================================================
# Activity
# =============================================================================

@router.get("/activity", response_model=List[ActivityWithContext])
async def recent_activity(
    limit: int = Query(10, ge=1, le=200),
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await DocumentService.from_session(session).recent_activity(limit)


@router.get("/documents/{document_id}/activity", response_model=List[ActivityWithContext])
async def document_activity(
    document_id: int,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await DocumentService.from_session(session).document_activity(document_id)


@router.post("/documents/{document_id}/activity", response_model=ActivityResponse, status_code=201)
async def log_document_activity(
    document_id: int,
    request: ActivityCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = DocumentService.from_session(session)
    await service.require_document(document_id)
    return await service.log_activity(document_id, user.id, request.action, request.details)
