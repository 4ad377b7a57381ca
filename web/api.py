"""API route handlers for storage configuration and video upload"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.concurrency import run_in_threadpool

from consult.models.user import User
from consult.utils.exceptions import UploadError, UploadErrorKind
from consult.utils.logger import get_logger
from .auth_deps import AppServices, get_services, require_admin, require_auth
from .models import UpdateStoragePathRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "consult-api"}


@router.api_route("/update-storage-path", methods=["GET", "POST"])
async def update_storage_path(
    body: Optional[UpdateStoragePathRequest] = None,
    admin: User = Depends(require_admin),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """Set the destination for future uploads (admin only)"""
    new_path = body.new_storage_path if body else None
    config = await run_in_threadpool(services.config_provider.write, new_path)
    logger.info("Storage path changed", path=config.path, changed_by=admin.id)
    return {
        "success": True,
        "message": "Storage path updated successfully",
        "path": config.path,
        "folder": config.path,
    }


@router.get("/get-storage-path")
async def get_storage_path(services: AppServices = Depends(get_services)) -> Dict[str, str]:
    """Current upload destination (falls back to the default folder)"""
    config = await run_in_threadpool(services.config_provider.read)
    return {"path": config.path}


@router.post("/save-video")
async def save_video(
    video_file: Optional[UploadFile] = File(None, alias="videoFile"),
    current_user: User = Depends(require_auth),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """
    Store an uploaded consultation video.

    Response carries the asset reference to persist on the consultation:
    videoUrl + publicId for cloud storage, path for local storage.
    """
    if video_file is None or not video_file.filename:
        raise UploadError("No video file uploaded", UploadErrorKind.NO_FILE)

    try:
        result = await run_in_threadpool(
            services.resolver.upload, video_file.file, video_file.filename
        )
    finally:
        await video_file.close()

    logger.info(
        "Video saved",
        user_id=current_user.id,
        backend=result.backend,
        location=result.location,
    )

    if result.backend == "cloud":
        return {
            "success": True,
            "message": "Video uploaded successfully to Cloudinary",
            "videoUrl": result.location,
            "publicId": result.public_id,
        }
    return {
        "success": True,
        "message": "Video saved successfully",
        "path": result.location,
    }
