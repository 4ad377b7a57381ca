"""
Storage backends for uploaded consultation videos.

A backend is resolved per upload from the current storage configuration:
LocalBackend(path) writes into a directory, CloudBackend(folder) streams to
Cloudinary. Both expose upload(stream, original_name) -> UploadResult.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Literal, Optional

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError, GeneralError, RateLimited
from pydantic import BaseModel
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..utils.config import CloudinarySettings
from ..utils.exceptions import UploadError, UploadErrorKind
from ..utils.logger import get_logger

logger = get_logger(__name__)

VIDEO_RESOURCE_TYPE = "video"


class UploadResult(BaseModel):
    """Reference to a stored asset: a local path, or a cloud URL plus public id"""

    backend: Literal["local", "cloud"]
    location: str
    public_id: Optional[str] = None


def safe_filename(original_name: Optional[str]) -> str:
    """Strip directory components from a client-supplied filename."""
    name = Path((original_name or "").replace("\\", "/")).name.strip()
    if not name or name in (".", ".."):
        raise UploadError("No video file uploaded", UploadErrorKind.NO_FILE)
    return name


class LocalBackend:
    """Write uploads into a directory on the local filesystem"""

    kind = "local"

    def __init__(self, path: Path):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"LocalBackend(path={str(self.path)!r})"

    def upload(self, stream: BinaryIO, original_name: str) -> UploadResult:
        """
        Copy the stream to <path>/<original_name>.

        The file is written to a temporary name in the same directory and
        renamed into place, so a concurrent upload of the same name never
        leaves a partially written file behind.
        """
        filename = safe_filename(original_name)
        target = self.path / filename
        temp_path: Optional[Path] = None
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="wb", dir=self.path, prefix=".upload-", delete=False
            ) as tf:
                temp_path = Path(tf.name)
                shutil.copyfileobj(stream, tf)
            os.replace(temp_path, target)
        except OSError as e:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink()
            logger.error("Local upload failed", path=str(target), error=str(e))
            raise UploadError(
                f"Failed to write video file: {str(e)}", UploadErrorKind.BACKEND_UNAVAILABLE
            )

        logger.info("Video stored locally", path=str(target))
        return UploadResult(backend="local", location=str(target.resolve()))


def init_cloudinary(settings: CloudinarySettings) -> bool:
    """Configure the Cloudinary SDK; returns False when credentials are missing"""
    if not settings.is_configured:
        return False
    cloudinary.config(
        cloud_name=settings.cloud_name,
        api_key=settings.api_key,
        api_secret=settings.api_secret,
        secure=True,  # Always use HTTPS
    )
    return True


class CloudBackend:
    """Stream uploads to a Cloudinary folder"""

    kind = "cloud"

    def __init__(self, folder: str, max_retries: int = 3, timeout: int = 120, wait=None):
        self.folder = folder
        self.max_retries = max_retries
        self.timeout = timeout
        self.wait = wait or wait_exponential(multiplier=1, min=2, max=10)

    def __repr__(self) -> str:
        return f"CloudBackend(folder={self.folder!r})"

    def upload(self, stream: BinaryIO, original_name: str) -> UploadResult:
        """
        Upload the stream as a video resource into the configured folder.

        Transient Cloudinary failures are retried; the stream is rewound
        before every attempt. Raises UploadError(BACKEND_UNAVAILABLE) with the
        backend's message once retries are exhausted.
        """
        filename = safe_filename(original_name)
        seekable = hasattr(stream, "seek") and (not hasattr(stream, "seekable") or stream.seekable())
        start = stream.tell() if seekable else 0

        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.max_retries if seekable else 1),
                wait=self.wait,
                retry=retry_if_exception_type((GeneralError, RateLimited)),
                reraise=True,
            ):
                with attempt:
                    if seekable:
                        stream.seek(start)
                    result = cloudinary.uploader.upload(
                        stream,
                        resource_type=VIDEO_RESOURCE_TYPE,
                        folder=self.folder,
                        filename=filename,
                        timeout=self.timeout,
                    )
        except (CloudinaryError, OSError, ValueError) as e:
            logger.error("Cloudinary upload failed", folder=self.folder, error=str(e))
            raise UploadError(str(e) or "Cloud upload failed", UploadErrorKind.BACKEND_UNAVAILABLE)

        secure_url = (result or {}).get("secure_url") or (result or {}).get("url")
        public_id = (result or {}).get("public_id")
        if not secure_url or not public_id:
            raise UploadError(
                "Cloud storage returned no URL for the upload", UploadErrorKind.BACKEND_UNAVAILABLE
            )

        logger.info("Video uploaded to Cloudinary", folder=self.folder, public_id=public_id)
        return UploadResult(backend="cloud", location=secure_url, public_id=public_id)
