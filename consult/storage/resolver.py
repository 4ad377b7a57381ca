"""Resolve the active storage backend and upload through it"""

from pathlib import Path
from typing import BinaryIO, Optional, Union

from ..utils.config import CloudinarySettings, StorageSettings
from ..utils.exceptions import UploadError, UploadErrorKind
from ..utils.logger import get_logger
from .backends import CloudBackend, LocalBackend, UploadResult, init_cloudinary
from .config_store import ConfigProvider

logger = get_logger(__name__)

StorageBackend = Union[LocalBackend, CloudBackend]


class StorageResolver:
    """
    Picks the backend kind once (local disk or Cloudinary) and resolves the
    destination from the config provider on every call, so a path update
    takes effect on the next upload.
    """

    def __init__(
        self,
        config_provider: ConfigProvider,
        storage: Optional[StorageSettings] = None,
        cloud: Optional[CloudinarySettings] = None,
        retry_wait=None,
    ):
        self.config_provider = config_provider
        self.storage = storage or StorageSettings()
        self.cloud = cloud or CloudinarySettings()
        self.retry_wait = retry_wait
        self.backend_kind = self._select_backend_kind()
        if self.backend_kind == "cloud":
            self.cloud_ready = init_cloudinary(self.cloud)
        else:
            self.cloud_ready = False
        logger.info("Storage backend selected", backend=self.backend_kind)

    def _select_backend_kind(self) -> str:
        if self.storage.backend == "auto":
            return "cloud" if self.cloud.is_configured else "local"
        return self.storage.backend

    def resolve_destination(self) -> StorageBackend:
        """
        Return the backend for the currently configured destination.

        Local: relative paths resolve under storage.local_root and the
        directory is created if missing. Cloud: the folder name is used as-is.
        """
        configured = self.config_provider.read().path

        if self.backend_kind == "cloud":
            if not self.cloud_ready:
                raise UploadError(
                    "Cloud storage is not configured", UploadErrorKind.BACKEND_UNAVAILABLE
                )
            return CloudBackend(
                configured,
                max_retries=self.cloud.max_retries,
                timeout=self.cloud.timeout,
                wait=self.retry_wait,
            )

        path = Path(configured).expanduser()
        if not path.is_absolute():
            path = Path(self.storage.local_root) / path
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise UploadError(
                f"Storage directory unavailable: {str(e)}", UploadErrorKind.BACKEND_UNAVAILABLE
            )
        return LocalBackend(path)

    def upload(self, stream: Optional[BinaryIO], original_name: Optional[str]) -> UploadResult:
        """Store a video stream under its original name in the resolved destination"""
        if stream is None or not original_name:
            raise UploadError("No video file uploaded", UploadErrorKind.NO_FILE)
        backend = self.resolve_destination()
        return backend.upload(stream, original_name)
