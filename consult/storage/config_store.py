"""
Storage destination configuration.

The active upload destination (a local directory or a Cloudinary folder name)
lives in a small JSON file, {"path": "<string>"}, that administrators can
change at runtime. Reads never fail: a missing, unreadable or corrupt file
yields the fallback value. Writes are atomic but not locked across
processes, so concurrent updates are last-write-wins.
"""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from ..utils.exceptions import ConfigError, ConfigErrorKind
from ..utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_STORAGE_PATH = "default-folder"


class StorageConfig(BaseModel):
    path: str


def normalize_storage_path(new_path: Optional[str]) -> str:
    """
    Validate and normalize a destination value.

    Absolute and ~ paths are expanded and normalized; anything else (a
    relative directory or a cloud folder name) is kept as given, minus
    surrounding whitespace.
    """
    if new_path is None or not isinstance(new_path, str) or not new_path.strip():
        raise ConfigError("Storage path is required", ConfigErrorKind.INVALID_INPUT)
    value = new_path.strip()
    if value.startswith("~") or os.path.isabs(value):
        value = os.path.normpath(os.path.expanduser(value))
    return value


class ConfigProvider:
    """Read/write capability for the storage destination"""

    def __init__(self, default_path: str = DEFAULT_STORAGE_PATH):
        self.default_path = default_path

    def read(self) -> StorageConfig:
        raise NotImplementedError

    def write(self, new_path: Optional[str]) -> StorageConfig:
        raise NotImplementedError


class MemoryConfigProvider(ConfigProvider):
    """In-process provider, used in tests"""

    def __init__(self, initial_path: Optional[str] = None, default_path: str = DEFAULT_STORAGE_PATH):
        super().__init__(default_path)
        self._path = initial_path

    def read(self) -> StorageConfig:
        return StorageConfig(path=self._path or self.default_path)

    def write(self, new_path: Optional[str]) -> StorageConfig:
        self._path = normalize_storage_path(new_path)
        return StorageConfig(path=self._path)


class FileConfigProvider(ConfigProvider):
    """Provider backed by a JSON file on disk"""

    def __init__(self, config_file: Path, default_path: str = DEFAULT_STORAGE_PATH):
        super().__init__(default_path)
        self.config_file = Path(config_file)

    def read(self) -> StorageConfig:
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            path = data.get("path") if isinstance(data, dict) else None
            if not isinstance(path, str) or not path.strip():
                raise ValueError("missing or empty 'path'")
            return StorageConfig(path=path)
        except FileNotFoundError:
            return StorageConfig(path=self.default_path)
        except (OSError, ValueError) as e:
            logger.warning(
                "Error reading storage path file, using fallback",
                path=str(self.config_file),
                fallback=self.default_path,
                error=str(e),
            )
            return StorageConfig(path=self.default_path)

    def write(self, new_path: Optional[str]) -> StorageConfig:
        value = normalize_storage_path(new_path)
        try:
            self._atomic_write({"path": value})
        except OSError as e:
            raise ConfigError(
                f"Error saving storage path: {str(e)}", ConfigErrorKind.WRITE_FAILED
            )
        logger.info("Storage path updated", path=value)
        return StorageConfig(path=value)

    def _atomic_write(self, data: dict) -> None:
        """Write JSON file atomically"""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w", dir=self.config_file.parent, delete=False, encoding="utf-8"
        ) as tf:
            json.dump(data, tf, indent=2)
            temp_path = Path(tf.name)

        try:
            shutil.move(str(temp_path), str(self.config_file))
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise
