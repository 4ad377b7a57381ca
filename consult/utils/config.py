"""
Configuration management with schema validation.
Single source of truth for Consult API settings.

Values come from built-in defaults, optionally overridden by
config/settings.yaml. String values of the form ${VAR} or ${VAR:default}
are substituted from the environment (a .env file is loaded first).
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .exceptions import ConfigError

SETTINGS_FILE = Path(os.getenv("CONSULT_SETTINGS_FILE", "config/settings.yaml"))

DEFAULT_SETTINGS: Dict[str, Any] = {
    "app": {
        "name": "Consult API",
        "version": "1.0.0",
        "environment": "${ENVIRONMENT:development}",
    },
    "server": {
        "host": "${HOST:0.0.0.0}",
        "port": "${PORT:5000}",
    },
    "database": {
        "url": "${DATABASE_URL:}",
    },
    "auth": {
        "secret_key": "${JWT_SECRET:}",
        "algorithm": "HS256",
        "token_ttl_hours": "${TOKEN_TTL_HOURS:24}",
        "bcrypt_rounds": "${BCRYPT_ROUNDS:12}",
        "admin_login_id": "${ADMIN_LOGIN_ID:admin}",
        "admin_password": "${ADMIN_PASSWORD:admin123}",
    },
    "storage": {
        "backend": "${STORAGE_BACKEND:auto}",
        "config_file": "${STORAGE_CONFIG_FILE:data/storagePath.json}",
        "default_path": "default-folder",
        "local_root": "${LOCAL_STORAGE_ROOT:uploads}",
    },
    "cloudinary": {
        "cloud_name": "${CLOUDINARY_CLOUD_NAME:}",
        "api_key": "${CLOUDINARY_API_KEY:}",
        "api_secret": "${CLOUDINARY_API_SECRET:}",
        "max_retries": "${CLOUDINARY_MAX_RETRIES:3}",
        "timeout": "${CLOUDINARY_TIMEOUT:120}",
    },
    "logging": {
        "level": "${LOG_LEVEL:INFO}",
        "format": "${LOG_FORMAT:json}",
        "file_path": "${LOG_FILE:logs/consult.log}",
        "max_bytes": 10485760,
        "backup_count": 5,
    },
    "cors": {
        "allowed_origins": "${CORS_ORIGINS:https://consultationapp.netlify.app,http://localhost:3000}",
    },
}


class AppSettings(BaseModel):
    name: str = "Consult API"
    version: str = "1.0.0"
    environment: str = "development"

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 5000


class DatabaseSettings(BaseModel):
    url: str = ""


class AuthSettings(BaseModel):
    secret_key: str = ""
    algorithm: str = "HS256"
    token_ttl_hours: float = 24
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    admin_login_id: str = "admin"
    admin_password: str = "admin123"


class StorageSettings(BaseModel):
    backend: str = Field(default="auto", pattern="^(auto|local|cloud)$")
    config_file: str = "data/storagePath.json"
    default_path: str = "default-folder"
    local_root: str = "uploads"


class CloudinarySettings(BaseModel):
    cloud_name: str = ""
    api_key: str = ""
    api_secret: str = ""
    max_retries: int = Field(default=3, ge=1)
    timeout: int = 120

    @property
    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file_path: Optional[str] = None
    max_bytes: int = 10485760
    backup_count: int = 5


class CorsSettings(BaseModel):
    allowed_origins: List[str] = Field(
        default_factory=lambda: ["https://consultationapp.netlify.app", "http://localhost:3000"]
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [o.strip() for o in value.split(",") if o.strip()]
        return value


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    cloudinary: CloudinarySettings = Field(default_factory=CloudinarySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cors: CorsSettings = Field(default_factory=CorsSettings)


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute environment variables"""
    if isinstance(value, str):
        if value.startswith("${") and value.endswith("}"):
            var_expr = value[2:-1]
            if ":" in var_expr:
                var_name, default = var_expr.split(":", 1)
                return os.getenv(var_name.strip(), default.strip())
            env_value = os.getenv(var_expr.strip())
            if env_value is None:
                raise ConfigError(f"Environment variable {var_expr} not found")
            return env_value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(settings_path: Optional[Path] = None) -> Settings:
    """
    Load and validate settings.

    A missing settings file is not an error: the built-in defaults (which
    read the environment) are used on their own.
    """
    load_dotenv()
    path = Path(settings_path) if settings_path else SETTINGS_FILE

    raw: Dict[str, Any] = DEFAULT_SETTINGS
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                overrides = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            raise ConfigError(f"Failed to read settings from {path}: {str(e)}")
        if not isinstance(overrides, dict):
            raise ConfigError(f"Settings file {path} must contain a mapping")
        raw = _deep_merge(DEFAULT_SETTINGS, overrides)

    try:
        return Settings(**_substitute_env_vars(raw))
    except ValueError as e:
        raise ConfigError(f"Invalid settings: {str(e)}")
