"""Custom exceptions for the consultation backend"""

from enum import Enum
from typing import Optional


class ConsultError(Exception):
    """Base exception for Consult API"""

    status_code = 500

    def __init__(self, message: str, kind: Optional[Enum] = None):
        self.kind = kind
        self.message = message
        super().__init__(message)


class ConfigErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    WRITE_FAILED = "write_failed"


class ConfigError(ConsultError):
    """Storage configuration or settings error"""

    def __init__(self, message: str, kind: ConfigErrorKind = ConfigErrorKind.INVALID_INPUT):
        super().__init__(message, kind)
        self.status_code = 400 if kind == ConfigErrorKind.INVALID_INPUT else 500


class UploadErrorKind(str, Enum):
    NO_FILE = "no_file"
    BACKEND_UNAVAILABLE = "backend_unavailable"


class UploadError(ConsultError):
    """Upload failed before or while reaching the storage backend"""

    def __init__(self, message: str, kind: UploadErrorKind):
        super().__init__(message, kind)
        self.status_code = 400 if kind == UploadErrorKind.NO_FILE else 500


class AuthErrorKind(str, Enum):
    EXPIRED = "expired"
    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid_signature"


class AuthError(ConsultError):
    """Token could not be verified"""

    status_code = 401

    def __init__(self, message: str, kind: AuthErrorKind):
        super().__init__(message, kind)


class ForbiddenErrorKind(str, Enum):
    ROLE_MISMATCH = "role_mismatch"


class ForbiddenError(ConsultError):
    """Authenticated user lacks the role for a route"""

    status_code = 403

    def __init__(self, message: str, kind: ForbiddenErrorKind = ForbiddenErrorKind.ROLE_MISMATCH):
        super().__init__(message, kind)


class StartupErrorKind(str, Enum):
    MISSING_CONNECTION_STRING = "missing_connection_string"
    MISSING_SECRET = "missing_secret"
    UNSUPPORTED_DATABASE_URL = "unsupported_database_url"


class StartupError(ConsultError):
    """Fatal misconfiguration detected before serving traffic"""

    def __init__(self, message: str, kind: StartupErrorKind):
        super().__init__(message, kind)


class DuplicateKeyError(ConsultError, ValueError):
    """Unique field already taken in the document store"""

    status_code = 400


class NotFoundError(ConsultError, LookupError):
    """Document does not exist"""

    status_code = 404


class StoreError(ConsultError):
    """Document store could not be read or written"""

    status_code = 500
