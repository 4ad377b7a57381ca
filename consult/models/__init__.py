"""Data models"""

from .user import User, UserRole, PUBLIC_ROLES
from .consultation import Consultation, ConsultationStatus

__all__ = [
    "User",
    "UserRole",
    "PUBLIC_ROLES",
    "Consultation",
    "ConsultationStatus",
]
