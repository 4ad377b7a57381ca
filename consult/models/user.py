"""User data models for authentication"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"


# Roles a user may pick when self-registering; admins only come from bootstrap
PUBLIC_ROLES = {UserRole.DOCTOR, UserRole.PATIENT}


class User(BaseModel):
    """User model for authentication and authorization"""

    model_config = ConfigDict(frozen=True, use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    login_id: str
    password_hash: str
    role: UserRole = UserRole.PATIENT
    full_name: Optional[str] = None
    is_active: bool = True
    created_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    created_by: Optional[str] = None  # None for self-registered users and the bootstrap admin
