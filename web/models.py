"""API request/response models"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from consult.auth.credentials import MIN_PASSWORD_LENGTH
from consult.models.consultation import ConsultationStatus
from consult.models.user import UserRole


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys, as the web client sends them"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class RegisterRequest(CamelModel):
    login_id: str = Field(..., min_length=1, max_length=254)
    password: str = Field(..., min_length=1)
    role: UserRole = UserRole.PATIENT
    full_name: Optional[str] = None

    @field_validator("login_id")
    @classmethod
    def _strip_login_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("loginId must not be blank")
        return value


class LoginRequest(CamelModel):
    login_id: str = Field(..., min_length=1)
    password: str


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class UserPublic(CamelModel):
    """User without credentials"""
    id: str
    login_id: str
    role: str
    full_name: Optional[str] = None
    is_active: bool
    created_at: str


class LoginResponse(CamelModel):
    token: str
    token_type: str = "bearer"
    role: str
    user: UserPublic


class UserListResponse(CamelModel):
    users: List[UserPublic]


class UpdateStoragePathRequest(CamelModel):
    new_storage_path: Optional[str] = None


class CreateConsultationRequest(CamelModel):
    patient_id: str
    doctor_id: Optional[str] = None  # defaults to the calling doctor
    title: str = Field(..., min_length=1, max_length=200)
    notes: str = ""
    video_url: Optional[str] = None
    video_public_id: Optional[str] = None
    status: ConsultationStatus = ConsultationStatus.SCHEDULED
    scheduled_at: Optional[str] = None


class ConsultationPublic(CamelModel):
    id: str
    patient_id: str
    doctor_id: str
    title: str
    notes: str
    video_url: Optional[str] = None
    video_public_id: Optional[str] = None
    status: str
    scheduled_at: Optional[str] = None
    created_at: str
    created_by: Optional[str] = None


class ConsultationListResponse(CamelModel):
    consultations: List[ConsultationPublic]
