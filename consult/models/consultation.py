"""Consultation record model"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class ConsultationStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Consultation(BaseModel):
    """A doctor-patient consultation, optionally linked to an uploaded video"""

    model_config = ConfigDict(frozen=True, use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    patient_id: str
    doctor_id: str
    title: str
    notes: str = ""
    video_url: Optional[str] = None
    video_public_id: Optional[str] = None
    status: ConsultationStatus = ConsultationStatus.SCHEDULED
    scheduled_at: Optional[str] = None
    created_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    created_by: Optional[str] = None
