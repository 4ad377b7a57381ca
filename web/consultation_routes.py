"""
Consultation record routes.

Prefix: /api/consultations

Doctors and admins create records; every authenticated user can list and
read the records they take part in (admins see everything).
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool

from consult.models.consultation import Consultation, ConsultationStatus
from consult.models.user import User, UserRole
from .auth_deps import AppServices, get_services, require_auth, require_role
from .models import ConsultationListResponse, ConsultationPublic, CreateConsultationRequest

router = APIRouter(prefix="/api/consultations", tags=["consultations"])

require_clinician = require_role(UserRole.DOCTOR, UserRole.ADMIN)


def _visible_to(consultation: Consultation, user: User) -> bool:
    if user.role == UserRole.ADMIN:
        return True
    if user.role == UserRole.DOCTOR:
        return consultation.doctor_id == user.id
    return consultation.patient_id == user.id


async def _require_user_with_role(
    services: AppServices, user_id: str, role: UserRole, label: str
) -> User:
    user = await run_in_threadpool(services.store.find_user_by_id, user_id)
    if not user or user.role != role or not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown {label}")
    return user


@router.post("", response_model=ConsultationPublic, status_code=status.HTTP_201_CREATED)
async def create_consultation(
    req: CreateConsultationRequest,
    current_user: User = Depends(require_clinician),
    services: AppServices = Depends(get_services),
) -> ConsultationPublic:
    """Create a consultation record (doctor or admin)"""
    if current_user.role == UserRole.DOCTOR:
        if req.doctor_id and req.doctor_id != current_user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Doctors can only create their own consultations",
            )
        doctor_id = current_user.id
    else:
        if not req.doctor_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="doctorId is required")
        doctor = await _require_user_with_role(services, req.doctor_id, UserRole.DOCTOR, "doctor")
        doctor_id = doctor.id

    await _require_user_with_role(services, req.patient_id, UserRole.PATIENT, "patient")

    consultation = Consultation(
        patient_id=req.patient_id,
        doctor_id=doctor_id,
        title=req.title,
        notes=req.notes,
        video_url=req.video_url,
        video_public_id=req.video_public_id,
        status=req.status,
        scheduled_at=req.scheduled_at,
        created_by=current_user.id,
    )
    await run_in_threadpool(services.store.insert_consultation, consultation)
    return ConsultationPublic.model_validate(consultation)


@router.get("", response_model=ConsultationListResponse)
async def list_consultations(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    doctor_id: Optional[str] = Query(None, alias="doctorId"),
    consultation_status: Optional[ConsultationStatus] = Query(None, alias="status"),
    current_user: User = Depends(require_auth),
    services: AppServices = Depends(get_services),
) -> ConsultationListResponse:
    """List consultations visible to the caller, optionally filtered"""
    query = {
        "patient_id": patient_id,
        "doctor_id": doctor_id,
        "status": consultation_status.value if consultation_status else None,
    }
    # Non-admins are pinned to their own records regardless of the filters given
    if current_user.role == UserRole.DOCTOR:
        query["doctor_id"] = current_user.id
    elif current_user.role == UserRole.PATIENT:
        query["patient_id"] = current_user.id

    records = await run_in_threadpool(services.store.find_consultations, query)
    return ConsultationListResponse(
        consultations=[ConsultationPublic.model_validate(c) for c in records]
    )


@router.get("/{consultation_id}", response_model=ConsultationPublic)
async def get_consultation(
    consultation_id: str,
    current_user: User = Depends(require_auth),
    services: AppServices = Depends(get_services),
) -> ConsultationPublic:
    consultation = await run_in_threadpool(services.store.find_consultation_by_id, consultation_id)
    if not consultation or not _visible_to(consultation, current_user):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Consultation not found")
    return ConsultationPublic.model_validate(consultation)
