"""FastAPI routes for member claims and treatment claim review."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from common.auth import Principal, get_principal
from common.db import get_db
from common.enums import ClaimStatus
from common.errors import ClaimEngineError
from services.claims import models, schemas
from services.claims.notes import ClaimRef, NoteLedger
from services.claims.service import ClaimMutationService, MemberClaimQuery
from services.claims.state_machine import MEMBER_CLAIM_MACHINE
from services.hmo.models import User

router = APIRouter(prefix="/claims", tags=["claims"])
treatment_router = APIRouter(prefix="/treatment-claims", tags=["treatment-claims"])


def get_claim_service(db: Session = Depends(get_db)) -> ClaimMutationService:
    """Dependency building the mutation service for the request's session."""
    return ClaimMutationService(db)


def _member_claims(db: Session, principal: Principal):
    """Member claims visible to the principal's HMO."""
    if principal.hmo_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Principal is not scoped to an HMO")
    return (
        db.query(models.Claim)
        .join(User, models.Claim.member_id == User.id)
        .filter(User.hmo_id == principal.hmo_id)
    )


def _get_member_claim(db: Session, principal: Principal, member_id: int, claim_id: int) -> models.Claim:
    claim = (
        _member_claims(db, principal)
        .filter(models.Claim.id == claim_id, models.Claim.member_id == member_id)
        .first()
    )
    if not claim:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Claim not found")
    return claim


@router.get("/hospitals/{hospital_id}", response_model=List[schemas.ClaimResponse])
def list_hospital_claims(
    hospital_id: int,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List member claims filed at a hospital, for the principal's HMO."""
    return (
        _member_claims(db, principal)
        .filter(models.Claim.hospital_id == hospital_id)
        .order_by(models.Claim.id)
        .offset(skip)
        .limit(limit)
        .all()
    )


@router.get("/status/{claim_status}", response_model=List[schemas.ClaimResponse])
def list_claims_by_status(
    claim_status: ClaimStatus,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List member claims in a given status."""
    return (
        _member_claims(db, principal)
        .filter(models.Claim.status == claim_status.value)
        .order_by(models.Claim.id)
        .offset(skip)
        .limit(limit)
        .all()
    )


@router.get("/members/{member_id}", response_model=List[schemas.ClaimResponse])
def list_member_claims(
    member_id: int,
    status_filter: Optional[ClaimStatus] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List the claims of one member."""
    query = _member_claims(db, principal).filter(models.Claim.member_id == member_id)

    if status_filter:
        query = query.filter(models.Claim.status == status_filter.value)

    return query.order_by(models.Claim.id).offset(skip).limit(limit).all()


@router.get("/members/{member_id}/{claim_id}", response_model=schemas.ClaimResponse)
def get_member_claim(
    member_id: int,
    claim_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get a single member claim."""
    return _get_member_claim(db, principal, member_id, claim_id)


@router.patch("/members/{member_id}/{claim_id}", response_model=schemas.ClaimResponse)
def update_member_claim(
    member_id: int,
    claim_id: int,
    claim_update: schemas.ClaimUpdate,
    principal: Principal = Depends(get_principal),
    service: ClaimMutationService = Depends(get_claim_service),
):
    """Update claim fields (limited to non-state fields)."""
    try:
        return service.update_member_claim(
            MemberClaimQuery(claim_id=claim_id, member_id=member_id),
            principal,
            claim_update.model_dump(exclude_unset=True),
        )
    except ClaimEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.put("/members/{member_id}/{claim_id}/status", response_model=schemas.ClaimResponse)
def update_member_claim_status(
    member_id: int,
    claim_id: int,
    payload: schemas.ClaimStatusUpdateRequest,
    principal: Principal = Depends(get_principal),
    service: ClaimMutationService = Depends(get_claim_service),
):
    """Approve or reject a member claim, recording the reason as a note."""
    try:
        return service.update_member_claim_status(
            MemberClaimQuery(claim_id=claim_id, member_id=member_id),
            principal,
            payload.status,
            reason=payload.reason,
            approved_amount=payload.approved_amount,
        )
    except ClaimEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/members/{member_id}/{claim_id}/notes", response_model=List[schemas.NoteResponse])
def get_member_claim_notes(
    member_id: int,
    claim_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get the note history of a member claim."""
    claim = _get_member_claim(db, principal, member_id, claim_id)
    return NoteLedger(db).list_for(ClaimRef.member(claim.id))


@router.get("/members/{member_id}/{claim_id}/next-states", response_model=List[str])
def get_member_claim_next_states(
    member_id: int,
    claim_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get valid next states for a member claim."""
    claim = _get_member_claim(db, principal, member_id, claim_id)
    return [state.value for state in MEMBER_CLAIM_MACHINE.get_valid_next_states(claim.status)]


# treatment claims review workflow
@treatment_router.post("/{claim_id}/approve-decline", response_model=schemas.ClaimResponse)
def approve_decline_claim(
    claim_id: int,
    payload: schemas.ApproveDeclineRequest,
    principal: Principal = Depends(get_principal),
    service: ClaimMutationService = Depends(get_claim_service),
):
    """Approve or decline a pending treatment claim."""
    try:
        return service.approve_or_decline_claim(
            claim_id,
            principal,
            payload.action,
            reason=payload.reason,
            approved_amount=payload.approved_amount,
        )
    except ClaimEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
