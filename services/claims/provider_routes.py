"""FastAPI routes for provider claims."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from common.auth import Principal, get_principal
from common.db import get_db
from common.enums import ProviderClaimStatus
from common.errors import ClaimEngineError
from services.claims import models, schemas
from services.claims.notes import ClaimRef, NoteLedger
from services.claims.routes import get_claim_service
from services.claims.service import ClaimMutationService
from services.claims.state_machine import PROVIDER_CLAIM_MACHINE

router = APIRouter(prefix="/claims/providers", tags=["provider-claims"])


def _provider_claims(db: Session, principal: Principal):
    """Provider claims owned by the principal's HMO."""
    if principal.hmo_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Principal is not scoped to an HMO")
    return db.query(models.ProviderClaim).filter(models.ProviderClaim.hmo_id == principal.hmo_id)


def _get_provider_claim(db: Session, principal: Principal, provider_claim_id: int) -> models.ProviderClaim:
    provider_claim = (
        _provider_claims(db, principal).filter(models.ProviderClaim.id == provider_claim_id).first()
    )
    if not provider_claim:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Provider claim not found")
    return provider_claim


@router.get("/", response_model=List[schemas.ProviderClaimResponse])
def list_provider_claims(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List provider claims of the principal's HMO."""
    return _provider_claims(db, principal).order_by(models.ProviderClaim.id).offset(skip).limit(limit).all()


@router.get("/hospitals/{hospital_id}", response_model=List[schemas.ProviderClaimResponse])
def list_hospital_provider_claims(
    hospital_id: int,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List provider claims submitted by one hospital."""
    return (
        _provider_claims(db, principal)
        .filter(models.ProviderClaim.hospital_id == hospital_id)
        .order_by(models.ProviderClaim.id)
        .offset(skip)
        .limit(limit)
        .all()
    )


@router.get("/status/{claim_status}", response_model=List[schemas.ProviderClaimResponse])
def list_provider_claims_by_status(
    claim_status: ProviderClaimStatus,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List provider claims in a given status."""
    return (
        _provider_claims(db, principal)
        .filter(models.ProviderClaim.status == claim_status.value)
        .order_by(models.ProviderClaim.id)
        .offset(skip)
        .limit(limit)
        .all()
    )


@router.get("/{provider_claim_id}", response_model=schemas.ProviderClaimResponse)
def get_provider_claim(
    provider_claim_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get a single provider claim by ID."""
    return _get_provider_claim(db, principal, provider_claim_id)


@router.patch("/{provider_claim_id}", response_model=schemas.ProviderClaimResponse)
def update_provider_claim(
    provider_claim_id: int,
    claim_update: schemas.ProviderClaimUpdate,
    principal: Principal = Depends(get_principal),
    service: ClaimMutationService = Depends(get_claim_service),
):
    """Update provider claim fields; only HMO administrators may do so."""
    try:
        return service.update_provider_claim(
            provider_claim_id, principal, claim_update.model_dump(exclude_unset=True)
        )
    except ClaimEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.put("/{provider_claim_id}/status", response_model=schemas.ProviderClaimResponse)
def update_provider_claim_status(
    provider_claim_id: int,
    payload: schemas.ProviderClaimStatusUpdateRequest,
    principal: Principal = Depends(get_principal),
    service: ClaimMutationService = Depends(get_claim_service),
):
    """Approve or reject a provider claim on behalf of its HMO."""
    try:
        return service.update_provider_claim_status(
            provider_claim_id, principal, payload.status, reason=payload.reason
        )
    except ClaimEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{provider_claim_id}/notes", response_model=List[schemas.NoteResponse])
def get_provider_claim_notes(
    provider_claim_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get the note history of a provider claim."""
    provider_claim = _get_provider_claim(db, principal, provider_claim_id)
    return NoteLedger(db).list_for(ClaimRef.provider(provider_claim.id))


@router.get("/{provider_claim_id}/next-states", response_model=List[str])
def get_provider_claim_next_states(
    provider_claim_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get valid next states for a provider claim."""
    provider_claim = _get_provider_claim(db, principal, provider_claim_id)
    return [state.value for state in PROVIDER_CLAIM_MACHINE.get_valid_next_states(provider_claim.status)]
