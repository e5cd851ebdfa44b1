"""Pydantic schemas for claims API."""

from pydantic import BaseModel, Field, ConfigDict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from common.enums import ClaimAction, ClaimStatus, ProviderClaimStatus


class NoteResponse(BaseModel):
    """Schema for a claim note."""

    id: int
    body: str
    author_id: int
    claim_id: Optional[int]
    provider_claim_id: Optional[int]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClaimResponse(BaseModel):
    """Schema for member claim response."""

    id: int
    member_id: int
    hospital_id: int
    status: str
    amount: float
    description: Optional[str]
    service_date: Optional[date]
    rejection_reason: Optional[str]
    created_at: datetime
    updated_at: datetime
    notes: List[NoteResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ProviderClaimResponse(BaseModel):
    """Schema for provider claim response."""

    id: int
    hmo_id: int
    hospital_id: int
    enrollee_no: str
    claim_reference: str
    diagnosis: Optional[str]
    service_breakdown: Optional[List[Dict[str, Any]]]
    documents: Optional[List[Dict[str, Any]]]
    test_results: Optional[List[Dict[str, Any]]]
    discharge_summary: Optional[str]
    status: str
    authorization_code: Optional[str]
    payment_id: Optional[int]
    pre_auth_request_id: Optional[int]
    created_at: datetime
    updated_at: datetime
    notes: List[NoteResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ClaimStatusUpdateRequest(BaseModel):
    """Schema for changing a member claim's status."""

    status: ClaimStatus
    reason: Optional[str] = None
    approved_amount: Optional[Decimal] = Field(None, gt=0, lt=Decimal("1e10"), decimal_places=2)


class ProviderClaimStatusUpdateRequest(BaseModel):
    """Schema for changing a provider claim's status."""

    status: ProviderClaimStatus
    reason: Optional[str] = None


class ApproveDeclineRequest(BaseModel):
    """Schema for the treatment claim review action."""

    action: ClaimAction
    reason: Optional[str] = None
    approved_amount: Optional[Decimal] = Field(None, gt=0, lt=Decimal("1e10"), decimal_places=2)


class ClaimUpdate(BaseModel):
    """Schema for updating member claim fields (limited)."""

    amount: Optional[Decimal] = Field(None, gt=0, lt=Decimal("1e10"), decimal_places=2)
    description: Optional[str] = None
    service_date: Optional[date] = None


class ProviderClaimUpdate(BaseModel):
    """Schema for updating provider claim fields (limited)."""

    diagnosis: Optional[str] = None
    service_breakdown: Optional[List[Dict[str, Any]]] = None
    documents: Optional[List[Dict[str, Any]]] = None
    test_results: Optional[List[Dict[str, Any]]] = None
    discharge_summary: Optional[str] = None
    authorization_code: Optional[str] = Field(None, max_length=100)
