from pydantic import BaseModel, EmailStr, StrictBool
from datetime import datetime
from typing import Optional, List
from .models import UserRole, SlotAvailability, ExchangeOutcome, ExchangeResolution

# ----------------- User Schemas ---------------------

class UserBase(BaseModel):
    username: str
    email: EmailStr
    name: Optional[str] = None

class UserCreate(UserBase):
    password: str

class UserSchema(UserBase):
    id: int
    is_active: bool
    role: UserRole

    class Config:
        from_attributes = True

class UserLogin(BaseModel):
    username: str
    password: str

class RefreshTokenRequest(BaseModel):
    refresh_token: str

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str

class PartyOut(BaseModel):
    """Public view of a user attached to slots and exchange requests."""
    id: int
    username: str
    name: Optional[str] = None
    email: str

    class Config:
        from_attributes = True


# ----------------- Slot Schemas ---------------------

class SlotCreate(BaseModel):
    title: str
    start_time: datetime
    end_time: datetime
    availability: SlotAvailability = SlotAvailability.HELD

class SlotUpdate(BaseModel):
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

class AvailabilityUpdate(BaseModel):
    availability: SlotAvailability

class SlotOut(BaseModel):
    id: int
    owner_id: int
    title: str
    start_time: datetime
    end_time: datetime
    availability: SlotAvailability
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class MarketplaceSlotOut(SlotOut):
    owner: PartyOut


# ----------------- Exchange Schemas ---------------------

class ExchangeProposal(BaseModel):
    offered_slot_id: int
    wanted_slot_id: int

class ExchangeDecision(BaseModel):
    approve: StrictBool

class ExchangeRequestOut(BaseModel):
    id: int
    # None only when the referenced record was removed outside the engine
    proposer: Optional[PartyOut] = None
    counterparty: Optional[PartyOut] = None
    offered_slot: Optional[SlotOut] = None
    wanted_slot: Optional[SlotOut] = None
    outcome: ExchangeOutcome
    resolution: Optional[ExchangeResolution] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ----------------- Admin Schemas ---------------------

class IntegrityViolationOut(BaseModel):
    kind: str
    detail: str
    slot_id: Optional[int] = None
    request_id: Optional[int] = None

class IntegrityReport(BaseModel):
    consistent: bool
    violations: List[IntegrityViolationOut]

class ExpiryReport(BaseModel):
    expired_request_ids: List[int]
    cutoff: datetime
