"""Exchange API: marketplace, propose, respond, withdraw, incoming/outgoing ledgers."""

from typing import List
from fastapi import APIRouter, Depends, Body, status
from sqlalchemy.orm import Session, sessionmaker

from ..database import get_db, get_session_factory
from ..models import User
from ..schemas import ExchangeDecision, ExchangeProposal, ExchangeRequestOut, MarketplaceSlotOut
from ..auth import get_current_user
from ..services import directory
from ..services.coordinator import ExchangeCoordinator

router = APIRouter(tags=["exchanges"])


def get_coordinator(session_factory: sessionmaker = Depends(get_session_factory)) -> ExchangeCoordinator:
    return ExchangeCoordinator(session_factory)


# ============================================================================
# GET ENDPOINTS (Read views)
# ============================================================================

@router.get("/marketplace", response_model=List[MarketplaceSlotOut])
async def list_marketplace(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Offered slots from other users, soonest first"""
    return directory.list_marketplace(current_user.id, db)

@router.get("/incoming", response_model=List[ExchangeRequestOut])
async def list_incoming(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Pending requests waiting on the current user"""
    return directory.list_incoming(current_user.id, db)

@router.get("/outgoing", response_model=List[ExchangeRequestOut])
async def list_outgoing(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Requests the current user proposed, any outcome"""
    return directory.list_outgoing(current_user.id, db)

@router.get("/{request_id}", response_model=ExchangeRequestOut)
async def get_exchange(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return directory.get_request(current_user.id, request_id, db)

# ============================================================================
# POST ENDPOINTS (Coordinator transitions)
# ============================================================================

@router.post("/propose", response_model=ExchangeRequestOut, status_code=status.HTTP_201_CREATED)
def propose_exchange(
    current_user: User = Depends(get_current_user),
    coordinator: ExchangeCoordinator = Depends(get_coordinator),
    proposal: ExchangeProposal = Body(...),
):
    return coordinator.propose(current_user.id, proposal.offered_slot_id, proposal.wanted_slot_id)

@router.post("/{request_id}/respond", response_model=ExchangeRequestOut)
def respond_to_exchange(
    request_id: int,
    current_user: User = Depends(get_current_user),
    coordinator: ExchangeCoordinator = Depends(get_coordinator),
    decision: ExchangeDecision = Body(...),
):
    return coordinator.respond(current_user.id, request_id, decision.approve)

@router.post("/{request_id}/withdraw", response_model=ExchangeRequestOut)
def withdraw_exchange(
    request_id: int,
    current_user: User = Depends(get_current_user),
    coordinator: ExchangeCoordinator = Depends(get_coordinator),
):
    return coordinator.withdraw(current_user.id, request_id)
