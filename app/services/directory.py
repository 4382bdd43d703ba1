"""
Read-side views: the slot directory (own slots, marketplace) and the exchange
ledger (incoming and outgoing requests). Nothing here writes.

Records whose slot or party was removed outside the engine are dropped from
listings; the admin integrity audit is where they are surfaced.
"""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from ..exceptions import Forbidden, NotFound
from ..models import ExchangeOutcome, ExchangeRequest, Slot, SlotAvailability, User

logger = logging.getLogger(__name__)

_REQUEST_LOAD_OPTIONS = (
    joinedload(ExchangeRequest.proposer),
    joinedload(ExchangeRequest.counterparty),
    joinedload(ExchangeRequest.offered_slot).joinedload(Slot.owner),
    joinedload(ExchangeRequest.wanted_slot).joinedload(Slot.owner),
)


def is_consistent(request: ExchangeRequest) -> bool:
    """Both slots and both parties still exist."""
    return None not in (request.offered_slot, request.wanted_slot, request.proposer, request.counterparty)


def _consistent_only(requests: List[ExchangeRequest], view: str) -> List[ExchangeRequest]:
    consistent = [r for r in requests if is_consistent(r)]
    dropped = len(requests) - len(consistent)
    if dropped:
        logger.debug(f"{view}: hid {dropped} exchange requests with dangling references")
    return consistent


# ----------------- Slot directory ---------------------

def list_own_slots(owner_id: int, db: Session) -> List[Slot]:
    return list(
        db.scalars(
            select(Slot).where(Slot.owner_id == owner_id).order_by(Slot.start_time.asc(), Slot.id.asc())
        ).all()
    )


def list_marketplace(party_id: int, db: Session) -> List[Slot]:
    """Offered slots from everyone except ``party_id``, with the owner attached."""
    return list(
        db.scalars(
            select(Slot)
            .join(User, Slot.owner_id == User.id)
            .options(joinedload(Slot.owner))
            .where(Slot.availability == SlotAvailability.OFFERED)
            .where(Slot.owner_id != party_id)
            .order_by(Slot.start_time.asc(), Slot.id.asc())
        ).all()
    )


# ----------------- Exchange ledger ---------------------

def list_incoming(party_id: int, db: Session) -> List[ExchangeRequest]:
    """Pending requests waiting on ``party_id`` to respond, newest first."""
    requests = db.scalars(
        select(ExchangeRequest)
        .options(*_REQUEST_LOAD_OPTIONS)
        .where(ExchangeRequest.counterparty_id == party_id)
        .where(ExchangeRequest.outcome == ExchangeOutcome.PENDING)
        .order_by(ExchangeRequest.created_at.desc(), ExchangeRequest.id.desc())
    ).unique().all()
    return _consistent_only(list(requests), "incoming")


def list_outgoing(party_id: int, db: Session) -> List[ExchangeRequest]:
    """Every request ``party_id`` proposed, any outcome, newest first."""
    requests = db.scalars(
        select(ExchangeRequest)
        .options(*_REQUEST_LOAD_OPTIONS)
        .where(ExchangeRequest.proposer_id == party_id)
        .order_by(ExchangeRequest.created_at.desc(), ExchangeRequest.id.desc())
    ).unique().all()
    return _consistent_only(list(requests), "outgoing")


def get_request(party_id: int, request_id: int, db: Session) -> ExchangeRequest:
    """A single request, visible only to its proposer or counterparty."""
    request = db.scalars(
        select(ExchangeRequest).options(*_REQUEST_LOAD_OPTIONS).where(ExchangeRequest.id == request_id)
    ).unique().first()
    if request is None:
        raise NotFound("Exchange request not found", request_id=request_id)
    if party_id not in (request.proposer_id, request.counterparty_id):
        raise Forbidden("Not authorized to view this exchange request", request_id=request_id)
    return request
