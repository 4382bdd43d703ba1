"""
Exchange coordinator: the only writer of multi-slot availability transitions
and of exchange request outcomes.

Each public operation builds a closure of reads and writes and hands it to
run_in_transaction, so the request and both slots commit together or not at all.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..database import run_in_transaction
from ..exceptions import Conflict, Forbidden, InvalidRequest, NotFound
from ..models import (
    ExchangeOutcome,
    ExchangeRequest,
    ExchangeResolution,
    Slot,
    SlotAvailability,
)

logger = logging.getLogger(__name__)


def hydrate_request(request: ExchangeRequest) -> ExchangeRequest:
    """Load the parties and slots a response needs before the session closes."""
    _ = request.proposer, request.counterparty
    for slot in (request.offered_slot, request.wanted_slot):
        if slot is not None:
            _ = slot.owner
    return request


def _release(slot: Optional[Slot]) -> None:
    """Put a locked slot back on the market. Missing slots are skipped."""
    if slot is not None:
        slot.availability = SlotAvailability.OFFERED


def _resolve(request: ExchangeRequest, outcome: ExchangeOutcome, resolution: ExchangeResolution) -> None:
    request.outcome = outcome
    request.resolution = resolution
    request.resolved_at = datetime.utcnow()


class ExchangeCoordinator:
    """Moves a pair of slots and their exchange request through the shared state machine."""

    def __init__(self, session_factory: Callable[[], Session], max_attempts: Optional[int] = None):
        self.session_factory = session_factory
        self.max_attempts = max_attempts

    def _transaction(self, work):
        return run_in_transaction(self.session_factory, work, attempts=self.max_attempts)

    # ------------------------------------------------------------------
    # propose
    # ------------------------------------------------------------------

    def propose(self, caller_id: int, offered_slot_id: int, wanted_slot_id: int) -> ExchangeRequest:
        """
        Lock both slots and open a pending exchange request.

        Args:
            caller_id: Authenticated party making the offer
            offered_slot_id: Slot the caller gives up
            wanted_slot_id: Slot the caller wants in return

        Returns:
            The created request with slots and parties loaded

        Raises:
            NotFound, Forbidden, InvalidRequest: first failing precondition, in that order
            Conflict: a concurrent transaction changed one of the slots first
        """

        def work(db: Session) -> ExchangeRequest:
            offered = db.get(Slot, offered_slot_id)
            wanted = db.get(Slot, wanted_slot_id)

            if offered is None or wanted is None:
                raise NotFound(
                    "One or both slots not found",
                    offered_slot_id=offered_slot_id,
                    wanted_slot_id=wanted_slot_id,
                )
            if offered.owner_id != caller_id:
                raise Forbidden("caller does not own offered slot", slot_id=offered.id)
            if wanted.owner_id == caller_id:
                raise InvalidRequest("cannot exchange with self", slot_id=wanted.id)
            if offered.availability != SlotAvailability.OFFERED or wanted.availability != SlotAvailability.OFFERED:
                raise InvalidRequest(
                    "both slots must be exchangeable",
                    offered_availability=offered.availability.value,
                    wanted_availability=wanted.availability.value,
                )

            request = ExchangeRequest(
                proposer_id=caller_id,
                counterparty_id=wanted.owner_id,
                offered_slot=offered,
                wanted_slot=wanted,
                outcome=ExchangeOutcome.PENDING,
            )
            offered.availability = SlotAvailability.LOCKED
            wanted.availability = SlotAvailability.LOCKED
            db.add(request)
            db.flush()
            return hydrate_request(request)

        request = self._transaction(work)
        logger.info(
            f"Exchange {request.id} proposed by user {caller_id}: "
            f"slot {offered_slot_id} for slot {wanted_slot_id} (counterparty {request.counterparty_id})"
        )
        return request

    # ------------------------------------------------------------------
    # respond
    # ------------------------------------------------------------------

    def respond(self, caller_id: int, request_id: int, approve: bool) -> ExchangeRequest:
        """
        Resolve a pending request as the counterparty.

        Approving swaps the two owners and holds both slots; declining puts
        both slots back on offer with owners unchanged.
        """

        def work(db: Session) -> ExchangeRequest:
            request = self._load_pending(db, request_id, caller_id, party="counterparty")
            offered, wanted = self._load_slots(db, request)
            if offered is None or wanted is None:
                raise NotFound("referenced slot missing", request_id=request.id)

            if approve:
                proposer, counterparty = request.proposer, request.counterparty
                if proposer is None:
                    raise NotFound("proposer no longer exists", request_id=request.id)
                offered.owner = counterparty
                wanted.owner = proposer
                offered.availability = SlotAvailability.HELD
                wanted.availability = SlotAvailability.HELD
                _resolve(request, ExchangeOutcome.APPROVED, ExchangeResolution.RESPONDED)
            else:
                _release(offered)
                _release(wanted)
                _resolve(request, ExchangeOutcome.DECLINED, ExchangeResolution.RESPONDED)

            db.flush()
            return hydrate_request(request)

        request = self._transaction(work)
        logger.info(f"Exchange {request_id} {request.outcome.value.lower()} by user {caller_id}")
        return request

    # ------------------------------------------------------------------
    # withdraw / expire
    # ------------------------------------------------------------------

    def withdraw(self, caller_id: int, request_id: int) -> ExchangeRequest:
        """Proposer abandons a pending request; both slots go back on offer."""

        def work(db: Session) -> ExchangeRequest:
            request = self._load_pending(db, request_id, caller_id, party="proposer")
            offered, wanted = self._load_slots(db, request)
            _release(offered)
            _release(wanted)
            _resolve(request, ExchangeOutcome.DECLINED, ExchangeResolution.WITHDRAWN)
            db.flush()
            return hydrate_request(request)

        request = self._transaction(work)
        logger.info(f"Exchange {request_id} withdrawn by user {caller_id}")
        return request

    def expire_stale(self, older_than: datetime) -> List[int]:
        """
        Decline every request still pending that was created before ``older_than``.

        Each request is resolved in its own transaction. One that was resolved
        concurrently is skipped, and one that keeps losing races is left for the
        next run.
        """
        db = self.session_factory()
        try:
            stale_ids = db.scalars(
                select(ExchangeRequest.id)
                .where(ExchangeRequest.outcome == ExchangeOutcome.PENDING)
                .where(ExchangeRequest.created_at < older_than)
                .order_by(ExchangeRequest.created_at.asc())
            ).all()
        finally:
            db.close()

        expired = []
        for request_id in stale_ids:
            try:
                if self._transaction(lambda db, rid=request_id: self._expire_one(db, rid)):
                    expired.append(request_id)
            except Conflict:
                logger.warning(f"Exchange {request_id} changed while expiring, skipped until next run")

        if expired:
            logger.info(f"Expired {len(expired)} pending exchanges created before {older_than.isoformat()}")
        return expired

    @staticmethod
    def _expire_one(db: Session, request_id: int) -> bool:
        request = db.get(ExchangeRequest, request_id)
        if request is None or request.is_terminal:
            return False
        offered, wanted = ExchangeCoordinator._load_slots(db, request)
        _release(offered)
        _release(wanted)
        _resolve(request, ExchangeOutcome.DECLINED, ExchangeResolution.EXPIRED)
        return True

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _load_pending(db: Session, request_id: int, caller_id: int, party: str) -> ExchangeRequest:
        request = db.get(ExchangeRequest, request_id)
        if request is None:
            raise NotFound("Exchange request not found", request_id=request_id)

        party_id = request.counterparty_id if party == "counterparty" else request.proposer_id
        if party_id != caller_id:
            raise Forbidden(f"only the {party} may act on this request", request_id=request_id)

        if request.is_terminal:
            raise InvalidRequest(
                "request already resolved",
                request_id=request_id,
                outcome=request.outcome.value,
            )
        return request

    @staticmethod
    def _load_slots(db: Session, request: ExchangeRequest) -> Tuple[Optional[Slot], Optional[Slot]]:
        offered = db.get(Slot, request.offered_slot_id) if request.offered_slot_id is not None else None
        wanted = db.get(Slot, request.wanted_slot_id) if request.wanted_slot_id is not None else None
        return offered, wanted
