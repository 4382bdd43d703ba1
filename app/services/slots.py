"""
Owner-side slot operations: create, edit, toggle availability, delete.

These touch one slot at a time but still run through the transaction boundary,
so an owner edit that races a proposal fails instead of overwriting the lock.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

import pytz
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..database import run_in_transaction
from ..exceptions import Forbidden, InvalidRequest, NotFound
from ..models import (
    OWNER_SETTABLE_AVAILABILITY,
    ExchangeOutcome,
    ExchangeRequest,
    Slot,
    SlotAvailability,
)

logger = logging.getLogger(__name__)


def to_utc_naive(value: datetime) -> datetime:
    """Store every timestamp as naive UTC; aware inputs are converted, naive ones trusted."""
    if value.tzinfo is not None:
        return value.astimezone(pytz.UTC).replace(tzinfo=None)
    return value


def validate_time_range(start_time: datetime, end_time: datetime) -> None:
    if end_time <= start_time:
        raise InvalidRequest(
            "End time must be after start time",
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
        )


def _load_owned(db: Session, caller_id: int, slot_id: int) -> Slot:
    slot = db.get(Slot, slot_id)
    if slot is None:
        raise NotFound("Slot not found", slot_id=slot_id)
    if slot.owner_id != caller_id:
        raise Forbidden("Not authorized to modify this slot", slot_id=slot_id)
    return slot


def _has_pending_request(db: Session, slot_id: int) -> bool:
    pending = db.scalars(
        select(ExchangeRequest.id)
        .where(ExchangeRequest.outcome == ExchangeOutcome.PENDING)
        .where(or_(ExchangeRequest.offered_slot_id == slot_id, ExchangeRequest.wanted_slot_id == slot_id))
        .limit(1)
    ).first()
    return pending is not None


class SlotService:
    """Single-slot writes performed by a slot's owner."""

    def __init__(self, session_factory: Callable[[], Session], max_attempts: Optional[int] = None):
        self.session_factory = session_factory
        self.max_attempts = max_attempts

    def _transaction(self, work):
        return run_in_transaction(self.session_factory, work, attempts=self.max_attempts)

    def create_slot(
        self,
        caller_id: int,
        title: Optional[str],
        start_time: Optional[datetime],
        end_time: Optional[datetime],
        availability: SlotAvailability = SlotAvailability.HELD,
    ) -> Slot:
        title = (title or "").strip()
        if not title or start_time is None or end_time is None:
            raise InvalidRequest("Please provide title, start time, and end time")
        start_time, end_time = to_utc_naive(start_time), to_utc_naive(end_time)
        validate_time_range(start_time, end_time)
        if availability not in OWNER_SETTABLE_AVAILABILITY:
            raise InvalidRequest("New slots must be HELD or OFFERED", availability=availability.value)

        def work(db: Session) -> Slot:
            slot = Slot(
                owner_id=caller_id,
                title=title,
                start_time=start_time,
                end_time=end_time,
                availability=availability,
            )
            db.add(slot)
            db.flush()
            return slot

        slot = self._transaction(work)
        logger.info(f"Slot {slot.id} created by user {caller_id} ({slot.availability.value})")
        return slot

    def update_slot(
        self,
        caller_id: int,
        slot_id: int,
        title: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> Slot:
        """Edit title or time range. Not allowed while the slot is part of a pending exchange."""

        def work(db: Session) -> Slot:
            slot = _load_owned(db, caller_id, slot_id)
            if slot.availability == SlotAvailability.LOCKED:
                raise InvalidRequest("Cannot edit a slot with a pending exchange request", slot_id=slot_id)

            if title is not None:
                new_title = title.strip()
                if not new_title:
                    raise InvalidRequest("Title cannot be empty", slot_id=slot_id)
                slot.title = new_title

            new_start = to_utc_naive(start_time) if start_time is not None else slot.start_time
            new_end = to_utc_naive(end_time) if end_time is not None else slot.end_time
            validate_time_range(new_start, new_end)
            slot.start_time = new_start
            slot.end_time = new_end
            db.flush()
            return slot

        return self._transaction(work)

    def set_availability(self, caller_id: int, slot_id: int, availability: SlotAvailability) -> Slot:
        """Toggle between HELD and OFFERED. Locked slots are only released by the coordinator."""
        if availability not in OWNER_SETTABLE_AVAILABILITY:
            raise InvalidRequest("Availability can only be set to HELD or OFFERED", availability=availability.value)

        def work(db: Session) -> Slot:
            slot = _load_owned(db, caller_id, slot_id)
            if slot.availability == SlotAvailability.LOCKED:
                raise InvalidRequest(
                    "Cannot change availability while an exchange is pending",
                    slot_id=slot_id,
                )
            slot.availability = availability
            db.flush()
            return slot

        slot = self._transaction(work)
        logger.info(f"Slot {slot_id} set to {availability.value} by user {caller_id}")
        return slot

    def delete_slot(self, caller_id: int, slot_id: int) -> None:
        def work(db: Session) -> None:
            slot = _load_owned(db, caller_id, slot_id)
            if slot.availability == SlotAvailability.LOCKED:
                raise InvalidRequest(
                    "Cannot delete slot with pending exchange request. Please resolve the exchange first.",
                    slot_id=slot_id,
                )
            # Should coincide with LOCKED; checked separately so a broken invariant never deletes
            if _has_pending_request(db, slot_id):
                raise InvalidRequest("Cannot delete slot that is part of pending exchange requests.", slot_id=slot_id)
            db.delete(slot)

        self._transaction(work)
        logger.info(f"Slot {slot_id} deleted by user {caller_id}")
