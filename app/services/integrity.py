"""
Read-only check of the lock invariant: a slot is LOCKED exactly when one
pending exchange request references it. Violations are reported, never repaired.
"""

from collections import defaultdict
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import ExchangeOutcome, ExchangeRequest, Slot, SlotAvailability
from ..schemas import IntegrityViolationOut


def audit_integrity(db: Session) -> List[IntegrityViolationOut]:
    violations: List[IntegrityViolationOut] = []

    pending = db.scalars(
        select(ExchangeRequest).where(ExchangeRequest.outcome == ExchangeOutcome.PENDING)
    ).all()
    slots: Dict[int, Slot] = {slot.id: slot for slot in db.scalars(select(Slot)).all()}

    pending_by_slot: Dict[int, List[int]] = defaultdict(list)
    for request in pending:
        for slot_id in (request.offered_slot_id, request.wanted_slot_id):
            if slot_id is None or slot_id not in slots:
                violations.append(IntegrityViolationOut(
                    kind="dangling_slot",
                    detail="pending request references a slot that no longer exists",
                    request_id=request.id,
                ))
                continue
            pending_by_slot[slot_id].append(request.id)
            if slots[slot_id].availability != SlotAvailability.LOCKED:
                violations.append(IntegrityViolationOut(
                    kind="pending_without_lock",
                    detail=f"slot is {slots[slot_id].availability.value} while a request is pending",
                    slot_id=slot_id,
                    request_id=request.id,
                ))
        if request.proposer_id is None or request.counterparty_id is None:
            violations.append(IntegrityViolationOut(
                kind="dangling_party",
                detail="pending request references a party that no longer exists",
                request_id=request.id,
            ))

    for slot_id, slot in slots.items():
        if slot.availability != SlotAvailability.LOCKED:
            continue
        request_ids = pending_by_slot.get(slot_id, [])
        if not request_ids:
            violations.append(IntegrityViolationOut(
                kind="lock_without_pending",
                detail="slot is LOCKED but no pending request references it",
                slot_id=slot_id,
            ))
        elif len(request_ids) > 1:
            violations.append(IntegrityViolationOut(
                kind="double_lock",
                detail=f"slot is referenced by {len(request_ids)} pending requests: {sorted(request_ids)}",
                slot_id=slot_id,
            ))

    return violations
