from datetime import timedelta

import pytest
from sqlalchemy import delete, update

from app.exceptions import Forbidden, NotFound
from app.models import ExchangeOutcome, ExchangeRequest, Slot, SlotAvailability
from app.services import directory
from app.services.integrity import audit_integrity


def test_own_slots_ordered_by_start(slot_service, alice, bob, make_slot, db):
    later = make_slot(alice, SlotAvailability.HELD)
    make_slot(bob)
    earlier = slot_service.create_slot(
        alice.id, "Early", later.start_time - timedelta(days=3), later.start_time - timedelta(days=2)
    )

    slots = directory.list_own_slots(alice.id, db)

    assert [s.id for s in slots] == [earlier.id, later.id]


def test_marketplace_shows_only_other_peoples_offered_slots(alice, bob, carol, make_slot, db):
    make_slot(alice)
    bob_offered = make_slot(bob)
    make_slot(bob, SlotAvailability.HELD)
    carol_offered = make_slot(carol)

    slots = directory.list_marketplace(alice.id, db)

    assert [s.id for s in slots] == [bob_offered.id, carol_offered.id]
    assert slots[0].owner.username == "bob"


def test_marketplace_hides_locked_slots(coordinator, alice, bob, carol, make_slot, db):
    slot_a, slot_b = make_slot(alice), make_slot(bob)
    coordinator.propose(alice.id, slot_a.id, slot_b.id)

    assert directory.list_marketplace(carol.id, db) == []


def test_incoming_lists_pending_requests_for_counterparty(coordinator, alice, bob, carol, make_slot, db):
    a1, b1 = make_slot(alice), make_slot(bob)
    c1, b2 = make_slot(carol), make_slot(bob)
    first = coordinator.propose(alice.id, a1.id, b1.id)
    second = coordinator.propose(carol.id, c1.id, b2.id)
    coordinator.respond(bob.id, first.id, approve=False)

    incoming = directory.list_incoming(bob.id, db)

    assert [r.id for r in incoming] == [second.id]
    assert incoming[0].proposer.username == "carol"
    assert directory.list_incoming(alice.id, db) == []


def test_outgoing_lists_every_outcome_newest_first(coordinator, alice, bob, make_slot, db):
    a1, b1 = make_slot(alice), make_slot(bob)
    a2, b2 = make_slot(alice), make_slot(bob)
    first = coordinator.propose(alice.id, a1.id, b1.id)
    coordinator.respond(bob.id, first.id, approve=True)
    second = coordinator.propose(alice.id, a2.id, b2.id)

    outgoing = directory.list_outgoing(alice.id, db)

    assert [r.id for r in outgoing] == [second.id, first.id]
    assert [r.outcome for r in outgoing] == [ExchangeOutcome.PENDING, ExchangeOutcome.APPROVED]
    assert directory.list_outgoing(bob.id, db) == []


def test_ledgers_hide_requests_with_removed_slots(coordinator, slot_service, alice, bob, make_slot, db):
    a1, b1 = make_slot(alice), make_slot(bob)
    request = coordinator.propose(alice.id, a1.id, b1.id)
    coordinator.respond(bob.id, request.id, approve=False)
    slot_service.delete_slot(bob.id, b1.id)

    db.expire_all()
    assert directory.list_outgoing(alice.id, db) == []
    # The record itself is kept
    assert db.get(ExchangeRequest, request.id).wanted_slot_id is None


def test_get_request_visible_to_both_parties_only(coordinator, alice, bob, carol, make_slot, db):
    a1, b1 = make_slot(alice), make_slot(bob)
    request = coordinator.propose(alice.id, a1.id, b1.id)

    assert directory.get_request(alice.id, request.id, db).id == request.id
    assert directory.get_request(bob.id, request.id, db).id == request.id
    with pytest.raises(Forbidden):
        directory.get_request(carol.id, request.id, db)
    with pytest.raises(NotFound):
        directory.get_request(alice.id, 777, db)


# ----------------------------------------------------------------------
# integrity audit
# ----------------------------------------------------------------------

def test_audit_is_clean_after_normal_traffic(coordinator, alice, bob, make_slot, db):
    a1, b1 = make_slot(alice), make_slot(bob)
    a2, b2 = make_slot(alice), make_slot(bob)
    coordinator.propose(alice.id, a1.id, b1.id)
    done = coordinator.propose(alice.id, a2.id, b2.id)
    coordinator.respond(bob.id, done.id, approve=True)

    assert audit_integrity(db) == []


def test_audit_reports_lock_without_pending_request(alice, make_slot, db):
    slot = make_slot(alice)
    db.execute(update(Slot).where(Slot.id == slot.id).values(availability=SlotAvailability.LOCKED))
    db.commit()

    violations = audit_integrity(db)

    assert [(v.kind, v.slot_id) for v in violations] == [("lock_without_pending", slot.id)]
    # Reported, not repaired
    assert db.get(Slot, slot.id).availability == SlotAvailability.LOCKED


def test_audit_reports_pending_request_with_missing_slot(coordinator, alice, bob, make_slot, db):
    a1, b1 = make_slot(alice), make_slot(bob)
    request = coordinator.propose(alice.id, a1.id, b1.id)
    db.execute(delete(Slot).where(Slot.id == a1.id))
    db.commit()

    kinds = {(v.kind, v.request_id) for v in audit_integrity(db)}

    assert ("dangling_slot", request.id) in kinds
