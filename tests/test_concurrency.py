"""
Racing writers against a real database file. Whatever the interleaving, exactly
one contender wins and the lock invariant holds afterwards.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.exceptions import Conflict, ExchangeError, InvalidRequest, NotFound
from app.models import ExchangeOutcome, ExchangeRequest, ExchangeResolution, Slot, SlotAvailability
from app.services.integrity import audit_integrity


@pytest.fixture()
def session_factory(file_session_factory):
    return file_session_factory


def race(*calls):
    barrier = threading.Barrier(len(calls))

    def run(call):
        barrier.wait()
        try:
            return call()
        except ExchangeError as e:
            return e

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(run, calls))


def split(results):
    wins = [r for r in results if not isinstance(r, ExchangeError)]
    losses = [r for r in results if isinstance(r, ExchangeError)]
    return wins, losses


def test_two_proposals_for_the_same_slot(coordinator, alice, bob, carol, make_slot, db):
    mine, wanted, theirs = make_slot(alice), make_slot(bob), make_slot(carol)

    results = race(
        lambda: coordinator.propose(alice.id, mine.id, wanted.id),
        lambda: coordinator.propose(carol.id, theirs.id, wanted.id),
    )

    wins, losses = split(results)
    assert len(wins) == 1 and len(losses) == 1
    assert isinstance(losses[0], (InvalidRequest, Conflict))
    assert db.query(ExchangeRequest).count() == 1
    loser_slot = theirs if wins[0].proposer_id == alice.id else mine
    assert db.get(Slot, loser_slot.id).availability == SlotAvailability.OFFERED
    assert audit_integrity(db) == []


def test_offered_slot_races_two_proposals_and_owner_toggle(
    coordinator, slot_service, alice, bob, carol, make_slot, db
):
    offered, for_bob, for_carol = make_slot(alice), make_slot(bob), make_slot(carol)

    results = race(
        lambda: coordinator.propose(alice.id, offered.id, for_bob.id),
        lambda: coordinator.propose(alice.id, offered.id, for_carol.id),
        lambda: slot_service.set_availability(alice.id, offered.id, SlotAvailability.HELD),
    )

    wins, losses = split(results)
    assert all(isinstance(loss, (InvalidRequest, Conflict)) for loss in losses)
    assert db.query(ExchangeRequest).count() <= 1
    assert len([r for r in wins if isinstance(r, ExchangeRequest)]) <= 1

    slot = db.get(Slot, offered.id)
    if db.query(ExchangeRequest).count() == 1:
        # The toggle never unlocks a slot under negotiation
        assert slot.availability == SlotAvailability.LOCKED
    else:
        assert slot.availability == SlotAvailability.HELD
    assert audit_integrity(db) == []


def test_approve_races_withdraw(coordinator, alice, bob, make_slot, db):
    slot_a, slot_b = make_slot(alice), make_slot(bob)
    request = coordinator.propose(alice.id, slot_a.id, slot_b.id)

    results = race(
        lambda: coordinator.respond(bob.id, request.id, approve=True),
        lambda: coordinator.withdraw(alice.id, request.id),
    )

    wins, losses = split(results)
    assert len(wins) == 1 and len(losses) == 1
    assert isinstance(losses[0], (InvalidRequest, Conflict))

    final = db.get(ExchangeRequest, request.id)
    a, b = db.get(Slot, slot_a.id), db.get(Slot, slot_b.id)
    if final.outcome == ExchangeOutcome.APPROVED:
        assert (a.owner_id, b.owner_id) == (bob.id, alice.id)
        assert a.availability == b.availability == SlotAvailability.HELD
    else:
        assert final.resolution == ExchangeResolution.WITHDRAWN
        assert (a.owner_id, b.owner_id) == (alice.id, bob.id)
        assert a.availability == b.availability == SlotAvailability.OFFERED
    assert audit_integrity(db) == []


def test_delete_races_proposal(coordinator, slot_service, alice, bob, make_slot, db):
    slot_a, slot_b = make_slot(alice), make_slot(bob)

    results = race(
        lambda: coordinator.propose(alice.id, slot_a.id, slot_b.id),
        lambda: slot_service.delete_slot(bob.id, slot_b.id),
    )

    proposal, deletion = results
    if isinstance(proposal, ExchangeError):
        assert isinstance(proposal, (NotFound, Conflict))
        assert db.get(Slot, slot_b.id) is None
        assert db.get(Slot, slot_a.id).availability == SlotAvailability.OFFERED
    else:
        assert isinstance(deletion, (InvalidRequest, Conflict))
        assert db.get(Slot, slot_b.id).availability == SlotAvailability.LOCKED
    assert audit_integrity(db) == []
