from datetime import datetime, timedelta

import pytest

from sosdispatch.errors import InvalidInput, RequestNotPending, StoreUnavailable
from sosdispatch.models import ACCEPTED, DECLINED, EXPIRED, PENDING, DispatchRequest
from sosdispatch.repo import build_engine
from sosdispatch.store import RequestStore

NOW = datetime(2026, 1, 1, 12, 0, 0)


def make_request(responder="+919810000001", created_at=NOW, ttl=300, **extra):
    return DispatchRequest(
        citizen_phone="+919830000001",
        service_type="ambulance",
        lng=77.0,
        lat=28.0,
        maps_url="https://www.google.com/maps/search/?api=1&query=28.0,77.0",
        responder_kind="ambulance",
        responder_phone=responder,
        distance_meters=1500,
        created_at=created_at,
        expires_at=created_at + timedelta(seconds=ttl),
        **extra,
    )


def test_create_forces_pending_and_starts_chain(store):
    request_id = store.create(make_request(status=ACCEPTED))

    request = store.get(request_id)
    assert request.status == PENDING
    assert request.chain_id == request_id
    assert request.hop == 0


def test_get_missing(store):
    assert store.get(42) is None


def test_conditional_transition_wins_once(store):
    request_id = store.create(make_request())

    assert store.conditional_transition(request_id, PENDING, {"status": ACCEPTED, "accepted_at": NOW}) is True
    assert store.conditional_transition(request_id, PENDING, {"status": DECLINED, "declined_at": NOW}) is False

    request = store.get(request_id)
    assert request.status == ACCEPTED
    assert request.declined_at is None


def test_conditional_transition_unknown_id(store):
    assert store.conditional_transition(404, PENDING, {"status": ACCEPTED}) is False


def test_conditional_transition_rejects_identity_fields(store):
    request_id = store.create(make_request())

    with pytest.raises(InvalidInput):
        store.conditional_transition(request_id, PENDING, {"responder_phone": "+919810000002"})
    with pytest.raises(InvalidInput):
        store.conditional_transition(request_id, PENDING, {"status": "completed"})


def test_find_active_for_responder_newest_first(store):
    older = store.create(make_request(created_at=NOW))
    newer = store.create(make_request(created_at=NOW + timedelta(seconds=30)))
    store.create(make_request(responder="+919810000002"))
    done = store.create(make_request())
    store.conditional_transition(done, PENDING, {"status": ACCEPTED})
    store.create(make_request(created_at=NOW - timedelta(seconds=400)))

    active = store.find_active_for_responder("+919810000001", NOW + timedelta(seconds=60))

    assert [r.id for r in active] == [newer, older]


def test_find_overdue(store):
    overdue = store.create(make_request(created_at=NOW - timedelta(seconds=301)))
    store.create(make_request(created_at=NOW))

    assert [r.id for r in store.find_overdue(NOW)] == [overdue]


def test_chain_and_successor(store):
    first = store.create(make_request())
    second = store.create(make_request(responder="+919810000002", chain_id=first, previous_id=first, hop=1))

    assert [r.id for r in store.chain(first)] == [first, second]
    assert store.successor_of(first).id == second
    assert store.successor_of(second) is None


def test_request_has_at_most_one_successor(store):
    first = store.create(make_request())
    store.create(make_request(responder="+919810000002", chain_id=first, previous_id=first, hop=1))

    with pytest.raises(RequestNotPending):
        store.create(make_request(responder="+919810000003", chain_id=first, previous_id=first, hop=1))

    assert [r.responder_phone for r in store.chain(first)] == ["+919810000001", "+919810000002"]


def test_find_unreassigned(store):
    superseded = store.create(make_request())
    store.create(make_request(responder="+919810000002", chain_id=superseded, previous_id=superseded, hop=1))
    interrupted = store.create(make_request())
    closed = store.create(make_request())
    store.create(make_request())

    store.conditional_transition(superseded, PENDING, {"status": DECLINED, "declined_at": NOW})
    store.conditional_transition(interrupted, PENDING, {"status": EXPIRED, "expired_at": NOW})
    store.conditional_transition(closed, PENDING, {"status": DECLINED, "declined_at": NOW})
    store.conditional_transition(closed, DECLINED, {"chain_closed_at": NOW})

    assert [r.id for r in store.find_unreassigned()] == [interrupted]


def test_timestamps_are_naive_utc_columns(store):
    request_id = store.create(make_request())

    request = store.get(request_id)
    assert request.expires_at == NOW + timedelta(seconds=300)
    assert request.expires_at.tzinfo is None
    for column in ("created_at", "expires_at", "accepted_at", "chain_closed_at"):
        assert DispatchRequest.__table__.c[column].type.timezone is False


def test_storage_failure_is_not_a_conflict(tmp_path):
    broken = RequestStore(build_engine(f"sqlite:///{tmp_path / 'missing' / 'dispatch.db'}"))

    with pytest.raises(StoreUnavailable):
        broken.conditional_transition(1, PENDING, {"status": ACCEPTED})
    with pytest.raises(StoreUnavailable):
        broken.get(1)
