"""
Shared fixtures: a throwaway SQLite database per test, a hand-driven clock,
timers that record instead of scheduling, and an SMS sender that records messages.
"""
from datetime import datetime, timedelta

import pytest

from sosdispatch.citizens import CitizenDirectory
from sosdispatch.directory import ResponderDirectory
from sosdispatch.geo import METERS_PER_DEGREE_LAT
from sosdispatch.kinds import kind_named
from sosdispatch.models import Responder
from sosdispatch.notifications import NotificationGateway, SmsSender
from sosdispatch.repo import build_engine, get_session, init_db
from sosdispatch.services import DispatchEngine
from sosdispatch.store import RequestStore

CITIZEN = "+919830000001"
ORIGIN = (77.0, 28.0)


def north_of(point, meters):
    """A point `meters` due north of `point` (exact great-circle distance along a meridian)."""
    lng, lat = point
    return lng, lat + meters / METERS_PER_DEGREE_LAT


class FakeClock:
    def __init__(self, start=datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class RecordingTimers:
    """Stands in for DeadlineTimers: remembers armed deadlines, runs submitted work inline."""

    def __init__(self):
        self.armed = {}
        self.cancelled = []
        self.submitted = []

    def arm(self, request_id, fire_at, callback):
        self.armed[request_id] = (fire_at, callback)

    def cancel(self, request_id):
        self.cancelled.append(request_id)
        self.armed.pop(request_id, None)

    def submit(self, fn, *args):
        self.submitted.append(fn)
        fn(*args)

    def fire(self, request_id):
        _, callback = self.armed.pop(request_id)
        return callback(request_id)


class RecordingSender(SmsSender):
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, to, body):
        if to in self.fail_for:
            raise RuntimeError(f"undeliverable: {to}")
        self.sent.append((to, body))


@pytest.fixture
def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'dispatch.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return RecordingTimers()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def directory(db_engine):
    return ResponderDirectory(db_engine)


@pytest.fixture
def store(db_engine):
    return RequestStore(db_engine)


@pytest.fixture
def citizens(db_engine):
    return CitizenDirectory(db_engine)


@pytest.fixture
def dispatch(directory, store, citizens, sender, timers, clock):
    return DispatchEngine(
        directory=directory,
        store=store,
        citizens=citizens,
        gateway=NotificationGateway(sender),
        timers=timers,
        ttl_seconds=300,
        search_radius_meters=20000,
        clock=clock,
    )


@pytest.fixture
def add_responder(db_engine):
    """Insert a responder `meters` north of ORIGIN (or at an explicit point)."""

    def _add(phone, kind="ambulance", meters=None, point=None, verified=True, availability=None, profile=None):
        if point is None and meters is not None:
            point = north_of(ORIGIN, meters)
        responder = Responder(
            phone=phone,
            kind=kind,
            verified=verified,
            availability=availability or kind_named(kind).ready_state,
            lng=point[0] if point else None,
            lat=point[1] if point else None,
            profile=profile or {},
        )
        with get_session(db_engine) as s:
            s.add(responder)
            s.commit()
            s.refresh(responder)
        return responder

    return _add


@pytest.fixture
def citizen(citizens):
    return citizens.upsert(
        CITIZEN,
        {"first_name": "Asha", "last_name": "Verma", "blood_group": "B+", "allergies": ["penicillin"]},
        contacts=[
            {"name": "Rohan", "relationship": "brother", "phone": "+919840000001"},
            {"name": "Neha", "relationship": "mother", "phone": "+919840000002"},
        ],
    )
