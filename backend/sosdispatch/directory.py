import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlmodel import select

from .errors import InvalidInput
from .geo import bounding_box, haversine_m, require_phone, validate_point
from .kinds import ResponderKind, kind_for_service, kind_named
from .models import Responder, utcnow
from .repo import store_session

logger = logging.getLogger(__name__)


class ResponderDirectory:
    """Officer and ambulance records, with nearest-available lookup."""

    def __init__(self, bind: Engine = None):
        self.bind = bind

    def get_by_identifier(self, phone: str) -> Optional[Responder]:
        with store_session(self.bind) as s:
            return s.exec(select(Responder).where(Responder.phone == phone)).first()

    def find_nearest_available(
        self,
        service_type: str,
        point: Tuple[float, float],
        max_radius_meters: float,
        exclude: Iterable[str] = (),
    ) -> Optional[Tuple[Responder, float]]:
        """
        Closest dispatchable responder for a service type.

        Eligible means: the kind serving the service type, in that kind's ready state,
        verified, with a known location, within the radius, and not excluded.
        Returns (responder, distance_meters), or None when nobody qualifies.
        Equal distances are ordered by phone so results are reproducible.
        """
        kind = kind_for_service(service_type)
        lng, lat = point
        excluded = set(exclude)
        min_lng, min_lat, max_lng, max_lat = bounding_box(lng, lat, max_radius_meters)

        query = select(Responder).where(
            Responder.kind == kind.name,
            Responder.availability == kind.ready_state,
            Responder.verified == True,  # noqa: E712
            Responder.lng.is_not(None),
            Responder.lat.is_not(None),
            Responder.lat >= min_lat,
            Responder.lat <= max_lat,
        )
        if min_lng >= -180.0 and max_lng <= 180.0:
            query = query.where(Responder.lng >= min_lng, Responder.lng <= max_lng)
        if excluded:
            query = query.where(Responder.phone.not_in(sorted(excluded)))

        with store_session(self.bind) as s:
            candidates = s.exec(query).all()

        ranked: List[Tuple[float, str, Responder]] = []
        for responder in candidates:
            distance = haversine_m(lng, lat, responder.lng, responder.lat)
            if distance <= max_radius_meters:
                ranked.append((distance, responder.phone, responder))
        if not ranked:
            logger.info(f"No {kind.name} available within {max_radius_meters:.0f}m of ({lng}, {lat})")
            return None
        ranked.sort(key=lambda item: (item[0], item[1]))
        distance, _, responder = ranked[0]
        return responder, distance

    def update_availability(
        self,
        phone: str,
        state: str,
        location: Optional[Tuple[float, float]] = None,
    ) -> Optional[Responder]:
        """Set a responder's availability (and optionally location). Returns None if unknown."""
        with store_session(self.bind) as s:
            responder = s.exec(select(Responder).where(Responder.phone == phone)).first()
            if not responder:
                return None
            kind = kind_named(responder.kind)
            if state not in kind.states:
                raise InvalidInput(f"{kind.name} availability must be one of {list(kind.states)}")
            responder.availability = state
            if location is not None:
                responder.lng, responder.lat = validate_point(*location)
            responder.last_status_at = utcnow()
            s.add(responder)
            s.commit()
            s.refresh(responder)
            return responder

    def upsert_profile(
        self,
        kind: ResponderKind,
        phone: str,
        profile: Optional[dict] = None,
        location: Optional[Tuple[float, float]] = None,
    ) -> Responder:
        require_phone(phone)
        with store_session(self.bind) as s:
            responder = s.exec(select(Responder).where(Responder.phone == phone)).first()
            if responder and responder.kind != kind.name:
                raise InvalidInput(f"{phone} is already registered as {responder.kind}")
            if not responder:
                responder = Responder(phone=phone, kind=kind.name, availability=kind.ready_state)
            if profile:
                merged = dict(responder.profile or {})
                merged.update({k: v for k, v in profile.items() if v is not None})
                responder.profile = merged
            if location is not None:
                responder.lng, responder.lat = validate_point(*location)
            s.add(responder)
            s.commit()
            s.refresh(responder)
            return responder

    def mark_verified(self, kind: ResponderKind, phone: str) -> Responder:
        responder = self.upsert_profile(kind, phone)
        if responder.verified:
            return responder
        with store_session(self.bind) as s:
            responder = s.get(Responder, responder.id)
            responder.verified = True
            s.add(responder)
            s.commit()
            s.refresh(responder)
        logger.info(f"{kind.name} {phone} verified")
        return responder
