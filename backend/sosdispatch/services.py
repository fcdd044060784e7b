"""
Dispatch engine: the per-request state machine.

    pending -> accepted   terminal, responder is on the way
    pending -> declined   responder refused; a successor request is created if anyone is left
    pending -> expired    deadline passed untouched; same reassignment as a decline

Every status change goes through RequestStore.conditional_transition, which is the only
serialisation point. Accept, decline, the deadline timer and the sweeper may race on the
same request; exactly one of them wins the CAS and the rest see RequestNotPending (or,
for timers, a silent no-op).

Successive requests for one emergency form a chain (shared chain_id). Every responder
that was ever assigned in the chain is excluded from the next search, so a chain can
never loop back to someone who already declined or ignored it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from .citizens import CitizenDirectory
from .directory import ResponderDirectory
from .errors import NoResponderAvailable, NotAuthorized, RequestNotFound, RequestNotPending
from .geo import maps_url, require_phone, validate_point
from .kinds import kind_for_service, kind_named
from .models import ACCEPTED, DECLINED, EXPIRED, PENDING, DispatchRequest, Responder, utcnow
from .notifications import NotificationGateway, NotifyResult
from .settings import settings
from .store import RequestStore
from .timers import DeadlineTimers

logger = logging.getLogger(__name__)


@dataclass
class Assignment:
    request_id: int
    chain_id: int
    hop: int
    service_type: str
    responder_kind: str
    responder_phone: str
    distance_meters: float
    expires_at: datetime

    @classmethod
    def of(cls, request: DispatchRequest) -> "Assignment":
        return cls(
            request_id=request.id,
            chain_id=request.chain_id,
            hop=request.hop,
            service_type=request.service_type,
            responder_kind=request.responder_kind,
            responder_phone=request.responder_phone,
            distance_meters=request.distance_meters,
            expires_at=request.expires_at,
        )


@dataclass
class AcceptOutcome:
    request_id: int
    eta_minutes: int
    distance_meters: float


@dataclass
class DeclineOutcome:
    request_id: int
    successor: Optional[Assignment] = None


class DispatchEngine:
    def __init__(
        self,
        directory: ResponderDirectory,
        store: RequestStore,
        citizens: CitizenDirectory,
        gateway: NotificationGateway,
        timers: DeadlineTimers,
        ttl_seconds: int = 300,
        search_radius_meters: float = 20000.0,
        max_reassignments: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.directory = directory
        self.store = store
        self.citizens = citizens
        self.gateway = gateway
        self.timers = timers
        self.ttl = timedelta(seconds=ttl_seconds)
        self.search_radius_meters = search_radius_meters
        self.max_reassignments = max_reassignments
        self.clock = clock

    # -- commands -----------------------------------------------------------

    def create(self, citizen_phone: str, service_type: str, lng, lat) -> Assignment:
        require_phone(citizen_phone, "citizen_phone")
        kind = kind_for_service(service_type)
        lng, lat = validate_point(lng, lat)

        found = self.directory.find_nearest_available(kind.service_type, (lng, lat), self.search_radius_meters)
        if not found:
            raise NoResponderAvailable(f"no {kind.name} available nearby")
        responder, distance = found

        request = self._assign(
            DispatchRequest(
                citizen_phone=citizen_phone,
                service_type=kind.service_type,
                lng=lng,
                lat=lat,
                maps_url=maps_url(lng, lat),
            ),
            responder,
            distance,
        )
        logger.info(
            f"Request {request.id}: {kind.service_type} for {citizen_phone} assigned to "
            f"{responder.phone} at {distance:.0f}m"
        )
        try:
            self.timers.submit(self.notify_contacts, request)
        except Exception as e:
            logger.warning(f"Could not queue emergency-contact alert for request {request.id}: {e}")
        return Assignment.of(request)

    def accept(self, request_id: int, responder_phone: str) -> AcceptOutcome:
        request = self._authorize(request_id, responder_phone)
        kind = kind_named(request.responder_kind)
        # Distance captured at assignment time, not the responder's current position
        eta = kind.estimate_minutes(request.distance_meters)
        won = self.store.conditional_transition(
            request.id, PENDING, {"status": ACCEPTED, "accepted_at": self.clock(), "eta_minutes": eta}
        )
        if not won:
            logger.info(f"Accept on request {request.id} by {responder_phone} arrived too late")
            raise RequestNotPending("request is no longer pending")
        self.timers.cancel(request.id)
        self.directory.update_availability(responder_phone, kind.busy_state)
        logger.info(f"Request {request.id} accepted by {responder_phone}, eta {eta} min")
        return AcceptOutcome(request_id=request.id, eta_minutes=eta, distance_meters=request.distance_meters)

    def decline(self, request_id: int, responder_phone: str) -> DeclineOutcome:
        request = self._authorize(request_id, responder_phone)
        won = self.store.conditional_transition(
            request.id, PENDING, {"status": DECLINED, "declined_at": self.clock()}
        )
        if not won:
            logger.info(f"Decline on request {request.id} by {responder_phone} arrived too late")
            raise RequestNotPending("request is no longer pending")
        self.timers.cancel(request.id)
        logger.info(f"Request {request.id} declined by {responder_phone}")
        return DeclineOutcome(request_id=request.id, successor=self._try_reassign(request, DECLINED))

    def timeout(self, request_id: int) -> bool:
        """
        Expire a request whose deadline passed, then reassign.

        Safe to call any number of times and at any point: if the request is unknown or
        no longer pending this is a no-op. Returns True only for the call that expired it.
        """
        request = self.store.get(request_id)
        if request is None:
            logger.warning(f"Deadline fired for unknown request {request_id}")
            return False
        won = self.store.conditional_transition(
            request.id, PENDING, {"status": EXPIRED, "expired_at": self.clock()}
        )
        if not won:
            return False
        logger.info(f"Request {request.id} expired unanswered by {request.responder_phone}")
        self._try_reassign(request, EXPIRED)
        return True

    def reassign(self, request: DispatchRequest) -> Assignment:
        """
        Create the successor of a declined or expired request.

        Raises NoResponderAvailable when the chain hit the hop cap or nobody in range
        remains once every responder already tried in the chain is excluded, and
        RequestNotPending when another caller already created the successor.
        """
        if self.max_reassignments is not None and request.hop >= self.max_reassignments:
            raise NoResponderAvailable(f"reassignment limit of {self.max_reassignments} reached")

        tried = {r.responder_phone for r in self.store.chain(request.chain_id)}
        tried.add(request.responder_phone)
        found = self.directory.find_nearest_available(
            request.service_type, (request.lng, request.lat), self.search_radius_meters, exclude=tried
        )
        if not found:
            raise NoResponderAvailable("no other responder available")
        responder, distance = found

        successor = self._assign(
            DispatchRequest(
                citizen_phone=request.citizen_phone,
                service_type=request.service_type,
                lng=request.lng,
                lat=request.lat,
                maps_url=request.maps_url,
                chain_id=request.chain_id,
                previous_id=request.id,
                hop=request.hop + 1,
            ),
            responder,
            distance,
        )
        logger.info(
            f"Request {request.id} reassigned as {successor.id} to {responder.phone} "
            f"at {distance:.0f}m (hop {successor.hop})"
        )
        return Assignment.of(successor)

    def sweep_expired(self) -> int:
        """
        Expire every pending request past its deadline, then finish any reassignment that
        was cut short after its request left pending (a storage error or a restart between
        the two steps). Recovers timers lost on restart. Returns the number expired.
        """
        expired = 0
        for request in self.store.find_overdue(self.clock()):
            if self.timeout(request.id):
                expired += 1
        if expired:
            logger.info(f"Sweeper expired {expired} overdue request(s)")

        recovered = 0
        for request in self.store.find_unreassigned():
            if self._try_reassign(request, request.status):
                recovered += 1
        if recovered:
            logger.info(f"Sweeper reassigned {recovered} interrupted request(s)")
        return expired

    def notify_contacts(self, request: DispatchRequest) -> NotifyResult:
        try:
            citizen, contacts = self.citizens.get(request.citizen_phone)
            return self.gateway.notify_emergency_contacts(citizen, [c.phone for c in contacts], request)
        except Exception as e:
            logger.warning(f"Emergency-contact alert for request {request.id} failed: {e}")
            return NotifyResult()

    # -- helpers ------------------------------------------------------------

    def _assign(self, request: DispatchRequest, responder: Responder, distance: float) -> DispatchRequest:
        now = self.clock()
        request.responder_kind = responder.kind
        request.responder_phone = responder.phone
        request.distance_meters = round(distance)
        request.created_at = now
        request.expires_at = now + self.ttl
        self.store.create(request)
        self.timers.arm(request.id, request.expires_at, self.timeout)
        return request

    def _authorize(self, request_id: int, responder_phone: str) -> DispatchRequest:
        require_phone(responder_phone, "responder_phone")
        request = self.store.get(request_id)
        if request is None:
            raise RequestNotFound(f"request {request_id} not found")
        if request.responder_phone != responder_phone:
            raise NotAuthorized("request is not assigned to this responder")
        if request.status == PENDING and self.clock() >= request.expires_at:
            # Deadline passed but neither timer nor sweeper has run yet
            self.timeout(request.id)
            raise RequestNotPending("request has expired")
        return request

    def _try_reassign(self, request: DispatchRequest, status: str) -> Optional[Assignment]:
        """
        Reassign a request that just left pending as `status`. A chain with nobody left is
        closed so the sweeper stops retrying it.
        """
        try:
            return self.reassign(request)
        except NoResponderAvailable as e:
            logger.info(f"Chain {request.chain_id} stops at request {request.id}: {e}")
            self.store.conditional_transition(request.id, status, {"chain_closed_at": self.clock()})
            return None
        except RequestNotPending:
            successor = self.store.successor_of(request.id)
            return Assignment.of(successor) if successor else None


def create_dispatch_engine(bind, scheduler, sender, clock: Callable[[], datetime] = utcnow) -> DispatchEngine:
    return DispatchEngine(
        directory=ResponderDirectory(bind),
        store=RequestStore(bind),
        citizens=CitizenDirectory(bind),
        gateway=NotificationGateway(sender),
        timers=DeadlineTimers(scheduler),
        ttl_seconds=settings.REQUEST_TTL_SECONDS,
        search_radius_meters=settings.SEARCH_RADIUS_METERS,
        max_reassignments=settings.MAX_REASSIGNMENTS,
        clock=clock,
    )
