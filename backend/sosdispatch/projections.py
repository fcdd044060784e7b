"""
Read-side views of dispatch requests.

Citizens always see the newest request of their chain, so a reassignment is invisible
to them: the request they created stays "pending" until someone accepts or nobody is
left. Who is assigned is hidden until acceptance.

Responders see the citizen's full medical profile, but only for requests assigned to them.
"""

from datetime import datetime
from typing import Dict, List

from .citizens import CitizenDirectory, medical_profile
from .directory import ResponderDirectory
from .errors import NotAuthorized, RequestNotFound
from .kinds import kind_named
from .models import ACCEPTED, PENDING, DispatchRequest
from .store import RequestStore


class RequestStatusProjector:
    def __init__(self, store: RequestStore, directory: ResponderDirectory, citizens: CitizenDirectory):
        self.store = store
        self.directory = directory
        self.citizens = citizens

    def latest_in_chain(self, request: DispatchRequest) -> DispatchRequest:
        chain = self.store.chain(request.chain_id)
        return chain[-1] if chain else request

    def citizen_view(self, request_id: int, now: datetime) -> Dict:
        request = self.store.get(request_id)
        if request is None:
            raise RequestNotFound(f"request {request_id} not found")
        current = self.latest_in_chain(request)

        view = {
            "request_id": request.id,
            "current_request_id": current.id,
            "service_type": current.service_type,
            "status": current.status,
            "maps_url": current.maps_url,
            "seconds_remaining": 0,
            "responder": None,
            "eta_minutes": None,
            "no_responder_available": False,
            "can_retry": False,
        }
        if current.status == PENDING:
            view["seconds_remaining"] = current.seconds_remaining(now)
        elif current.status == ACCEPTED:
            view["eta_minutes"] = current.eta_minutes
            view["responder"] = self._public_responder(current)
        elif current.chain_closed_at is not None:
            # Declined or expired and nobody left to reassign to
            view["no_responder_available"] = True
            view["can_retry"] = True
        return view

    def responder_view(self, request_id: int, responder_phone: str, now: datetime) -> Dict:
        """Visible to the assignee while pending, and after accepting so the crew keeps the profile en route."""
        request = self.store.get(request_id)
        if request is None:
            raise RequestNotFound(f"request {request_id} not found")
        if request.responder_phone != responder_phone or request.status not in (PENDING, ACCEPTED):
            raise NotAuthorized("request is not assigned to this responder")
        return self._responder_card(request, now)

    def responder_inbox(self, responder_phone: str, now: datetime) -> List[Dict]:
        return [self._responder_card(r, now) for r in self.store.find_active_for_responder(responder_phone, now)]

    def _responder_card(self, request: DispatchRequest, now: datetime) -> Dict:
        citizen, contacts = self.citizens.get(request.citizen_phone)
        return {
            "request_id": request.id,
            "service_type": request.service_type,
            "status": request.status,
            "location": {"lng": request.lng, "lat": request.lat},
            "maps_url": request.maps_url,
            "distance_meters": request.distance_meters,
            "created_at": request.created_at,
            "seconds_remaining": request.seconds_remaining(now) if request.status == PENDING else 0,
            "eta_minutes": request.eta_minutes,
            "citizen": medical_profile(citizen, contacts),
        }

    def _public_responder(self, request: DispatchRequest) -> Dict:
        kind = kind_named(request.responder_kind)
        responder = self.directory.get_by_identifier(request.responder_phone)
        return {
            "kind": kind.name,
            "phone": request.responder_phone,
            "profile": kind.public_profile(responder.profile if responder else None),
        }


def identity_of(phone: str, citizens: CitizenDirectory, directory: ResponderDirectory) -> Dict:
    """
    Which role a phone number belongs to, so a client can route it to the right screens.

    Citizens are checked first. "registered" means the profile has been completed beyond
    the bare record that verification creates.
    """
    citizen, _ = citizens.get(phone)
    if citizen is not None:
        return {"phone": phone, "type": "citizen", "registered": bool(citizen.first_name), "verified": citizen.verified}
    responder = directory.get_by_identifier(phone)
    if responder is not None:
        kind = kind_named(responder.kind)
        return {
            "phone": phone,
            "type": kind.name,
            "registered": kind.is_registered(responder.profile),
            "verified": responder.verified,
        }
    return {"phone": phone, "type": None, "registered": False, "verified": False}
