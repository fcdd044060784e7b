"""
Responder kinds.

Officers and ambulances share one dispatch flow; what differs between them is captured here:
which service type they answer, their availability vocabulary, which state makes them
dispatchable, which state they move to once they accept, how arrival time is estimated,
which profile fields a citizen may see, and which one marks a completed registration.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .errors import InvalidInput


@dataclass(frozen=True)
class ResponderKind:
    name: str
    service_type: str
    states: Tuple[str, ...]
    ready_state: str
    busy_state: str
    public_profile_keys: Tuple[str, ...]
    registration_key: str
    eta: Callable[[float], int]

    def estimate_minutes(self, distance_meters: Optional[float]) -> int:
        return self.eta((distance_meters or 0) / 1000.0)

    def is_registered(self, profile: Optional[dict]) -> bool:
        return bool((profile or {}).get(self.registration_key))

    def public_profile(self, profile: Optional[dict]) -> Dict:
        profile = profile or {}
        return {key: profile[key] for key in self.public_profile_keys if key in profile}


OFFICER = ResponderKind(
    name="officer",
    service_type="police",
    states=("on-duty", "off-duty"),
    ready_state="on-duty",
    busy_state="off-duty",
    public_profile_keys=("full_name", "rank", "agency"),
    registration_key="full_name",
    eta=lambda km: round(1 + km * 1.5),
)

AMBULANCE = ResponderKind(
    name="ambulance",
    service_type="ambulance",
    states=("available", "enroute", "busy", "offline"),
    ready_state="available",
    busy_state="enroute",
    public_profile_keys=("unit_id", "vehicle_plate", "agency_name", "crew", "capabilities"),
    registration_key="unit_id",
    eta=lambda km: round(2 + km * 2),
)

KINDS: Dict[str, ResponderKind] = {OFFICER.name: OFFICER, AMBULANCE.name: AMBULANCE}
SERVICE_TYPES: Dict[str, ResponderKind] = {k.service_type: k for k in KINDS.values()}


def kind_named(name: str) -> ResponderKind:
    try:
        return KINDS[name]
    except KeyError:
        raise InvalidInput(f"responder kind must be one of {sorted(KINDS)}")


def kind_for_service(service_type: str) -> ResponderKind:
    normalized = (service_type or "").strip().lower() if isinstance(service_type, str) else ""
    try:
        return SERVICE_TYPES[normalized]
    except KeyError:
        raise InvalidInput(f"service_type must be one of {sorted(SERVICE_TYPES)}")
