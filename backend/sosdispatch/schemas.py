from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CreateDispatchIn(BaseModel):
    citizen_phone: str
    service_type: str
    lng: float
    lat: float


class AssignmentOut(BaseModel):
    request_id: int
    chain_id: int
    hop: int
    service_type: str
    responder_kind: str
    responder_phone: str
    distance_meters: float
    expires_at: datetime


class CreateDispatchOut(BaseModel):
    request_id: int
    assignment: AssignmentOut


class ResponderActionIn(BaseModel):
    responder_phone: str


class AcceptOut(BaseModel):
    ok: bool = True
    request_id: int
    eta_minutes: int
    distance_meters: float


class DeclineOut(BaseModel):
    ok: bool = True
    request_id: int
    reassigned: bool
    successor: Optional[AssignmentOut] = None


class AvailabilityIn(BaseModel):
    availability: str
    lng: Optional[float] = None
    lat: Optional[float] = None


class ResponderProfileIn(BaseModel):
    profile: Dict = Field(default_factory=dict)
    lng: Optional[float] = None
    lat: Optional[float] = None


class ResponderOut(BaseModel):
    phone: str
    kind: str
    verified: bool
    availability: str
    lng: Optional[float] = None
    lat: Optional[float] = None
    profile: Dict = Field(default_factory=dict)


class OtpSendIn(BaseModel):
    phone: str


class OtpVerifyIn(BaseModel):
    phone: str
    code: str


class EmergencyContactIn(BaseModel):
    name: Optional[str] = None
    relationship: Optional[str] = None
    phone: str


class CitizenProfileIn(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    blood_group: Optional[str] = None
    allergies: Optional[List[str]] = None
    medical_conditions: Optional[List[str]] = None
    medications: Optional[List[str]] = None
    special_needs: Optional[List[str]] = None
    home_address: Optional[str] = None
    emergency_contacts: Optional[List[EmergencyContactIn]] = None


class PublicResponderOut(BaseModel):
    kind: str
    phone: str
    profile: Dict = Field(default_factory=dict)


class CitizenStatusOut(BaseModel):
    request_id: int
    current_request_id: int
    service_type: str
    status: str
    maps_url: str
    seconds_remaining: int
    responder: Optional[PublicResponderOut] = None
    eta_minutes: Optional[int] = None
    no_responder_available: bool
    can_retry: bool


class ResponderRequestOut(BaseModel):
    request_id: int
    service_type: str
    status: str
    location: Dict[str, float]
    maps_url: str
    distance_meters: float
    created_at: datetime
    seconds_remaining: int
    eta_minutes: Optional[int] = None
    citizen: Optional[Dict] = None


class CitizenOut(BaseModel):
    id: int
    phone: str
    verified: bool


class IdentityOut(BaseModel):
    phone: str
    type: Optional[str] = None
    registered: bool
    verified: bool
