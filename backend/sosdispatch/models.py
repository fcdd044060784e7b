from __future__ import annotations
from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import SQLModel, Field


PENDING = "pending"
ACCEPTED = "accepted"
DECLINED = "declined"
EXPIRED = "expired"

REQUEST_STATUSES = (PENDING, ACCEPTED, DECLINED, EXPIRED)


def utcnow() -> datetime:
    # Naive UTC throughout; datetime columns are declared as plain DateTime to match
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Responder(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    phone: str = Field(index=True, unique=True)
    kind: str = Field(index=True)  # "officer" | "ambulance"
    verified: bool = False
    availability: str  # officer: on-duty/off-duty, ambulance: available/enroute/busy/offline
    lng: Optional[float] = Field(default=None, index=True)
    lat: Optional[float] = Field(default=None, index=True)
    profile: dict = Field(default_factory=dict, sa_column=Column(JSON))
    last_status_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class Citizen(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    phone: str = Field(index=True, unique=True)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    blood_group: Optional[str] = None
    allergies: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    medical_conditions: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    medications: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    special_needs: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    home_address: Optional[str] = None
    verified: bool = False
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or "Your contact"


class EmergencyContact(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    citizen_id: int = Field(foreign_key="citizen.id", index=True)
    name: Optional[str] = None
    relationship: Optional[str] = None
    phone: str


class DispatchRequest(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    citizen_phone: str = Field(index=True)
    service_type: str  # "police" | "ambulance"
    lng: float
    lat: float
    maps_url: str
    responder_kind: str
    responder_phone: str = Field(index=True)
    distance_meters: float = 0.0
    status: str = Field(default=PENDING, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    expires_at: datetime = Field(index=True, sa_type=DateTime)
    accepted_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    declined_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    expired_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    eta_minutes: Optional[int] = None
    # Reassignment chain: chain_id is the id of the first request, hop counts reassignments
    chain_id: Optional[int] = Field(default=None, index=True)
    previous_id: Optional[int] = Field(default=None, foreign_key="dispatchrequest.id", unique=True)
    hop: int = 0
    # Set when reassignment found nobody (or hit the cap); the chain ends here
    chain_closed_at: Optional[datetime] = Field(default=None, sa_type=DateTime)

    def seconds_remaining(self, now: datetime) -> int:
        return max(0, int((self.expires_at - now).total_seconds()))
