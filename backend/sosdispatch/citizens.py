import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlmodel import delete, select

from .geo import require_phone
from .models import Citizen, EmergencyContact
from .repo import store_session

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "blood_group",
    "allergies",
    "medical_conditions",
    "medications",
    "special_needs",
    "home_address",
)


class CitizenDirectory:
    """Citizen profiles and emergency contacts. Read-only from the dispatch core's side."""

    def __init__(self, bind: Engine = None):
        self.bind = bind

    def get(self, phone: str) -> Tuple[Optional[Citizen], List[EmergencyContact]]:
        with store_session(self.bind) as s:
            citizen = s.exec(select(Citizen).where(Citizen.phone == phone)).first()
            if not citizen:
                return None, []
            contacts = s.exec(
                select(EmergencyContact)
                .where(EmergencyContact.citizen_id == citizen.id)
                .order_by(EmergencyContact.id)
            ).all()
            return citizen, list(contacts)

    def upsert(self, phone: str, profile: Dict, contacts: Optional[List[Dict]] = None) -> Citizen:
        """Create or update a profile. `contacts`, when given, replaces the stored list."""
        require_phone(phone)
        with store_session(self.bind) as s:
            citizen = s.exec(select(Citizen).where(Citizen.phone == phone)).first()
            if not citizen:
                citizen = Citizen(phone=phone)
            for field in PROFILE_FIELDS:
                if profile.get(field) is not None:
                    setattr(citizen, field, profile[field])
            s.add(citizen)
            s.flush()
            if contacts is not None:
                s.exec(delete(EmergencyContact).where(EmergencyContact.citizen_id == citizen.id))
                for contact in contacts:
                    s.add(EmergencyContact(citizen_id=citizen.id, **contact))
            s.commit()
            s.refresh(citizen)
            return citizen

    def mark_verified(self, phone: str) -> Citizen:
        """Flag the phone as verified, creating a bare profile on first verification."""
        require_phone(phone)
        with store_session(self.bind) as s:
            citizen = s.exec(select(Citizen).where(Citizen.phone == phone)).first()
            if not citizen:
                citizen = Citizen(phone=phone)
            citizen.verified = True
            s.add(citizen)
            s.commit()
            s.refresh(citizen)
        logger.info(f"Citizen {phone} verified")
        return citizen


def medical_profile(citizen: Optional[Citizen], contacts: List[EmergencyContact]) -> Optional[Dict]:
    if citizen is None:
        return None
    return {
        "phone": citizen.phone,
        "name": {"first": citizen.first_name, "last": citizen.last_name},
        "blood_group": citizen.blood_group,
        "allergies": citizen.allergies or [],
        "medical_conditions": citizen.medical_conditions or [],
        "medications": citizen.medications or [],
        "special_needs": citizen.special_needs or [],
        "home_address": citizen.home_address,
        "emergency_contacts": [
            {"name": c.name, "relationship": c.relationship, "phone": c.phone} for c in contacts
        ],
    }
