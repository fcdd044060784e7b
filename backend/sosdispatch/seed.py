from sqlmodel import delete

from .models import (
    Citizen,
    DispatchRequest,
    EmergencyContact,
    Responder,
)
from .repo import get_session


def seed(bind=None):
    with get_session(bind) as s:
        # Clean the slate so seed can be rerun safely
        for model in [DispatchRequest, EmergencyContact, Citizen, Responder]:
            s.exec(delete(model))
        s.commit()

        responders = [
            Responder(
                phone="+919810000001",
                kind="ambulance",
                verified=True,
                availability="available",
                lng=77.2090,
                lat=28.6139,
                profile={
                    "unit_id": "AMB-CP-1",
                    "vehicle_plate": "DL01AB1234",
                    "agency_name": "CATS Delhi",
                    "crew": {"driver_name": "Ravi", "paramedic_name": "Anita"},
                    "capabilities": {"level": "ALS", "oxygen": True, "defibrillator": True},
                },
            ),
            Responder(
                phone="+919810000002",
                kind="ambulance",
                verified=True,
                availability="available",
                lng=77.2295,
                lat=28.6129,
                profile={
                    "unit_id": "AMB-IG-2",
                    "vehicle_plate": "DL01CD5678",
                    "agency_name": "CATS Delhi",
                    "crew": {"driver_name": "Sunil", "paramedic_name": "Meera"},
                    "capabilities": {"level": "BLS", "oxygen": True},
                },
            ),
            Responder(
                phone="+919810000003",
                kind="ambulance",
                verified=False,
                availability="available",
                lng=77.2167,
                lat=28.6448,
                profile={"unit_id": "AMB-KB-3", "agency_name": "Private"},
            ),
            Responder(
                phone="+919820000001",
                kind="officer",
                verified=True,
                availability="on-duty",
                lng=77.2195,
                lat=28.6315,
                profile={"full_name": "SI Rakesh Kumar", "rank": "Sub-Inspector", "agency": "Delhi Police"},
            ),
            Responder(
                phone="+919820000002",
                kind="officer",
                verified=True,
                availability="off-duty",
                lng=77.2410,
                lat=28.5933,
                profile={"full_name": "ASI Pooja Singh", "rank": "Assistant Sub-Inspector", "agency": "Delhi Police"},
            ),
        ]

        citizens = [
            Citizen(
                phone="+919830000001",
                first_name="Asha",
                last_name="Verma",
                blood_group="B+",
                allergies=["penicillin"],
                medical_conditions=["asthma"],
                medications=["salbutamol"],
                home_address="12 Janpath, New Delhi",
            ),
            Citizen(phone="+919830000002", first_name="Vikram", last_name="Rao", blood_group="O-"),
        ]

        for entry in responders + citizens:
            s.add(entry)
        s.commit()

        contacts = [
            EmergencyContact(citizen_id=citizens[0].id, name="Rohan Verma", relationship="brother", phone="+919840000001"),
            EmergencyContact(citizen_id=citizens[0].id, name="Neha Verma", relationship="mother", phone="+919840000002"),
            EmergencyContact(citizen_id=citizens[1].id, name="Kiran Rao", relationship="spouse", phone="+919840000003"),
        ]
        for entry in contacts:
            s.add(entry)
        s.commit()
