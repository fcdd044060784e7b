import pytest

from sosdispatch.errors import InvalidInput
from sosdispatch.kinds import AMBULANCE, OFFICER

from .conftest import ORIGIN, north_of


class TestFindNearestAvailable:
    def test_nearest_first(self, directory, add_responder):
        add_responder("+919810000005", meters=5000)
        add_responder("+919810000012", meters=1200)
        add_responder("+919810000009", meters=9000)

        responder, distance = directory.find_nearest_available("ambulance", ORIGIN, 20000)

        assert responder.phone == "+919810000012"
        assert distance == pytest.approx(1200, abs=1)

    def test_ties_broken_by_phone(self, directory, add_responder):
        point = north_of(ORIGIN, 1500)
        add_responder("+919810000020", point=point)
        add_responder("+919810000010", point=point)

        responder, _ = directory.find_nearest_available("ambulance", ORIGIN, 20000)

        assert responder.phone == "+919810000010"

    def test_excluded_responders_skipped(self, directory, add_responder):
        add_responder("+919810000001", meters=1000)
        add_responder("+919810000002", meters=2000)

        responder, _ = directory.find_nearest_available(
            "ambulance", ORIGIN, 20000, exclude={"+919810000001"}
        )

        assert responder.phone == "+919810000002"

    @pytest.mark.parametrize("overrides", [
        {"verified": False},
        {"availability": "busy"},
        {"availability": "offline"},
        {"point": None, "meters": None},
        {"meters": 25000},
    ])
    def test_ineligible_responders(self, directory, add_responder, overrides):
        fields = {"meters": 1000}
        fields.update(overrides)
        add_responder("+919810000001", **fields)

        assert directory.find_nearest_available("ambulance", ORIGIN, 20000) is None

    def test_service_type_selects_kind(self, directory, add_responder):
        add_responder("+919810000001", meters=500)
        add_responder("+919820000001", kind="officer", meters=4000)

        responder, _ = directory.find_nearest_available("police", ORIGIN, 20000)

        assert responder.kind == "officer"

    def test_across_antimeridian(self, directory, add_responder):
        add_responder("+919810000001", point=(-179.99, 0.0))

        responder, distance = directory.find_nearest_available("ambulance", (179.99, 0.0), 5000)

        assert responder.phone == "+919810000001"
        assert distance < 5000


class TestUpdates:
    def test_update_availability_and_location(self, directory, add_responder):
        add_responder("+919810000001", meters=1000)

        responder = directory.update_availability("+919810000001", "busy", (77.1, 28.1))

        assert responder.availability == "busy"
        assert (responder.lng, responder.lat) == (77.1, 28.1)
        # idempotent
        again = directory.update_availability("+919810000001", "busy", (77.1, 28.1))
        assert again.availability == "busy"

    def test_update_unknown_responder(self, directory):
        assert directory.update_availability("+919810009999", "available") is None

    def test_update_rejects_state_of_other_kind(self, directory, add_responder):
        add_responder("+919820000001", kind="officer", meters=1000)

        with pytest.raises(InvalidInput):
            directory.update_availability("+919820000001", "enroute")

    def test_upsert_profile_merges(self, directory):
        directory.upsert_profile(AMBULANCE, "+919810000001", {"unit_id": "AMB-1"})
        responder = directory.upsert_profile(
            AMBULANCE, "+919810000001", {"vehicle_plate": "DL01"}, location=(77.2, 28.6)
        )

        assert responder.profile == {"unit_id": "AMB-1", "vehicle_plate": "DL01"}
        assert responder.availability == "available"
        assert responder.verified is False
        assert (responder.lng, responder.lat) == (77.2, 28.6)

    def test_phone_cannot_change_kind(self, directory):
        directory.upsert_profile(AMBULANCE, "+919810000001")
        with pytest.raises(InvalidInput):
            directory.upsert_profile(OFFICER, "+919810000001")

    def test_mark_verified_creates_record(self, directory):
        responder = directory.mark_verified(OFFICER, "+919820000001")

        assert responder.verified is True
        assert responder.kind == "officer"
        assert responder.availability == "on-duty"
        assert directory.get_by_identifier("+919820000001").verified is True
