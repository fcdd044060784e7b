from sosdispatch.models import Citizen, DispatchRequest
from sosdispatch.notifications import NotificationGateway, sos_message

from .conftest import RecordingSender


def test_counts_sent_and_failed():
    sender = RecordingSender(fail_for={"+919840000002"})
    gateway = NotificationGateway(sender)

    result = gateway.send(["+919840000001", "+919840000002", "not-a-phone"], "help")

    assert (result.sent, result.failed) == (1, 2)
    assert sender.sent == [("+919840000001", "help")]


def test_no_contacts():
    gateway = NotificationGateway(RecordingSender())
    request = DispatchRequest(id=1, service_type="police", maps_url="https://maps.example")

    result = gateway.notify_emergency_contacts(None, [], request)

    assert (result.sent, result.failed) == (0, 0)


def test_message_names_citizen_and_location():
    request = DispatchRequest(id=1, service_type="police", maps_url="https://maps.example/q")

    message = sos_message(Citizen(phone="+919830000001", first_name="Vikram"), request)

    assert message == "SOS POLICE ALERT\nVikram needs help.\nLocation: https://maps.example/q"
    assert "Your contact needs help." in sos_message(None, request)
