from sosdispatch.verification import ConsoleVerifier

from .conftest import FakeClock


def test_code_is_single_use():
    verifier = ConsoleVerifier()
    verifier.generate_code = lambda: "123456"

    assert verifier.send_code("+919810000001") is True
    assert verifier.check_code("+919810000001", "000000") is False
    assert verifier.check_code("+919810000001", "123456") is True
    assert verifier.check_code("+919810000001", "123456") is False


def test_code_expires():
    clock = FakeClock()
    verifier = ConsoleVerifier(clock=clock)
    verifier.generate_code = lambda: "654321"
    verifier.send_code("+919810000001")

    clock.advance(301)

    assert verifier.check_code("+919810000001", "654321") is False


def test_unknown_phone():
    assert ConsoleVerifier().check_code("+919810000001", "123456") is False
