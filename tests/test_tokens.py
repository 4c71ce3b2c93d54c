import pytest

from swarmboot.errors import InvalidToken
from swarmboot.tokens import JoinToken

from .testdata import DIGEST

SECRET = "SWMTKN-1-3pu6hszjas19xyp7ghgosyx9k8atbfcr8p2is99znpy26u2lkl-1awxwuwd3z9j1z3puu7rcgdbx"  # noqa


def test_string_form():
    token = JoinToken("worker", "192.168.56.11:2377", DIGEST, SECRET)
    text = str(token)

    assert text.startswith("SWBTKN-1-worker-")
    assert text.endswith("-" + SECRET)
    assert JoinToken.parse(text) == token


def test_parse_keeps_all_fields():
    token = JoinToken.parse(str(JoinToken("manager", "[fd00::1]:2377",
                                          DIGEST, "s3cr3t")))
    assert token.role == "manager"
    assert token.address == "[fd00::1]:2377"
    assert token.ca_digest == DIGEST
    assert token.secret == "s3cr3t"


def test_roles_give_different_tokens():
    manager = JoinToken("manager", "192.168.56.11:2377", DIGEST, SECRET)
    worker = JoinToken("worker", "192.168.56.11:2377", DIGEST, SECRET)
    assert manager != worker
    assert len({manager, worker, JoinToken.parse(str(worker))}) == 2


def test_repr_hides_secret():
    token = JoinToken("worker", "192.168.56.11:2377", DIGEST, SECRET)
    assert SECRET not in repr(token)


@pytest.mark.parametrize("text", [
    "",
    "SWBTKN",
    "SWMTKN-1-abc-def",
    "SWBTKN-2-worker-gezdgnbvgy3tqojqgezdgnbvgy3tqojq-" + DIGEST + "-s",
    "SWBTKN-1-admin-gezdgnbvgy3tqojq-" + DIGEST + "-s",
    "SWBTKN-1-worker-!!!-" + DIGEST + "-s",
    "SWBTKN-1-worker-gezdgnbvgy3tqojq-cafe-s",
    "SWBTKN-1-worker-gezdgnbvgy3tqojq-" + DIGEST + "-",
])
def test_malformed_tokens(text):
    with pytest.raises(InvalidToken):
        JoinToken.parse(text)


def test_not_a_string():
    with pytest.raises(InvalidToken):
        JoinToken.parse(None)


def test_invalid_fields():
    with pytest.raises(InvalidToken):
        JoinToken("admin", "192.168.56.11:2377", DIGEST, SECRET)
    with pytest.raises(InvalidToken):
        JoinToken("worker", "", DIGEST, SECRET)
    with pytest.raises(InvalidToken):
        JoinToken("worker", "192.168.56.11:2377", DIGEST, "")
