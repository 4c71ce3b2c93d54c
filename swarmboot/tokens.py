"""
Join tokens
===========

A join token tells a host everything it needs to enter a cluster: the
role it will get, where the leader listens, which root CA the cluster
uses and the secret proving it was invited. The string form is::

    SWBTKN-1-<role>-<base32 address>-<ca digest>-<secret>

The address is base32 encoded so it never contains the ``-`` separator.
The secret is last and may contain dashes, as the tokens issued by
``docker swarm join-token`` do.
"""
import base64
import binascii
import re

from swarmboot import ROLES
from swarmboot.errors import InvalidToken

PREFIX = "SWBTKN"
VERSION = "1"

_DIGEST = re.compile(r"^[0-9a-f]{64}$")


def _encode_address(address):
    return base64.b32encode(address.encode()).decode().rstrip("=").lower()


def _decode_address(text):
    text = text.upper()
    text += "=" * (-len(text) % 8)
    return base64.b32decode(text).decode()


class JoinToken:
    """
    A role scoped credential for joining a cluster.

    Args:
        role (str): ``manager`` or ``worker``
        address (str): the leader's ``host:port``
        ca_digest (str): SHA-256 hex digest of the root CA public key
        secret (str): the join secret of the cluster for this role
    """

    def __init__(self, role, address, ca_digest, secret):
        if role not in ROLES:
            raise InvalidToken(f"invalid token role '{role}'")
        if not _DIGEST.match(ca_digest or ""):
            raise InvalidToken("invalid CA digest in token")
        if not secret:
            raise InvalidToken("token secret can't be empty")
        if not address:
            raise InvalidToken("token address can't be empty")
        self.role = role
        self.address = address
        self.ca_digest = ca_digest
        self.secret = secret

    def __str__(self):
        return "-".join((PREFIX, VERSION, self.role,
                         _encode_address(self.address),
                         self.ca_digest, self.secret))

    def __repr__(self):
        # never show the secret in logs
        return "<JoinToken %s %s ca=%s>" % (self.role, self.address,
                                           self.ca_digest[:12])

    def __eq__(self, other):
        if not isinstance(other, JoinToken):
            return NotImplemented
        return str(self) == str(other)

    def __hash__(self):
        return hash(str(self))

    @classmethod
    def parse(cls, text):
        """Parse the string form of a token.

        Raises:
            InvalidToken if text is not a token.
        """
        if not isinstance(text, str):
            raise InvalidToken("token must be a string")

        parts = text.strip().split("-", 5)
        if len(parts) != 6 or parts[0] != PREFIX:
            raise InvalidToken("not a swarmboot join token")
        if parts[1] != VERSION:
            raise InvalidToken(f"unsupported token version {parts[1]}")

        _, _, role, address, digest, secret = parts
        try:
            address = _decode_address(address)
        except (binascii.Error, UnicodeDecodeError, ValueError):
            raise InvalidToken("invalid address in token")

        return cls(role, address, digest, secret)
