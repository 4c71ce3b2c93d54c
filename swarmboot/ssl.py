"""
ssl.py holds the certificate utilities for the cluster root of trust.

A cluster is identified by its root CA. Join tokens carry the digest of
the CA public key so a joining host can pin the cluster it talks to, and
every admitted node receives a certificate whose organizational unit
names its role (``swarm-manager`` or ``swarm-worker``).
"""
# pylint: disable=too-many-arguments

import datetime
import os

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from swarmboot.util.logger import Logger

LOGGER = Logger(__name__)

ROLE_UNITS = {"manager": "swarm-manager", "worker": "swarm-worker"}

CA_VALIDITY_DAYS = 3650
NODE_VALIDITY_DAYS = 90


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def create_key(size=2048, public_exponent=65537):
    """Create an RSA private key

    Args:
        size (int) - the key bit size
        public_exponent (int) - the key public_exponent

    Return:
        rsa key object instance
    """
    return rsa.generate_private_key(public_exponent=public_exponent,
                                    key_size=size)


def create_ca(private_key, cluster_id, orga="swarmboot"):
    """
    create a self signed cluster root CA

    Args:
        private_key (inst): private key instance to sign the CA
        cluster_id (str): used as organization unit of the CA
        orga (str): the organization

    Return:
        ssl certificate object
    """
    name = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, orga),
        x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, cluster_id),
        x509.NameAttribute(NameOID.COMMON_NAME, "swarm-ca"),
    ])
    public_key = private_key.public_key()

    cert = x509.CertificateBuilder().subject_name(
        name
    ).issuer_name(
        name
    ).public_key(
        public_key
    ).not_valid_before(
        # clocks of the hosts are not always in sync, give them some slack
        _utcnow() - datetime.timedelta(minutes=10)
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_after(
        _utcnow() + datetime.timedelta(days=CA_VALIDITY_DAYS))

    cert = cert.add_extension(
        x509.KeyUsage(digital_signature=True, content_commitment=False,
                      key_encipherment=False, data_encipherment=False,
                      key_agreement=False, key_cert_sign=True,
                      crl_sign=True, encipher_only=False,
                      decipher_only=False),
        critical=True)
    cert = cert.add_extension(x509.BasicConstraints(True, None), critical=True)
    cert = cert.add_extension(
        x509.SubjectKeyIdentifier.from_public_key(public_key),
        critical=False)

    return cert.sign(private_key, hashes.SHA256())


def create_node_certificate(ca_bundle, public_key, node_id, role,
                            cluster_id, hosts=None):
    """
    create a node certificate signed by the cluster CA

    The common name is the node id, the organizational unit the role
    and the organization the cluster id.

    Args:
        ca_bundle (CertBundle): the cluster CA
        public_key (inst): public key of the node
        node_id (str): the node id
        role (str): ``manager`` or ``worker``
        cluster_id (str): the cluster the node belongs to
        hosts (list): DNS names of the node

    Return:
        ssl certificate object
    """
    subject = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, cluster_id),
        x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME,
                           ROLE_UNITS[role]),
        x509.NameAttribute(NameOID.COMMON_NAME, node_id),
    ])

    cert = x509.CertificateBuilder().subject_name(
        subject
    ).issuer_name(
        ca_bundle.cert.subject
    ).public_key(
        public_key
    ).not_valid_before(
        _utcnow() - datetime.timedelta(minutes=10)
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_after(
        _utcnow() + datetime.timedelta(days=NODE_VALIDITY_DAYS))

    cert = cert.add_extension(
        x509.ExtendedKeyUsage(
            [x509.oid.ExtendedKeyUsageOID.SERVER_AUTH,
             x509.oid.ExtendedKeyUsageOID.CLIENT_AUTH]),
        critical=False)
    cert = cert.add_extension(x509.BasicConstraints(False, None),
                              critical=True)
    cert = cert.add_extension(
        x509.AuthorityKeyIdentifier.from_issuer_public_key(
            ca_bundle.cert.public_key()), critical=False)

    if hosts:
        cert = cert.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(h) for h in hosts]),
            critical=False)

    return cert.sign(ca_bundle.key, hashes.SHA256())


def certificate_role(cert):
    """Return the role a node certificate was issued for.

    Raises:
        ValueError if the certificate isn't a node certificate.
    """
    units = cert.subject.get_attributes_for_oid(
        NameOID.ORGANIZATIONAL_UNIT_NAME)
    for role, unit in ROLE_UNITS.items():
        if units and units[0].value == unit:
            return role
    raise ValueError("certificate carries no node role")


def discovery_hash(cert):
    """
    calculate a discovery hash based on the cert's public key
    """
    pub_key = cert.public_key()
    digest = hashes.Hash(hashes.SHA256())
    digest.update(pub_key.public_bytes(
        serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo))
    return digest.finalize().hex()


def load_cert(pem):
    """Parse a PEM encoded certificate given as str or bytes"""
    if isinstance(pem, str):
        pem = pem.encode()
    return x509.load_pem_x509_certificate(pem)


def cert_pem(cert):
    """Return the PEM encoding of a certificate as str"""
    return cert.public_bytes(serialization.Encoding.PEM).decode()


def write_cert(cert, filename):  # pragma: no coverage
    """
    Write the certificate instance to the file as ASCII string

    Args:

       cert (SSL certificate instance)
       filename (str): the file to write
    """
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(filename, "w") as fh:
        fh.write(cert_pem(cert))
    LOGGER.debug("Wrote certificate to %s", filename)


def read_cert(cert):  # pragma: no coverage
    """
    read SSL certificate from path

    Args:
        cert (str) - path to a cert on a file system

    Return:
        cert (inst) - a certificate instance
    """
    with open(cert, "rb") as fh:
        return load_cert(fh.read())


class CertBundle:
    """
    a simple class to hold a certificate with its own key
    """

    @classmethod
    def create_ca(cls, cluster_id, size=2048):
        """create a new self signed cluster CA"""
        key = create_key(size=size)
        return cls(key, create_ca(key, cluster_id))

    @classmethod
    def create_signed(cls, ca_bundle, node_id, role, cluster_id, hosts=None,
                      size=2048):
        """
        create a node key and a certificate signed by ca_bundle
        """
        key = create_key(size=size)
        cert = create_node_certificate(ca_bundle, key.public_key(), node_id,
                                       role, cluster_id, hosts)
        return cls(key, cert)

    def __init__(self, key, cert):
        self.key = key
        self.cert = cert

    @property
    def digest(self):
        """The discovery hash of the bundle's certificate"""
        return discovery_hash(self.cert)
