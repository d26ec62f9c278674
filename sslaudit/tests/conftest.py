"""
Shared fixtures for sslaudit tests
by BitSpectreLabs
"""

import logging
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from sslaudit.core.catalog import CipherCatalog, ProtocolVersion, StaticCipherProvider
from sslaudit.core.fake_transport import FakeTransport, TestResponder


SSLV2_CIPHERS = ["DES-CBC3-MD5", "RC4-MD5", "EXP-RC4-MD5"]
SSLV3_CIPHERS = ["AES256-SHA", "DES-CBC3-SHA", "RC4-MD5", "RC4-SHA", "EXP-DES-CBC-SHA"]
TLSV1_CIPHERS = [
    "ECDHE-RSA-AES256-SHA",
    "ECDHE-RSA-AES128-SHA",
    "DHE-RSA-AES256-SHA",
    "AES128-SHA",
    "RC4-MD5",
    "NULL-SHA",
]

OFFERED = {
    ProtocolVersion.SSLv2: SSLV2_CIPHERS,
    ProtocolVersion.SSLv3: SSLV3_CIPHERS,
    ProtocolVersion.TLSv1: TLSV1_CIPHERS,
}

STRONG = {
    ProtocolVersion.SSLv3: ["AES256-SHA", "DES-CBC3-SHA"],
    ProtocolVersion.TLSv1: [
        "ECDHE-RSA-AES256-SHA",
        "ECDHE-RSA-AES128-SHA",
        "DHE-RSA-AES256-SHA",
        "AES128-SHA",
    ],
}

TOTAL_PROBES = len(SSLV2_CIPHERS) + len(SSLV3_CIPHERS) + len(TLSV1_CIPHERS)


@pytest.fixture()
def catalog() -> CipherCatalog:
    """Catalog pinned to fixed cipher tables."""
    return CipherCatalog(StaticCipherProvider(OFFERED, STRONG))


@pytest.fixture(scope="session")
def certificate_der() -> bytes:
    """Self-signed EC certificate with a mix of known and unknown extensions."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "BitSpectreLabs Test"),
        x509.NameAttribute(NameOID.COMMON_NAME, "audit.example.test"),
    ])
    now = datetime.now(timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(0x1A2B3C)
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("audit.example.test"),
                x509.DNSName("www.audit.example.test"),
            ]),
            critical=False,
        )
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(
            x509.UnrecognizedExtension(x509.ObjectIdentifier("1.2.3.4.5"), b"\x04\x02\xbe\xef"),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.DER)


@pytest.fixture()
def responder(certificate_der) -> TestResponder:
    """Responder that rejects every probe and serves the test certificate."""
    return TestResponder(certificate_der=certificate_der)


@pytest.fixture()
def transport(responder) -> FakeTransport:
    return FakeTransport(responder)


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo handlers the CLI installs on the sslaudit logger."""
    logger = logging.getLogger("sslaudit")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
