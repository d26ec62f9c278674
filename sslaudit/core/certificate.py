"""
Leaf certificate model for sslaudit
by BitSpectreLabs

Parses the DER certificate returned by the certificate-fetch handshake
into a read-only value for reporting. No chain verification is done.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.x509.oid import ExtensionOID


logger = logging.getLogger(__name__)


class CertificateParseError(ValueError):
    """The server's certificate could not be decoded."""
    pass


class ExtensionKind(Enum):
    """X.509 extensions the reports know how to label."""
    KEY_USAGE = "keyUsage"
    CERTIFICATE_POLICIES = "certificatePolicies"
    SUBJECT_ALT_NAME = "subjectAltName"
    BASIC_CONSTRAINTS = "basicConstraints"
    EXTENDED_KEY_USAGE = "extendedKeyUsage"
    CRL_DISTRIBUTION_POINTS = "crlDistributionPoints"
    AUTHORITY_INFO_ACCESS = "authorityInfoAccess"
    SUBJECT_KEY_IDENTIFIER = "subjectKeyIdentifier"
    AUTHORITY_KEY_IDENTIFIER = "authorityKeyIdentifier"
    UNRECOGNIZED = "unrecognized"

    @property
    def label(self) -> str:
        return _EXTENSION_LABELS[self]

    @classmethod
    def from_oid(cls, dotted_string: str) -> "ExtensionKind":
        return _EXTENSION_OIDS.get(dotted_string, cls.UNRECOGNIZED)


_EXTENSION_LABELS = {
    ExtensionKind.KEY_USAGE: "X509v3 Key Usage",
    ExtensionKind.CERTIFICATE_POLICIES: "X509v3 Certificate Policies",
    ExtensionKind.SUBJECT_ALT_NAME: "X509v3 Subject Alternative Name",
    ExtensionKind.BASIC_CONSTRAINTS: "X509v3 Basic Constraints",
    ExtensionKind.EXTENDED_KEY_USAGE: "X509v3 Extended Key Usage",
    ExtensionKind.CRL_DISTRIBUTION_POINTS: "X509v3 CRL Distribution Points",
    ExtensionKind.AUTHORITY_INFO_ACCESS: "Authority Information Access",
    ExtensionKind.SUBJECT_KEY_IDENTIFIER: "X509v3 Subject Key Identifier",
    ExtensionKind.AUTHORITY_KEY_IDENTIFIER: "X509v3 Authority Key Identifier",
    ExtensionKind.UNRECOGNIZED: "Unrecognized Extension",
}

_EXTENSION_OIDS = {
    ExtensionOID.KEY_USAGE.dotted_string: ExtensionKind.KEY_USAGE,
    ExtensionOID.CERTIFICATE_POLICIES.dotted_string: ExtensionKind.CERTIFICATE_POLICIES,
    ExtensionOID.SUBJECT_ALTERNATIVE_NAME.dotted_string: ExtensionKind.SUBJECT_ALT_NAME,
    ExtensionOID.BASIC_CONSTRAINTS.dotted_string: ExtensionKind.BASIC_CONSTRAINTS,
    ExtensionOID.EXTENDED_KEY_USAGE.dotted_string: ExtensionKind.EXTENDED_KEY_USAGE,
    ExtensionOID.CRL_DISTRIBUTION_POINTS.dotted_string: ExtensionKind.CRL_DISTRIBUTION_POINTS,
    ExtensionOID.AUTHORITY_INFORMATION_ACCESS.dotted_string: ExtensionKind.AUTHORITY_INFO_ACCESS,
    ExtensionOID.SUBJECT_KEY_IDENTIFIER.dotted_string: ExtensionKind.SUBJECT_KEY_IDENTIFIER,
    ExtensionOID.AUTHORITY_KEY_IDENTIFIER.dotted_string: ExtensionKind.AUTHORITY_KEY_IDENTIFIER,
}


@dataclass(frozen=True)
class CertificateExtension:
    """One X.509v3 extension, labelled if known."""
    kind: ExtensionKind
    oid: str
    critical: bool
    value: str

    @property
    def label(self) -> str:
        if self.kind == ExtensionKind.UNRECOGNIZED:
            return self.oid
        return self.kind.label

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "oid": self.oid,
            "label": self.label,
            "critical": self.critical,
            "value": self.value,
        }


@dataclass(frozen=True)
class Certificate:
    """Read-only view of a server's leaf certificate."""
    version: int
    serial_number: int
    signature_algorithm: str
    issuer: str
    subject: str
    not_before: datetime
    not_after: datetime
    public_key_type: str
    public_key_bits: int
    public_key_pem: str
    fingerprint_sha256: str
    extensions: Tuple[CertificateExtension, ...] = ()
    der: bytes = field(default=b"", repr=False)

    @classmethod
    def from_der(cls, der: bytes) -> "Certificate":
        """
        Parse a DER encoded certificate.

        Raises:
            CertificateParseError: if the bytes are not a valid certificate
        """
        try:
            cert = x509.load_der_x509_certificate(der)
            extensions = tuple(_parse_extension(ext) for ext in cert.extensions)
        except ValueError as e:
            raise CertificateParseError(f"Invalid certificate: {e}") from e

        key = cert.public_key()
        key_type, key_bits = _describe_public_key(key)
        oid = cert.signature_algorithm_oid

        return cls(
            version=cert.version.value + 1,
            serial_number=cert.serial_number,
            signature_algorithm=getattr(oid, "_name", None) or oid.dotted_string,
            issuer=cert.issuer.rfc4514_string(),
            subject=cert.subject.rfc4514_string(),
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            public_key_type=key_type,
            public_key_bits=key_bits,
            public_key_pem=key.public_bytes(
                serialization.Encoding.PEM,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            ).decode("ascii"),
            fingerprint_sha256=hashlib.sha256(der).hexdigest().upper(),
            extensions=extensions,
            der=der,
        )

    @property
    def serial_hex(self) -> str:
        return f"{self.serial_number:X}"

    @property
    def is_self_signed(self) -> bool:
        return self.subject == self.issuer

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > self.not_after

    def days_until_expiry(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        return (self.not_after - now).days

    def extension(self, kind: ExtensionKind) -> Optional[CertificateExtension]:
        for ext in self.extensions:
            if ext.kind == kind:
                return ext
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "version": self.version,
            "serial_number": self.serial_hex,
            "signature_algorithm": self.signature_algorithm,
            "issuer": self.issuer,
            "subject": self.subject,
            "not_before": self.not_before.isoformat(),
            "not_after": self.not_after.isoformat(),
            "public_key_type": self.public_key_type,
            "public_key_bits": self.public_key_bits,
            "fingerprint_sha256": self.fingerprint_sha256,
            "extensions": [ext.to_dict() for ext in self.extensions],
        }


def _describe_public_key(key) -> Tuple[str, int]:
    if isinstance(key, rsa.RSAPublicKey):
        return "RSA", key.key_size
    if isinstance(key, ec.EllipticCurvePublicKey):
        return f"EC ({key.curve.name})", key.curve.key_size
    if isinstance(key, dsa.DSAPublicKey):
        return "DSA", key.key_size
    if isinstance(key, ed25519.Ed25519PublicKey):
        return "Ed25519", 256
    if isinstance(key, ed448.Ed448PublicKey):
        return "Ed448", 456
    return type(key).__name__, 0


def _parse_extension(ext: x509.Extension) -> CertificateExtension:
    oid = ext.oid.dotted_string
    kind = ExtensionKind.from_oid(oid)
    return CertificateExtension(
        kind=kind,
        oid=oid,
        critical=ext.critical,
        value=_format_extension_value(kind, ext.value),
    )


def _format_extension_value(kind: ExtensionKind, value) -> str:
    """Render an extension value the way openssl x509 -text roughly does."""
    if kind == ExtensionKind.SUBJECT_ALT_NAME:
        names = []
        for name in value:
            if isinstance(name, x509.DNSName):
                names.append(f"DNS:{name.value}")
            elif isinstance(name, x509.IPAddress):
                names.append(f"IP Address:{name.value}")
            elif isinstance(name, x509.RFC822Name):
                names.append(f"email:{name.value}")
            elif isinstance(name, x509.UniformResourceIdentifier):
                names.append(f"URI:{name.value}")
            else:
                names.append(str(name.value))
        return ", ".join(names)

    if kind == ExtensionKind.BASIC_CONSTRAINTS:
        text = f"CA:{'TRUE' if value.ca else 'FALSE'}"
        if value.path_length is not None:
            text += f", pathlen:{value.path_length}"
        return text

    if kind == ExtensionKind.KEY_USAGE:
        flags = [
            ("digital_signature", "Digital Signature"),
            ("content_commitment", "Non Repudiation"),
            ("key_encipherment", "Key Encipherment"),
            ("data_encipherment", "Data Encipherment"),
            ("key_agreement", "Key Agreement"),
            ("key_cert_sign", "Certificate Sign"),
            ("crl_sign", "CRL Sign"),
        ]
        return ", ".join(label for attr, label in flags if getattr(value, attr))

    if kind == ExtensionKind.EXTENDED_KEY_USAGE:
        return ", ".join(getattr(usage, "_name", None) or usage.dotted_string for usage in value)

    if kind == ExtensionKind.SUBJECT_KEY_IDENTIFIER:
        return value.digest.hex(":").upper()

    if kind == ExtensionKind.AUTHORITY_KEY_IDENTIFIER and value.key_identifier:
        return f"keyid:{value.key_identifier.hex(':').upper()}"

    if isinstance(value, x509.UnrecognizedExtension):
        return value.value.hex(":").upper()

    return str(value)
