"""
Single-cipher handshake probe for sslaudit
by BitSpectreLabs
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from sslaudit.core.catalog import CipherCatalog, ProtocolVersion, get_default_catalog
from sslaudit.core.certificate import Certificate
from sslaudit.core.result import CipherStatus
from sslaudit.core.transport import (
    HandshakeRejected,
    HandshakeRequest,
    MalformedResponse,
    Transport,
    TransportError,
)


logger = logging.getLogger(__name__)


class InvalidProbeError(ValueError):
    """A probe was requested for a version/cipher pair the catalog does not have."""
    pass


@dataclass(frozen=True)
class ProbeOutcome:
    """What one probe observed."""
    version: ProtocolVersion
    cipher: str
    key_length: int
    status: CipherStatus
    error: Optional[TransportError] = None

    @property
    def accepted(self) -> bool:
        return self.status == CipherStatus.ACCEPTED


class Probe:
    """
    Attempts restricted handshakes over a transport.

    A probe offers exactly one cipher under exactly one protocol version,
    so the server either accepts that cipher or refuses. Handshake-level
    outcomes never raise; only a malformed request does.
    """

    def __init__(self, transport: Transport, catalog: Optional[CipherCatalog] = None):
        self.transport = transport
        self.catalog = catalog or get_default_catalog()

    def attempt(
        self,
        target: Tuple[str, int],
        version: ProtocolVersion,
        cipher: str,
        timeout: float,
    ) -> ProbeOutcome:
        """
        Probe one (version, cipher) pair.

        Args:
            target: (host, port) to connect to
            version: Protocol version to pin
            cipher: The only cipher to offer
            timeout: Seconds allowed for connect and handshake each

        Returns:
            ProbeOutcome with status accepted, rejected or failed

        Raises:
            InvalidProbeError: if the pair is not in the catalog
        """
        if not isinstance(version, ProtocolVersion):
            raise InvalidProbeError(f"Not a protocol version: {version!r}")
        if not self.catalog.is_offered(version, cipher):
            raise InvalidProbeError(f"{cipher!r} is not offered for {version.value}")

        host, port = target
        request = HandshakeRequest(version=version, ciphers=(cipher,), server_hostname=host)

        try:
            connection = self.transport.connect(host, port, timeout)
        except TransportError as e:
            logger.debug(f"{version.value} {cipher}: connect failed: {e}")
            return ProbeOutcome(version, cipher, 0, CipherStatus.FAILED, error=e)

        try:
            session = connection.handshake(request, timeout)
        except HandshakeRejected as e:
            logger.debug(f"{version.value} {cipher}: rejected ({e})")
            return ProbeOutcome(version, cipher, 0, CipherStatus.REJECTED)
        except TransportError as e:
            logger.debug(f"{version.value} {cipher}: failed ({e})")
            return ProbeOutcome(version, cipher, 0, CipherStatus.FAILED, error=e)
        finally:
            connection.close()

        if session.cipher != cipher:
            # Server ignored the restriction and picked something else
            logger.debug(f"{version.value} {cipher}: server negotiated {session.cipher} instead")
            return ProbeOutcome(version, cipher, 0, CipherStatus.REJECTED)

        return ProbeOutcome(version, cipher, session.key_length, CipherStatus.ACCEPTED)

    def fetch_certificate(self, target: Tuple[str, int], timeout: float) -> Certificate:
        """
        Run one unrestricted handshake and return the server's leaf certificate.

        Raises:
            TransportError: on any network failure or an empty certificate
            HandshakeRejected: if the server refuses every offered cipher
            CertificateParseError: if the certificate cannot be decoded
        """
        host, port = target
        request = HandshakeRequest(server_hostname=host)

        with self.transport.connect(host, port, timeout) as connection:
            session = connection.handshake(request, timeout)

        if not session.certificate_der:
            raise MalformedResponse(f"{host}:{port} presented no certificate")

        logger.debug(f"Certificate fetched from {host}:{port} over {session.protocol}")
        return Certificate.from_der(session.certificate_der)
