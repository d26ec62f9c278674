"""
Transport layer for sslaudit
by BitSpectreLabs

Byte-stream connections with typed errors, plus a handshake driver that
runs an OpenSSL client over any connection through memory BIOs.
"""

import ssl
import socket
import logging
import threading
import time
from contextlib import suppress
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sslaudit.core.catalog import ProtocolVersion, OpenSSLCipherProvider


logger = logging.getLogger(__name__)

# Largest TLS record plus header
READ_CHUNK = 16384 + 5


class TransportError(Exception):
    """Base class for network-level failures."""
    pass


class ConnectError(TransportError):
    """Could not establish the TCP connection."""
    pass


class HostResolutionError(ConnectError):
    """Hostname did not resolve."""
    pass


class TransportTimeout(TransportError):
    """An operation did not complete in time."""
    pass


class ConnectTimeout(ConnectError, TransportTimeout):
    """The TCP connection was not established in time."""
    pass


class ConnectionReset(TransportError):
    """The peer reset the connection."""
    pass


class ConnectionClosed(TransportError):
    """The connection was used after it had been closed."""
    pass


class MalformedResponse(TransportError):
    """The peer answered with something that is not a TLS handshake."""
    pass


class HandshakeSetupError(TransportError):
    """The local crypto library cannot build the requested handshake."""
    pass


class HandshakeRejected(Exception):
    """The server refused the handshake (alert or close)."""
    pass


# Mapping to the ssl module's version pins
_TLS_VERSIONS = {
    ProtocolVersion.SSLv3: ssl.TLSVersion.SSLv3,
    ProtocolVersion.TLSv1: ssl.TLSVersion.TLSv1,
}


@dataclass(frozen=True)
class HandshakeRequest:
    """
    Description of one client handshake.

    A request with neither version nor ciphers is unrestricted: the client
    offers whatever the library allows and the server picks.
    """
    version: Optional[ProtocolVersion] = None
    ciphers: Optional[Tuple[str, ...]] = None
    server_hostname: Optional[str] = None

    @property
    def restricted(self) -> bool:
        return self.version is not None or bool(self.ciphers)

    def build_context(self) -> ssl.SSLContext:
        """
        Build the client SSLContext for this request.

        Raises:
            HandshakeSetupError: if the local OpenSSL cannot express it
        """
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        try:
            if self.version is not None:
                tls_version = _TLS_VERSIONS.get(self.version)
                if tls_version is None or not OpenSSLCipherProvider.AVAILABILITY.get(self.version):
                    raise HandshakeSetupError(
                        f"{self.version.value} is not available in {ssl.OPENSSL_VERSION}"
                    )
                context.minimum_version = tls_version
                context.maximum_version = tls_version
            else:
                context.minimum_version = ssl.TLSVersion.MINIMUM_SUPPORTED

            selection = ":".join(self.ciphers) if self.ciphers else "ALL"
            context.set_ciphers(f"{selection}:@SECLEVEL=0")
        except (ValueError, ssl.SSLError) as e:
            raise HandshakeSetupError(f"Cannot configure handshake: {e}") from e

        return context


@dataclass(frozen=True)
class NegotiatedSession:
    """Outcome of a completed handshake."""
    cipher: str
    protocol: str
    key_length: int = 0
    certificate_der: Optional[bytes] = None


class Connection:
    """
    A byte stream to one peer.

    Implementations provide read/write/close; the TLS handshake is driven on
    top of those. A connection is used by one probe at a time, but close()
    may be called from any thread.
    """

    host: str = ""
    port: int = 0

    def read(self, max_bytes: int, timeout: Optional[float] = None) -> bytes:
        """Read up to max_bytes; b"" means the peer closed its side."""
        raise NotImplementedError

    def write(self, data: bytes) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    @property
    def closed(self) -> bool:
        raise NotImplementedError

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def handshake(self, request: HandshakeRequest, timeout: float) -> NegotiatedSession:
        """
        Run a TLS client handshake over this connection.

        Args:
            request: Version/cipher restriction to offer
            timeout: Seconds allowed for the whole handshake

        Returns:
            NegotiatedSession describing what the server chose

        Raises:
            HandshakeRejected: server sent an alert or closed the connection
            TransportError: timeout, reset, malformed reply or local setup failure
        """
        context = request.build_context()
        incoming = ssl.MemoryBIO()
        outgoing = ssl.MemoryBIO()
        tls = context.wrap_bio(incoming, outgoing, server_hostname=request.server_hostname)

        deadline = time.monotonic() + timeout
        received = 0

        while True:
            try:
                tls.do_handshake()
                break
            except ssl.SSLWantReadError:
                self._flush(outgoing)
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TransportTimeout(f"Handshake with {self.host}:{self.port} timed out")
                data = self.read(READ_CHUNK, timeout=remaining)
                if data:
                    received += len(data)
                    incoming.write(data)
                else:
                    incoming.write_eof()
            except (ssl.SSLEOFError, ssl.SSLZeroReturnError) as e:
                raise HandshakeRejected(f"Connection closed during handshake: {e}") from e
            except ssl.SSLError as e:
                # Let the server see our alert, if any
                with suppress(TransportError):
                    self._flush(outgoing)
                reason = e.reason or ""
                if "ALERT" in reason or "EOF" in reason:
                    raise HandshakeRejected(f"Server refused handshake: {reason}") from e
                if not received:
                    raise HandshakeSetupError(f"Handshake could not start: {e}") from e
                raise MalformedResponse(f"Unexpected handshake data: {reason or e}") from e

        self._flush(outgoing)
        name, protocol, bits = tls.cipher()
        return NegotiatedSession(
            cipher=name,
            protocol=tls.version() or protocol,
            key_length=bits or 0,
            certificate_der=tls.getpeercert(binary_form=True),
        )

    def _flush(self, outgoing: ssl.MemoryBIO) -> None:
        data = outgoing.read()
        if data:
            self.write(data)


class Transport:
    """Factory for connections to a target."""

    def connect(self, host: str, port: int, timeout: float) -> Connection:
        raise NotImplementedError

    def resolve(self, host: str) -> List[str]:
        """Resolve a hostname to its addresses."""
        raise NotImplementedError


class TCPConnection(Connection):
    """Connection over a live TCP socket."""

    def __init__(self, sock: socket.socket, host: str, port: int):
        self._sock = sock
        self.host = host
        self.port = port
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, max_bytes: int, timeout: Optional[float] = None) -> bytes:
        if self._closed:
            raise ConnectionClosed(f"Connection to {self.host}:{self.port} is closed")
        try:
            self._sock.settimeout(timeout)
            data = self._sock.recv(max_bytes)
        except socket.timeout as e:
            raise TransportTimeout(f"Read from {self.host}:{self.port} timed out") from e
        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError) as e:
            raise ConnectionReset(f"Connection to {self.host}:{self.port} reset") from e
        except OSError as e:
            if self._closed:
                raise ConnectionClosed(f"Connection to {self.host}:{self.port} is closed") from e
            raise TransportError(f"Read from {self.host}:{self.port} failed: {e}") from e

        if not data and self._closed:
            raise ConnectionClosed(f"Connection to {self.host}:{self.port} is closed")
        return data

    def write(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionClosed(f"Connection to {self.host}:{self.port} is closed")
        try:
            self._sock.sendall(data)
        except socket.timeout as e:
            raise TransportTimeout(f"Write to {self.host}:{self.port} timed out") from e
        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError) as e:
            raise ConnectionReset(f"Connection to {self.host}:{self.port} reset") from e
        except OSError as e:
            if self._closed:
                raise ConnectionClosed(f"Connection to {self.host}:{self.port} is closed") from e
            raise TransportError(f"Write to {self.host}:{self.port} failed: {e}") from e

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        # Wake up a recv() blocked in another thread
        with suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)
        self._sock.close()


class TCPTransport(Transport):
    """Transport opening real TCP sockets."""

    def connect(self, host: str, port: int, timeout: float) -> TCPConnection:
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except socket.gaierror as e:
            raise HostResolutionError(f"Cannot resolve {host}: {e}") from e
        except socket.timeout as e:
            raise ConnectTimeout(f"Connection to {host}:{port} timed out") from e
        except OSError as e:
            raise ConnectError(f"Cannot connect to {host}:{port}: {e}") from e

        logger.debug(f"Connected to {host}:{port}")
        return TCPConnection(sock, host, port)

    def resolve(self, host: str) -> List[str]:
        try:
            infos = socket.getaddrinfo(host, None, type=socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError) as e:
            raise HostResolutionError(f"Cannot resolve {host}: {e}") from e

        addresses = []
        for info in infos:
            address = info[4][0]
            if address not in addresses:
                addresses.append(address)
        return addresses
