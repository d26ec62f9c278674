"""
In-process fake transport for sslaudit
by BitSpectreLabs

Implements the Transport/Connection contract without sockets. A
TestResponder holds a script of handshake reactions keyed by
(version, cipher), so probes and scans can be exercised deterministically.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from sslaudit.core.catalog import ProtocolVersion
from sslaudit.core.transport import (
    Connection,
    ConnectError,
    ConnectionClosed,
    ConnectionReset,
    HandshakeRejected,
    HandshakeRequest,
    HostResolutionError,
    MalformedResponse,
    NegotiatedSession,
    Transport,
    TransportError,
    TransportTimeout,
)


logger = logging.getLogger(__name__)

# Cipher reported for unrestricted handshakes unless the script says otherwise
DEFAULT_NEGOTIATED_CIPHER = "ECDHE-RSA-AES128-GCM-SHA256"


class ReplyKind(Enum):
    """How the scripted server reacts to a handshake."""
    ACCEPT = "accept"
    REJECT = "reject"
    RESET = "reset"
    CLOSE = "close"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class Reply:
    """One scripted handshake reaction."""
    kind: ReplyKind
    key_length: int = 128
    cipher: Optional[str] = None
    after: Optional[float] = None
    delay: float = 0.0

    @classmethod
    def accept(cls, key_length: int = 128, cipher: Optional[str] = None, delay: float = 0.0) -> "Reply":
        """Complete the handshake, negotiating `cipher` (default: the offered one)."""
        return cls(ReplyKind.ACCEPT, key_length=key_length, cipher=cipher, delay=delay)

    @classmethod
    def reject(cls, delay: float = 0.0) -> "Reply":
        return cls(ReplyKind.REJECT, delay=delay)

    @classmethod
    def reset(cls, delay: float = 0.0) -> "Reply":
        return cls(ReplyKind.RESET, delay=delay)

    @classmethod
    def close(cls, delay: float = 0.0) -> "Reply":
        """Close the connection cleanly mid-handshake."""
        return cls(ReplyKind.CLOSE, delay=delay)

    @classmethod
    def timeout(cls, after: Optional[float] = None) -> "Reply":
        """Stay silent; time out after `after` seconds or the handshake timeout."""
        return cls(ReplyKind.TIMEOUT, after=after)

    @classmethod
    def malformed(cls, delay: float = 0.0) -> "Reply":
        return cls(ReplyKind.MALFORMED, delay=delay)


class TestResponder:
    """
    Scripted server behaviour shared by all fake connections of a transport.

    Unscripted restricted handshakes get the default reply (reject); the
    unrestricted certificate fetch is accepted unless scripted otherwise.
    """

    __test__ = False

    def __init__(
        self,
        default: Optional[Reply] = None,
        certificate_der: Optional[bytes] = None,
        inbound: bytes = b"",
    ):
        self.default = default or Reply.reject()
        self.certificate_der = certificate_der
        self.inbound = inbound
        self._scripts: Dict[Tuple[ProtocolVersion, str], Reply] = {}
        self._version_replies: Dict[ProtocolVersion, Reply] = {}
        self._certificate_reply = Reply.accept(cipher=DEFAULT_NEGOTIATED_CIPHER)
        self._connect_error: Optional[TransportError] = None
        self._unresolvable: Set[str] = set()
        self._lock = threading.Lock()

        self.connections = 0
        self.handshakes = 0
        self.certificate_fetches = 0
        self.requests: List[HandshakeRequest] = []

    def script(self, version: ProtocolVersion, cipher: str, reply: Reply) -> "TestResponder":
        """React to a probe of `cipher` under `version` with `reply`."""
        self._scripts[(version, cipher)] = reply
        return self

    def script_version(self, version: ProtocolVersion, reply: Reply) -> "TestResponder":
        """React to every unscripted probe under `version` with `reply`."""
        self._version_replies[version] = reply
        return self

    def script_certificate(self, reply: Reply) -> "TestResponder":
        """React to the unrestricted certificate-fetch handshake with `reply`."""
        self._certificate_reply = reply
        return self

    def refuse_connections(self, error: Optional[TransportError] = None) -> "TestResponder":
        """Make every connect() fail."""
        self._connect_error = error or ConnectError("Connection refused")
        return self

    def unresolvable(self, host: str) -> "TestResponder":
        self._unresolvable.add(host)
        return self

    def on_resolve(self, host: str) -> List[str]:
        if host in self._unresolvable:
            raise HostResolutionError(f"Cannot resolve {host}: Name or service not known")
        return ["127.0.0.1"]

    def on_connect(self, host: str, port: int) -> None:
        if host in self._unresolvable:
            raise HostResolutionError(f"Cannot resolve {host}: Name or service not known")
        if self._connect_error is not None:
            raise self._connect_error
        with self._lock:
            self.connections += 1

    def reply_for(self, request: HandshakeRequest) -> Reply:
        """Pick the scripted reply for a handshake and count it."""
        with self._lock:
            self.handshakes += 1
            self.requests.append(request)
            if not request.restricted:
                self.certificate_fetches += 1
                return self._certificate_reply

        cipher = request.ciphers[0] if request.ciphers else None
        reply = self._scripts.get((request.version, cipher))
        if reply is None:
            reply = self._version_replies.get(request.version, self.default)
        return reply


class FakeConnection(Connection):
    """Connection whose peer is a TestResponder."""

    def __init__(self, transport: "FakeTransport", host: str, port: int):
        self._transport = transport
        self.responder = transport.responder
        self.host = host
        self.port = port
        self.sent = bytearray()
        self._inbound = bytearray(self.responder.inbound)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def read(self, max_bytes: int, timeout: Optional[float] = None) -> bytes:
        self._check_open()
        data = bytes(self._inbound[:max_bytes])
        del self._inbound[:max_bytes]
        return data

    def write(self, data: bytes) -> None:
        self._check_open()
        self.sent.extend(data)

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._transport._release(self)

    def handshake(self, request: HandshakeRequest, timeout: float) -> NegotiatedSession:
        self._check_open()
        reply = self.responder.reply_for(request)

        if reply.kind == ReplyKind.TIMEOUT:
            wait = timeout if reply.after is None else min(reply.after, timeout)
            self._pause(wait)
            raise TransportTimeout(f"Handshake with {self.host}:{self.port} timed out")

        self._pause(reply.delay)

        if reply.kind == ReplyKind.REJECT:
            raise HandshakeRejected("Server refused handshake: SSLV3_ALERT_HANDSHAKE_FAILURE")
        if reply.kind == ReplyKind.RESET:
            raise ConnectionReset(f"Connection to {self.host}:{self.port} reset")
        if reply.kind == ReplyKind.CLOSE:
            raise HandshakeRejected("Connection closed during handshake")
        if reply.kind == ReplyKind.MALFORMED:
            raise MalformedResponse("Unexpected handshake data: WRONG_VERSION_NUMBER")

        if reply.cipher:
            cipher = reply.cipher
        elif request.ciphers:
            cipher = request.ciphers[0]
        else:
            cipher = DEFAULT_NEGOTIATED_CIPHER
        protocol = request.version.value if request.version else "TLSv1.2"
        return NegotiatedSession(
            cipher=cipher,
            protocol=protocol,
            key_length=reply.key_length,
            certificate_der=self.responder.certificate_der,
        )

    def _pause(self, seconds: float) -> None:
        """Sleep, waking early with ConnectionClosed if closed meanwhile."""
        if seconds and self._closed.wait(seconds):
            raise ConnectionClosed(f"Connection to {self.host}:{self.port} is closed")

    def _check_open(self) -> None:
        if self._closed.is_set():
            raise ConnectionClosed(f"Connection to {self.host}:{self.port} is closed")


class FakeTransport(Transport):
    """Transport handing out FakeConnections bound to one responder."""

    def __init__(self, responder: Optional[TestResponder] = None):
        self.responder = responder or TestResponder()
        self.opened: List[FakeConnection] = []
        self.active = 0
        self.peak_active = 0
        self._lock = threading.Lock()

    def connect(self, host: str, port: int, timeout: float) -> FakeConnection:
        self.responder.on_connect(host, port)
        connection = FakeConnection(self, host, port)
        with self._lock:
            self.opened.append(connection)
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
        return connection

    def resolve(self, host: str) -> List[str]:
        return self.responder.on_resolve(host)

    @property
    def open_connections(self) -> List[FakeConnection]:
        with self._lock:
            return [c for c in self.opened if not c.closed]

    def _release(self, connection: FakeConnection) -> None:
        with self._lock:
            self.active -= 1
