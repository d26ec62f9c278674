"""
Tests for the in-process fake transport
by BitSpectreLabs
"""

import threading
import time

import pytest

from sslaudit.core.catalog import ProtocolVersion
from sslaudit.core.fake_transport import (
    DEFAULT_NEGOTIATED_CIPHER,
    FakeTransport,
    Reply,
    ReplyKind,
    TestResponder,
)
from sslaudit.core.transport import (
    ConnectError,
    ConnectionClosed,
    ConnectionReset,
    HandshakeRejected,
    HandshakeRequest,
    HostResolutionError,
    MalformedResponse,
    TransportTimeout,
)


def _probe_request(version=ProtocolVersion.TLSv1, cipher="AES128-SHA"):
    return HandshakeRequest(version=version, ciphers=(cipher,), server_hostname="fake.test")


class TestReply:
    """Test Reply constructors."""

    def test_constructors(self):
        assert Reply.accept().kind == ReplyKind.ACCEPT
        assert Reply.accept(256).key_length == 256
        assert Reply.reject().kind == ReplyKind.REJECT
        assert Reply.reset().kind == ReplyKind.RESET
        assert Reply.close().kind == ReplyKind.CLOSE
        assert Reply.timeout(0.1).after == 0.1
        assert Reply.malformed().kind == ReplyKind.MALFORMED


class TestTestResponder:
    """Test scripted responder lookups."""

    def test_default_is_reject(self):
        responder = TestResponder()
        assert responder.reply_for(_probe_request()).kind == ReplyKind.REJECT

    def test_script_wins_over_version_and_default(self):
        responder = (
            TestResponder(default=Reply.reset())
            .script_version(ProtocolVersion.TLSv1, Reply.malformed())
            .script(ProtocolVersion.TLSv1, "AES128-SHA", Reply.accept())
        )
        assert responder.reply_for(_probe_request()).kind == ReplyKind.ACCEPT
        assert responder.reply_for(_probe_request(cipher="RC4-MD5")).kind == ReplyKind.MALFORMED
        assert responder.reply_for(_probe_request(ProtocolVersion.SSLv3)).kind == ReplyKind.RESET

    def test_certificate_fetch_counted(self):
        responder = TestResponder()
        assert responder.reply_for(HandshakeRequest()).kind == ReplyKind.ACCEPT
        responder.reply_for(_probe_request())
        assert responder.handshakes == 2
        assert responder.certificate_fetches == 1

    def test_unresolvable(self):
        responder = TestResponder().unresolvable("nowhere.test")
        with pytest.raises(HostResolutionError):
            responder.on_resolve("nowhere.test")
        assert responder.on_resolve("fake.test") == ["127.0.0.1"]


class TestFakeConnection:
    """Test handshakes over fake connections."""

    def test_accept_echoes_offered_cipher(self, certificate_der):
        responder = TestResponder(certificate_der=certificate_der)
        responder.script(ProtocolVersion.TLSv1, "AES128-SHA", Reply.accept(128))
        connection = FakeTransport(responder).connect("fake.test", 443, timeout=1)

        session = connection.handshake(_probe_request(), timeout=1)

        assert session.cipher == "AES128-SHA"
        assert session.protocol == "TLSv1"
        assert session.key_length == 128
        assert session.certificate_der == certificate_der

    def test_accept_with_other_cipher(self):
        responder = TestResponder().script(
            ProtocolVersion.TLSv1, "AES128-SHA", Reply.accept(cipher="AES256-SHA")
        )
        connection = FakeTransport(responder).connect("fake.test", 443, timeout=1)
        assert connection.handshake(_probe_request(), timeout=1).cipher == "AES256-SHA"

    def test_unrestricted_accept(self):
        connection = FakeTransport().connect("fake.test", 443, timeout=1)
        assert connection.handshake(HandshakeRequest(), timeout=1).cipher == DEFAULT_NEGOTIATED_CIPHER

    @pytest.mark.parametrize("reply,error", [
        (Reply.reject(), HandshakeRejected),
        (Reply.reset(), ConnectionReset),
        (Reply.close(), HandshakeRejected),
        (Reply.malformed(), MalformedResponse),
        (Reply.timeout(0.01), TransportTimeout),
    ])
    def test_failures(self, reply, error):
        transport = FakeTransport(TestResponder(default=reply))
        connection = transport.connect("fake.test", 443, timeout=1)
        with pytest.raises(error):
            connection.handshake(_probe_request(), timeout=1)

    def test_timeout_capped_by_handshake_timeout(self):
        transport = FakeTransport(TestResponder(default=Reply.timeout()))
        connection = transport.connect("fake.test", 443, timeout=1)
        start = time.monotonic()
        with pytest.raises(TransportTimeout):
            connection.handshake(_probe_request(), timeout=0.05)
        assert time.monotonic() - start < 1

    def test_close_interrupts_handshake(self):
        transport = FakeTransport(TestResponder(default=Reply.timeout()))
        connection = transport.connect("fake.test", 443, timeout=1)
        errors = []

        def run():
            try:
                connection.handshake(_probe_request(), timeout=10)
            except ConnectionClosed as e:
                errors.append(e)

        thread = threading.Thread(target=run)
        thread.start()
        time.sleep(0.05)
        connection.close()
        thread.join(timeout=2)

        assert not thread.is_alive()
        assert len(errors) == 1

    def test_read_write(self):
        transport = FakeTransport(TestResponder(inbound=b"hello"))
        connection = transport.connect("fake.test", 443, timeout=1)
        connection.write(b"abc")
        assert bytes(connection.sent) == b"abc"
        assert connection.read(3) == b"hel"
        assert connection.read(10) == b"lo"
        assert connection.read(10) == b""

    def test_closed_connection_refuses_io(self):
        connection = FakeTransport().connect("fake.test", 443, timeout=1)
        connection.close()
        with pytest.raises(ConnectionClosed):
            connection.read(1)
        with pytest.raises(ConnectionClosed):
            connection.handshake(_probe_request(), timeout=1)


class TestFakeTransport:
    """Test connection bookkeeping."""

    def test_tracks_open_connections(self):
        transport = FakeTransport()
        first = transport.connect("fake.test", 443, timeout=1)
        second = transport.connect("fake.test", 443, timeout=1)
        assert transport.active == 2
        assert transport.peak_active == 2

        first.close()
        first.close()
        assert transport.active == 1
        assert transport.open_connections == [second]

        with second:
            pass
        assert transport.active == 0
        assert transport.peak_active == 2

    def test_refused(self):
        transport = FakeTransport(TestResponder().refuse_connections())
        with pytest.raises(ConnectError):
            transport.connect("fake.test", 443, timeout=1)
        assert transport.opened == []

    def test_unresolvable_connect(self):
        transport = FakeTransport(TestResponder().unresolvable("nowhere.test"))
        with pytest.raises(HostResolutionError):
            transport.connect("nowhere.test", 443, timeout=1)
        with pytest.raises(HostResolutionError):
            transport.resolve("nowhere.test")
