"""Core scanning engine modules."""

from sslaudit.core.catalog import (
    CipherCatalog,
    CipherSuiteProvider,
    OpenSSLCipherProvider,
    ProtocolVersion,
    StaticCipherProvider,
    SUPPORTED_VERSIONS,
    STRONG_CIPHERS,
    UnsupportedVersionError,
    get_default_catalog,
)
from sslaudit.core.certificate import (
    Certificate,
    CertificateExtension,
    CertificateParseError,
    ExtensionKind,
)
from sslaudit.core.result import (
    CipherRecord,
    CipherStatus,
    CipherValidationError,
    Result,
)
from sslaudit.core.transport import (
    Connection,
    HandshakeRejected,
    HandshakeRequest,
    NegotiatedSession,
    TCPTransport,
    Transport,
    TransportError,
)
from sslaudit.core.fake_transport import FakeTransport, Reply, TestResponder
from sslaudit.core.probe import InvalidProbeError, Probe, ProbeOutcome
from sslaudit.core.scanner import (
    CipherScanner,
    ScanError,
    ScanErrorKind,
    ScanOptions,
    ScanReport,
)
from sslaudit.core.host_command import HostCommand, scan_host
from sslaudit.core.utils import InvalidTargetError, parse_target, parse_targets_from_file
from sslaudit.core.config import (
    ConfigManager,
    ConfigError,
    SslauditConfig,
    get_config,
    get_config_manager,
    reload_config,
)

__all__ = [
    "CipherCatalog",
    "CipherSuiteProvider",
    "OpenSSLCipherProvider",
    "ProtocolVersion",
    "StaticCipherProvider",
    "SUPPORTED_VERSIONS",
    "STRONG_CIPHERS",
    "UnsupportedVersionError",
    "get_default_catalog",
    "Certificate",
    "CertificateExtension",
    "CertificateParseError",
    "ExtensionKind",
    "CipherRecord",
    "CipherStatus",
    "CipherValidationError",
    "Result",
    "Connection",
    "HandshakeRejected",
    "HandshakeRequest",
    "NegotiatedSession",
    "TCPTransport",
    "Transport",
    "TransportError",
    "FakeTransport",
    "Reply",
    "TestResponder",
    "InvalidProbeError",
    "Probe",
    "ProbeOutcome",
    "CipherScanner",
    "ScanError",
    "ScanErrorKind",
    "ScanOptions",
    "ScanReport",
    "HostCommand",
    "scan_host",
    "InvalidTargetError",
    "parse_target",
    "parse_targets_from_file",
    "ConfigManager",
    "ConfigError",
    "SslauditConfig",
    "get_config",
    "get_config_manager",
    "reload_config",
]
