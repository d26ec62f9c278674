"""
Cipher catalog for sslaudit
by BitSpectreLabs

Holds, per protocol version, the cipher suites the local crypto library
can negotiate, and resolves the strong-cipher policy used to mark
accepted ciphers weak or strong.
"""

import ssl
import logging
import threading
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple


logger = logging.getLogger(__name__)


class ProtocolVersion(Enum):
    """SSL/TLS protocol versions probed by sslaudit."""
    SSLv2 = "SSLv2"
    SSLv3 = "SSLv3"
    TLSv1 = "TLSv1"

    @classmethod
    def parse(cls, value) -> "ProtocolVersion":
        """
        Coerce a version given as member, value or name.

        Raises:
            ValueError: if the value names no supported version
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member in cls:
                if value.lower() in (member.value.lower(), member.name.lower()):
                    return member
        raise ValueError(f"Unsupported protocol version: {value!r}")


SUPPORTED_VERSIONS: Tuple[ProtocolVersion, ...] = tuple(ProtocolVersion)


# OpenSSL directive for strong ciphers, from the OWASP transport layer
# protection cheat sheet.
STRONG_CIPHERS = (
    "EDH+aRSA+AESGCM:EDH+aRSA+AES:DHE-RSA-AES256-SHA"
    ":EECDH+aRSA+AESGCM:EECDH+aRSA+AES:ECDHE-RSA-AES256-SHA"
    ":ECDHE-RSA-AES128-SHA:RSA+AESGCM:RSA+AES+SHA:DES-CBC3-SHA"
    ":-DHE-RSA-AES128-SHA:!aNULL:!eNULL:!LOW:!MD5:!EXP:!PSK:!DSS"
    ":!RC4:!SEED:!ECDSA:!ADH:!IDEA"
)

# Selection covering every cipher the library was built with
ALL_CIPHERS = "ALL:COMPLEMENTOFALL"

# Wire version numbers, used to compare a cipher's minimum protocol
_VERSION_NUMBERS = {
    ProtocolVersion.SSLv2: 0x0200,
    ProtocolVersion.SSLv3: 0x0300,
    ProtocolVersion.TLSv1: 0x0301,
}

# Minimum protocol strings reported by SSLContext.get_ciphers()
_CIPHER_PROTOCOLS = {
    "SSLv2": 0x0200,
    "SSLv3": 0x0300,
    "TLSv1": 0x0301,
    "TLSv1.0": 0x0301,
    "TLSv1.1": 0x0302,
    "TLSv1.2": 0x0303,
    "TLSv1.3": 0x0304,
}


class UnsupportedVersionError(ValueError):
    """Raised when the catalog is asked about a version it does not know."""
    pass


def _require_version(version) -> ProtocolVersion:
    if not isinstance(version, ProtocolVersion):
        raise UnsupportedVersionError(f"Not a supported protocol version: {version!r}")
    return version


class CipherSuiteProvider:
    """
    Oracle answering the two questions the catalog needs from a crypto library.

    Subclasses implement:
    - offered(version): cipher names the library can negotiate for a version
    - resolve(selection, version): cipher names a selection string yields
    """

    def offered(self, version: ProtocolVersion) -> Tuple[str, ...]:
        raise NotImplementedError

    def resolve(self, selection: str, version: ProtocolVersion) -> Tuple[str, ...]:
        raise NotImplementedError


class OpenSSLCipherProvider(CipherSuiteProvider):
    """Cipher oracle backed by the OpenSSL linked into the ssl module."""

    # Whether the linked OpenSSL can speak each version at all
    AVAILABILITY = {
        ProtocolVersion.SSLv2: getattr(ssl, "HAS_SSLv2", False),
        ProtocolVersion.SSLv3: getattr(ssl, "HAS_SSLv3", False),
        ProtocolVersion.TLSv1: getattr(ssl, "HAS_TLSv1", False),
    }

    def offered(self, version: ProtocolVersion) -> Tuple[str, ...]:
        return self.resolve(ALL_CIPHERS, version)

    def resolve(self, selection: str, version: ProtocolVersion) -> Tuple[str, ...]:
        version = _require_version(version)
        if not self.AVAILABILITY.get(version, False):
            logger.debug(f"{version.value} is not available in {ssl.OPENSSL_VERSION}")
            return ()

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        try:
            context.set_ciphers(f"{selection}:@SECLEVEL=0")
        except ssl.SSLError:
            # Nothing in the selection is known to this library
            return ()

        ceiling = _VERSION_NUMBERS[version]
        names = []
        for cipher in context.get_ciphers():
            minimum = _CIPHER_PROTOCOLS.get(cipher.get("protocol", ""))
            if minimum is None or minimum > ceiling:
                continue
            if cipher["name"] not in names:
                names.append(cipher["name"])
        return tuple(names)


class StaticCipherProvider(CipherSuiteProvider):
    """
    Cipher oracle over fixed tables.

    Pins the catalog independently of the local OpenSSL build. The strong
    table stands in for the resolved policy selection, so `resolve` ignores
    the selection string and returns the strong ciphers still offered.
    """

    def __init__(
        self,
        offered: Mapping[ProtocolVersion, Iterable[str]],
        strong: Optional[Mapping[ProtocolVersion, Iterable[str]]] = None,
    ):
        self._offered = {v: tuple(offered.get(v, ())) for v in SUPPORTED_VERSIONS}
        strong = strong or {}
        self._strong = {v: tuple(strong.get(v, ())) for v in SUPPORTED_VERSIONS}

    def offered(self, version: ProtocolVersion) -> Tuple[str, ...]:
        return self._offered[_require_version(version)]

    def resolve(self, selection: str, version: ProtocolVersion) -> Tuple[str, ...]:
        version = _require_version(version)
        offered = self._offered[version]
        return tuple(name for name in self._strong[version] if name in offered)


class CipherCatalog:
    """
    Per-version cipher universe plus the strong-cipher oracle.

    Lookups are memoized, so the crypto library is asked once per version
    for the lifetime of the catalog.
    """

    def __init__(
        self,
        provider: Optional[CipherSuiteProvider] = None,
        strong_selection: str = STRONG_CIPHERS,
    ):
        self.provider = provider or OpenSSLCipherProvider()
        self.strong_selection = strong_selection
        self._offered: Dict[ProtocolVersion, Tuple[str, ...]] = {}
        self._strong: Dict[ProtocolVersion, frozenset] = {}
        self._lock = threading.Lock()

    @property
    def versions(self) -> Tuple[ProtocolVersion, ...]:
        return SUPPORTED_VERSIONS

    def ciphers(self, version: ProtocolVersion) -> Tuple[str, ...]:
        """Cipher names the crypto library offers for a version."""
        version = _require_version(version)
        with self._lock:
            if version not in self._offered:
                self._offered[version] = tuple(self.provider.offered(version))
                logger.debug(f"{version.value}: {len(self._offered[version])} ciphers offered")
            return self._offered[version]

    def resolve_strong(self, version: ProtocolVersion) -> frozenset:
        """Concrete cipher names the strong policy resolves to for a version."""
        version = _require_version(version)
        with self._lock:
            if version not in self._strong:
                resolved = self.provider.resolve(self.strong_selection, version)
                self._strong[version] = frozenset(resolved)
            return self._strong[version]

    def is_offered(self, version: ProtocolVersion, cipher: str) -> bool:
        return cipher in self.ciphers(version)

    def is_weak(self, version: ProtocolVersion, cipher: str) -> bool:
        return cipher not in self.resolve_strong(version)

    def size(self) -> int:
        """Number of (version, cipher) pairs in the catalog."""
        return sum(len(self.ciphers(v)) for v in SUPPORTED_VERSIONS)


_default_catalog: Optional[CipherCatalog] = None
_default_lock = threading.Lock()


def get_default_catalog() -> CipherCatalog:
    """Get or create the process-wide OpenSSL-backed catalog."""
    global _default_catalog
    with _default_lock:
        if _default_catalog is None:
            _default_catalog = CipherCatalog()
        return _default_catalog
