"""
Scan result aggregate for sslaudit
by BitSpectreLabs

A Result collects the outcome of every cipher probe against one host,
plus the host's leaf certificate, and answers the classification
questions an audit asks: which versions are supported, which accepted
ciphers are weak, and whether the host is standards compliant.

Probes run on many worker threads and all insert into the same Result,
so the record set is guarded by a single lock. The lock is only held for
the set operation itself, never while a probe is doing network I/O.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, Optional, Set

from sslaudit.core.catalog import (
    CipherCatalog,
    ProtocolVersion,
    SUPPORTED_VERSIONS,
    get_default_catalog,
)
from sslaudit.core.certificate import Certificate


logger = logging.getLogger(__name__)

ALL = "all"


class CipherStatus(Enum):
    """Outcome of a single cipher probe."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"


class CipherValidationError(ValueError):
    """A cipher record violated the Result's input contract."""
    pass


@dataclass(frozen=True)
class CipherRecord:
    """
    Outcome of probing one cipher under one protocol version.

    Records compare and hash on (version, cipher, status) only, so a
    Result holds at most one record per key.
    """
    version: ProtocolVersion
    cipher: str
    key_length: int = field(compare=False)
    weak: bool = field(compare=False)
    status: CipherStatus

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "version": self.version.value,
            "cipher": self.cipher,
            "key_length": self.key_length,
            "weak": self.weak,
            "status": self.status.value,
        }


def _sort_key(record: CipherRecord):
    return (SUPPORTED_VERSIONS.index(record.version), record.status.value, record.cipher)


class Result:
    """Thread-safe set of cipher records plus the host certificate."""

    def __init__(self, catalog: Optional[CipherCatalog] = None):
        self.catalog = catalog or get_default_catalog()
        self.supported_versions = SUPPORTED_VERSIONS
        # Chain verification is not performed
        self.peer_verified = False
        self._cert: Optional[Certificate] = None
        self._ciphers: Set[CipherRecord] = set()
        self._lock = threading.Lock()

    @property
    def cert(self) -> Optional[Certificate]:
        return self._cert

    @cert.setter
    def cert(self, value: Optional[Certificate]) -> None:
        if value is not None and not isinstance(value, Certificate):
            raise TypeError(f"Must be a Certificate or None, got {type(value).__name__}")
        self._cert = value

    @property
    def ciphers(self) -> FrozenSet[CipherRecord]:
        """Snapshot of every record."""
        with self._lock:
            return frozenset(self._ciphers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ciphers)

    def __contains__(self, record: object) -> bool:
        with self._lock:
            return record in self._ciphers

    def add_cipher(
        self,
        version: ProtocolVersion,
        cipher: str,
        key_length: int,
        status: CipherStatus,
    ) -> CipherRecord:
        """
        Add the outcome of a cipher probe.

        Args:
            version: Protocol version probed
            cipher: OpenSSL cipher name probed
            key_length: Symmetric key length in bits
            status: CipherStatus (or its string value)

        Returns:
            The stored CipherRecord, with `weak` derived from the strong policy

        Raises:
            CipherValidationError: if any argument breaks the contract
        """
        if version not in self.supported_versions:
            raise CipherValidationError(f"Must be a supported SSL version, got {version!r}")
        if not isinstance(cipher, str) or not self.catalog.is_offered(version, cipher):
            raise CipherValidationError(f"Must be a valid SSL cipher for {version.value}: {cipher!r}")
        if isinstance(key_length, bool) or not isinstance(key_length, int) or key_length < 0:
            raise CipherValidationError(f"Must supply a valid key length, got {key_length!r}")
        if not isinstance(status, CipherStatus):
            try:
                status = CipherStatus(status)
            except ValueError:
                raise CipherValidationError(
                    f"Status must be accepted, rejected or failed, got {status!r}"
                ) from None

        record = CipherRecord(
            version=version,
            cipher=cipher,
            key_length=key_length,
            weak=self.catalog.is_weak(version, cipher),
            status=status,
        )
        with self._lock:
            self._ciphers.add(record)
        return record

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def accepted(self, versions=ALL) -> Set[CipherRecord]:
        """Accepted records matching a version filter ("all", a version, or several)."""
        return self._enum_ciphers(CipherStatus.ACCEPTED, versions)

    def rejected(self, versions=ALL) -> Set[CipherRecord]:
        return self._enum_ciphers(CipherStatus.REJECTED, versions)

    def failed(self, versions=ALL) -> Set[CipherRecord]:
        return self._enum_ciphers(CipherStatus.FAILED, versions)

    def each_accepted(self, versions=ALL) -> Iterator[CipherRecord]:
        yield from sorted(self.accepted(versions), key=_sort_key)

    def each_rejected(self, versions=ALL) -> Iterator[CipherRecord]:
        yield from sorted(self.rejected(versions), key=_sort_key)

    @property
    def sslv2(self) -> Set[CipherRecord]:
        return self._by_version(ProtocolVersion.SSLv2)

    @property
    def sslv3(self) -> Set[CipherRecord]:
        return self._by_version(ProtocolVersion.SSLv3)

    @property
    def tlsv1(self) -> Set[CipherRecord]:
        return self._by_version(ProtocolVersion.TLSv1)

    @property
    def rc4_md5(self) -> Set[CipherRecord]:
        with self._lock:
            return {r for r in self._ciphers if r.cipher == "RC4-MD5"}

    def weak_ciphers(self) -> Set[CipherRecord]:
        return {r for r in self.accepted() if r.weak}

    def strong_ciphers(self) -> Set[CipherRecord]:
        return {r for r in self.accepted() if not r.weak}

    def supports_version(self, version) -> bool:
        return bool(self.accepted(ProtocolVersion.parse(version)))

    def supports_sslv2(self) -> bool:
        return self.supports_version(ProtocolVersion.SSLv2)

    def supports_sslv3(self) -> bool:
        return self.supports_version(ProtocolVersion.SSLv3)

    def supports_tlsv1(self) -> bool:
        return self.supports_version(ProtocolVersion.TLSv1)

    def supports_ssl(self) -> bool:
        return any(self.supports_version(v) for v in self.supported_versions)

    def supports_weak_ciphers(self) -> bool:
        return bool(self.weak_ciphers())

    def supports_rc4_md5_ciphers(self) -> bool:
        return bool(self.rc4_md5)

    def standards_compliant(self) -> bool:
        """
        A host is non-compliant when it speaks any protocol at all and
        either supports SSLv2 or accepts a weak cipher. A host that
        accepts nothing is compliant.
        """
        if self.supports_ssl():
            if self.supports_sslv2():
                return False
            if self.supports_weak_ciphers():
                return False
        return True

    def without_failed(self) -> "Result":
        """Copy of this Result without FAILED records."""
        copy = Result(self.catalog)
        copy.cert = self.cert
        copy.peer_verified = self.peer_verified
        with self._lock:
            copy._ciphers = {r for r in self._ciphers if r.status != CipherStatus.FAILED}
        return copy

    def sorted_ciphers(self) -> list:
        return sorted(self.ciphers, key=_sort_key)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "certificate": self.cert.to_dict() if self.cert else None,
            "peer_verified": self.peer_verified,
            "ciphers": [r.to_dict() for r in self.sorted_ciphers()],
            "summary": {
                "accepted": len(self.accepted()),
                "rejected": len(self.rejected()),
                "failed": len(self.failed()),
                "supports": {v.value: self.supports_version(v) for v in self.supported_versions},
                "weak_ciphers": sorted(r.cipher for r in self.weak_ciphers()),
                "standards_compliant": self.standards_compliant(),
            },
        }

    # ------------------------------------------------------------------

    def _by_version(self, version: ProtocolVersion) -> Set[CipherRecord]:
        with self._lock:
            return {r for r in self._ciphers if r.version == version}

    def _enum_ciphers(self, status: CipherStatus, versions=ALL) -> Set[CipherRecord]:
        wanted = self._version_filter(versions)
        with self._lock:
            return {
                r for r in self._ciphers
                if r.status == status and (wanted is None or r.version in wanted)
            }

    def _version_filter(self, versions) -> Optional[FrozenSet[ProtocolVersion]]:
        """
        Normalize a version filter; None means every version.

        Raises:
            ValueError: for a single unknown version or an unusable filter type
        """
        if isinstance(versions, ProtocolVersion):
            return frozenset([versions])

        if isinstance(versions, str):
            if versions.lower() == ALL:
                return None
            try:
                return frozenset([ProtocolVersion.parse(versions)])
            except ValueError:
                raise ValueError(f"Invalid SSL version supplied: {versions}") from None

        if isinstance(versions, Iterable):
            wanted = set()
            for value in versions:
                try:
                    wanted.add(ProtocolVersion.parse(value))
                except ValueError:
                    # Unknown members of a version list are ignored
                    continue
            return frozenset(wanted) or None

        raise ValueError(
            f"Was expecting a version or a list of versions, got {type(versions).__name__}"
        )
