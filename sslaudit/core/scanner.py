"""
Cipher scanner engine for sslaudit
by BitSpectreLabs

Builds the (version x cipher) work set for a host, runs one probe per
pair on a bounded thread pool, fetches the leaf certificate alongside,
and folds everything into a Result.
"""

import math
import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from sslaudit.core.catalog import (
    CipherCatalog,
    ProtocolVersion,
    SUPPORTED_VERSIONS,
    get_default_catalog,
)
from sslaudit.core.certificate import CertificateParseError
from sslaudit.core.probe import Probe, ProbeOutcome
from sslaudit.core.result import CipherStatus, Result
from sslaudit.core.transport import (
    Connection,
    ConnectError,
    ConnectionClosed,
    HandshakeRejected,
    HostResolutionError,
    TCPTransport,
    Transport,
    TransportError,
    TransportTimeout,
)
from sslaudit.core.utils import calculate_scan_time, parse_target


logger = logging.getLogger(__name__)


class ScanErrorKind(Enum):
    """Non-fatal problems collected during a scan."""
    INVALID_HOST = "invalid_host"
    UNRESOLVABLE_HOST = "unresolvable_host"
    CONNECTION_FAILED = "connection_failed"
    TIMEOUT = "timeout"
    CERTIFICATE_FETCH = "certificate_fetch"


@dataclass(frozen=True)
class ScanError:
    """A problem that did not stop the scan but makes its result incomplete."""
    kind: ScanErrorKind
    message: str
    target: str = ""

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "target": self.target}


@dataclass
class ScanOptions:
    """
    Everything that changes how a host is scanned.

    Attributes:
        versions: Protocol versions to probe (None or empty: all)
        only_cert: Skip cipher probing, only fetch the certificate
        no_failed: Drop FAILED records from the returned Result
        timeout: Seconds allowed for each connect and each handshake
        scan_timeout: Overall deadline in seconds (None: derived from the work set)
        max_workers: Upper bound on concurrent probes (and open sockets)
    """
    versions: Optional[FrozenSet[ProtocolVersion]] = None
    only_cert: bool = False
    no_failed: bool = False
    timeout: float = 5.0
    scan_timeout: Optional[float] = None
    max_workers: int = 16

    def __post_init__(self):
        if self.versions:
            self.versions = frozenset(ProtocolVersion.parse(v) for v in self.versions)
        else:
            self.versions = None
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.scan_timeout is not None and self.scan_timeout <= 0:
            raise ValueError("scan_timeout must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    @property
    def selected_versions(self) -> Tuple[ProtocolVersion, ...]:
        if self.versions is None:
            return SUPPORTED_VERSIONS
        return tuple(v for v in SUPPORTED_VERSIONS if v in self.versions)

    def deadline_for(self, probes: int, workers: int) -> float:
        """Overall deadline for a work set of `probes` on `workers` threads."""
        if self.scan_timeout is not None:
            return self.scan_timeout
        # Connect and handshake may each use the full timeout
        rounds = math.ceil(probes / max(workers, 1))
        return 2 * self.timeout * (rounds + 1)

    @classmethod
    def from_config(cls, config, **overrides) -> "ScanOptions":
        """
        Create options from an SslauditConfig, letting keyword arguments
        (typically CLI flags) override config values. None overrides are ignored.
        """
        scan = config.scan
        values = {
            "versions": scan.versions or None,
            "only_cert": False,
            "no_failed": scan.no_failed,
            "timeout": scan.timeout,
            "scan_timeout": scan.scan_timeout,
            "max_workers": scan.workers,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class ScanReport:
    """Everything one scan produced."""
    target: Tuple[str, int]
    result: Result
    errors: List[ScanError] = field(default_factory=list)
    duration: float = 0.0
    probes_dispatched: int = 0
    probes_abandoned: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors

    def get_summary(self) -> Dict[str, Any]:
        return {
            "target": f"{self.target[0]}:{self.target[1]}",
            "probes_dispatched": self.probes_dispatched,
            "probes_abandoned": self.probes_abandoned,
            "accepted": len(self.result.accepted()),
            "rejected": len(self.result.rejected()),
            "failed": len(self.result.failed()),
            "errors": len(self.errors),
            "scan_duration": calculate_scan_time(self.duration),
            "scan_duration_seconds": self.duration,
        }


class _Settlement:
    """Lets exactly one party (worker or deadline) record an outcome."""

    def __init__(self):
        self._settled = False
        self._lock = threading.Lock()

    def settle(self) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            return True


class _ProbeTask(_Settlement):
    def __init__(self, version: ProtocolVersion, cipher: str):
        super().__init__()
        self.version = version
        self.cipher = cipher
        self.future = None


class _ConnectionTracker(Transport):
    """
    Transport wrapper that remembers every connection it opens, so the
    scanner can close them all when the deadline passes.
    """

    def __init__(self, transport: Transport):
        self.transport = transport
        self._connections: List[Connection] = []
        self._abandoned = False
        self._lock = threading.Lock()

    def connect(self, host: str, port: int, timeout: float) -> Connection:
        connection = self.transport.connect(host, port, timeout)
        with self._lock:
            if not self._abandoned:
                self._connections.append(connection)
                return connection
        connection.close()
        raise ConnectionClosed(f"Scan of {host}:{port} was abandoned")

    def resolve(self, host: str) -> List[str]:
        return self.transport.resolve(host)

    def abandon(self) -> int:
        """Close every connection still open; refuse new ones. Returns how many were open."""
        with self._lock:
            self._abandoned = True
            connections = list(self._connections)
        still_open = [c for c in connections if not c.closed]
        for connection in still_open:
            connection.close()
        return len(still_open)


class _ScanState:
    """Per-scan mutable state shared by the workers."""

    def __init__(self, target: Tuple[str, int], options: ScanOptions, result: Result):
        self.target = target
        self.label = f"{target[0]}:{target[1]}"
        self.options = options
        self.result = result
        self.errors: List[ScanError] = []
        self.certificate = _Settlement()
        self._reported: set = set()
        self._lock = threading.Lock()

    def add_error(self, kind: ScanErrorKind, message: str, once: bool = False) -> None:
        with self._lock:
            if once:
                if kind in self._reported:
                    return
                self._reported.add(kind)
            self.errors.append(ScanError(kind, message, self.label))


class CipherScanner:
    """
    Probe-and-classify engine.

    Examples:
        >>> scanner = CipherScanner()
        >>> result, errors = scanner.scan(("example.com", 443))
        >>> result.standards_compliant()
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        catalog: Optional[CipherCatalog] = None,
        options: Optional[ScanOptions] = None,
    ):
        """
        Initialize cipher scanner.

        Args:
            transport: Connection factory (default: real TCP sockets)
            catalog: Cipher catalog (default: the local OpenSSL catalog)
            options: Default ScanOptions for scan() calls without options
        """
        self.transport = transport or TCPTransport()
        self.catalog = catalog or get_default_catalog()
        self.options = options or ScanOptions()

    def build_work_set(self, options: Optional[ScanOptions] = None) -> List[Tuple[ProtocolVersion, str]]:
        """
        Build the ordered list of (version, cipher) pairs to probe.

        Empty in certificate-only mode.
        """
        options = options or self.options
        if options.only_cert:
            return []
        return [
            (version, cipher)
            for version in options.selected_versions
            for cipher in self.catalog.ciphers(version)
        ]

    def scan(
        self,
        target: Union[str, Tuple[str, int]],
        options: Optional[ScanOptions] = None,
    ) -> Tuple[Result, List[ScanError]]:
        """
        Scan one host.

        Args:
            target: (host, port) or "host[:port]"
            options: ScanOptions (default: the scanner's options)

        Returns:
            Tuple of (Result, list of ScanError)
        """
        report = self.run(target, options)
        return report.result, report.errors

    def run(
        self,
        target: Union[str, Tuple[str, int]],
        options: Optional[ScanOptions] = None,
    ) -> ScanReport:
        """Scan one host and return the full ScanReport."""
        options = options or self.options
        if isinstance(target, str):
            target = parse_target(target)

        state = _ScanState(target, options, Result(self.catalog))
        tracker = _ConnectionTracker(self.transport)
        probe = Probe(tracker, self.catalog)

        tasks = [_ProbeTask(version, cipher) for version, cipher in self.build_work_set(options)]
        workers = min(options.max_workers, len(tasks) + 1)
        deadline = options.deadline_for(len(tasks), workers)

        logger.info(
            f"Scanning {state.label}: {len(tasks)} probes on {workers} workers "
            f"(deadline {deadline:.1f}s)"
        )
        start = time.monotonic()
        abandoned = 0

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sslaudit-probe")
        try:
            cert_future = executor.submit(self._fetch_certificate, probe, state)
            for task in tasks:
                task.future = executor.submit(self._run_probe, probe, task, state)

            futures = [cert_future] + [task.future for task in tasks]
            _, pending = wait(futures, timeout=deadline)

            if pending:
                abandoned = self._abandon(tasks, state, tracker)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        # Surface programming errors raised inside workers, including
        # workers that only finished after the deadline
        for future in futures:
            if not future.cancelled():
                future.result()

        duration = time.monotonic() - start
        result = state.result.without_failed() if options.no_failed else state.result

        logger.info(
            f"Scan of {state.label} complete in {calculate_scan_time(duration)}: "
            f"{len(result.accepted())} accepted, {len(result.rejected())} rejected, "
            f"{len(result.failed())} failed, {len(state.errors)} errors"
        )

        return ScanReport(
            target=target,
            result=result,
            errors=list(state.errors),
            duration=duration,
            probes_dispatched=len(tasks),
            probes_abandoned=abandoned,
        )

    def _run_probe(self, probe: Probe, task: _ProbeTask, state: _ScanState) -> ProbeOutcome:
        outcome = probe.attempt(state.target, task.version, task.cipher, state.options.timeout)

        if not task.settle():
            # Already recorded as a timeout by the deadline
            return outcome

        state.result.add_cipher(outcome.version, outcome.cipher, outcome.key_length, outcome.status)

        if isinstance(outcome.error, HostResolutionError):
            state.add_error(ScanErrorKind.UNRESOLVABLE_HOST, str(outcome.error), once=True)

        return outcome

    def _fetch_certificate(self, probe: Probe, state: _ScanState) -> None:
        try:
            cert = probe.fetch_certificate(state.target, state.options.timeout)
        except TransportTimeout as e:
            error = (ScanErrorKind.TIMEOUT, f"Certificate fetch timed out: {e}")
        except HostResolutionError as e:
            error = (ScanErrorKind.UNRESOLVABLE_HOST, str(e))
        except ConnectError as e:
            error = (ScanErrorKind.CONNECTION_FAILED, f"Certificate fetch failed: {e}")
        except (TransportError, HandshakeRejected, CertificateParseError) as e:
            error = (ScanErrorKind.CERTIFICATE_FETCH, f"Certificate fetch failed: {e}")
        else:
            if state.certificate.settle():
                state.result.cert = cert
            return

        if state.certificate.settle():
            logger.warning(f"{state.label}: {error[1]}")
            state.add_error(*error, once=error[0] == ScanErrorKind.UNRESOLVABLE_HOST)

    def _abandon(self, tasks: Iterable[_ProbeTask], state: _ScanState, tracker: _ConnectionTracker) -> int:
        """Record every unsettled probe as a timeout failure and close its connection."""
        abandoned = 0
        for task in tasks:
            if task.settle():
                task.future.cancel()
                state.result.add_cipher(task.version, task.cipher, 0, CipherStatus.FAILED)
                abandoned += 1

        if state.certificate.settle():
            state.add_error(
                ScanErrorKind.TIMEOUT,
                "Certificate fetch did not finish before the scan deadline",
            )

        closed = tracker.abandon()
        if abandoned:
            state.add_error(
                ScanErrorKind.TIMEOUT,
                f"{abandoned} probes did not finish before the scan deadline",
            )
        logger.warning(
            f"{state.label}: deadline reached, {abandoned} probes abandoned, "
            f"{closed} connections closed"
        )
        return abandoned
