"""
Single-host entry point for sslaudit
by BitSpectreLabs

HostCommand validates one host[:port] target, runs the CipherScanner
against it and exposes the Result together with any non-fatal errors.
Callers must check `errors` before trusting `results`.
"""

import logging
from typing import List, Optional

from sslaudit.core.catalog import CipherCatalog
from sslaudit.core.result import Result
from sslaudit.core.scanner import (
    CipherScanner,
    ScanError,
    ScanErrorKind,
    ScanOptions,
    ScanReport,
)
from sslaudit.core.transport import HostResolutionError, TCPTransport, Transport
from sslaudit.core.utils import DEFAULT_PORT, InvalidTargetError, parse_target


logger = logging.getLogger(__name__)

__all__ = [
    "HostCommand",
    "InvalidTargetError",
    "parse_target",
    "scan_host",
]


class HostCommand:
    """
    Scan exactly one host.

    Examples:
        >>> command = HostCommand("example.com:443").execute()
        >>> if command.ok:
        ...     print(command.results.standards_compliant())
    """

    def __init__(
        self,
        target: str,
        options: Optional[ScanOptions] = None,
        transport: Optional[Transport] = None,
        catalog: Optional[CipherCatalog] = None,
    ):
        self.target = target
        self.options = options or ScanOptions()
        self.transport = transport or TCPTransport()
        self.catalog = catalog

        self.host: Optional[str] = None
        self.port: int = DEFAULT_PORT
        self.results: Optional[Result] = None
        self.errors: List[ScanError] = []
        self.report: Optional[ScanReport] = None

    @property
    def ok(self) -> bool:
        return self.results is not None and not self.errors

    def validate(self) -> bool:
        """
        Parse the target and resolve its host.

        Records one INVALID_HOST or UNRESOLVABLE_HOST error on failure.

        Returns:
            True if the host can be scanned
        """
        try:
            self.host, self.port = parse_target(self.target)
        except InvalidTargetError as e:
            logger.warning(f"Invalid target {self.target!r}: {e}")
            self.errors.append(ScanError(ScanErrorKind.INVALID_HOST, str(e), str(self.target)))
            return False

        try:
            addresses = self.transport.resolve(self.host)
        except HostResolutionError as e:
            logger.warning(f"Cannot resolve {self.host}: {e}")
            self.errors.append(ScanError(ScanErrorKind.UNRESOLVABLE_HOST, str(e), self.label))
            return False

        logger.debug(f"{self.host} resolves to {', '.join(addresses)}")
        return True

    @property
    def label(self) -> str:
        if self.host is None:
            return str(self.target)
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    def execute(self) -> "HostCommand":
        """Validate the target and, if it is usable, scan it."""
        self.results = None
        self.errors = []
        self.report = None

        if not self.validate():
            return self

        scanner = CipherScanner(self.transport, self.catalog, self.options)
        self.report = scanner.run((self.host, self.port), self.options)
        self.results = self.report.result
        self.errors.extend(self.report.errors)
        return self


def scan_host(
    target: str,
    options: Optional[ScanOptions] = None,
    transport: Optional[Transport] = None,
    catalog: Optional[CipherCatalog] = None,
) -> HostCommand:
    """
    Convenience function to scan one host.

    Args:
        target: "host" or "host:port" (default port 443)
        options: ScanOptions
        transport: Connection factory (default: TCP)
        catalog: Cipher catalog (default: local OpenSSL)

    Returns:
        The executed HostCommand
    """
    return HostCommand(target, options, transport, catalog).execute()
