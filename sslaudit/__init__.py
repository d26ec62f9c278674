"""
sslaudit - SSL/TLS Cipher Suite Auditor
by BitSpectreLabs

Probes a server with one restricted handshake per protocol version and
cipher, and reports which legacy protocols and weak ciphers it accepts.
"""

__version__ = "1.0.0"
__author__ = "BitSpectreLabs"
__license__ = "MIT"

from sslaudit.core.host_command import HostCommand, scan_host
from sslaudit.core.scanner import CipherScanner, ScanOptions

__all__ = ["CipherScanner", "HostCommand", "ScanOptions", "scan_host"]
