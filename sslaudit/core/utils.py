"""
Utility functions for sslaudit
by BitSpectreLabs

Supports both IPv4 and IPv6 targets.
"""

import ipaddress
import re
from pathlib import Path
from typing import List, Tuple, Union


DEFAULT_PORT = 443


class InvalidTargetError(ValueError):
    """Target string is not a usable host[:port]."""
    pass


def is_ipv6(ip: str) -> bool:
    """
    Check if address is IPv6.

    Examples:
        >>> is_ipv6("2001:db8::1")
        True
        >>> is_ipv6("192.168.1.1")
        False
    """
    try:
        return ipaddress.ip_address(ip).version == 6
    except ValueError:
        return False


def is_valid_ip(ip: str) -> bool:
    try:
        ipaddress.ip_address(ip)
        return True
    except ValueError:
        return False


def is_valid_hostname(hostname: str) -> bool:
    """
    Check if string is a valid hostname.

    Args:
        hostname: Hostname to validate

    Returns:
        True if valid hostname, False otherwise
    """
    if not hostname or len(hostname) > 255:
        return False

    if hostname.endswith("."):
        hostname = hostname[:-1]

    if not hostname or ".." in hostname:
        return False

    # Each label must start and end with alphanumeric
    pattern = re.compile(
        r'^([a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?\.)*'
        r'[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?$'
    )
    return bool(pattern.match(hostname))


def parse_target(target: str) -> Tuple[str, int]:
    """
    Split a target into (host, port).

    Accepted forms: "host", "host:port", "[2001:db8::1]:port" and a bare
    IPv6 address. The port defaults to 443.

    Raises:
        InvalidTargetError: for an empty host, a bad port or a malformed host

    Examples:
        >>> parse_target("example.com")
        ('example.com', 443)
        >>> parse_target("[2001:db8::1]:8443")
        ('2001:db8::1', 8443)
    """
    if not isinstance(target, str) or not target.strip():
        raise InvalidTargetError("Empty target")

    target = target.strip()
    port_text = None

    if target.startswith("["):
        end = target.find("]")
        if end == -1:
            raise InvalidTargetError(f"Unterminated IPv6 bracket in target: {target}")
        host = target[1:end]
        rest = target[end + 1:]
        if rest:
            if not rest.startswith(":"):
                raise InvalidTargetError(f"Unexpected text after IPv6 address: {target}")
            port_text = rest[1:]
        if not is_ipv6(host):
            raise InvalidTargetError(f"Invalid IPv6 address: {host}")
    elif is_ipv6(target):
        host = target
    elif target.count(":") == 1:
        host, port_text = target.split(":")
    elif ":" in target:
        raise InvalidTargetError(f"IPv6 targets with a port must use brackets: {target}")
    else:
        host = target

    if not host:
        raise InvalidTargetError(f"Missing host in target: {target}")
    if not is_valid_ip(host) and not is_valid_hostname(host):
        raise InvalidTargetError(f"Invalid hostname: {host}")

    if port_text is None:
        return host, DEFAULT_PORT

    if not port_text.isdigit():
        raise InvalidTargetError(f"Invalid port: {port_text!r}")
    port = int(port_text)
    if not 1 <= port <= 65535:
        raise InvalidTargetError(f"Port out of range (1-65535): {port}")
    return host, port


def parse_targets_from_file(filepath: Union[str, Path]) -> List[str]:
    """
    Read a host list, one target per line.

    Blank lines and lines starting with # are skipped; trailing
    comments are stripped. Targets are returned unvalidated and in file
    order with duplicates removed, so the caller can report bad ones
    individually.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the path is not a file or is not UTF-8
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"Target file not found: {filepath}")
    if not filepath.is_file():
        raise ValueError(f"Not a file: {filepath}")

    targets = []
    seen = set()
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            for line in f:
                line = line.split("#", 1)[0].strip()
                if not line or line in seen:
                    continue
                seen.add(line)
                targets.append(line)
    except UnicodeDecodeError:
        raise ValueError(f"File encoding error: {filepath}. Use UTF-8 encoding.")

    return targets


def calculate_scan_time(total_seconds: float) -> str:
    """
    Format a scan duration.

    Examples:
        >>> calculate_scan_time(1.5)
        '1.50 seconds'
        >>> calculate_scan_time(65)
        '1m 5s'
    """
    total_seconds = float(total_seconds)
    if total_seconds < 60:
        return f"{total_seconds:.2f} seconds"
    elif total_seconds < 3600:
        minutes = int(total_seconds // 60)
        seconds = int(total_seconds % 60)
        return f"{minutes}m {seconds}s"
    else:
        hours = int(total_seconds // 3600)
        minutes = int((total_seconds % 3600) // 60)
        return f"{hours}h {minutes}m"
