"""
Report generation modules for sslaudit
by BitSpectreLabs
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from sslaudit.core.scanner import ScanError, ScanReport

from sslaudit.reports.console import (
    print_certificate,
    print_ciphers,
    print_errors,
    print_report,
)


def get_timestamp() -> str:
    """Get current timestamp string."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def report_to_dict(report: ScanReport) -> Dict[str, Any]:
    """Convert one host's ScanReport to a JSON-serializable dictionary."""
    return {
        "target": f"{report.target[0]}:{report.target[1]}",
        "summary": report.get_summary(),
        "errors": [error.to_dict() for error in report.errors],
        "result": report.result.to_dict(),
    }


def generate_json_report(
    reports: List[ScanReport],
    output_path: Path,
    skipped: Optional[List[ScanError]] = None,
) -> None:
    """
    Generate JSON report.

    Args:
        reports: One ScanReport per scanned host
        output_path: Output file path
        skipped: Errors for hosts that were not scanned at all
    """
    document = {
        "scan_info": {
            "tool": "sslaudit",
            "vendor": "BitSpectreLabs",
            "timestamp": get_timestamp(),
            "hosts": len(reports),
        },
        "hosts": [report_to_dict(report) for report in reports],
        "skipped": [error.to_dict() for error in skipped or []],
    }

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, default=str)


__all__ = [
    "generate_json_report",
    "get_timestamp",
    "print_certificate",
    "print_ciphers",
    "print_errors",
    "print_report",
    "report_to_dict",
]
