"""
Console report for sslaudit
by BitSpectreLabs

Renders a scanned host's certificate, cipher table and compliance
verdict with rich.
"""

from typing import Iterable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sslaudit.core.certificate import Certificate
from sslaudit.core.result import CipherRecord, CipherStatus, Result
from sslaudit.core.scanner import ScanError, ScanReport


_STATUS_STYLES = {
    CipherStatus.ACCEPTED: "green",
    CipherStatus.REJECTED: "dim",
    CipherStatus.FAILED: "yellow",
}


def print_certificate(console: Console, cert: Optional[Certificate]) -> None:
    """Print the leaf certificate fields and extensions."""
    console.print("[bold cyan]SSL Certificate:[/bold cyan]")
    if cert is None:
        console.print("  [yellow]No certificate available[/yellow]")
        return

    console.print(f"  Version: {cert.version}")
    console.print(f"  Serial Number: {cert.serial_hex}")
    console.print(f"  Signature Algorithm: {cert.signature_algorithm}")
    console.print(f"  Issuer: {cert.issuer}", markup=False)
    console.print(f"  Not valid before: {cert.not_before.strftime('%Y-%m-%d %H:%M:%S %Z')}")
    console.print(f"  Not valid after: {cert.not_after.strftime('%Y-%m-%d %H:%M:%S %Z')}")
    console.print(f"  Subject: {cert.subject}", markup=False)
    console.print(f"  Public Key: {cert.public_key_type} ({cert.public_key_bits} bit)")
    console.print(f"  Fingerprint (SHA256): {cert.fingerprint_sha256}")

    if cert.is_expired():
        console.print("  [red]Status: EXPIRED[/red]")
    elif cert.days_until_expiry() < 30:
        console.print(f"  [yellow]Status: Expires in {cert.days_until_expiry()} days[/yellow]")

    if cert.is_self_signed:
        console.print("  [yellow]Self-Signed: Yes[/yellow]")

    if cert.extensions:
        console.print("  X509v3 Extensions:")
        for ext in cert.extensions:
            critical = ": critical" if ext.critical else ""
            console.print(f"    {ext.label}{critical}", markup=False)
            console.print(f"      {ext.value}", markup=False)

    console.print("  Verify Certificate: NOT IMPLEMENTED")


def build_cipher_table(records: Iterable[CipherRecord], title: str = "Cipher Suites") -> Table:
    """Build a rich table of cipher records, in the order given."""
    table = Table(title=title)
    table.add_column("Status", style="bold")
    table.add_column("Version", style="cyan")
    table.add_column("Cipher")
    table.add_column("Bits", justify="right")
    table.add_column("Strength")

    for record in records:
        style = _STATUS_STYLES[record.status]
        if record.status == CipherStatus.ACCEPTED:
            strength = "[red]weak[/red]" if record.weak else "[green]strong[/green]"
            bits = str(record.key_length)
        else:
            strength = ""
            bits = ""
        table.add_row(
            f"[{style}]{record.status.value.capitalize()}[/{style}]",
            record.version.value,
            record.cipher,
            bits,
            strength,
        )
    return table


def print_ciphers(console: Console, result: Result, verbose: bool = False) -> None:
    """
    Print the cipher table and the compliance verdict.

    Only accepted ciphers are listed unless verbose is set.
    """
    if verbose:
        shown = result.sorted_ciphers()
    else:
        shown = list(result.each_accepted())

    if shown:
        console.print(build_cipher_table(shown))
    else:
        console.print("  [yellow]No accepted ciphers[/yellow]")

    console.print("\n[bold cyan]Protocol Support:[/bold cyan]")
    for version in result.supported_versions:
        if result.supports_version(version):
            console.print(f"  [red]{version.value}[/red] supported")
        else:
            console.print(f"  [green]{version.value}[/green] not supported")

    if any(record.cipher == "RC4-MD5" for record in result.accepted()):
        console.print("  [red]RC4-MD5 accepted[/red]")

    console.print("\n[bold cyan]Compliance:[/bold cyan]")
    if result.standards_compliant():
        console.print("  [green bold]Standards compliant[/green bold]")
    else:
        weak = len(result.weak_ciphers())
        console.print(f"  [red bold]NOT standards compliant[/red bold] ({weak} weak ciphers accepted)")


def print_errors(console: Console, target: str, errors: List[ScanError]) -> None:
    """Print the errors collected for one host."""
    messages = " ".join(str(e) for e in errors)
    console.print(f"[red]Error\\[{escape(target)}]:[/red] ({escape(messages)})", highlight=False)


def print_report(console: Console, report: ScanReport, verbose: bool = False) -> None:
    """Print the full console report for one host."""
    host, port = report.target
    console.print(f"\n[bold]SSL/TLS Cipher Audit: {host}:{port}[/bold]\n")

    print_certificate(console, report.result.cert)
    console.print()
    print_ciphers(console, report.result, verbose=verbose)

    summary = report.get_summary()
    console.print(
        f"\n[dim]{summary['probes_dispatched']} probes in {summary['scan_duration']}[/dim]"
    )
    if report.probes_abandoned:
        console.print(f"[yellow]{report.probes_abandoned} probes abandoned at the scan deadline[/yellow]")
