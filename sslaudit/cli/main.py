"""
sslaudit CLI - Command Line Interface
by BitSpectreLabs
"""

import sys
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from sslaudit.core.catalog import ProtocolVersion
from sslaudit.core.config import ConfigError, ConfigManager, SslauditConfig, VALID_LOG_LEVELS
from sslaudit.core.host_command import HostCommand
from sslaudit.core.scanner import ScanError, ScanOptions, ScanReport
from sslaudit.core.utils import parse_targets_from_file
from sslaudit.reports import generate_json_report
from sslaudit.reports.console import print_errors, print_report


app = typer.Typer(
    name="sslaudit",
    help="sslaudit - SSL/TLS cipher suite auditor by BitSpectreLabs",
    add_completion=False,
    no_args_is_help=True
)

console = Console()

COMMANDS = ["scan", "version", "config", "--help", "-h"]


def setup_logging(level: str, log_file: Optional[str] = None) -> None:
    """Route sslaudit log records to the console (and optionally a file)."""
    root = logging.getLogger("sslaudit")
    root.handlers.clear()
    level = level.upper()
    root.setLevel(level if level in VALID_LOG_LEVELS else "WARNING")
    root.propagate = False

    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)

    if log_file:
        file_handler = logging.FileHandler(Path(log_file).expanduser(), encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root.addHandler(file_handler)


def load_config() -> SslauditConfig:
    manager = ConfigManager()
    try:
        config = manager.load()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}", style="bold")
        sys.exit(1)

    console.no_color = not config.output.color_enabled
    return config


def run_host(target: str, options: ScanOptions, verbose: bool) -> HostCommand:
    """Scan one host and print its report or its errors."""
    command = HostCommand(target, options).execute()
    if command.results is None:
        print_errors(console, command.label, command.errors)
        return command

    print_report(console, command.report, verbose=verbose)
    if command.errors:
        print_errors(console, command.label, command.errors)
    return command


@app.command(name="scan", help="Probe a host for legacy protocols and weak ciphers")
def scan(
    target: Optional[str] = typer.Argument(None, help="Target host or host:port (default port 443)"),
    targets_file: Optional[Path] = typer.Option(None, "--targets", "-f", help="Read hosts from file (one per line)"),

    # Version filter
    ssl2: bool = typer.Option(False, "--ssl2", help="Only probe SSLv2"),
    ssl3: bool = typer.Option(False, "--ssl3", help="Only probe SSLv3"),
    tls1: bool = typer.Option(False, "--tls1", help="Only probe TLSv1"),

    # Modes
    cert_only: bool = typer.Option(False, "--cert", help="Only fetch the certificate, skip cipher probes"),
    no_failed: bool = typer.Option(False, "--no-failed", help="Omit failed probes from the results"),

    # Options
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Connect/handshake timeout in seconds"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Concurrent probes"),
    scan_timeout: Optional[float] = typer.Option(None, "--scan-timeout", help="Overall deadline per host in seconds"),

    # Output
    json_output: Optional[Path] = typer.Option(None, "--json", help="Save JSON output"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="List rejected and failed probes too"),
    debug: bool = typer.Option(False, "--debug", help="Debug logging"),
):
    """
    Probe a host with one handshake per protocol version and cipher.

    Examples:

      sslaudit scan example.com

      sslaudit scan example.com:8443 --ssl3 --tls1

      sslaudit scan --targets hosts.txt --json audit.json
    """
    if not target and not targets_file:
        console.print("[red]Error:[/red] Either target or --targets must be specified", style="bold")
        sys.exit(1)

    if target and targets_file:
        console.print("[red]Error:[/red] Cannot specify both target and --targets", style="bold")
        sys.exit(1)

    config = load_config()
    setup_logging("DEBUG" if debug else config.advanced.log_level, config.advanced.log_file)

    versions = [
        version
        for version, wanted in (
            (ProtocolVersion.SSLv2, ssl2),
            (ProtocolVersion.SSLv3, ssl3),
            (ProtocolVersion.TLSv1, tls1),
        )
        if wanted
    ]

    try:
        options = ScanOptions.from_config(
            config,
            versions=frozenset(versions) or None,
            only_cert=cert_only or None,
            no_failed=no_failed or None,
            timeout=timeout,
            max_workers=workers,
            scan_timeout=scan_timeout,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}", style="bold")
        sys.exit(1)

    verbose = verbose or config.output.verbose
    reports: List[ScanReport] = []
    skipped: List[ScanError] = []

    if targets_file:
        try:
            hosts = parse_targets_from_file(targets_file)
        except (FileNotFoundError, ValueError) as e:
            console.print(f"[red]Error:[/red] {e}", style="bold")
            sys.exit(1)

        console.print(f"[cyan]Loaded {len(hosts)} targets from {targets_file}[/cyan]")
        for host in hosts:
            command = run_host(host, options, verbose)
            if command.report is not None:
                reports.append(command.report)
            else:
                skipped.extend(command.errors)
    else:
        command = run_host(target, options, verbose)
        if command.report is None:
            sys.exit(1)
        reports.append(command.report)

    if json_output:
        generate_json_report(reports, json_output, skipped=skipped)
        console.print(f"\n[green]✓[/green] Report saved to: {json_output}")


@app.command(name="version")
def show_version():
    """Show version information."""
    from sslaudit import __version__
    console.print(f"[bold cyan]sslaudit[/bold cyan] version [yellow]{__version__}[/yellow]")
    console.print("by [bold]BitSpectreLabs[/bold]")


@app.command(name="config")
def manage_config(
    action: str = typer.Argument(..., help="Action: show, init, path, get, set, validate"),
    key: Optional[str] = typer.Argument(None, help="Config key (e.g., scan.workers)"),
    value: Optional[str] = typer.Argument(None, help="Value to set"),
    section: Optional[str] = typer.Option(None, "--section", "-s", help="Show specific section"),
    file_path: Optional[Path] = typer.Option(None, "--file", help="Config file path"),
    project: bool = typer.Option(False, "--project", "-p", help="Create project-level config"),
):
    """
    Manage sslaudit configuration.

    Configuration priority (highest to lowest):
      1. CLI arguments
      2. Environment variables (SSLAUDIT_*)
      3. Project config (.sslaudit.toml)
      4. User config (~/.sslaudit/config.toml)
      5. Built-in defaults

    Examples:

      sslaudit config show --section scan

      sslaudit config init

      sslaudit config set scan.workers 32

      sslaudit config validate
    """
    manager = ConfigManager(user_config_path=file_path) if file_path else ConfigManager()

    if action == "show":
        try:
            manager.load()
            output = manager.show_config(section=section)
        except ConfigError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        sources = manager.get_loaded_sources()
        console.print(f"[dim]Loaded from: {', '.join(sources)}[/dim]\n")
        console.print(output, markup=False)

    elif action == "init":
        config_path = Path.cwd() / ConfigManager.PROJECT_CONFIG_NAME if project else manager.user_config_path
        try:
            path = manager.init_config(path=config_path)
        except ConfigError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        console.print(f"[green]✓[/green] Configuration file created: {path}")
        console.print("\nEdit the file to customize your settings.")

    elif action == "path":
        console.print(f"User config: {manager.user_config_path}")
        console.print(f"Project config name: {ConfigManager.PROJECT_CONFIG_NAME}")

    elif action == "get":
        if not key:
            console.print("[red]Error:[/red] Key required (e.g., scan.workers)")
            sys.exit(1)
        try:
            manager.load()
            console.print(f"{key} = {manager.get_value(key)}", markup=False)
        except (ConfigError, KeyError) as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

    elif action == "set":
        if not key or value is None:
            console.print("[red]Error:[/red] Key and value required (e.g., scan.workers 32)")
            sys.exit(1)

        try:
            manager.load()
            manager.set_value(key, value)
        except (ConfigError, KeyError, ValueError) as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

        errors = manager.validate()
        if errors:
            console.print("[red]Not saved, configuration would be invalid:[/red]\n")
            for error in errors:
                console.print(f"  • {error}", markup=False)
            sys.exit(1)

        path = manager.save_user_config()
        console.print(f"[green]✓[/green] Set {escape(key)} = {escape(value)}")
        console.print(f"[dim]Saved to: {path}[/dim]")

    elif action == "validate":
        try:
            manager.load()
        except ConfigError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

        errors = manager.validate()
        if errors:
            console.print("[red]Configuration validation failed:[/red]\n")
            for error in errors:
                console.print(f"  • {error}", markup=False)
            sys.exit(1)
        console.print("[green]✓[/green] Configuration is valid")
        console.print(f"[dim]Loaded from: {', '.join(manager.get_loaded_sources())}[/dim]")

    else:
        console.print(f"[red]Error:[/red] Unknown action '{action}'")
        console.print("Valid actions: show, init, path, get, set, validate")
        sys.exit(1)


def main():
    """Main entry point."""
    # A bare target is shorthand for "scan <target>"
    if len(sys.argv) > 1 and sys.argv[1] not in COMMANDS and not sys.argv[1].startswith("-"):
        sys.argv.insert(1, "scan")

    app()


if __name__ == "__main__":
    main()
