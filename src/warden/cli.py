"""
WARDEN - Nikto Scan Orchestrator

Command line entry point.

Usage:
    warden scan https://example.com
    warden scan example.com --port 8443 --ssl --format json --output results.json
    warden scan example.com --dry-run
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import OrchestratorConfig
from .core import ScanOrchestrator, ScanResult, ScanStatus
from .errors import OrchestratorError
from .logging_config import configure_logging


console = Console()

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
    "info": "dim",
}


def load_config(config_path: Optional[str]) -> OrchestratorConfig:
    if config_path:
        return OrchestratorConfig.from_yaml(config_path)
    return OrchestratorConfig.from_env()


@click.group()
@click.version_option(version=__version__, prog_name="WARDEN")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              help="YAML config file (environment variables still override it)")
@click.option("--log-level", default=None,
              type=click.Choice(["debug", "info", "warn", "error"]),
              help="Log level (default: from config)")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines on stderr")
@click.pass_context
def cli(ctx, config_path: Optional[str], log_level: Optional[str], json_logs: bool):
    """
    WARDEN - Nikto Scan Orchestrator

    Runs Nikto scans under a concurrency ceiling and reports structured findings.
    """
    try:
        config = load_config(config_path)
    except OrchestratorError as e:
        raise click.ClickException(str(e))

    configure_logging(log_level or config.log_level, json_logs=json_logs)
    ctx.obj = config


@cli.command()
@click.argument("target")
@click.option("--port", type=int, help="Port to scan (default: Nikto's, 80)")
@click.option("--ssl", is_flag=True, help="Force SSL mode")
@click.option("--nossl", is_flag=True, help="Disable SSL")
@click.option("--nolookup", is_flag=True, help="Disable DNS lookups")
@click.option("--vhost", help="Virtual host for the Host header")
@click.option("--timeout", type=int, help="Scan timeout in seconds (default: from config)")
@click.option("--format", "output_format", default="text",
              type=click.Choice(["json", "text"]), help="Nikto output format (default: text)")
@click.option("--dry-run", is_flag=True, help="Show the command without running it")
@click.option("--poll-interval", default=2.0, type=float, help="Seconds between status checks")
@click.option("--output", type=click.Path(), help="Save results to JSON file")
@click.pass_obj
def scan(
    config: OrchestratorConfig,
    target: str,
    port: Optional[int],
    ssl: bool,
    nossl: bool,
    nolookup: bool,
    vhost: Optional[str],
    timeout: Optional[int],
    output_format: str,
    dry_run: bool,
    poll_interval: float,
    output: Optional[str],
):
    """
    Run a Nikto scan against TARGET and wait for it to finish.

    Example:
        warden scan https://example.com --format json
    """
    options = {
        "target": target,
        "port": port,
        "ssl": ssl,
        "nossl": nossl,
        "nolookup": nolookup,
        "vhost": vhost,
        "timeout": timeout,
        "output_format": output_format,
        "dry_run": dry_run,
    }

    console.print(f"[green]Target:[/green] {target}")
    console.print(f"[green]Mode:[/green] {config.execution_mode.value}")
    console.print()

    try:
        result = asyncio.run(run_scan(config, options, poll_interval))
    except OrchestratorError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    print_result(result)

    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            json.dump(result.to_dict(), f, indent=2)
        console.print(f"\n[green]Results saved to:[/green] {output_path}")

    if result.status is not ScanStatus.COMPLETED:
        sys.exit(1)


async def run_scan(
    config: OrchestratorConfig,
    options: dict,
    poll_interval: float,
) -> ScanResult:
    """Start a scan and poll its status until it is terminal"""
    orchestrator = ScanOrchestrator(config)
    orchestrator.install_shutdown_hooks()

    try:
        result = await orchestrator.start_scan(options)

        if options.get("dry_run"):
            scan = orchestrator.registry.get(result.scan_id)
            console.print(f"[cyan]{scan.output_text()}[/cyan]")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task(f"[cyan]Scanning {result.target}...", total=None)

            while not result.status.is_terminal:
                await asyncio.sleep(poll_interval)
                result = orchestrator.get_scan_status(result.scan_id)

            progress.update(task, description="[green]Scan complete!")

        return orchestrator.get_scan_status(result.scan_id)

    finally:
        await orchestrator.aclose()


def print_result(result: ScanResult):
    """Render a scan result with rich"""
    status_style = "green" if result.status is ScanStatus.COMPLETED else "red"
    console.print(f"[bold]Scan ID:[/bold] {result.scan_id}")
    console.print(f"[bold]Status:[/bold] [{status_style}]{result.status.value}[/{status_style}]")
    if result.error:
        console.print(f"[bold]Error:[/bold] {result.error}")

    if not result.findings:
        if result.status is ScanStatus.COMPLETED:
            console.print("\n  No findings reported")
        return

    table = Table(title=f"Findings ({len(result.findings)})")
    table.add_column("Severity", no_wrap=True)
    table.add_column("Method", style="cyan", no_wrap=True)
    table.add_column("URI", style="cyan")
    table.add_column("Description")
    table.add_column("Reference", style="dim")

    for finding in result.findings:
        severity = finding.severity.value
        style = SEVERITY_STYLES.get(severity, "")
        table.add_row(
            f"[{style}]{severity.upper()}[/{style}]" if style else severity.upper(),
            finding.method,
            finding.uri or "-",
            finding.description,
            finding.reference or "",
        )

    console.print()
    console.print(table)


@cli.command("config")
@click.pass_obj
def show_config(config: OrchestratorConfig):
    """Show the effective configuration"""
    table = Table(title="WARDEN Configuration")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    for key, value in config.to_public_dict().items():
        table.add_row(key, str(value))

    console.print(table)


@cli.command()
def version():
    """Show version information"""
    console.print(f"\n[bold cyan]WARDEN Scan Orchestrator v{__version__}[/bold cyan]\n")


def main():
    cli()


if __name__ == "__main__":
    main()
