"""CLI interface for desync-scanner.

Provides a command-line interface for scanning targets for
HTTP request smuggling vulnerabilities with timing probes.
"""

import asyncio
import sys
from typing import List, Optional, Sequence, Tuple

import click
from rich import box
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from desync_scanner import __version__
from desync_scanner.analysis.reporter import Reporter
from desync_scanner.core.config import (
    DetectionConfig,
    ExportConfig,
    NetworkConfig,
    OutputFormat,
    PayloadConfig,
    ReportConfig,
    ScanConfig,
)
from desync_scanner.core.engine import ProgressReporter, ScanOrchestrator
from desync_scanner.core.exceptions import ConfigurationError
from desync_scanner.core.models import CHECK_ORDER, CheckType, ScanResult, Target, Verdict
from desync_scanner.network.cookies import fetch_cookies
from desync_scanner.utils.helpers import normalize_target_url, parse_header_arg
from desync_scanner.utils.logging import console, setup_logging


BANNER = r"""
[bold cyan]
     _
  __| | ___  ___ _   _ _ __   ___      ___  ___ __ _ _ __  _ __
 / _` |/ _ \/ __| | | | '_ \ / __|____/ __|/ __/ _` | '_ \| '_ \
| (_| |  __/\__ \ |_| | | | | (_|_____\__ \ (_| (_| | | | | | | |
 \__,_|\___||___/\__, |_| |_|\___|    |___/\___\__,_|_| |_|_| |_|
                 |___/
[/bold cyan]
[dim]HTTP Request Smuggling Timing Scanner[/dim]
"""


def print_banner():
    """Print the tool banner."""
    console.print(BANNER)


class RichProgressReporter(ProgressReporter):
    """Feeds orchestrator callbacks into one rich progress bar.

    Probe totals are added per check as it starts, so the bar stays
    correct when several targets are scanned at once.
    """

    def __init__(self, progress: Progress):
        self.progress = progress
        self.total = 0
        self.task = progress.add_task("[cyan]Starting...", total=0)

    def start_check(self, target: Target, check_type: CheckType, total_probes: int) -> None:
        self.total += total_probes
        self.progress.update(
            self.task,
            total=self.total,
            description=f"[cyan]{check_type.value}[/cyan] {target.host_header}",
        )

    def advance(self, n: int = 1) -> None:
        self.progress.advance(self.task, n)


@click.group()
@click.version_option(version=__version__, prog_name="desync-scanner")
def cli():
    """desync-scanner: HTTP Request Smuggling Timing Scanner

    Detect CL.TE, TE.CL, TE.TE, h2c and HTTP/2 translation desyncs by
    comparing the timing of ambiguous requests with a normal baseline.
    """
    pass


@cli.command()
@click.argument("urls", nargs=-1)
@click.option(
    "--method", "-m",
    default="POST",
    show_default=True,
    help="HTTP method used by attack requests"
)
@click.option(
    "--timeout", "-t",
    type=float,
    default=10.0,
    show_default=True,
    help="Connect timeout and per-probe deadline in seconds"
)
@click.option(
    "--header", "-H",
    multiple=True,
    help="Custom header added to every probe (e.g., -H 'Authorization: Bearer token')"
)
@click.option(
    "--checks", "-c",
    type=str,
    default=None,
    help="Comma-separated checks to run (e.g., cl-te,te-cl or CL.TE,H2C)"
)
@click.option(
    "--vhost",
    type=str,
    default=None,
    help="Virtual host for the Host header and TLS SNI"
)
@click.option(
    "--cookies",
    is_flag=True,
    help="Fetch cookies from the target first and send them with every probe"
)
@click.option(
    "--export-payloads",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory to write triggering payloads to"
)
@click.option(
    "--exit-first",
    is_flag=True,
    help="Stop scanning a target after its first vulnerable check"
)
@click.option(
    "--exhaustive",
    is_flag=True,
    help="Evaluate every variant even after a positive"
)
@click.option(
    "--concurrency",
    type=int,
    default=4,
    show_default=True,
    help="Targets scanned in parallel"
)
@click.option(
    "--multiplier",
    type=float,
    default=3.0,
    show_default=True,
    help="Attack time must reach baseline times this factor"
)
@click.option(
    "--min-delay-ms",
    type=float,
    default=1000.0,
    show_default=True,
    help="Attack time must also reach this many milliseconds"
)
@click.option(
    "--flag-timeout-status",
    is_flag=True,
    help="Also flag attacks answered with 408 or 504"
)
@click.option(
    "--insecure/--verify-tls",
    default=True,
    show_default=True,
    help="Skip or enforce TLS certificate verification"
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    help="Output file for scan results"
)
@click.option(
    "--format", "-f",
    type=click.Choice(["json", "text", "sarif"]),
    default="json",
    help="Output format"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Verbose output"
)
@click.option(
    "--quiet", "-q",
    is_flag=True,
    help="Quiet mode (minimal output)"
)
def scan(
    urls: Tuple[str, ...],
    method: str,
    timeout: float,
    header: Tuple[str, ...],
    checks: Optional[str],
    vhost: Optional[str],
    cookies: bool,
    export_payloads: Optional[str],
    exit_first: bool,
    exhaustive: bool,
    concurrency: int,
    multiplier: float,
    min_delay_ms: float,
    flag_timeout_status: bool,
    insecure: bool,
    output: Optional[str],
    format: str,
    verbose: bool,
    quiet: bool,
):
    """Scan URLS for HTTP request smuggling vulnerabilities.

    URLS default to https:// when no scheme is given. When no URL is
    passed, newline-separated URLs are read from stdin.

    Exit status is 1 when any vulnerability is found, 2 on invalid
    input and 130 when interrupted.

    Examples:

      desync-scanner scan https://example.com

      desync-scanner scan https://example.com -c cl-te,te-cl --exit-first

      cat urls.txt | desync-scanner scan -f sarif -o results.sarif
    """
    if not quiet:
        print_banner()

    setup_logging(level="DEBUG" if verbose else "WARNING", quiet=quiet)

    try:
        raw_urls = list(urls) or _read_stdin_urls()
        if not raw_urls:
            raise ConfigurationError(["No target URLs given on the command line or stdin"])

        custom_headers = tuple(parse_header_arg(h) for h in header)
        enabled_checks = _parse_checks(checks)
        targets = [
            Target.from_url(normalize_target_url(url), custom_headers, (), vhost)
            for url in raw_urls
        ]

        config = ScanConfig(
            enabled_checks=enabled_checks,
            exit_first=exit_first,
            exhaustive=exhaustive,
            concurrency=concurrency,
            network=NetworkConfig(
                connect_timeout=timeout,
                deadline=timeout,
                verify_tls=not insecure,
            ),
            detection=DetectionConfig(
                timing_multiplier=multiplier,
                min_delay_ms=min_delay_ms,
                timeout_status_codes=frozenset({408, 504}) if flag_timeout_status else frozenset(),
            ),
            payload=PayloadConfig(method=method),
            export=ExportConfig(directory=export_payloads),
            report=ReportConfig(format=OutputFormat(format), output_file=output),
            verbose=verbose,
            quiet=quiet,
        )
        errors = config.validate()
        if errors:
            raise ConfigurationError(errors)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e.message}")
        sys.exit(2)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(2)

    try:
        results = asyncio.run(_run_scan_with_progress(config, targets, cookies, quiet))
    except KeyboardInterrupt:
        console.print("\n[yellow]Scan interrupted by user[/yellow]")
        sys.exit(130)

    reporter = Reporter(config.report)
    report_content = reporter.generate(results, config.report.format)

    if output:
        try:
            with open(output, "w", encoding="utf-8") as f:
                f.write(report_content)
        except OSError as e:
            console.print(f"[red]Error:[/red] Cannot write report to {output}: {e}")
            sys.exit(2)
        if not quiet:
            console.print(f"\n[green]Report saved to:[/green] {output}")
    else:
        click.echo(report_content)

    if not quiet:
        _print_summary(results)

    if any(result.vulnerability_count for result in results):
        sys.exit(1)
    sys.exit(0)


def _read_stdin_urls() -> List[str]:
    stdin = click.get_text_stream("stdin")
    if stdin.isatty():
        return []
    return [line.strip() for line in stdin if line.strip()]


def _parse_checks(checks_str: Optional[str]) -> List[CheckType]:
    """Parse a comma list of check tags into CheckTypes in declared order.

    Raises:
        ValueError: On an unknown tag
    """
    if not checks_str:
        return list(CHECK_ORDER)

    selected = {CheckType.from_tag(tag) for tag in checks_str.split(",") if tag.strip()}
    return [check for check in CHECK_ORDER if check in selected]


async def _with_cookies(
    targets: Sequence[Target],
    config: ScanConfig,
) -> List[Target]:
    """Copy each target with cookies fetched from its URL."""
    updated = []
    for target in targets:
        jar = await fetch_cookies(
            target.url,
            target.headers,
            timeout=config.network.connect_timeout,
            verify_tls=config.network.verify_tls,
        )
        if jar and not config.quiet:
            console.print(f"[dim]Cookies for {target.host_header}: {len(jar)}[/dim]")
        updated.append(
            Target(
                host=target.host,
                port=target.port,
                path=target.path,
                use_tls=target.use_tls,
                headers=target.headers,
                cookies=tuple(jar),
                vhost=target.vhost,
            )
        )
    return updated


async def _run_scan_with_progress(
    config: ScanConfig,
    targets: Sequence[Target],
    cookies: bool,
    quiet: bool,
) -> List[ScanResult]:
    """Run scan with progress display."""
    if cookies:
        targets = await _with_cookies(targets, config)

    if quiet:
        return await ScanOrchestrator(config).run_many(targets)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        orchestrator = ScanOrchestrator(config, progress=RichProgressReporter(progress))
        return await orchestrator.run_many(targets)


def _print_summary(results: Sequence[ScanResult]):
    """Print scan summary table."""
    console.print()

    table = Table(title="Scan Summary", box=box.ROUNDED)
    table.add_column("Target", style="cyan")
    table.add_column("Check", style="white")
    table.add_column("Verdict")
    table.add_column("Payload", justify="right")
    table.add_column("Baseline", justify="right", style="dim")
    table.add_column("Attack", justify="right", style="yellow")

    styles = {
        Verdict.VULNERABLE: "[vulnerability]VULNERABLE[/vulnerability]",
        Verdict.NOT_VULNERABLE: "[safe]not vulnerable[/safe]",
        Verdict.INCONCLUSIVE: "[inconclusive]inconclusive[/inconclusive]",
    }

    for result in results:
        for check in result.checks:
            table.add_row(
                result.target.url,
                check.check_type.value,
                styles[check.verdict],
                "" if check.payload_index is None else str(check.payload_index),
                "" if check.baseline_ms is None else f"{check.baseline_ms:.0f}ms",
                "" if check.attack_ms is None else f"{check.attack_ms:.0f}ms",
            )

    console.print(table)

    total = sum(result.vulnerability_count for result in results)
    console.print(
        f"\n[bold]Targets:[/bold] {len(results)}  "
        f"[bold]Vulnerabilities:[/bold] [vulnerability]{total}[/vulnerability]"
    )


@cli.command()
@click.option("--method", "-m", default="POST", help="Method used to render the variants")
def list_checks(method: str):
    """List check types with their variant counts."""
    print_banner()

    from desync_scanner.payloads.catalog import variant_counts
    from desync_scanner.payloads.generator import RequestParts

    counts = variant_counts(RequestParts(path="/", host="example.com", method=method))

    table = Table(title="Supported Checks", box=box.ROUNDED)
    table.add_column("Check", style="cyan")
    table.add_column("Rule", style="dim")
    table.add_column("Variants", style="white", justify="right")
    table.add_column("Description", style="white")

    descriptions = {
        CheckType.CL_TE: "Front end uses Content-Length, back end Transfer-Encoding",
        CheckType.TE_CL: "Front end uses Transfer-Encoding, back end Content-Length",
        CheckType.TE_TE: "Both use Transfer-Encoding, one is fooled by obfuscation",
        CheckType.H2C: "HTTP/1.1 to cleartext HTTP/2 upgrade abuse",
        CheckType.H2: "HTTP/2 to HTTP/1.1 translation abuse",
    }

    for check_type in CHECK_ORDER:
        table.add_row(
            check_type.value,
            check_type.rule_id,
            str(counts[check_type]),
            descriptions[check_type],
        )

    console.print(table)


@cli.command()
@click.option("--show-headers", is_flag=True, help="Print every obfuscated header")
def list_obfuscations(show_headers: bool):
    """List all Transfer-Encoding obfuscations."""
    print_banner()

    from desync_scanner.payloads.obfuscation import (
        TE_OBFUSCATIONS,
        TE_TE_PAIRS,
        get_categories_summary,
    )
    from desync_scanner.utils.helpers import printable

    summary = get_categories_summary()

    console.print(f"\n[cyan]Total obfuscations:[/cyan] {len(TE_OBFUSCATIONS)}")
    console.print(f"[cyan]TE.TE pairs:[/cyan] {len(TE_TE_PAIRS)}\n")

    table = Table(title="Obfuscation Categories", box=box.ROUNDED)
    table.add_column("Category", style="cyan")
    table.add_column("Count", style="white")

    for cat, count in summary.items():
        table.add_row(cat.value, str(count))

    console.print(table)

    if show_headers:
        headers = Table(title="Obfuscated Headers", box=box.ROUNDED)
        headers.add_column("#", justify="right", style="dim")
        headers.add_column("Header", style="magenta")
        headers.add_column("Description", style="white")
        for index, obfuscation in enumerate(TE_OBFUSCATIONS):
            headers.add_row(
                str(index),
                printable(obfuscation.header.encode("latin-1")),
                obfuscation.description,
            )
        console.print(headers)


if __name__ == "__main__":
    cli()
