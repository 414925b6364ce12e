"""Structured logging utilities for desync-scanner.

Uses structlog for structured logging with Rich for console output.
"""

import logging
from typing import Optional, Any, Dict
from datetime import datetime, timezone

import structlog
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme
from rich.style import Style


SCANNER_THEME = Theme({
    "info": Style(color="cyan"),
    "warning": Style(color="yellow", bold=True),
    "error": Style(color="red", bold=True),
    "success": Style(color="green", bold=True),
    "vulnerability": Style(color="red", bold=True),
    "inconclusive": Style(color="yellow"),
    "safe": Style(color="green"),
    "payload": Style(color="magenta"),
    "timing": Style(color="blue"),
    "endpoint": Style(color="cyan", italic=True),
})

# Shared console instance; stderr keeps stdout clean for reports
console = Console(theme=SCANNER_THEME, stderr=True)


def add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add ISO timestamp to log events."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
    quiet: bool = False,
) -> structlog.stdlib.BoundLogger:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, render events as JSON instead of key=value
        log_file: Optional file path to write logs to
        quiet: If True, suppress console output

    Returns:
        Configured structlog logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers = []

    if not quiet:
        rich_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        rich_handler.setLevel(log_level)
        handlers.append(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
        handlers.append(file_handler)

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        add_timestamp,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.processors.KeyValueRenderer(
            key_order=["event"],
            drop_missing=True,
        ))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("desync_scanner")


def get_logger(name: str = "desync_scanner") -> structlog.stdlib.BoundLogger:
    """Get a logger instance with the given name.

    Args:
        name: Logger name (usually module name)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class ScanLogger:
    """User-facing scan messages rendered with Rich."""

    def __init__(self, verbose: bool = False, quiet: bool = False):
        self.verbose = verbose
        self.quiet = quiet
        self.logger = get_logger("desync_scanner.scan")

    def scan_start(self, target: str, checks: int) -> None:
        """Log scan start."""
        self.logger.info("scan.start", target=target, checks=checks)
        if not self.quiet:
            console.print(f"\n[bold cyan]Scanning[/bold cyan] [endpoint]{target}[/endpoint]")

    def scan_complete(self, target: str, duration: float, vulnerabilities: int) -> None:
        """Log scan completion."""
        self.logger.info(
            "scan.complete",
            target=target,
            duration=round(duration, 3),
            vulnerabilities=vulnerabilities,
        )
        if not self.quiet:
            console.print(
                f"[bold green]Done[/bold green] {target} in {duration:.2f}s | "
                f"Vulnerabilities: [vulnerability]{vulnerabilities}[/vulnerability]"
            )

    def check_start(self, check: str, variants: int) -> None:
        """Log the start of one check type."""
        if self.verbose and not self.quiet:
            console.print(f"[info]Checking[/info] {check} ({variants} variants)")

    def probe_result(
        self,
        check: str,
        index: int,
        elapsed_ms: float,
        outcome: str,
    ) -> None:
        """Log a single variant measurement."""
        if self.verbose and not self.quiet:
            console.print(
                f"  [payload]{check}#{index}[/payload] "
                f"[timing]{elapsed_ms:.0f}ms[/timing] {outcome}"
            )

    def vulnerability_found(
        self,
        check: str,
        target: str,
        index: int,
        evidence: str,
    ) -> None:
        """Log vulnerability discovery."""
        if not self.quiet:
            console.print(
                f"[vulnerability]VULNERABLE[/vulnerability] {check} on "
                f"[endpoint]{target}[/endpoint] (payload {index})\n"
                f"  {evidence}"
            )

    def inconclusive(self, check: str, target: str, reason: str) -> None:
        """Log a check that could not reach a verdict."""
        if not self.quiet:
            console.print(
                f"[inconclusive]INCONCLUSIVE[/inconclusive] {check} on "
                f"[endpoint]{target}[/endpoint]: {reason}"
            )

    def export_written(self, path: str) -> None:
        if self.verbose and not self.quiet:
            console.print(f"  [success]Payload exported:[/success] {path}")

    def export_failed(self, message: str) -> None:
        self.error(f"Payload export failed: {message}")

    def error(self, message: str, exception: Optional[Exception] = None) -> None:
        """Log error."""
        if not self.quiet:
            console.print(f"[error]Error:[/error] {message}")
            if exception and self.verbose:
                console.print_exception()

    def warning(self, message: str) -> None:
        """Log warning."""
        if not self.quiet:
            console.print(f"[warning]Warning:[/warning] {message}")

    def debug(self, message: str) -> None:
        """Log debug message."""
        if self.verbose and not self.quiet:
            console.print(f"[dim]Debug:[/dim] {message}")
