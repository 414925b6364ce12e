"""Scan orchestration for desync-scanner.

Sequences the work for each target:
1. Payload generation per enabled check type
2. Baseline and variant probes through the timing detector
3. Export of the triggering payload
4. Accumulation into a ScanResult
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from desync_scanner.analysis.export import PayloadExporter, build_export_stem
from desync_scanner.core.config import ScanConfig
from desync_scanner.core.exceptions import (
    ConfigurationError,
    ExportError,
    PayloadGenerationError,
)
from desync_scanner.core.models import (
    CHECK_ORDER,
    CandidatePayload,
    CheckResult,
    CheckType,
    ScanResult,
    Target,
    Verdict,
)
from desync_scanner.detection.timing import TimingDetector
from desync_scanner.network.raw_socket import AsyncRawHttpClient
from desync_scanner.payloads.catalog import generate
from desync_scanner.payloads.generator import RequestParts, build_baseline_request
from desync_scanner.utils.helpers import gather_with_concurrency
from desync_scanner.utils.logging import ScanLogger, get_logger

logger = get_logger(__name__)


class ProgressReporter:
    """Receives progress callbacks from the orchestrator.

    Both methods are called synchronously from the event loop and must not
    block. This base class ignores everything.
    """

    def start_check(self, target: Target, check_type: CheckType, total_probes: int) -> None:
        pass

    def advance(self, n: int = 1) -> None:
        pass


class NullProgress(ProgressReporter):
    """Default reporter used when no display is attached."""


class ScanOrchestrator:
    """Runs the enabled checks against targets."""

    def __init__(
        self,
        config: ScanConfig,
        client: Optional[AsyncRawHttpClient] = None,
        exporter: Optional[PayloadExporter] = None,
        progress: Optional[ProgressReporter] = None,
        scan_logger: Optional[ScanLogger] = None,
    ):
        """Initialize the orchestrator.

        Args:
            config: Scan configuration
            client: Probe transport, defaults to a raw socket client
            exporter: Payload exporter, built from ``config.export`` if omitted
            progress: Progress callbacks, a no-op reporter if omitted
            scan_logger: User-facing logger

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        errors = config.validate()
        if errors:
            raise ConfigurationError(errors)

        self.config = config
        self.client = client or AsyncRawHttpClient(config.network)
        if exporter is None and config.export.directory:
            exporter = PayloadExporter(config.export.directory)
        self.exporter = exporter
        self.progress = progress or NullProgress()
        self.logger = scan_logger or ScanLogger(verbose=config.verbose, quiet=config.quiet)
        self.detector = TimingDetector(self.client, config.network, self.logger)

    async def run(
        self,
        target: Target,
        enabled_checks: Optional[Sequence[CheckType]] = None,
        exit_first: Optional[bool] = None,
        exhaustive: Optional[bool] = None,
    ) -> ScanResult:
        """Scan one target.

        Args:
            target: Target to scan
            enabled_checks: Checks to run, defaults to the configured set
            exit_first: Stop after the first vulnerable check
            exhaustive: Evaluate all variants of each check

        Returns:
            ScanResult with one CheckResult per evaluated check, in
            declared check order
        """
        enabled = set(self.config.enabled_checks if enabled_checks is None else enabled_checks)
        exit_first = self.config.exit_first if exit_first is None else exit_first
        exhaustive = self.config.exhaustive if exhaustive is None else exhaustive
        checks = [check for check in CHECK_ORDER if check in enabled]

        parts = RequestParts.from_target(target, self.config.payload.method)
        scan_start = datetime.now(timezone.utc)
        result = ScanResult(
            target=target,
            scan_start=scan_start,
            scan_end=scan_start,
            method=self.config.payload.method,
        )

        self.logger.scan_start(target.url, len(checks))

        for check_type in checks:
            check_result = await self._run_check(target, parts, check_type, exhaustive)
            result.checks.append(check_result)

            if check_result.vulnerable and exit_first:
                logger.info("scan.exit_first", target=target.url, check=check_type.value)
                break

        result.scan_end = datetime.now(timezone.utc)
        self.logger.scan_complete(target.url, result.elapsed, result.vulnerability_count)
        return result

    async def run_many(
        self,
        targets: Sequence[Target],
        enabled_checks: Optional[Sequence[CheckType]] = None,
        exit_first: Optional[bool] = None,
        exhaustive: Optional[bool] = None,
    ) -> List[ScanResult]:
        """Scan several targets, at most ``config.concurrency`` at a time.

        Results are returned in the order of ``targets``.
        """
        return await gather_with_concurrency(
            self.config.concurrency,
            [
                lambda target=target: self.run(target, enabled_checks, exit_first, exhaustive)
                for target in targets
            ],
        )

    async def _run_check(
        self,
        target: Target,
        parts: RequestParts,
        check_type: CheckType,
        exhaustive: bool,
    ) -> CheckResult:
        try:
            payloads = generate(check_type, parts)
        except PayloadGenerationError as e:
            self.logger.error(str(e))
            return CheckResult(
                check_type=check_type,
                verdict=Verdict.INCONCLUSIVE,
                evidence=e.message,
            )

        self.logger.check_start(check_type.value, len(payloads))
        self.progress.start_check(target, check_type, len(payloads) + 1)

        check_result = await self.detector.detect(
            target,
            check_type,
            payloads,
            build_baseline_request(parts),
            self.config.detection,
            exhaustive=exhaustive,
            on_probe=self.progress.advance,
        )

        if check_result.vulnerable:
            self.logger.vulnerability_found(
                check_type.value,
                target.url,
                check_result.payload_index,
                check_result.evidence,
            )
            self._export(target, check_result, payloads)
        elif check_result.verdict == Verdict.INCONCLUSIVE:
            self.logger.inconclusive(check_type.value, target.url, check_result.evidence)

        return check_result

    def _export(
        self,
        target: Target,
        check_result: CheckResult,
        payloads: Sequence[CandidatePayload],
    ) -> None:
        if self.exporter is None:
            return

        payload = payloads[check_result.payload_index]
        stem = build_export_stem(
            target.scheme,
            target.host,
            check_result.check_type.value,
            payload.index,
        )
        try:
            path = self.exporter.export(payload.raw, stem)
        except ExportError as e:
            check_result.export_error = str(e)
            logger.warning("payload.export_failed", path=e.path, reason=e.reason)
            self.logger.export_failed(e.message)
            return

        check_result.export_path = str(path)
        self.logger.export_written(str(path))


async def run_scan(
    urls: Sequence[str],
    config: Optional[ScanConfig] = None,
    headers: Sequence[str] = (),
    cookies: Sequence[str] = (),
    vhost: Optional[str] = None,
) -> List[ScanResult]:
    """Convenience function to scan URLs with default collaborators.

    Args:
        urls: Target URLs
        config: Scan configuration, defaults if omitted
        headers: Extra ``Name: value`` headers for every probe
        cookies: ``name=value`` cookies for every probe
        vhost: Host header override

    Returns:
        One ScanResult per URL, in input order

    Raises:
        ConfigurationError: If the configuration is invalid
        ValueError: If a URL cannot be turned into a target
    """
    config = config or ScanConfig()
    targets = [
        Target.from_url(url, tuple(headers), tuple(cookies), vhost)
        for url in urls
    ]
    orchestrator = ScanOrchestrator(config)
    return await orchestrator.run_many(targets)
