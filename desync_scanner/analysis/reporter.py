"""Report generation for desync-scanner.

Generates reports in multiple formats:
- JSON: Machine-readable format for integration
- Text: Simple console-friendly output
- SARIF 2.1.0: For code-scanning dashboards and CI
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from desync_scanner import __version__
from desync_scanner.core.config import OutputFormat, ReportConfig
from desync_scanner.core.models import CHECK_ORDER, CheckResult, CheckType, ScanResult, Verdict

SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
TOOL_NAME = "desync-scanner"

RULE_NAMES: Dict[CheckType, str] = {
    CheckType.CL_TE: "Content-Length vs Transfer-Encoding Smuggling",
    CheckType.TE_CL: "Transfer-Encoding vs Content-Length Smuggling",
    CheckType.TE_TE: "Transfer-Encoding Obfuscation Smuggling",
    CheckType.H2C: "HTTP/2 Cleartext Smuggling",
    CheckType.H2: "HTTP/2 Protocol Smuggling",
}

RULE_HELP: Dict[CheckType, str] = {
    CheckType.CL_TE: (
        "The front end honors Content-Length while the back end honors "
        "Transfer-Encoding, so the two disagree about where a request ends."
    ),
    CheckType.TE_CL: (
        "The front end honors Transfer-Encoding while the back end honors "
        "Content-Length, so the two disagree about where a request ends."
    ),
    CheckType.TE_TE: (
        "Both hops support Transfer-Encoding, but an obfuscated header makes "
        "one of them ignore it."
    ),
    CheckType.H2C: (
        "An HTTP/1.1 to h2c upgrade is forwarded by the front end and honored "
        "by the back end, which then parses the remaining bytes differently."
    ),
    CheckType.H2: (
        "Rewriting an HTTP/2 request into HTTP/1.1 lets pseudo-headers, "
        "forbidden headers or body lengths desynchronize the back end."
    ),
}


class Reporter:
    """Generate scan reports in multiple formats."""

    def __init__(self, config: Optional[ReportConfig] = None):
        self.config = config or ReportConfig()

    def generate(
        self,
        results: Sequence[ScanResult],
        format: Optional[OutputFormat] = None,
    ) -> str:
        """Generate report in specified format.

        Args:
            results: One ScanResult per target
            format: Output format (default from config)

        Returns:
            Formatted report string
        """
        format = format or self.config.format

        if format == OutputFormat.JSON:
            return self.to_json(results)
        elif format == OutputFormat.SARIF:
            return self.to_sarif(results)
        else:
            return self.to_text(results)

    def to_json(self, results: Sequence[ScanResult]) -> str:
        data = {
            "results": [r.to_dict(self.config.include_payloads) for r in results],
            "summary": {
                "targets": len(results),
                "vulnerable_targets": len([r for r in results if r.vulnerability_count]),
                "vulnerabilities": sum(r.vulnerability_count for r in results),
            },
            "_metadata": {
                "generator": TOOL_NAME,
                "version": __version__,
                "generated_at": datetime.now(timezone.utc).isoformat(),
            },
        }
        return json.dumps(data, indent=2, default=str)

    def to_text(self, results: Sequence[ScanResult]) -> str:
        """Generate plain text format report."""
        lines = []

        lines.append("=" * 60)
        lines.append("HTTP DESYNC SCAN REPORT")
        lines.append("=" * 60)

        for scan_result in results:
            lines.append("")
            lines.append(f"Target: {scan_result.target.url}")
            lines.append(f"Host: {scan_result.target.host_header}")
            lines.append(f"Method: {scan_result.method}")
            lines.append(f"Scan Start: {scan_result.scan_start.isoformat()}")
            lines.append(f"Duration: {scan_result.elapsed:.2f} seconds")
            lines.append("-" * 40)

            for check in scan_result.checks:
                lines.extend(self._check_to_text(check))

            lines.append("-" * 40)
            lines.append(f"Vulnerabilities Found: {scan_result.vulnerability_count}")

        lines.append("")
        lines.append("=" * 60)
        return "\n".join(lines)

    def _check_to_text(self, check: CheckResult) -> List[str]:
        label = {
            Verdict.VULNERABLE: "VULNERABLE",
            Verdict.NOT_VULNERABLE: "not vulnerable",
            Verdict.INCONCLUSIVE: "INCONCLUSIVE",
        }[check.verdict]

        lines = [f"[{check.check_type.value}] {label}"]
        lines.append(
            f"    Variants: {check.variants_evaluated}/{check.variants_total} evaluated"
        )
        if check.baseline_ms is not None:
            lines.append(
                f"    Baseline: {check.baseline_ms:.0f}ms ({check.baseline_status or 'no status'})"
            )
        if check.attack_ms is not None:
            lines.append(
                f"    Attack: {check.attack_ms:.0f}ms ({check.attack_status or 'no status'})"
            )
        if check.vulnerable:
            lines.append(f"    Payload Index: {check.payload_index}")
        if check.evidence:
            lines.append(f"    Evidence: {check.evidence}")
        if check.inconclusive_variants:
            lines.append(
                f"    Inconclusive Variants: {', '.join(map(str, check.inconclusive_variants))}"
            )
        if check.export_path:
            lines.append(f"    Exported: {check.export_path}")
        if check.export_error:
            lines.append(f"    Export Failed: {check.export_error}")
        if check.vulnerable and check.payload and self.config.include_payloads:
            lines.append("    Payload:")
            lines.extend(f"      {line}" for line in check.payload.split("\r\n"))
        return lines

    def to_sarif(self, results: Sequence[ScanResult]) -> str:
        """Generate a SARIF 2.1.0 log with one run covering all targets.

        Only vulnerable checks become SARIF results.
        """
        sarif_results = []
        artifacts = []
        for scan_result in results:
            uri = scan_result.target.url
            artifacts.append({"location": {"uri": uri}})
            for check in scan_result.checks:
                if check.vulnerable:
                    sarif_results.append(self._sarif_result(check, uri))

        log = {
            "$schema": SARIF_SCHEMA,
            "version": "2.1.0",
            "runs": [
                {
                    "tool": {
                        "driver": {
                            "name": TOOL_NAME,
                            "semanticVersion": __version__,
                            "rules": [_sarif_rule(check_type) for check_type in CHECK_ORDER],
                        }
                    },
                    "artifacts": artifacts,
                    "results": sarif_results,
                }
            ],
        }
        return json.dumps(log, indent=2)

    def _sarif_result(self, check: CheckResult, uri: str) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}
        if check.payload is not None and self.config.include_payloads:
            properties["payload"] = check.payload
        if check.attack_ms is not None:
            properties["normalDurationMs"] = _whole_ms(check.baseline_ms)
            properties["attackDurationMs"] = _whole_ms(check.attack_ms)
        if check.attack_status:
            properties["attackStatus"] = check.attack_status
        if check.payload_index is not None:
            properties["payloadIndex"] = check.payload_index

        return {
            "ruleId": check.check_type.rule_id,
            "level": "error",
            "message": {
                "text": (
                    f"HTTP request smuggling detected using {check.check_type.value} "
                    f"attack. {check.evidence}"
                ).strip()
            },
            "locations": [
                {"physicalLocation": {"artifactLocation": {"uri": uri}}}
            ],
            "properties": properties,
        }

    def save(
        self,
        results: Sequence[ScanResult],
        filepath: Union[str, Path],
        format: Optional[OutputFormat] = None,
    ) -> None:
        """Save report to file.

        Args:
            results: Scan results
            filepath: Output file path
            format: Output format (inferred from extension if not specified)
        """
        filepath = Path(filepath)

        if format is None:
            ext = filepath.suffix.lower()
            if ext == ".json":
                format = OutputFormat.JSON
            elif ext == ".sarif":
                format = OutputFormat.SARIF
            else:
                format = OutputFormat.TEXT

        content = self.generate(results, format)

        with open(filepath, "w", encoding="utf-8") as f:
            f.write(content)


def _sarif_rule(check_type: CheckType) -> Dict[str, Any]:
    return {
        "id": check_type.rule_id,
        "name": RULE_NAMES[check_type],
        "shortDescription": {"text": RULE_NAMES[check_type]},
        "fullDescription": {"text": RULE_HELP[check_type]},
        "help": {"text": RULE_HELP[check_type]},
    }


def _whole_ms(value: Optional[float]) -> Optional[int]:
    if value is None:
        return None
    return int(round(value))


def generate_report(
    results: Sequence[ScanResult],
    format: OutputFormat = OutputFormat.JSON,
    filepath: Optional[Union[str, Path]] = None,
    config: Optional[ReportConfig] = None,
) -> str:
    """Convenience function to generate a report.

    Args:
        results: Scan results
        format: Output format
        filepath: Optional file to save to
        config: Optional report configuration

    Returns:
        Report content string
    """
    reporter = Reporter(config)
    content = reporter.generate(results, format)

    if filepath:
        reporter.save(results, filepath, format)

    return content
