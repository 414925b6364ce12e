from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple
from enum import Enum
from datetime import datetime, timezone
from urllib.parse import urlparse

from desync_scanner.utils.helpers import parse_status_code


class CheckType(Enum):
    CL_TE = "CL.TE"
    TE_CL = "TE.CL"
    TE_TE = "TE.TE"
    H2C = "H2C"
    H2 = "H2"

    @property
    def rule_id(self) -> str:
        """Lowercase dashed tag (``cl-te``) used on the CLI and in SARIF."""
        return self.value.lower().replace(".", "-")

    @classmethod
    def from_tag(cls, tag: str) -> "CheckType":
        """Resolve ``CL.TE``, ``cl-te`` or ``cl_te`` style tags."""
        normalized = tag.strip().upper().replace("-", ".").replace("_", ".")
        for check_type in cls:
            if check_type.value == normalized:
                return check_type
        raise ValueError(f"Unknown check type: {tag!r}")


# Fixed evaluation order for a target's checks
CHECK_ORDER: Tuple[CheckType, ...] = (
    CheckType.CL_TE,
    CheckType.TE_CL,
    CheckType.TE_TE,
    CheckType.H2C,
    CheckType.H2,
)


class ProbeOutcome(Enum):
    COMPLETED = "completed"
    TIMEOUT = "timeout"
    RESET = "reset"
    CONNECT_ERROR = "connect-error"


class Verdict(Enum):
    VULNERABLE = "vulnerable"
    NOT_VULNERABLE = "not-vulnerable"
    INCONCLUSIVE = "inconclusive"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Target:
    """A single scan target, read-only for the whole scan."""

    host: str
    port: int
    path: str = "/"
    use_tls: bool = False
    headers: Tuple[str, ...] = ()
    cookies: Tuple[str, ...] = ()
    vhost: Optional[str] = None

    def __post_init__(self) -> None:
        for value in (self.host, self.vhost or "", self.path):
            if "\r" in value or "\n" in value:
                raise ValueError(f"Line breaks are not allowed in target: {value!r}")
        if not self.host:
            raise ValueError("Target host is required")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")

    @classmethod
    def from_url(
        cls,
        url: str,
        headers: Tuple[str, ...] = (),
        cookies: Tuple[str, ...] = (),
        vhost: Optional[str] = None,
    ) -> "Target":
        parsed = urlparse(url)
        scheme = (parsed.scheme or "").lower()
        if scheme not in ("http", "https"):
            raise ValueError(f"Unsupported scheme in {url!r}")
        if not parsed.hostname:
            raise ValueError(f"No host in {url!r}")

        use_tls = scheme == "https"
        port = parsed.port or (443 if use_tls else 80)
        path = parsed.path or "/"
        if parsed.query:
            path = f"{path}?{parsed.query}"

        return cls(
            host=parsed.hostname,
            port=port,
            path=path,
            use_tls=use_tls,
            headers=tuple(headers),
            cookies=tuple(cookies),
            vhost=vhost,
        )

    @property
    def scheme(self) -> str:
        return "https" if self.use_tls else "http"

    @property
    def default_port(self) -> bool:
        return self.port == (443 if self.use_tls else 80)

    @property
    def host_header(self) -> str:
        name = _bracket(self.vhost or self.host)
        if self.default_port:
            return name
        return f"{name}:{self.port}"

    @property
    def url(self) -> str:
        host = _bracket(self.host)
        authority = host if self.default_port else f"{host}:{self.port}"
        return f"{self.scheme}://{authority}{self.path}"


def _bracket(host: str) -> str:
    """Wrap an IPv6 literal in brackets for use in a Host header or URL."""
    if host.count(":") > 1 and not host.startswith("["):
        return f"[{host}]"
    return host


@dataclass(frozen=True)
class CandidatePayload:
    check_type: CheckType
    index: int
    description: str
    raw: bytes
    frames: Optional[bytes] = None

    def __str__(self) -> str:
        return f"CandidatePayload({self.check_type.value}#{self.index})"


@dataclass
class TimingSample:
    elapsed: float
    outcome: ProbeOutcome
    head: bytes = b""
    error: Optional[str] = None

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000.0

    @property
    def status_line(self) -> str:
        line = self.head.split(b"\r\n", 1)[0]
        return line.decode("latin-1", errors="replace").strip()

    @property
    def status_code(self) -> Optional[int]:
        return parse_status_code(self.status_line)


@dataclass
class CheckResult:
    check_type: CheckType
    verdict: Verdict
    payload_index: Optional[int] = None
    baseline_ms: Optional[float] = None
    attack_ms: Optional[float] = None
    evidence: str = ""
    baseline_status: Optional[str] = None
    attack_status: Optional[str] = None
    variants_total: int = 0
    variants_evaluated: int = 0
    inconclusive_variants: List[int] = field(default_factory=list)
    payload: Optional[str] = None
    export_path: Optional[str] = None
    export_error: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def vulnerable(self) -> bool:
        return self.verdict == Verdict.VULNERABLE

    def to_dict(self, include_payload: bool = True) -> Dict[str, Any]:
        data = {
            "check_type": self.check_type.value,
            "verdict": self.verdict.value,
            "vulnerable": self.vulnerable,
            "payload_index": self.payload_index,
            "baseline_ms": _round_ms(self.baseline_ms),
            "attack_ms": _round_ms(self.attack_ms),
            "evidence": self.evidence,
            "baseline_status": self.baseline_status,
            "attack_status": self.attack_status,
            "variants_total": self.variants_total,
            "variants_evaluated": self.variants_evaluated,
            "inconclusive_variants": list(self.inconclusive_variants),
            "timestamp": self.timestamp.isoformat(),
        }
        if include_payload:
            data["payload"] = self.payload
        if self.export_path or self.export_error:
            data["export"] = {"path": self.export_path, "error": self.export_error}
        return data


@dataclass
class ScanResult:
    target: Target
    scan_start: datetime
    scan_end: datetime
    checks: List[CheckResult] = field(default_factory=list)
    method: str = "POST"

    @property
    def elapsed(self) -> float:
        return (self.scan_end - self.scan_start).total_seconds()

    @property
    def vulnerability_count(self) -> int:
        return sum(1 for check in self.checks if check.vulnerable)

    def to_dict(self, include_payloads: bool = True) -> Dict[str, Any]:
        return {
            "target": self.target.url,
            "host_header": self.target.host_header,
            "method": self.method,
            "scan_start": self.scan_start.isoformat(),
            "scan_end": self.scan_end.isoformat(),
            "duration_seconds": round(self.elapsed, 3),
            "checks": [c.to_dict(include_payloads) for c in self.checks],
            "summary": {
                "checks_run": len(self.checks),
                "vulnerabilities": self.vulnerability_count,
                "inconclusive": len(
                    [c for c in self.checks if c.verdict == Verdict.INCONCLUSIVE]
                ),
                "vulnerable_checks": [
                    c.check_type.value for c in self.checks if c.vulnerable
                ],
            },
        }


def _round_ms(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round(value, 1)
