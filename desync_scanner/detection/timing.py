"""Timing-based desync detection.

A target is flagged when a payload makes the chain stall: the probe either
hits the transport deadline or takes far longer than an unmodified baseline
request. This is the classic timing oracle for smuggling: a back end that
parsed a different request boundary sits waiting for bytes that never come.

Per check type and target the detector walks a small state machine::

    IDLE -> BASELINE_SENT -> INCONCLUSIVE -> DONE
                          -> COMPARING <-> EVALUATED -> DONE
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Set

from desync_scanner.core.config import DetectionConfig, NetworkConfig
from desync_scanner.core.exceptions import DetectionStateError, ProtocolParseError
from desync_scanner.core.models import (
    CandidatePayload,
    CheckResult,
    CheckType,
    ProbeOutcome,
    Target,
    TimingSample,
    Verdict,
)
from desync_scanner.network.raw_socket import parse_response_head
from desync_scanner.utils.helpers import safe_decode
from desync_scanner.utils.logging import ScanLogger, get_logger

logger = get_logger(__name__)


class DetectionState(Enum):
    IDLE = "idle"
    BASELINE_SENT = "baseline-sent"
    INCONCLUSIVE = "inconclusive"
    COMPARING = "comparing"
    EVALUATED = "evaluated"
    DONE = "done"


_TRANSITIONS: Dict[DetectionState, Set[DetectionState]] = {
    DetectionState.IDLE: {DetectionState.BASELINE_SENT},
    DetectionState.BASELINE_SENT: {DetectionState.INCONCLUSIVE, DetectionState.COMPARING},
    DetectionState.INCONCLUSIVE: {DetectionState.DONE},
    DetectionState.COMPARING: {DetectionState.EVALUATED, DetectionState.DONE},
    DetectionState.EVALUATED: {DetectionState.COMPARING, DetectionState.DONE},
    DetectionState.DONE: set(),
}


@dataclass
class CheckSession:
    """Tracks one check type's progress through the detection states."""

    check_type: CheckType
    state: DetectionState = DetectionState.IDLE
    history: List[DetectionState] = field(default_factory=lambda: [DetectionState.IDLE])

    def advance(self, new_state: DetectionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise DetectionStateError(self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)


@dataclass(frozen=True)
class Decision:
    """Result of applying the verdict rule to one attack sample.

    ``branch`` is ``timeout``, ``delay`` or ``status`` when vulnerable.
    """

    vulnerable: bool
    branch: Optional[str]
    evidence: str


def apply_verdict_rule(
    baseline: TimingSample,
    attack: TimingSample,
    config: DetectionConfig,
) -> Decision:
    """Decide whether one attack sample indicates a desync.

    Vulnerable when the attack timed out, or when its elapsed time reaches
    ``max(min_delay_ms, baseline_ms * timing_multiplier)``. If
    ``timeout_status_codes`` is configured, an attack answered with one of
    those codes also counts, provided the baseline was not answered the
    same way.

    Args:
        baseline: Sample of the unmodified request
        attack: Sample of the candidate payload
        config: Thresholds to apply

    Returns:
        Decision naming the branch that fired and both timings
    """
    baseline_ms = baseline.elapsed_ms
    attack_ms = attack.elapsed_ms
    scaled_ms = baseline_ms * config.timing_multiplier
    threshold_ms = max(config.min_delay_ms, scaled_ms)

    if attack.outcome == ProbeOutcome.TIMEOUT:
        return Decision(
            True,
            "timeout",
            f"timeout: no response before the deadline ({attack_ms:.0f}ms); "
            f"baseline {baseline_ms:.0f}ms",
        )

    if attack_ms >= threshold_ms:
        return Decision(
            True,
            "delay",
            f"delay: attack {attack_ms:.0f}ms >= max(min_delay {config.min_delay_ms:.0f}ms, "
            f"baseline {baseline_ms:.0f}ms x {config.timing_multiplier:g} = {scaled_ms:.0f}ms)",
        )

    status = attack.status_code
    if (
        config.timeout_status_codes
        and status in config.timeout_status_codes
        and baseline.status_code != status
    ):
        return Decision(
            True,
            "status",
            f"status: attack answered {status} after {attack_ms:.0f}ms; "
            f"baseline {baseline.status_code} in {baseline_ms:.0f}ms",
        )

    return Decision(
        False,
        None,
        f"attack {attack_ms:.0f}ms below threshold {threshold_ms:.0f}ms; "
        f"baseline {baseline_ms:.0f}ms",
    )


class TimingDetector:
    """Runs the baseline and candidate probes for one check type.

    The transport only needs an ``async probe(target, data, deadline)``
    method returning a TimingSample; probes are strictly sequential.
    """

    def __init__(
        self,
        transport,
        network_config: Optional[NetworkConfig] = None,
        scan_logger: Optional[ScanLogger] = None,
    ):
        self.transport = transport
        self.network = network_config or NetworkConfig()
        self.scan_logger = scan_logger or ScanLogger(quiet=True)

    async def detect(
        self,
        target: Target,
        check_type: CheckType,
        payloads: Sequence[CandidatePayload],
        baseline_request: bytes,
        config: DetectionConfig,
        exhaustive: bool = False,
        on_probe: Optional[Callable[[], None]] = None,
    ) -> CheckResult:
        """Evaluate a check type's variants against the target.

        Args:
            target: Scan target
            check_type: Family being evaluated
            payloads: Variants in catalog order
            baseline_request: Unmodified reference request
            config: Verdict thresholds
            exhaustive: Evaluate every variant even after a positive
            on_probe: Called once after every probe, baseline included

        Returns:
            CheckResult; INCONCLUSIVE when no baseline could be established
            or no variant could be measured
        """
        session = CheckSession(check_type)
        result = CheckResult(
            check_type=check_type,
            verdict=Verdict.INCONCLUSIVE,
            variants_total=len(payloads),
        )

        session.advance(DetectionState.BASELINE_SENT)
        baseline = await self.transport.probe(target, baseline_request, self.network.deadline)
        _notify(on_probe)

        result.baseline_ms = baseline.elapsed_ms
        result.baseline_status = baseline.status_line or None

        if baseline.outcome in (ProbeOutcome.TIMEOUT, ProbeOutcome.CONNECT_ERROR):
            session.advance(DetectionState.INCONCLUSIVE)
            if baseline.outcome == ProbeOutcome.TIMEOUT:
                result.evidence = (
                    f"baseline timed out after {baseline.elapsed_ms:.0f}ms; "
                    f"no reference timing"
                )
            else:
                result.evidence = f"baseline connection failed: {baseline.error}"
            logger.info(
                "check.baseline_unusable",
                check=check_type.value,
                host=target.host,
                outcome=baseline.outcome.value,
            )
            session.advance(DetectionState.DONE)
            return result

        session.advance(DetectionState.COMPARING)
        conclusive = 0
        last_decision: Optional[Decision] = None

        for payload in payloads:
            if session.state == DetectionState.EVALUATED:
                session.advance(DetectionState.COMPARING)

            attack = await self.transport.probe(target, payload.raw, self.network.deadline)
            _notify(on_probe)
            result.variants_evaluated += 1
            session.advance(DetectionState.EVALUATED)

            self.scan_logger.probe_result(
                check_type.value, payload.index, attack.elapsed_ms, attack.outcome.value
            )

            reason = _inconclusive_reason(attack)
            if reason is not None:
                result.inconclusive_variants.append(payload.index)
                logger.info(
                    "variant.inconclusive",
                    check=check_type.value,
                    index=payload.index,
                    reason=reason,
                )
                continue

            conclusive += 1
            decision = apply_verdict_rule(baseline, attack, config)
            last_decision = decision

            if result.payload_index is None:
                result.attack_ms = attack.elapsed_ms
                result.attack_status = _attack_status(attack)

            if decision.vulnerable and result.payload_index is None:
                result.verdict = Verdict.VULNERABLE
                result.payload_index = payload.index
                result.evidence = decision.evidence
                result.payload = safe_decode(payload.raw)
                logger.info(
                    "variant.vulnerable",
                    check=check_type.value,
                    index=payload.index,
                    branch=decision.branch,
                )
                if not exhaustive:
                    break

        session.advance(DetectionState.DONE)

        if result.verdict == Verdict.VULNERABLE:
            return result

        if conclusive:
            result.verdict = Verdict.NOT_VULNERABLE
            result.evidence = last_decision.evidence if last_decision else ""
        else:
            result.evidence = "no variant produced a usable measurement"
        return result


def _notify(callback: Optional[Callable[[], None]]) -> None:
    if callback is not None:
        callback()


def _inconclusive_reason(sample: TimingSample) -> Optional[str]:
    """Why a variant sample cannot be judged, or None if it can."""
    if sample.outcome == ProbeOutcome.CONNECT_ERROR:
        return f"connect error: {sample.error}"
    if sample.outcome == ProbeOutcome.COMPLETED:
        try:
            parse_response_head(sample.head)
        except ProtocolParseError as e:
            return f"unparseable response: {e.message}"
    return None


def _attack_status(sample: TimingSample) -> str:
    if sample.outcome == ProbeOutcome.TIMEOUT:
        return "Connection Timeout"
    if sample.outcome == ProbeOutcome.RESET:
        return "Connection Reset"
    return sample.status_line
