"""Tests for detection modules."""

import pytest

from desync_scanner.core.config import DetectionConfig
from desync_scanner.core.exceptions import DetectionStateError
from desync_scanner.core.models import CheckType, ProbeOutcome, TimingSample, Verdict
from desync_scanner.detection.timing import (
    CheckSession,
    DetectionState,
    TimingDetector,
    apply_verdict_rule,
)

BASELINE_REQUEST = b"GET / HTTP/1.1\r\nHost: target.com\r\nConnection: close\r\n\r\n"


class TestVerdictRule:
    """Tests for the timing verdict rule."""

    def test_below_threshold_not_vulnerable(self, sample, detection_config):
        """4800ms against a 5000ms floor is not a finding."""
        decision = apply_verdict_rule(sample(1000), sample(4800), detection_config)

        assert not decision.vulnerable
        assert decision.branch is None

    def test_delay_branch(self, sample, detection_config):
        """5200ms reaches max(5000, 1000 x 3)."""
        decision = apply_verdict_rule(sample(1000), sample(5200), detection_config)

        assert decision.vulnerable
        assert decision.branch == "delay"
        assert "5200ms" in decision.evidence
        assert "1000ms" in decision.evidence

    def test_threshold_is_inclusive(self, sample, detection_config):
        """Exactly reaching the threshold counts."""
        decision = apply_verdict_rule(sample(1000), sample(5000), detection_config)

        assert decision.vulnerable

    def test_multiplier_dominates_floor(self, sample):
        """A slow baseline raises the threshold above the floor."""
        config = DetectionConfig(timing_multiplier=3.0, min_delay_ms=1000.0)

        assert not apply_verdict_rule(sample(2000), sample(5900), config).vulnerable
        assert apply_verdict_rule(sample(2000), sample(6000), config).vulnerable

    def test_timeout_always_vulnerable(self, sample, detection_config):
        """A timed out attack is flagged however short it was."""
        attack = sample(10, ProbeOutcome.TIMEOUT)
        decision = apply_verdict_rule(sample(1000), attack, detection_config)

        assert decision.vulnerable
        assert decision.branch == "timeout"

    def test_reset_goes_through_rule(self, sample, detection_config):
        """A fast reset is a measurement, not a finding."""
        decision = apply_verdict_rule(
            sample(100), sample(50, ProbeOutcome.RESET), detection_config
        )

        assert not decision.vulnerable

    @pytest.mark.parametrize("elapsed", [0, 1, 250, 999, 4999, 60000])
    def test_reflexive_never_vulnerable(self, sample, detection_config, elapsed):
        """A baseline compared with itself is never a finding."""
        baseline = sample(elapsed)

        assert not apply_verdict_rule(baseline, baseline, detection_config).vulnerable

    def test_status_branch_off_by_default(self, sample, detection_config):
        """504 is ignored unless configured."""
        decision = apply_verdict_rule(sample(100), sample(120, status=504), detection_config)

        assert not decision.vulnerable

    def test_status_branch_when_configured(self, sample):
        """Configured status codes flag an otherwise fast attack."""
        config = DetectionConfig(timeout_status_codes=frozenset({408, 504}))
        decision = apply_verdict_rule(sample(100), sample(120, status=504), config)

        assert decision.vulnerable
        assert decision.branch == "status"

    def test_status_branch_reflexive(self, sample):
        """A baseline already answered 504 does not flag itself."""
        config = DetectionConfig(timeout_status_codes=frozenset({504}))
        baseline = sample(100, status=504)

        assert not apply_verdict_rule(baseline, baseline, config).vulnerable


class TestCheckSession:
    """Tests for the detection state machine."""

    def test_comparison_path(self):
        """Baseline, two variants, done."""
        session = CheckSession(CheckType.CL_TE)
        for state in (
            DetectionState.BASELINE_SENT,
            DetectionState.COMPARING,
            DetectionState.EVALUATED,
            DetectionState.COMPARING,
            DetectionState.EVALUATED,
            DetectionState.DONE,
        ):
            session.advance(state)

        assert session.state == DetectionState.DONE
        assert session.history[0] == DetectionState.IDLE

    def test_inconclusive_path(self):
        """An unusable baseline ends without comparisons."""
        session = CheckSession(CheckType.TE_CL)
        session.advance(DetectionState.BASELINE_SENT)
        session.advance(DetectionState.INCONCLUSIVE)
        session.advance(DetectionState.DONE)

        assert session.state == DetectionState.DONE

    def test_illegal_transition(self):
        """Skipping the baseline is rejected."""
        session = CheckSession(CheckType.H2)

        with pytest.raises(DetectionStateError):
            session.advance(DetectionState.COMPARING)

    def test_done_is_terminal(self):
        """Nothing follows DONE."""
        session = CheckSession(CheckType.H2C)
        session.advance(DetectionState.BASELINE_SENT)
        session.advance(DetectionState.INCONCLUSIVE)
        session.advance(DetectionState.DONE)

        with pytest.raises(DetectionStateError):
            session.advance(DetectionState.BASELINE_SENT)


class TestTimingDetector:
    """Tests for the timing detector against scripted transports."""

    @pytest.mark.asyncio
    async def test_stops_at_first_positive(
        self, target, sample, transport_factory, payload_factory, detection_config
    ):
        """With index 1 positive, two variants are evaluated."""
        transport = transport_factory(
            [sample(1000), sample(1100), sample(6000), sample(6000)]
        )
        detector = TimingDetector(transport)

        result = await detector.detect(
            target, CheckType.CL_TE, payload_factory(3), BASELINE_REQUEST, detection_config
        )

        assert result.verdict == Verdict.VULNERABLE
        assert result.payload_index == 1
        assert result.variants_evaluated == 2
        assert result.variants_total == 3
        assert len(transport.sent) == 3
        assert result.attack_ms == pytest.approx(6000)
        assert "X-Variant: 1" in result.payload

    @pytest.mark.asyncio
    async def test_exhaustive_keeps_first_index(
        self, target, sample, transport_factory, payload_factory, detection_config
    ):
        """Exhaustive runs evaluate all variants but report the first hit."""
        transport = transport_factory(
            [sample(1000), sample(1100), sample(6000), sample(7000)]
        )
        detector = TimingDetector(transport)

        result = await detector.detect(
            target,
            CheckType.CL_TE,
            payload_factory(3),
            BASELINE_REQUEST,
            detection_config,
            exhaustive=True,
        )

        assert result.payload_index == 1
        assert result.variants_evaluated == 3
        assert result.attack_ms == pytest.approx(6000)

    @pytest.mark.asyncio
    async def test_baseline_first_on_wire(
        self, target, sample, transport_factory, payload_factory, detection_config
    ):
        """The baseline request goes out before any variant."""
        transport = transport_factory()
        payloads = payload_factory(2)
        detector = TimingDetector(transport)

        await detector.detect(target, CheckType.CL_TE, payloads, BASELINE_REQUEST, detection_config)

        assert [data for _, data in transport.sent] == [
            BASELINE_REQUEST,
            payloads[0].raw,
            payloads[1].raw,
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome", [ProbeOutcome.TIMEOUT, ProbeOutcome.CONNECT_ERROR])
    async def test_unusable_baseline_is_inconclusive(
        self, target, sample, transport_factory, payload_factory, detection_config, outcome
    ):
        """No variant is sent when the baseline cannot be measured."""
        transport = transport_factory([sample(10000, outcome)])
        detector = TimingDetector(transport)

        result = await detector.detect(
            target, CheckType.TE_CL, payload_factory(3), BASELINE_REQUEST, detection_config
        )

        assert result.verdict == Verdict.INCONCLUSIVE
        assert result.payload_index is None
        assert result.variants_evaluated == 0
        assert len(transport.sent) == 1
        assert "baseline" in result.evidence

    @pytest.mark.asyncio
    async def test_not_vulnerable(
        self, target, sample, transport_factory, payload_factory, detection_config
    ):
        """All fast variants give NOT_VULNERABLE."""
        detector = TimingDetector(transport_factory(default=sample(120)))

        result = await detector.detect(
            target, CheckType.TE_TE, payload_factory(4), BASELINE_REQUEST, detection_config
        )

        assert result.verdict == Verdict.NOT_VULNERABLE
        assert result.payload_index is None
        assert result.payload is None
        assert result.variants_evaluated == 4

    @pytest.mark.asyncio
    async def test_variant_connect_error_skipped(
        self, target, sample, transport_factory, payload_factory, detection_config
    ):
        """A variant that cannot connect is inconclusive and evaluation goes on."""
        transport = transport_factory([
            sample(100),
            sample(0, ProbeOutcome.CONNECT_ERROR),
            sample(100, ProbeOutcome.TIMEOUT),
        ])
        detector = TimingDetector(transport)

        result = await detector.detect(
            target, CheckType.H2C, payload_factory(3), BASELINE_REQUEST, detection_config
        )

        assert result.inconclusive_variants == [0]
        assert result.payload_index == 1
        assert result.attack_status == "Connection Timeout"

    @pytest.mark.asyncio
    async def test_unparseable_head_skipped(
        self, target, sample, transport_factory, payload_factory, detection_config
    ):
        """A completed probe with garbage instead of a status line is inconclusive."""
        garbage = TimingSample(0.1, ProbeOutcome.COMPLETED, b"SSH-2.0-OpenSSH\r\n\r\n")
        transport = transport_factory([sample(100), garbage, sample(100)])
        detector = TimingDetector(transport)

        result = await detector.detect(
            target, CheckType.H2, payload_factory(2), BASELINE_REQUEST, detection_config
        )

        assert result.inconclusive_variants == [0]
        assert result.verdict == Verdict.NOT_VULNERABLE

    @pytest.mark.asyncio
    async def test_all_variants_inconclusive(
        self, target, sample, transport_factory, payload_factory, detection_config
    ):
        """Only inconclusive variants leave the check INCONCLUSIVE."""
        transport = transport_factory(
            [sample(100)], default=sample(0, ProbeOutcome.CONNECT_ERROR)
        )
        detector = TimingDetector(transport)

        result = await detector.detect(
            target, CheckType.CL_TE, payload_factory(3), BASELINE_REQUEST, detection_config
        )

        assert result.verdict == Verdict.INCONCLUSIVE
        assert result.inconclusive_variants == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_on_probe_counts_baseline(
        self, target, sample, transport_factory, payload_factory, detection_config
    ):
        """The callback fires once per probe including the baseline."""
        calls = []
        detector = TimingDetector(transport_factory())

        await detector.detect(
            target,
            CheckType.CL_TE,
            payload_factory(5),
            BASELINE_REQUEST,
            detection_config,
            on_probe=lambda: calls.append(1),
        )

        assert len(calls) == 6
