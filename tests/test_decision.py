"""
Tests for the verification decision rule
"""
import pytest

from conftest import make_verdict
from src.core.constants import ACCEPT_CONFIDENCE_THRESHOLD, DEFAULT_REJECTION_REASON
from src.crowdsource.decision import decide
from src.crowdsource.models import ReportStatus
from src.services.vision_client import parse_verdict


class TestDecide:
    """Test suite for decide()."""

    def test_confident_real_incident_is_accepted(self):
        status, reasons = decide(make_verdict(incident_confidence=0.9, reasons=["flames visible"]))

        assert status == ReportStatus.ACCEPTED
        assert reasons == ["flames visible"]

    def test_threshold_is_inclusive(self):
        status, _ = decide(make_verdict(incident_confidence=ACCEPT_CONFIDENCE_THRESHOLD))
        assert status == ReportStatus.ACCEPTED

    def test_just_below_threshold_is_rejected(self):
        status, reasons = decide(make_verdict(incident_confidence=0.69))

        assert status == ReportStatus.REJECTED
        assert reasons == [DEFAULT_REJECTION_REASON]

    def test_no_incident_is_rejected_even_when_confident(self):
        status, _ = decide(make_verdict(is_incident=False, incident_confidence=1.0))
        assert status == ReportStatus.REJECTED

    def test_synthetic_flag_vetoes_high_confidence(self):
        status, reasons = decide(make_verdict(
            incident_confidence=1.0,
            suspected_synthetic=True,
            reasons=["looks rendered"],
        ))

        assert status == ReportStatus.REJECTED
        assert reasons == ["looks rendered"]

    @pytest.mark.parametrize("is_incident,confidence,synthetic", [
        (True, 0.5, False),
        (True, 0.9, True),
        (False, 0.9, False),
        (False, 0.1, True),
        (True, 0.0, False),
    ])
    def test_rejections_always_carry_a_reason(self, is_incident, confidence, synthetic):
        status, reasons = decide(make_verdict(
            is_incident=is_incident,
            incident_confidence=confidence,
            suspected_synthetic=synthetic,
            reasons=[],
        ))

        assert status == ReportStatus.REJECTED
        assert reasons
        assert all(r.strip() for r in reasons)

    def test_accepted_verdict_may_have_no_reasons(self):
        status, reasons = decide(make_verdict(reasons=[]))

        assert status == ReportStatus.ACCEPTED
        assert reasons == []

    def test_verdict_reasons_are_not_mutated(self):
        verdict = make_verdict(incident_confidence=0.2, reasons=[])
        decide(verdict)
        assert verdict.reasons == []

    def test_blank_model_reasons_fall_back_to_default(self):
        verdict = parse_verdict(
            '{"isIncident": false, "incidentConfidence": 0.1, "reasons": ["", "   "]}',
            "vision-model",
        )

        status, reasons = decide(verdict)

        assert status == ReportStatus.REJECTED
        assert reasons == [DEFAULT_REJECTION_REASON]
