"""
Decision rule for verified reports
Maps a classifier verdict to ACCEPTED or REJECTED
"""

from typing import List, Tuple

from src.core.constants import ACCEPT_CONFIDENCE_THRESHOLD, DEFAULT_REJECTION_REASON
from src.crowdsource.models import ReportStatus, Verdict


def decide(verdict: Verdict) -> Tuple[ReportStatus, List[str]]:
    """
    Decide the status a verified report moves to.

    A report is accepted only when the classifier sees an incident with
    confidence >= ACCEPT_CONFIDENCE_THRESHOLD and does not suspect
    synthetic content. A synthetic flag vetoes acceptance whatever the
    incident confidence is.

    Args:
        verdict: Normalized classifier verdict

    Returns:
        (status, reasons); reasons is never empty for REJECTED
    """
    reasons = list(verdict.reasons)

    accepted = (
        verdict.is_incident
        and verdict.incident_confidence >= ACCEPT_CONFIDENCE_THRESHOLD
        and not verdict.suspected_synthetic
    )
    if accepted:
        return ReportStatus.ACCEPTED, reasons

    if not reasons:
        reasons = [DEFAULT_REJECTION_REASON]
    return ReportStatus.REJECTED, reasons
