"""
FireWatch Reports - Crowdsource Module
Incident reports from field devices, their verification and overrides.

Import ReportHandler from ``src.crowdsource.report_handler`` directly;
``src.database`` depends on this package.
"""

from src.crowdsource.models import (
    ImageRef,
    OverrideRecord,
    Report,
    ReportMetadata,
    ReportStatus,
    Severity,
    Verdict,
    VerificationResult,
)
from src.crowdsource.decision import decide

__all__ = [
    # Models
    "ImageRef",
    "OverrideRecord",
    "Report",
    "ReportMetadata",
    "ReportStatus",
    "Severity",
    "Verdict",
    "VerificationResult",
    # Decision
    "decide",
]
