"""
Report data model for crowdsourced incident reports
Reports, verdicts and the verification/override records attached to them
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the form the database stores)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ReportStatus(str, Enum):
    """Lifecycle status of a report."""
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    REJECTED = "REJECTED"
    ACCEPTED = "ACCEPTED"
    ACCEPTED_OVERRIDE = "ACCEPTED_OVERRIDE"

    @property
    def is_terminal(self) -> bool:
        return self != ReportStatus.PENDING_VERIFICATION


class Severity(str, Enum):
    """Reporter-assessed severity."""
    LOW = "LOW"
    MED = "MED"
    HIGH = "HIGH"


@dataclass(frozen=True)
class Verdict:
    """
    Normalized classifier answer.

    Confidences are always within [0, 1] and reasons are plain strings;
    see ``parse_verdict`` for how raw output gets here.
    """
    is_incident: bool
    incident_confidence: float
    suspected_synthetic: bool
    synthetic_confidence: float
    reasons: List[str] = field(default_factory=list)
    model_id: str = ""


@dataclass(frozen=True)
class ImageRef:
    """Pointer to an image held by the object store."""
    url: str
    storage_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "storageId": self.storage_id}


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of one verification attempt, as persisted on the report."""
    is_incident: bool
    incident_confidence: float
    suspected_synthetic: bool
    synthetic_confidence: float
    reasons: List[str]
    model_id: str
    checked_at: datetime

    @classmethod
    def from_verdict(
        cls,
        verdict: Verdict,
        reasons: List[str],
        checked_at: datetime
    ) -> "VerificationResult":
        """Build from a verdict, using the decided reasons list."""
        return cls(
            is_incident=verdict.is_incident,
            incident_confidence=verdict.incident_confidence,
            suspected_synthetic=verdict.suspected_synthetic,
            synthetic_confidence=verdict.synthetic_confidence,
            reasons=list(reasons),
            model_id=verdict.model_id,
            checked_at=checked_at,
        )

    @classmethod
    def failure(cls, reason: str, model_id: str, checked_at: datetime) -> "VerificationResult":
        """Result recorded when the classifier could not produce a verdict."""
        return cls(
            is_incident=False,
            incident_confidence=0.0,
            suspected_synthetic=False,
            synthetic_confidence=0.0,
            reasons=[reason],
            model_id=model_id,
            checked_at=checked_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "isIncident": self.is_incident,
            "incidentConfidence": self.incident_confidence,
            "suspectedSynthetic": self.suspected_synthetic,
            "syntheticConfidence": self.synthetic_confidence,
            "reasons": list(self.reasons),
            "modelId": self.model_id,
            "checkedAt": self.checked_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationResult":
        return cls(
            is_incident=bool(data.get("isIncident", False)),
            incident_confidence=float(data.get("incidentConfidence", 0.0)),
            suspected_synthetic=bool(data.get("suspectedSynthetic", False)),
            synthetic_confidence=float(data.get("syntheticConfidence", 0.0)),
            reasons=[str(r) for r in data.get("reasons", [])],
            model_id=str(data.get("modelId", "")),
            checked_at=datetime.fromisoformat(data["checkedAt"]),
        )


@dataclass(frozen=True)
class OverrideRecord:
    """Owner consent that escalated a rejected report."""
    did_override: bool
    consent_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "didOverride": self.did_override,
            "consentAt": self.consent_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OverrideRecord":
        return cls(
            did_override=bool(data.get("didOverride", False)),
            consent_at=datetime.fromisoformat(data["consentAt"]),
        )


@dataclass(frozen=True)
class ReportMetadata:
    """Validated descriptive fields of a submission."""
    title: str
    description: str
    severity: Severity
    latitude: float
    longitude: float
    device_name: str
    device_time: str


@dataclass(frozen=True)
class Report:
    """
    Incident report submitted from a field device.

    Owner (``uid``), id and creation time never change after insert.
    Status, verification and override are the only mutable parts and
    are changed through the store's ``update``.
    """
    id: str
    uid: str

    # Report details
    title: str
    description: str
    severity: Severity
    latitude: float
    longitude: float
    device_name: str
    device_time: str
    image: ImageRef

    # Lifecycle
    status: ReportStatus = ReportStatus.PENDING_VERIFICATION
    verification: Optional[VerificationResult] = None
    override: Optional[OverrideRecord] = None

    # Timestamps
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def with_changes(self, **changes) -> "Report":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the public JSON projection."""
        return {
            "reportId": self.id,
            "uid": self.uid,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "lat": self.latitude,
            "lng": self.longitude,
            "deviceName": self.device_name,
            "deviceTime": self.device_time,
            "image": self.image.to_dict(),
            "status": self.status.value,
            "verification": self.verification.to_dict() if self.verification else None,
            "override": self.override.to_dict() if self.override else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
