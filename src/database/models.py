"""
SQLAlchemy models for FireWatch Reports
One table holding incident reports and their verification state
"""

from sqlalchemy import (
    Column, Float, String, Text, DateTime, Index, JSON, Enum as SQLEnum
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB

from src.crowdsource.models import (
    ImageRef,
    OverrideRecord,
    Report,
    ReportStatus,
    Severity,
    VerificationResult,
    utcnow,
)

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class ReportRecord(Base):
    """
    Incident report submitted from a field device.

    Verification and override are stored as JSON documents, mirroring
    their dictionary projection.
    """
    __tablename__ = "reports"

    id = Column(String(32), primary_key=True)
    uid = Column(String(128), nullable=False)

    # Report details
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    severity = Column(SQLEnum(Severity, native_enum=False, length=8), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    device_name = Column(String(200), nullable=False)
    device_time = Column(String(100), nullable=False)

    # Image in object storage
    image_url = Column(String(500), nullable=False)
    image_storage_id = Column(String(255), nullable=False)

    # Lifecycle
    status = Column(
        SQLEnum(ReportStatus, native_enum=False, length=32),
        nullable=False,
        default=ReportStatus.PENDING_VERIFICATION
    )
    verification = Column(JSONDocument, nullable=True)
    override = Column(JSONDocument, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_report_uid_created", uid, created_at),
        Index("idx_report_status", status),
        Index("idx_report_severity", severity),
        Index("idx_report_created_at", created_at),
    )

    def __repr__(self):
        return f"<ReportRecord({self.id}, status={self.status.value}, uid={self.uid})>"

    @classmethod
    def from_report(cls, report: Report) -> "ReportRecord":
        """Create a row from a domain report."""
        return cls(
            id=report.id,
            uid=report.uid,
            title=report.title,
            description=report.description,
            severity=report.severity,
            latitude=report.latitude,
            longitude=report.longitude,
            device_name=report.device_name,
            device_time=report.device_time,
            image_url=report.image.url,
            image_storage_id=report.image.storage_id,
            status=report.status,
            verification=report.verification.to_dict() if report.verification else None,
            override=report.override.to_dict() if report.override else None,
            created_at=report.created_at,
            updated_at=report.updated_at,
        )

    def to_report(self) -> Report:
        """Convert to a domain report."""
        return Report(
            id=self.id,
            uid=self.uid,
            title=self.title,
            description=self.description,
            severity=self.severity,
            latitude=self.latitude,
            longitude=self.longitude,
            device_name=self.device_name,
            device_time=self.device_time,
            image=ImageRef(url=self.image_url, storage_id=self.image_storage_id),
            status=self.status,
            verification=VerificationResult.from_dict(self.verification) if self.verification else None,
            override=OverrideRecord.from_dict(self.override) if self.override else None,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
