"""
Report store for FireWatch Reports
Create/read/update/list access to persisted reports

Two implementations share one contract:
- SQLReportStore: SQLAlchemy, used by the service
- InMemoryReportStore: dict-backed, for tests and local demos

Each ``update`` is a single atomic write keyed by report id, optionally
guarded by the statuses the row may currently be in. Readers observe either
the record before the write or after it, never a mix.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from src.core.exceptions import StorageError
from src.crowdsource.models import Report, ReportStatus, Severity, utcnow
from .connection import DatabaseConnection
from .models import ReportRecord

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = ("status", "verification", "override")


@dataclass(frozen=True)
class ReportFilter:
    """Exact-match filter for report listings."""
    status: Optional[ReportStatus] = None
    severity: Optional[Severity] = None

    def matches(self, report: Report) -> bool:
        if self.status is not None and report.status != self.status:
            return False
        if self.severity is not None and report.severity != self.severity:
            return False
        return True


@dataclass
class ReportPage:
    """One page of a filtered listing."""
    items: List[Report] = field(default_factory=list)
    page: int = 1
    limit: int = 50
    total: int = 0

    @property
    def pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.limit - 1) // self.limit

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


class ReportStore(Protocol):
    """Persistence contract the report handler depends on."""

    def insert(self, report: Report) -> Report:
        ...

    def get(self, report_id: str) -> Optional[Report]:
        ...

    def update(
        self,
        report_id: str,
        changes: Dict[str, Any],
        allowed_statuses: Optional[Iterable[ReportStatus]] = None
    ) -> bool:
        ...

    def list_by_owner(self, uid: str, limit: int) -> List[Report]:
        ...

    def list_reports(self, report_filter: ReportFilter, page: int, limit: int) -> ReportPage:
        ...


def _check_changes(changes: Dict[str, Any]) -> None:
    unknown = set(changes) - set(MUTABLE_FIELDS)
    if unknown:
        raise ValueError(f"Immutable or unknown report fields: {sorted(unknown)}")


class SQLReportStore:
    """
    SQLAlchemy-backed report store.

    All SQLAlchemy errors surface as StorageError.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def check_connection(self) -> bool:
        return self.db.check_connection()

    def close(self) -> None:
        self.db.close()

    def insert(self, report: Report) -> Report:
        """
        Persist a new report, stamping its creation time.

        Args:
            report: Report to insert (created_at is ignored)

        Returns:
            The stored report
        """
        now = utcnow()
        stored = report.with_changes(created_at=now, updated_at=now)
        try:
            with self.db.get_session() as session:
                session.add(ReportRecord.from_report(stored))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to insert report: {e}")
        return stored

    def get(self, report_id: str) -> Optional[Report]:
        """Get report by ID."""
        try:
            with self.db.get_session() as session:
                record = session.get(ReportRecord, report_id)
                return record.to_report() if record else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read report {report_id}: {e}")

    def update(
        self,
        report_id: str,
        changes: Dict[str, Any],
        allowed_statuses: Optional[Iterable[ReportStatus]] = None
    ) -> bool:
        """
        Apply changes in one UPDATE statement.

        Args:
            report_id: Report ID
            changes: New values for status / verification / override
            allowed_statuses: Only update while the row has one of these

        Returns:
            True if a row was updated
        """
        _check_changes(changes)

        values: Dict[Any, Any] = {ReportRecord.updated_at: utcnow()}
        if "status" in changes:
            values[ReportRecord.status] = changes["status"]
        if "verification" in changes:
            verification = changes["verification"]
            values[ReportRecord.verification] = verification.to_dict() if verification else None
        if "override" in changes:
            override = changes["override"]
            values[ReportRecord.override] = override.to_dict() if override else None

        try:
            with self.db.get_session() as session:
                query = session.query(ReportRecord).filter(ReportRecord.id == report_id)
                if allowed_statuses is not None:
                    query = query.filter(ReportRecord.status.in_(list(allowed_statuses)))
                count = query.update(values, synchronize_session=False)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update report {report_id}: {e}")

        return count > 0

    def list_by_owner(self, uid: str, limit: int) -> List[Report]:
        """Owner's reports, newest first."""
        try:
            with self.db.get_session() as session:
                records = (
                    session.query(ReportRecord)
                    .filter(ReportRecord.uid == uid)
                    .order_by(ReportRecord.created_at.desc(), ReportRecord.id.desc())
                    .limit(limit)
                    .all()
                )
                return [r.to_report() for r in records]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list reports for owner: {e}")

    def list_reports(self, report_filter: ReportFilter, page: int, limit: int) -> ReportPage:
        """Filtered listing, newest first."""
        try:
            with self.db.get_session() as session:
                query = session.query(ReportRecord)
                if report_filter.status is not None:
                    query = query.filter(ReportRecord.status == report_filter.status)
                if report_filter.severity is not None:
                    query = query.filter(ReportRecord.severity == report_filter.severity)

                total = query.count()
                records = (
                    query.order_by(ReportRecord.created_at.desc(), ReportRecord.id.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                    .all()
                )
                items = [r.to_report() for r in records]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list reports: {e}")

        return ReportPage(items=items, page=page, limit=limit, total=total)


class InMemoryReportStore:
    """
    Dict-backed report store with the same contract as SQLReportStore.

    Reports are immutable dataclasses, so a stored value is replaced
    wholesale under the lock and readers never see a partial write.
    """

    def __init__(self):
        self._reports: Dict[str, Report] = {}
        self._order: Dict[str, int] = {}
        self._sequence = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._reports)

    def check_connection(self) -> bool:
        return True

    def close(self) -> None:
        pass

    def insert(self, report: Report) -> Report:
        now = utcnow()
        stored = report.with_changes(created_at=now, updated_at=now)
        with self._lock:
            if stored.id in self._reports:
                raise StorageError(f"Report {stored.id} already exists")
            self._reports[stored.id] = stored
            self._sequence += 1
            self._order[stored.id] = self._sequence
        return stored

    def get(self, report_id: str) -> Optional[Report]:
        return self._reports.get(report_id)

    def update(
        self,
        report_id: str,
        changes: Dict[str, Any],
        allowed_statuses: Optional[Iterable[ReportStatus]] = None
    ) -> bool:
        _check_changes(changes)
        allowed = set(allowed_statuses) if allowed_statuses is not None else None

        with self._lock:
            current = self._reports.get(report_id)
            if current is None:
                return False
            if allowed is not None and current.status not in allowed:
                return False
            self._reports[report_id] = current.with_changes(updated_at=utcnow(), **changes)
        return True

    def _newest_first(self, reports: Iterable[Report]) -> List[Report]:
        return sorted(reports, key=lambda r: self._order[r.id], reverse=True)

    def list_by_owner(self, uid: str, limit: int) -> List[Report]:
        owned = [r for r in list(self._reports.values()) if r.uid == uid]
        return self._newest_first(owned)[:limit]

    def list_reports(self, report_filter: ReportFilter, page: int, limit: int) -> ReportPage:
        matching = self._newest_first(
            r for r in list(self._reports.values()) if report_filter.matches(r)
        )
        start = (page - 1) * limit
        return ReportPage(
            items=matching[start:start + limit],
            page=page,
            limit=limit,
            total=len(matching),
        )
