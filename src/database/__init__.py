"""
Database module for FireWatch Reports
SQLAlchemy persistence for incident reports
"""

from .connection import DatabaseConnection, init_db
from .models import Base, ReportRecord
from .repository import (
    InMemoryReportStore,
    ReportFilter,
    ReportPage,
    ReportStore,
    SQLReportStore,
)

__all__ = [
    "DatabaseConnection",
    "init_db",
    "Base",
    "ReportRecord",
    "InMemoryReportStore",
    "ReportFilter",
    "ReportPage",
    "ReportStore",
    "SQLReportStore",
]
