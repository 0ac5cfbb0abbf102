"""
Report handler for crowdsourced incident reports
Drives a report from submission through image verification to its final status

Lifecycle:
    PENDING_VERIFICATION -> ACCEPTED | REJECTED     (automatic, via decide())
    REJECTED -> ACCEPTED_OVERRIDE                   (owner consent only)

Verification runs after ``submit``/``create`` have returned. It is a single
attempt and fails closed: any classifier failure ends in REJECTED with the
failure recorded as the reason.
"""

import logging
import math
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional

from src.core.constants import (
    LATITUDE_RANGE,
    LONGITUDE_RANGE,
    REQUIRED_REPORT_FIELDS,
    VERIFICATION_FAILURE_PREFIX,
)
from src.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ReportServiceError,
    StorageError,
    ValidationError,
)
from src.crowdsource.decision import decide
from src.crowdsource.models import (
    ImageRef,
    OverrideRecord,
    Report,
    ReportMetadata,
    ReportStatus,
    Severity,
    VerificationResult,
    utcnow,
)
from src.database.repository import ReportFilter, ReportPage, ReportStore

logger = logging.getLogger(__name__)

Scheduler = Callable[..., Any]

# Statuses automatic verification may (re)write; an override is final
VERIFIABLE_STATUSES = (
    ReportStatus.PENDING_VERIFICATION,
    ReportStatus.ACCEPTED,
    ReportStatus.REJECTED,
)


def spawn_thread(fn: Callable[..., Any], *args: Any) -> None:
    """Default scheduler: run ``fn`` on a daemon thread, no handle kept."""
    thread = threading.Thread(target=fn, args=args, daemon=True)
    thread.start()


def clamp_page(page: Optional[int]) -> int:
    """Pages start at 1."""
    if page is None or page < 1:
        return 1
    return page


def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    """Fall back to ``default`` when unset, cap at ``maximum``, floor at 1."""
    if limit is None:
        return default
    return max(1, min(limit, maximum))


def parse_severity(value: Any) -> Severity:
    """Case-insensitive severity parsing."""
    text = str(value).strip().upper()
    try:
        return Severity(text)
    except ValueError:
        raise ValidationError("severity must be LOW/MED/HIGH")


def parse_status(value: Any) -> ReportStatus:
    text = str(value).strip().upper()
    try:
        return ReportStatus(text)
    except ValueError:
        allowed = "/".join(s.value for s in ReportStatus)
        raise ValidationError(f"status must be one of {allowed}")


def _parse_coordinate(name: str, value: Any, bounds) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{name} must be a finite number")
    low, high = bounds
    if not low <= number <= high:
        raise ValidationError(f"{name} must be between {low:g} and {high:g}")
    return number


def validate_metadata(raw: Mapping[str, Any]) -> ReportMetadata:
    """
    Validate submission fields.

    Args:
        raw: Field values keyed by their form names (title, description,
            severity, lat, lng, deviceName, deviceTime)

    Returns:
        ReportMetadata with severity normalized to upper case

    Raises:
        ValidationError: a field is missing, blank or malformed
    """
    missing = [
        name for name in REQUIRED_REPORT_FIELDS
        if raw.get(name) is None or str(raw.get(name)).strip() == ""
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return ReportMetadata(
        title=str(raw["title"]).strip(),
        description=str(raw["description"]).strip(),
        severity=parse_severity(raw["severity"]),
        latitude=_parse_coordinate("lat", raw["lat"], LATITUDE_RANGE),
        longitude=_parse_coordinate("lng", raw["lng"], LONGITUDE_RANGE),
        device_name=str(raw["deviceName"]).strip(),
        device_time=str(raw["deviceTime"]),
    )


class ReportHandler:
    """
    Handles incident reports from field devices.

    Creates reports, runs their verification in the background, and applies
    owner overrides. Holds no per-report in-process state; everything lives
    in the store.
    """

    def __init__(
        self,
        store: ReportStore,
        vision_client: Any,
        object_storage: Any = None,
        upload_folder_prefix: str = "firewatch/reports",
        max_image_bytes: int = 10 * 1024 * 1024,
        list_default_limit: int = 50,
        list_max_limit: int = 200,
        mine_default_limit: int = 20,
        mine_max_limit: int = 50,
        scheduler: Scheduler = spawn_thread
    ):
        """
        Initialize report handler.

        Args:
            store: Report store
            vision_client: Classifier with ``analyze(image_url) -> Verdict``
            object_storage: Uploader with ``upload(data, folder, desired_id) -> ImageRef``
            upload_folder_prefix: Folder prefix for report images
            max_image_bytes: Largest accepted image
            list_default_limit: Page size when none is requested
            list_max_limit: Largest page size for listings
            mine_default_limit: Owner listing size when none is requested
            mine_max_limit: Largest owner listing size
            scheduler: Default way to start background verification
        """
        self.store = store
        self.vision_client = vision_client
        self.object_storage = object_storage
        self.upload_folder_prefix = upload_folder_prefix
        self.max_image_bytes = max_image_bytes
        self.list_default_limit = list_default_limit
        self.list_max_limit = list_max_limit
        self.mine_default_limit = mine_default_limit
        self.mine_max_limit = mine_max_limit
        self.scheduler = scheduler

        logger.info("ReportHandler initialized")

    @property
    def model_id(self) -> str:
        return getattr(self.vision_client, "model", "") or ""

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        owner_id: str,
        fields: Mapping[str, Any],
        image_data: Optional[bytes],
        schedule: Optional[Scheduler] = None
    ) -> Report:
        """
        Validate, upload the image, create the report and queue verification.

        Returns as soon as the report is stored; verification has not run yet.

        Args:
            owner_id: Authenticated submitter
            fields: Raw form fields
            image_data: Image bytes
            schedule: Overrides the handler's scheduler for this call

        Returns:
            Created report in PENDING_VERIFICATION

        Raises:
            ValidationError: bad fields or missing/empty/oversized image
            StorageError: upload or insert failed
        """
        if not image_data:
            raise ValidationError("image is required and must not be empty")
        if len(image_data) > self.max_image_bytes:
            raise ValidationError(
                f"image exceeds the {self.max_image_bytes} byte limit"
            )

        metadata = validate_metadata(fields)
        if self.object_storage is None:
            raise StorageError("Image storage not configured")

        folder = f"{self.upload_folder_prefix}/{owner_id}"
        image = self.object_storage.upload(
            image_data,
            folder=folder,
            desired_id=f"report_{int(time.time() * 1000)}"
        )

        report = self.create(owner_id, metadata, image)

        (schedule or self.scheduler)(self.run_verification, report.id)
        return report

    def create(
        self,
        owner_id: str,
        metadata: Any,
        image: ImageRef
    ) -> Report:
        """
        Persist a new report awaiting verification.

        Args:
            owner_id: Owner uid
            metadata: ReportMetadata, or raw fields to validate
            image: Stored image reference

        Returns:
            Created report

        Raises:
            ValidationError: metadata invalid or owner/image missing
            StorageError: insert failed
        """
        if not owner_id:
            raise ValidationError("owner is required")
        if not isinstance(metadata, ReportMetadata):
            metadata = validate_metadata(metadata)
        if image is None or not image.url or not image.storage_id:
            raise ValidationError("image reference is required")

        report = Report(
            id=uuid.uuid4().hex,
            uid=owner_id,
            title=metadata.title,
            description=metadata.description,
            severity=metadata.severity,
            latitude=metadata.latitude,
            longitude=metadata.longitude,
            device_name=metadata.device_name,
            device_time=metadata.device_time,
            image=image,
            status=ReportStatus.PENDING_VERIFICATION,
        )
        stored = self.store.insert(report)

        logger.info(
            f"New report created: {stored.id} by {owner_id} "
            f"severity={stored.severity.value} at ({stored.latitude}, {stored.longitude})"
        )
        return stored

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def run_verification(self, report_id: str) -> None:
        """
        Verify a report's image and record the decision.

        Never raises. Classifier failures resolve the report to REJECTED
        with the failure detail as its reason. Running twice for the same
        report is allowed; the later result wins, but an owner override is
        never reverted.

        Args:
            report_id: Report to verify
        """
        try:
            report = self.store.get(report_id)
        except ReportServiceError as e:
            logger.error(f"Verification of {report_id} could not load report: {e.message}")
            return
        if report is None:
            logger.warning(f"Verification skipped, report not found: {report_id}")
            return

        try:
            verdict = self.vision_client.analyze(report.image.url)
            status, reasons = decide(verdict)
            result = VerificationResult.from_verdict(verdict, reasons, checked_at=utcnow())
        except Exception as e:
            detail = e.message if isinstance(e, ReportServiceError) else str(e) or e.__class__.__name__
            logger.warning(f"Verification failed for {report_id}: {detail}")
            status = ReportStatus.REJECTED
            result = VerificationResult.failure(
                VERIFICATION_FAILURE_PREFIX + detail,
                model_id=self.model_id,
                checked_at=utcnow(),
            )

        self._record_verification(report_id, report.status, status, result)

    def _record_verification(
        self,
        report_id: str,
        previous: ReportStatus,
        status: ReportStatus,
        result: VerificationResult
    ) -> None:
        try:
            updated = self.store.update(
                report_id,
                {"status": status, "verification": result},
                allowed_statuses=VERIFIABLE_STATUSES
            )
            if updated:
                logger.info(f"Report {report_id} status: {previous.value} -> {status.value}")
                return

            # Overridden meanwhile: keep the status, refresh the result
            self.store.update(report_id, {"verification": result})
            logger.info(f"Report {report_id} keeps its override; verification result refreshed")
        except ReportServiceError as e:
            logger.error(f"Could not record verification for {report_id}: {e.message}")

    # ------------------------------------------------------------------
    # Override
    # ------------------------------------------------------------------

    def override(self, report_id: str, requester_id: str, consent: Any = None) -> Report:
        """
        Accept a rejected report on its owner's explicit consent.

        Args:
            report_id: Report ID
            requester_id: Authenticated caller
            consent: Must be exactly True

        Returns:
            Updated report in ACCEPTED_OVERRIDE

        Raises:
            ValidationError: consent is not True
            NotFoundError: no such report
            ForbiddenError: caller is not the owner
            InvalidStateError: report is not REJECTED
        """
        if consent is not True:
            raise ValidationError("consent=true is required")

        report = self.store.get(report_id)
        if report is None:
            raise NotFoundError("Not found")

        if report.uid != requester_id:
            logger.warning(f"Override of {report_id} refused for non-owner {requester_id}")
            raise ForbiddenError("Forbidden")

        if report.status != ReportStatus.REJECTED:
            raise InvalidStateError(
                f"Override allowed only when status is {ReportStatus.REJECTED.value}"
            )

        changes = {
            "status": ReportStatus.ACCEPTED_OVERRIDE,
            "override": OverrideRecord(did_override=True, consent_at=utcnow()),
        }
        if not self.store.update(report_id, changes, allowed_statuses=[ReportStatus.REJECTED]):
            # Status moved between the read and the guarded write
            raise InvalidStateError(
                f"Override allowed only when status is {ReportStatus.REJECTED.value}"
            )

        logger.info(
            f"Report {report_id} status: {ReportStatus.REJECTED.value} -> "
            f"{ReportStatus.ACCEPTED_OVERRIDE.value} (owner consent)"
        )
        return self.store.get(report_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, report_id: str) -> Report:
        """
        Get report by ID.

        Raises:
            NotFoundError: no such report
        """
        report = self.store.get(report_id)
        if report is None:
            raise NotFoundError("Not found")
        return report

    def list_by_owner(self, owner_id: str, limit: Optional[int] = None) -> List[Report]:
        """Owner's reports, newest first."""
        limit = clamp_limit(limit, self.mine_default_limit, self.mine_max_limit)
        return self.store.list_by_owner(owner_id, limit)

    def list_all(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None
    ) -> ReportPage:
        """
        Paginated listing with an exact-match status/severity filter.

        Args:
            filters: Optional ``status`` and ``severity`` values
            page: 1-based page; values below 1 become 1
            limit: Page size, capped at list_max_limit

        Raises:
            ValidationError: unknown status or severity in the filter
        """
        filters = filters or {}
        status = filters.get("status")
        severity = filters.get("severity")

        report_filter = ReportFilter(
            status=parse_status(status) if status not in (None, "") else None,
            severity=parse_severity(severity) if severity not in (None, "") else None,
        )
        return self.store.list_reports(
            report_filter,
            page=clamp_page(page),
            limit=clamp_limit(limit, self.list_default_limit, self.list_max_limit),
        )
