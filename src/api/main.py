"""
FireWatch Reports - REST API

FastAPI application for submitting incident reports from field devices,
reading their verification outcome, and overriding a rejection with the
owner's consent.

Run with: uvicorn src.api.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import (
    BackgroundTasks, Body, Depends, FastAPI, File, Form, Header,
    HTTPException, Query, Request, UploadFile
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.core.config import get_settings
from src.core.exceptions import AuthError, ReportServiceError, safe_detail
from src.core.logging import setup_logging
from src.crowdsource.models import Report
from src.services.auth import AuthenticatedUser, parse_bearer
from src.services.container import ServiceContainer, build_services

logger = logging.getLogger(__name__)


# ============================================================================
# Pydantic Models
# ============================================================================

class CamelModel(BaseModel):
    """Response model serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(CamelModel):
    """API health check response."""
    ok: bool
    time: str
    database: bool


class ImageResponse(CamelModel):
    url: str
    storage_id: str


class VerificationResponse(CamelModel):
    """Verification outcome attached to a report."""
    is_incident: bool
    incident_confidence: float
    suspected_synthetic: bool
    synthetic_confidence: float
    reasons: List[str]
    model_id: str
    checked_at: str


class OverrideResponse(CamelModel):
    did_override: bool
    consent_at: str


class ReportResponse(CamelModel):
    """Full report projection."""
    report_id: str
    uid: str
    title: str
    description: str
    severity: str
    lat: float
    lng: float
    device_name: str
    device_time: str
    image: ImageResponse
    status: str
    verification: Optional[VerificationResponse] = None
    override: Optional[OverrideResponse] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ReportCreatedResponse(CamelModel):
    """Answer to a submission; verification has not run yet."""
    report_id: str
    status: str


class PaginationResponse(CamelModel):
    page: int
    limit: int
    total: int
    pages: int
    has_next: bool


class ReportListResponse(CamelModel):
    """One page of reports."""
    items: List[ReportResponse]
    pagination: PaginationResponse


class MyReportsResponse(CamelModel):
    """Caller's own reports, newest first."""
    count: int
    reports: List[ReportResponse]


# ============================================================================
# Helper Functions
# ============================================================================

def to_response(report: Report) -> ReportResponse:
    return ReportResponse.model_validate(report.to_dict())


def http_error(exc: Exception) -> HTTPException:
    """Translate any error into an HTTPException; never fails itself."""
    if isinstance(exc, ReportServiceError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
        return HTTPException(status_code=exc.status_code, detail=exc.message, headers=headers)
    logger.exception("Unhandled error while serving request")
    return HTTPException(status_code=500, detail=f"Server error: {safe_detail(exc)}")


def describe_validation_error(exc: RequestValidationError) -> str:
    """One-line summary of request parsing errors, e.g. 'limit: Input should be a valid integer'."""
    problems = []
    for error in exc.errors():
        location = [
            str(part) for part in error.get("loc", ())
            if part not in ("body", "query", "path", "header")
        ]
        field = ".".join(location) or "body"
        problems.append(f"{field}: {error.get('msg', 'invalid value')}")
    return "; ".join(problems) or "Invalid request"


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_current_user(
    authorization: Optional[str] = Header(None),
    services: ServiceContainer = Depends(get_services),
) -> AuthenticatedUser:
    """Resolve the bearer token to the calling user."""
    try:
        token = parse_bearer(authorization)
        if services.token_verifier is None:
            raise AuthError("Authentication not configured")
        return services.token_verifier.verify(token)
    except Exception as e:
        raise http_error(e)


# ============================================================================
# Application
# ============================================================================

def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built services; when omitted they are built from
            settings at startup and closed at shutdown

    Returns:
        FastAPI app
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        container = services if services is not None else build_services(settings)
        app.state.services = container
        logger.info("FireWatch Reports API ready")
        try:
            yield
        finally:
            if owned:
                container.close()

    app = FastAPI(
        title="FireWatch Reports",
        description="Incident reports from field devices with automated image verification",
        version="1.0.0",
        debug=settings.debug,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        # Same {"detail": str} shape and status as ValidationError
        return JSONResponse(status_code=400, content={"detail": describe_validation_error(exc)})

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:
    """Attach all routes to ``app``."""

    # ------------------------------------------------------------------------
    # System Routes
    # ------------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    def health(services: ServiceContainer = Depends(get_services)):
        """Liveness and database connectivity."""
        check = getattr(services.store, "check_connection", None)
        return HealthResponse(
            ok=True,
            time=datetime.now(timezone.utc).isoformat(),
            database=bool(check()) if check else True,
        )

    # ------------------------------------------------------------------------
    # Report Routes
    # ------------------------------------------------------------------------

    @app.post("/reports", response_model=ReportCreatedResponse, tags=["Reports"])
    def create_report(
        background_tasks: BackgroundTasks,
        image: Optional[UploadFile] = File(None),
        title: Optional[str] = Form(None),
        description: Optional[str] = Form(None),
        severity: Optional[str] = Form(None),
        lat: Optional[str] = Form(None),
        lng: Optional[str] = Form(None),
        deviceName: Optional[str] = Form(None),
        deviceTime: Optional[str] = Form(None),
        user: AuthenticatedUser = Depends(get_current_user),
        services: ServiceContainer = Depends(get_services),
    ):
        """
        Submit an incident report with its photo.

        The image is uploaded before the report exists. Verification is
        queued to run after this response is sent; poll GET /reports/{id}
        for the outcome.
        """
        fields = {
            "title": title,
            "description": description,
            "severity": severity,
            "lat": lat,
            "lng": lng,
            "deviceName": deviceName,
            "deviceTime": deviceTime,
        }
        try:
            data = image.file.read() if image is not None else None
            report = services.handler.submit(
                user.owner_id,
                fields,
                data,
                schedule=background_tasks.add_task,
            )
        except Exception as e:
            raise http_error(e)

        return ReportCreatedResponse(report_id=report.id, status=report.status.value)

    @app.get("/reports/mine", response_model=MyReportsResponse, tags=["Reports"])
    def list_my_reports(
        limit: Optional[int] = Query(None, description="Max reports, capped at 50"),
        user: AuthenticatedUser = Depends(get_current_user),
        services: ServiceContainer = Depends(get_services),
    ):
        """Caller's reports, newest first."""
        try:
            reports = services.handler.list_by_owner(user.owner_id, limit)
        except Exception as e:
            raise http_error(e)

        return MyReportsResponse(count=len(reports), reports=[to_response(r) for r in reports])

    @app.get("/reports", response_model=ReportListResponse, tags=["Reports"])
    def list_reports(
        status: Optional[str] = Query(None, description="Exact status match"),
        severity: Optional[str] = Query(None, description="LOW, MED or HIGH"),
        page: Optional[int] = Query(None, description="1-based page"),
        limit: Optional[int] = Query(None, description="Page size, capped at 200"),
        services: ServiceContainer = Depends(get_services),
    ):
        """List reports with optional filters."""
        try:
            result = services.handler.list_all(
                {"status": status, "severity": severity},
                page=page,
                limit=limit,
            )
        except Exception as e:
            raise http_error(e)

        return ReportListResponse(
            items=[to_response(r) for r in result.items],
            pagination=PaginationResponse(
                page=result.page,
                limit=result.limit,
                total=result.total,
                pages=result.pages,
                has_next=result.has_next,
            ),
        )

    @app.get("/reports/{report_id}", response_model=ReportResponse, tags=["Reports"])
    def get_report(report_id: str, services: ServiceContainer = Depends(get_services)):
        """Get a specific report by ID."""
        try:
            report = services.handler.get(report_id)
        except Exception as e:
            raise http_error(e)

        return to_response(report)

    @app.post("/reports/{report_id}/override", response_model=ReportResponse, tags=["Reports"])
    def override_report(
        report_id: str,
        payload: Optional[Dict[str, Any]] = Body(None),
        user: AuthenticatedUser = Depends(get_current_user),
        services: ServiceContainer = Depends(get_services),
    ):
        """Accept a rejected report; body must be {"consent": true}."""
        consent = (payload or {}).get("consent")
        try:
            report = services.handler.override(report_id, user.owner_id, consent=consent)
        except Exception as e:
            raise http_error(e)

        return to_response(report)


setup_logging()
app = create_app()


# ============================================================================
# Main
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
