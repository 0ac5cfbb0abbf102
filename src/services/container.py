"""
Process-wide service wiring for FireWatch Reports

Every external client is built once, before the API starts serving, and
released when it shuts down.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from src.core.config import Settings
from src.crowdsource.report_handler import ReportHandler
from src.database.connection import init_db
from src.database.repository import SQLReportStore
from src.services.auth import FirebaseTokenVerifier
from src.services.object_storage import CloudinaryStorage
from src.services.vision_client import VisionClient

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Long-lived collaborators shared by all requests."""
    handler: ReportHandler
    store: Any
    vision_client: Any
    object_storage: Any
    token_verifier: Optional[Any] = None

    def close(self) -> None:
        """Release HTTP clients, the database engine and the Firebase app."""
        for name in ("vision_client", "object_storage", "token_verifier", "store"):
            component = getattr(self, name)
            if component is None or not hasattr(component, "close"):
                continue
            try:
                component.close()
            except Exception as e:
                logger.error(f"Failed to close {name}: {e}")
        logger.info("Services shut down")


def build_token_verifier(settings: Settings) -> Optional[FirebaseTokenVerifier]:
    """Create the Firebase verifier; outside production, missing credentials only disable auth."""
    try:
        return FirebaseTokenVerifier(
            credentials_path=settings.firebase_credentials_path,
            project_id=settings.firebase_project_id,
            client_email=settings.firebase_client_email,
            private_key=settings.firebase_private_key,
        )
    except ValueError as e:
        if settings.is_production:
            raise
        logger.warning(f"Authentication disabled: {e}")
        return None


def build_services(settings: Settings) -> ServiceContainer:
    """
    Construct all services from settings.

    Args:
        settings: Application settings

    Returns:
        ServiceContainer ready to serve requests
    """
    db = init_db(settings.database_url, echo=settings.db_echo, pool_size=settings.db_pool_size)
    store = SQLReportStore(db)

    vision_client = VisionClient(
        api_key=settings.groq_api_key,
        model=settings.groq_vision_model,
        api_url=settings.groq_api_url,
        timeout=settings.verification_timeout_seconds,
    )
    if not settings.groq_api_key:
        logger.warning("GROQ_API_KEY not set; every report will be rejected at verification")

    object_storage = CloudinaryStorage(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        timeout=settings.upload_timeout_seconds,
    )
    if not object_storage.is_configured:
        logger.warning("Cloudinary not configured; report submission will fail")

    handler = ReportHandler(
        store=store,
        vision_client=vision_client,
        object_storage=object_storage,
        upload_folder_prefix=settings.upload_folder_prefix,
        max_image_bytes=settings.max_image_bytes,
        list_default_limit=settings.list_default_limit,
        list_max_limit=settings.list_max_limit,
        mine_default_limit=settings.mine_default_limit,
        mine_max_limit=settings.mine_max_limit,
    )

    logger.info("Services initialized")
    return ServiceContainer(
        handler=handler,
        store=store,
        vision_client=vision_client,
        object_storage=object_storage,
        token_verifier=build_token_verifier(settings),
    )
