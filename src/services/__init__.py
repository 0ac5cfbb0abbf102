"""
External collaborators for the report pipeline
Vision classifier, image storage, identity tokens and process-wide wiring.
"""

from src.services.vision_client import VisionClient, parse_verdict
from src.services.object_storage import CloudinaryStorage
from src.services.auth import AuthenticatedUser, FirebaseTokenVerifier

__all__ = [
    # Vision classifier
    "VisionClient",
    "parse_verdict",
    # Image storage
    "CloudinaryStorage",
    # Identity
    "AuthenticatedUser",
    "FirebaseTokenVerifier",
]
