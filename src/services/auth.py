"""
Identity token verification for FireWatch Reports
Maps Firebase ID tokens sent by the mobile app to an owner id
"""

import logging
from dataclasses import dataclass
from typing import Optional

import firebase_admin
from firebase_admin import auth, credentials
from firebase_admin import exceptions as firebase_exceptions

from src.core.exceptions import AuthError

logger = logging.getLogger(__name__)

APP_NAME = "firewatch-reports"


@dataclass(frozen=True)
class AuthenticatedUser:
    """Caller identity resolved from a bearer token."""
    owner_id: str
    email: str = ""


def parse_bearer(header: Optional[str]) -> str:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthError: header missing or not a bearer credential
    """
    if not header:
        raise AuthError("Missing Authorization Bearer token")
    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme != "Bearer" or not token:
        raise AuthError("Missing Authorization Bearer token")
    return token


class FirebaseTokenVerifier:
    """
    Verifies Firebase ID tokens with the Admin SDK.

    The Firebase app is created once here and deleted in ``close``;
    nothing is initialized lazily on the first request.
    """

    def __init__(
        self,
        credentials_path: Optional[str] = None,
        project_id: Optional[str] = None,
        client_email: Optional[str] = None,
        private_key: Optional[str] = None
    ):
        """
        Initialize Firebase Admin.

        Args:
            credentials_path: Path to a service account JSON file
            project_id: Inline service account project id
            client_email: Inline service account client email
            private_key: Inline private key (escaped newlines allowed)

        Raises:
            ValueError: no usable credentials were supplied
        """
        if credentials_path:
            cred = credentials.Certificate(credentials_path)
        elif project_id and client_email and private_key:
            cred = credentials.Certificate({
                "type": "service_account",
                "project_id": project_id,
                "client_email": client_email,
                "private_key": private_key.replace("\\n", "\n"),
                "token_uri": "https://oauth2.googleapis.com/token",
            })
        else:
            raise ValueError(
                "Firebase credentials missing. Set FIREBASE_CREDENTIALS_PATH or "
                "FIREBASE_PROJECT_ID, FIREBASE_CLIENT_EMAIL and FIREBASE_PRIVATE_KEY."
            )

        self._app = firebase_admin.initialize_app(cred, name=APP_NAME)
        logger.info(f"Firebase Admin initialized for project: {self._app.project_id}")

    def verify(self, token: str) -> AuthenticatedUser:
        """
        Verify an ID token.

        Args:
            token: Firebase ID token

        Returns:
            AuthenticatedUser for the token's uid

        Raises:
            AuthError: token invalid, expired, revoked or unverifiable
        """
        try:
            decoded = auth.verify_id_token(token, app=self._app)
        except (ValueError, firebase_exceptions.FirebaseError) as e:
            logger.warning(f"ID token rejected: {e}")
            raise AuthError("Invalid token")

        return AuthenticatedUser(owner_id=decoded["uid"], email=decoded.get("email") or "")

    def close(self) -> None:
        """Delete the Firebase app."""
        firebase_admin.delete_app(self._app)
        logger.info("Firebase Admin app deleted")
