"""
Pytest configuration and fixtures
"""
import socket
import threading

import pytest
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.core.exceptions import AuthError, StorageError
from src.crowdsource.models import ImageRef, Verdict
from src.crowdsource.report_handler import ReportHandler
from src.database.repository import InMemoryReportStore
from src.services.auth import AuthenticatedUser


class FakeVisionClient:
    """Returns a fixed verdict, or raises a fixed error."""

    model = "test-vision-model"

    def __init__(self, verdict=None, error=None):
        self.verdict = verdict
        self.error = error
        self.calls = []

    def analyze(self, image_url):
        self.calls.append(image_url)
        if self.error is not None:
            raise self.error
        return self.verdict

    def close(self):
        pass


class FakeObjectStorage:
    """Records uploads instead of sending them anywhere."""

    def __init__(self, error=None):
        self.error = error
        self.uploads = []

    def upload(self, data, folder, desired_id):
        if self.error is not None:
            raise self.error
        self.uploads.append({"data": data, "folder": folder, "desired_id": desired_id})
        return ImageRef(
            url=f"https://images.example.com/{folder}/{desired_id}.jpg",
            storage_id=f"{folder}/{desired_id}",
        )

    def close(self):
        pass


class FakeTokenVerifier:
    """Maps 'token-<uid>' to that uid."""

    def verify(self, token):
        if not token.startswith("token-"):
            raise AuthError("Invalid token")
        uid = token[len("token-"):]
        return AuthenticatedUser(owner_id=uid, email=f"{uid}@example.com")

    def close(self):
        pass


class ManualScheduler:
    """Collects scheduled calls so tests decide when they run."""

    def __init__(self):
        self.pending = []

    def __call__(self, fn, *args):
        self.pending.append((fn, args))

    def run_all(self):
        while self.pending:
            fn, args = self.pending.pop(0)
            fn(*args)


def make_verdict(
    is_incident=True,
    incident_confidence=0.9,
    suspected_synthetic=False,
    synthetic_confidence=0.05,
    reasons=None,
):
    return Verdict(
        is_incident=is_incident,
        incident_confidence=incident_confidence,
        suspected_synthetic=suspected_synthetic,
        synthetic_confidence=synthetic_confidence,
        reasons=list(reasons) if reasons is not None else [],
        model_id="test-vision-model",
    )


@pytest.fixture
def sample_fields():
    """Valid submission form fields."""
    return {
        "title": "Smoke over ridge",
        "description": "Thick grey smoke rising behind the north ridge",
        "severity": "high",
        "lat": "-22.5",
        "lng": "-45.5",
        "deviceName": "Pixel 8",
        "deviceTime": "2026-01-27T14:30:00-03:00",
    }


@pytest.fixture
def sample_image():
    """A few bytes standing in for a JPEG."""
    return b"\xff\xd8\xff\xe0" + b"\x00" * 64


@pytest.fixture
def store():
    return InMemoryReportStore()


@pytest.fixture
def vision_client():
    return FakeVisionClient(verdict=make_verdict())


@pytest.fixture
def object_storage():
    return FakeObjectStorage()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def handler(store, vision_client, object_storage, scheduler):
    return ReportHandler(
        store=store,
        vision_client=vision_client,
        object_storage=object_storage,
        scheduler=scheduler,
    )


@pytest.fixture
def storage_failure():
    return FakeObjectStorage(error=StorageError("Image upload timed out after 45 seconds"))


@pytest.fixture
def trickle_server():
    """
    Local HTTP server that sends response headers, then one body byte every
    0.2 seconds for as long as the client stays connected.

    Yields the base URL.
    """
    stop = threading.Event()
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(5)
    listener.settimeout(0.1)
    port = listener.getsockname()[1]

    def trickle(conn):
        with conn:
            try:
                conn.recv(65536)
                conn.sendall(
                    b"HTTP/1.1 200 OK\r\n"
                    b"Content-Type: application/json\r\n"
                    b"Content-Length: 100000\r\n\r\n"
                )
                while not stop.is_set():
                    conn.sendall(b" ")
                    stop.wait(0.2)
            except OSError:
                return

    def serve():
        while not stop.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            threading.Thread(target=trickle, args=(conn,), daemon=True).start()

    server = threading.Thread(target=serve, daemon=True)
    server.start()

    yield f"http://127.0.0.1:{port}"

    stop.set()
    server.join(timeout=2)
    listener.close()
