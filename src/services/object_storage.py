"""
Image storage for report photos
Uploads raw image bytes to Cloudinary and returns where they ended up
"""

import io
import logging
from typing import Optional

import cloudinary
import cloudinary.uploader
from cloudinary import exceptions as cloudinary_exceptions

from src.core.exceptions import StorageError
from src.crowdsource.models import ImageRef
from src.services.deadline import DeadlineExceeded, call_with_deadline

logger = logging.getLogger(__name__)


class CloudinaryStorage:
    """
    Cloudinary image uploader.

    Usage:
        storage = CloudinaryStorage("demo", "key", "secret")
        ref = storage.upload(image_bytes, folder="firewatch/reports/uid", desired_id="report_1")

    The whole upload is bounded by ``timeout``; exceeding it raises StorageError.
    """

    def __init__(
        self,
        cloud_name: Optional[str],
        api_key: Optional[str],
        api_secret: Optional[str],
        timeout: float = 45.0
    ):
        """
        Initialize storage client and configure the Cloudinary SDK.

        Args:
            cloud_name: Cloudinary cloud name
            api_key: Cloudinary API key
            api_secret: Cloudinary API secret
            timeout: Wall-clock limit for one upload, in seconds
        """
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout

        if self.is_configured:
            cloudinary.config(
                cloud_name=cloud_name,
                api_key=api_key,
                api_secret=api_secret,
                secure=True,
            )
            logger.info(f"Cloudinary configured for cloud: {cloud_name}")

    @property
    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def upload(self, data: bytes, folder: str, desired_id: str) -> ImageRef:
        """
        Upload image bytes.

        Args:
            data: Image bytes
            folder: Destination folder
            desired_id: Public id to request

        Returns:
            ImageRef with the delivery URL and Cloudinary public id

        Raises:
            StorageError: not configured, rejected by Cloudinary, timed out
                or answered without url/public id
        """
        if not self.is_configured:
            raise StorageError("Image storage not configured")

        logger.info(f"Uploading {len(data)} bytes to {folder}/{desired_id}")
        try:
            result = call_with_deadline(
                self.timeout,
                cloudinary.uploader.upload,
                io.BytesIO(data),
                folder=folder,
                public_id=desired_id,
                resource_type="image",
                timeout=self.timeout,
            )
        except DeadlineExceeded:
            raise StorageError(f"Image upload timed out after {self.timeout:g} seconds")
        except cloudinary_exceptions.Error as e:
            raise StorageError(f"Image upload failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected Cloudinary failure: {e}")
            raise StorageError(f"Image upload failed: {e}")

        url = result.get("secure_url") if isinstance(result, dict) else None
        public_id = result.get("public_id") if isinstance(result, dict) else None
        if not url or not public_id:
            raise StorageError("Image upload response missing secure_url/public_id")

        logger.info(f"Uploaded image {public_id}")
        return ImageRef(url=url, storage_id=public_id)
