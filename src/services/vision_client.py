"""
Vision classifier client for FireWatch Reports

Asks a hosted vision model (Groq, OpenAI-compatible chat completions) whether
a submitted image shows a real fire incident and whether it looks synthetic.

The model's answer is untrusted text. ``parse_verdict`` decodes it field by
field into a ``Verdict``: confidences clamped into [0, 1], booleans coerced,
reasons bounded. Nothing downstream sees the raw answer.
"""

import json
import logging
import math
from typing import Any, List, Optional

import httpx

from src.core.constants import (
    MAX_REASONS,
    MAX_REASON_LENGTH,
    RAW_SNIPPET_LENGTH,
    VERIFICATION_PROMPT,
)
from src.core.exceptions import VerificationFormatError, VerificationUnavailableError
from src.crowdsource.models import Verdict
from src.services.deadline import DeadlineExceeded, call_with_deadline

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "yes", "1"}


def clamp01(value: Any) -> float:
    """Coerce to float and clamp into [0, 1]; unparseable values become 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return max(0.0, min(1.0, number))


def coerce_bool(value: Any) -> bool:
    """Coerce a loosely typed flag; strings must spell out a true value."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def coerce_reasons(value: Any) -> List[str]:
    """Keep at most MAX_REASONS non-blank reasons, each a short string."""
    if not isinstance(value, list):
        return []
    reasons = []
    for item in value:
        text = str(item).strip()[:MAX_REASON_LENGTH]
        if not text:
            continue
        reasons.append(text)
        if len(reasons) == MAX_REASONS:
            break
    return reasons


def _strip_code_fence(content: str) -> str:
    """Remove a surrounding ``` / ```json fence if the model added one."""
    text = content.strip()
    if text.startswith("```"):
        text = text[3:]
        if text[:4].lower() == "json":
            text = text[4:]
        if text.endswith("```"):
            text = text[:-3]
    return text.strip()


def parse_verdict(content: Optional[str], model_id: str) -> Verdict:
    """
    Decode and normalize raw classifier output.

    Args:
        content: Message content returned by the model
        model_id: Identifier of the model that produced it

    Returns:
        Normalized Verdict

    Raises:
        VerificationFormatError: content is empty, not JSON, or not an object
    """
    if not content or not content.strip():
        raise VerificationFormatError("Classifier returned empty content")

    try:
        parsed = json.loads(_strip_code_fence(content))
    except ValueError:
        snippet = content[:RAW_SNIPPET_LENGTH]
        raise VerificationFormatError(
            f"Classifier output not valid JSON: {snippet}",
            raw_snippet=snippet
        )

    if not isinstance(parsed, dict):
        snippet = content[:RAW_SNIPPET_LENGTH]
        raise VerificationFormatError(
            f"Classifier output is not a JSON object: {snippet}",
            raw_snippet=snippet
        )

    return Verdict(
        is_incident=coerce_bool(parsed.get("isIncident")),
        incident_confidence=clamp01(parsed.get("incidentConfidence")),
        suspected_synthetic=coerce_bool(parsed.get("suspectedSynthetic")),
        synthetic_confidence=clamp01(parsed.get("syntheticConfidence")),
        reasons=coerce_reasons(parsed.get("reasons")),
        model_id=model_id,
    )


class VisionClient:
    """
    Client for the hosted vision classifier.

    Usage:
        with VisionClient(api_key="gsk_...") as client:
            verdict = client.analyze("https://res.cloudinary.com/.../img.jpg")

    Every call is bounded by ``timeout``; hitting it surfaces as
    VerificationUnavailableError like any other transport failure.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "meta-llama/llama-4-maverick-17b-128e-instruct",
        api_url: str = "https://api.groq.com/openai/v1/chat/completions",
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None
    ):
        """
        Initialize vision client.

        Args:
            api_key: Groq API key
            model: Vision model identifier
            api_url: Chat completions endpoint
            timeout: Wall-clock limit for a whole request, in seconds
            http_client: Pre-built httpx client (tests)
        """
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.timeout = timeout
        self._client = http_client or httpx.Client(timeout=timeout)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self) -> None:
        self._client.close()

    def _build_payload(self, image_url: str) -> dict:
        return {
            "model": self.model,
            "temperature": 0,
            "response_format": {"type": "json_object"},
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": VERIFICATION_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
        }

    def analyze(self, image_url: str) -> Verdict:
        """
        Classify the image at ``image_url``.

        Args:
            image_url: Publicly reachable image URL

        Returns:
            Normalized Verdict

        Raises:
            VerificationUnavailableError: no API key, transport error,
                timeout or non-2xx answer
            VerificationFormatError: answer could not be decoded
        """
        if not self.api_key:
            raise VerificationUnavailableError("Classifier API key not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        logger.info(f"Requesting verdict from {self.model}")
        try:
            response = call_with_deadline(
                self.timeout,
                self._client.post,
                self.api_url,
                json=self._build_payload(image_url),
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except (DeadlineExceeded, httpx.TimeoutException):
            raise VerificationUnavailableError(
                f"Classifier timed out after {self.timeout:g} seconds"
            )
        except httpx.HTTPStatusError as e:
            raise VerificationUnavailableError(
                f"Classifier returned HTTP {e.response.status_code}"
            )
        except httpx.HTTPError as e:
            raise VerificationUnavailableError(f"Classifier request failed: {e}")

        try:
            body = response.json()
        except ValueError:
            snippet = response.text[:RAW_SNIPPET_LENGTH]
            raise VerificationFormatError(
                f"Classifier response not valid JSON: {snippet}",
                raw_snippet=snippet
            )

        return parse_verdict(self._extract_content(body), self.model)

    @staticmethod
    def _extract_content(body: Any) -> Optional[str]:
        """Pull choices[0].message.content out of a completions body."""
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None
        return content if isinstance(content, str) else None
