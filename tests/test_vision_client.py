"""
Tests for the vision classifier client
"""
import json
import time

import httpx
import pytest
from unittest.mock import patch, MagicMock

from src.core.constants import MAX_REASONS, MAX_REASON_LENGTH, RAW_SNIPPET_LENGTH
from src.core.exceptions import VerificationFormatError, VerificationUnavailableError
from src.services.vision_client import (
    VisionClient,
    clamp01,
    coerce_bool,
    coerce_reasons,
    parse_verdict,
)

API_URL = "https://api.groq.com/openai/v1/chat/completions"
IMAGE_URL = "https://images.example.com/firewatch/reports/u1/report_1.jpg"


def completion(content, status_code=200):
    """Chat completions response whose first message carries ``content``."""
    return httpx.Response(
        status_code,
        json={"choices": [{"message": {"role": "assistant", "content": content}}]},
        request=httpx.Request("POST", API_URL),
    )


class TestNormalization:
    """Test coercion helpers."""

    @pytest.mark.parametrize("raw,expected", [
        (0.5, 0.5),
        (1.5, 1.0),
        (-0.2, 0.0),
        ("0.8", 0.8),
        ("abc", 0.0),
        (None, 0.0),
        (float("nan"), 0.0),
        (float("inf"), 1.0),
        ([0.4], 0.0),
    ])
    def test_clamp01(self, raw, expected):
        assert clamp01(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        (True, True),
        (False, False),
        ("true", True),
        ("TRUE", True),
        ("yes", True),
        ("false", False),
        ("no", False),
        ("", False),
        (1, True),
        (0, False),
        (None, False),
    ])
    def test_coerce_bool(self, raw, expected):
        assert coerce_bool(raw) is expected

    def test_reasons_non_list_becomes_empty(self):
        assert coerce_reasons("flames visible") == []
        assert coerce_reasons(None) == []

    def test_reasons_truncated_and_stringified(self):
        raw = [i for i in range(MAX_REASONS + 5)]
        reasons = coerce_reasons(raw)

        assert len(reasons) == MAX_REASONS
        assert reasons[0] == "0"
        assert all(isinstance(r, str) for r in reasons)

    def test_long_reason_is_cut(self):
        reasons = coerce_reasons(["x" * (MAX_REASON_LENGTH + 50)])
        assert len(reasons[0]) == MAX_REASON_LENGTH

    def test_blank_reasons_are_dropped(self):
        assert coerce_reasons(["", "   ", "\n\t"]) == []
        assert coerce_reasons(["  ", "smoke plume "]) == ["smoke plume"]

    def test_blank_reasons_do_not_count_towards_limit(self):
        raw = [""] * 5 + [f"r{i}" for i in range(MAX_REASONS + 2)]
        reasons = coerce_reasons(raw)

        assert len(reasons) == MAX_REASONS
        assert reasons[0] == "r0"


class TestParseVerdict:
    """Test decoding raw classifier output."""

    def test_well_formed_answer(self):
        content = json.dumps({
            "isIncident": True,
            "incidentConfidence": 0.92,
            "suspectedSynthetic": False,
            "syntheticConfidence": 0.03,
            "reasons": ["open flames", "smoke column"],
        })

        verdict = parse_verdict(content, "vision-model")

        assert verdict.is_incident is True
        assert verdict.incident_confidence == 0.92
        assert verdict.suspected_synthetic is False
        assert verdict.synthetic_confidence == 0.03
        assert verdict.reasons == ["open flames", "smoke column"]
        assert verdict.model_id == "vision-model"

    def test_out_of_range_values_are_clamped(self):
        content = json.dumps({
            "isIncident": "true",
            "incidentConfidence": 1.5,
            "suspectedSynthetic": 0,
            "syntheticConfidence": "abc",
        })

        verdict = parse_verdict(content, "m")

        assert verdict.is_incident is True
        assert verdict.incident_confidence == 1.0
        assert verdict.suspected_synthetic is False
        assert verdict.synthetic_confidence == 0.0
        assert verdict.reasons == []

    def test_missing_fields_default_to_negative(self):
        verdict = parse_verdict("{}", "m")

        assert verdict.is_incident is False
        assert verdict.incident_confidence == 0.0

    def test_code_fenced_json_is_accepted(self):
        content = '```json\n{"isIncident": true, "incidentConfidence": 0.8}\n```'
        verdict = parse_verdict(content, "m")
        assert verdict.is_incident is True
        assert verdict.incident_confidence == 0.8

    def test_invalid_json_carries_snippet(self):
        content = "I think this is a fire! " * 30

        with pytest.raises(VerificationFormatError) as exc_info:
            parse_verdict(content, "m")

        assert exc_info.value.raw_snippet == content[:RAW_SNIPPET_LENGTH]
        assert "not valid JSON" in exc_info.value.message

    @pytest.mark.parametrize("content", ["[1, 2]", '"fire"', "42"])
    def test_non_object_json_is_rejected(self, content):
        with pytest.raises(VerificationFormatError):
            parse_verdict(content, "m")

    @pytest.mark.parametrize("content", [None, "", "   "])
    def test_empty_content_is_rejected(self, content):
        with pytest.raises(VerificationFormatError):
            parse_verdict(content, "m")


class TestVisionClient:
    """Test suite for VisionClient.analyze()."""

    def setup_method(self):
        """Setup test fixtures."""
        self.http = MagicMock()
        self.client = VisionClient(
            api_key="test_api_key",
            model="vision-model",
            api_url=API_URL,
            timeout=30.0,
            http_client=self.http,
        )

    def test_analyze_returns_normalized_verdict(self):
        self.http.post.return_value = completion(json.dumps({
            "isIncident": True,
            "incidentConfidence": 0.9,
            "suspectedSynthetic": False,
            "syntheticConfidence": 0.1,
            "reasons": ["smoke"],
        }))

        verdict = self.client.analyze(IMAGE_URL)

        assert verdict.is_incident is True
        assert verdict.incident_confidence == 0.9
        assert verdict.model_id == "vision-model"

    def test_request_shape(self):
        self.http.post.return_value = completion("{}")

        self.client.analyze(IMAGE_URL)

        args, kwargs = self.http.post.call_args
        assert args[0] == API_URL
        assert kwargs["headers"]["Authorization"] == "Bearer test_api_key"
        assert kwargs["timeout"] == 30.0
        payload = kwargs["json"]
        assert payload["model"] == "vision-model"
        assert payload["temperature"] == 0
        assert payload["response_format"] == {"type": "json_object"}
        content = payload["messages"][0]["content"]
        assert content[1] == {"type": "image_url", "image_url": {"url": IMAGE_URL}}

    def test_timeout_is_unavailable(self):
        self.http.post.side_effect = httpx.ReadTimeout("read timed out")

        with pytest.raises(VerificationUnavailableError) as exc_info:
            self.client.analyze(IMAGE_URL)

        assert "timed out" in exc_info.value.message

    def test_connection_error_is_unavailable(self):
        self.http.post.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(VerificationUnavailableError):
            self.client.analyze(IMAGE_URL)

    def test_server_error_is_unavailable(self):
        self.http.post.return_value = httpx.Response(
            503, text="overloaded", request=httpx.Request("POST", API_URL)
        )

        with pytest.raises(VerificationUnavailableError) as exc_info:
            self.client.analyze(IMAGE_URL)

        assert "503" in exc_info.value.message

    def test_missing_choices_is_format_error(self):
        self.http.post.return_value = httpx.Response(
            200, json={"choices": []}, request=httpx.Request("POST", API_URL)
        )

        with pytest.raises(VerificationFormatError):
            self.client.analyze(IMAGE_URL)

    def test_non_json_body_is_format_error(self):
        self.http.post.return_value = httpx.Response(
            200, text="<html>gateway</html>", request=httpx.Request("POST", API_URL)
        )

        with pytest.raises(VerificationFormatError):
            self.client.analyze(IMAGE_URL)

    def test_missing_api_key_is_unavailable(self):
        client = VisionClient(api_key=None, http_client=self.http)

        with pytest.raises(VerificationUnavailableError):
            client.analyze(IMAGE_URL)

        self.http.post.assert_not_called()

    @patch('src.services.vision_client.httpx.Client')
    def test_default_http_client_uses_timeout(self, mock_client):
        client = VisionClient(api_key="k", timeout=12.0)

        mock_client.assert_called_once_with(timeout=12.0)
        client.close()
        mock_client.return_value.close.assert_called_once()

    def test_slow_call_is_abandoned_at_deadline(self):
        client = VisionClient(api_key="k", api_url=API_URL, timeout=0.3, http_client=self.http)

        def slow_post(*args, **kwargs):
            time.sleep(2)
            return completion("{}")

        self.http.post.side_effect = slow_post

        started = time.monotonic()
        with pytest.raises(VerificationUnavailableError) as exc_info:
            client.analyze(IMAGE_URL)

        assert time.monotonic() - started < 1.5
        assert "timed out" in exc_info.value.message


class TestVisionClientDeadline:
    """The timeout bounds the whole request, not each read."""

    def test_trickling_response_times_out(self, trickle_server):
        client = VisionClient(
            api_key="k",
            api_url=f"{trickle_server}/openai/v1/chat/completions",
            timeout=1.0,
        )

        started = time.monotonic()
        with pytest.raises(VerificationUnavailableError) as exc_info:
            client.analyze(IMAGE_URL)
        elapsed = time.monotonic() - started

        assert elapsed < 3.0
        assert "timed out after 1 seconds" in exc_info.value.message
