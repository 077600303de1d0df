"""
Tests for the Gemini extraction collaborator.

The model is faked; provider errors are real google-api-core exceptions.
"""

import asyncio
from decimal import Decimal
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import BlockedPromptException

from travel_tracker.models.receipt import ReceiptFile
from travel_tracker.services.extraction import (
    AuthError,
    ContentBlockedError,
    EmptyResponseError,
    ExtractionError,
    GeminiReceiptExtractor,
    MalformedResponseError,
    NetworkError,
    OversizeError,
    RateLimitError,
    ServiceUnavailableError,
    UnknownError,
    classify_provider_error,
    parse_extraction_payload,
)


VALID_PAYLOAD = (
    '{"date": "2026-03-14", "time": "08:30", "amount": 245.5, "currency": "INR", '
    '"pickupLocation": "HSR Layout", "dropoffLocation": "Bagmane Tech Park", '
    '"tripType": "Commute"}'
)


def response(text: str = VALID_PAYLOAD, finish: str = "STOP", block_reason=None):
    return SimpleNamespace(
        prompt_feedback=SimpleNamespace(block_reason=block_reason),
        candidates=[SimpleNamespace(finish_reason=SimpleNamespace(name=finish))],
        text=text,
    )


class PartlessResponse:
    """A response whose .text raises, as the SDK does with no parts."""
    prompt_feedback = None
    candidates = [SimpleNamespace(finish_reason=SimpleNamespace(name="STOP"))]

    @property
    def text(self):
        raise ValueError("The response has no parts")


class FakeModel:
    def __init__(self, result):
        self._result = result
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if isinstance(self._result, BaseException):
            raise self._result
        return self._result


def extract_with(result):
    model = FakeModel(result)
    extractor = GeminiReceiptExtractor(model=model)
    file = ReceiptFile(file_name="ride.pdf", content=b"%PDF-1.4", mime_type="application/pdf")
    return asyncio.run(extractor.extract(file)), model


class TestClassifyProviderError:
    """Tests for mapping provider failures to the error taxonomy."""

    @pytest.mark.parametrize("exc,expected", [
        (google_exceptions.ResourceExhausted("quota"), RateLimitError),
        (google_exceptions.TooManyRequests("slow down"), RateLimitError),
        (google_exceptions.Unauthorized("no"), AuthError),
        (google_exceptions.Forbidden("no"), AuthError),
        (google_exceptions.InvalidArgument("API key not valid. Please pass a valid API key."), AuthError),
        (google_exceptions.DeadlineExceeded("timeout"), NetworkError),
        (google_exceptions.ServiceUnavailable("down"), ServiceUnavailableError),
        (google_exceptions.InternalServerError("oops"), ServiceUnavailableError),
        (ConnectionError("reset"), NetworkError),
        (TimeoutError(), NetworkError),
        (BlockedPromptException("blocked"), ContentBlockedError),
        (google_exceptions.InvalidArgument("bad image"), UnknownError),
        (RuntimeError("???"), UnknownError),
    ])
    def test_mapping(self, exc, expected):
        error = classify_provider_error(exc)
        assert type(error) is expected
        assert error.detail

    def test_extraction_errors_pass_through(self):
        original = MalformedResponseError("bad json")
        assert classify_provider_error(original) is original

    def test_user_messages_are_distinct(self):
        classes = [
            OversizeError, EmptyResponseError, MalformedResponseError, RateLimitError,
            AuthError, ServiceUnavailableError, NetworkError, ContentBlockedError, UnknownError,
        ]
        messages = {cls.user_message for cls in classes}
        assert len(messages) == len(classes)
        assert all(issubclass(cls, ExtractionError) for cls in classes)

    def test_oversize_message_uses_limit(self):
        assert "5 MB" in OversizeError("too big", limit_mb=5).user_message


class TestParseExtractionPayload:
    """Tests for parsing the model's JSON answer."""

    def test_valid_payload(self):
        data = parse_extraction_payload(VALID_PAYLOAD)
        assert data.trip_date == "2026-03-14"
        assert data.trip_time == "08:30"
        assert data.amount == Decimal("245.50")
        assert data.pickup_location == "HSR Layout"
        assert data.dropoff_location == "Bagmane Tech Park"
        assert data.trip_type == "Commute"

    def test_code_fences_and_prose(self):
        text = f"Here you go:\n```json\n{VALID_PAYLOAD}\n```"
        assert parse_extraction_payload(text).amount == Decimal("245.50")

    @pytest.mark.parametrize("raw,expected", [
        ('"₹1,234.50"', Decimal("1234.50")),
        ('"INR 350"', Decimal("350.00")),
        ('"Rs. 350"', Decimal("350.00")),
        ('"Rs.1,200.00"', Decimal("1200.00")),
        ('"Total: Rs 89.5 incl. GST"', Decimal("89.50")),
        ("99", Decimal("99.00")),
        ('""', None),
        ("null", None),
    ])
    def test_amount_strings(self, raw, expected):
        data = parse_extraction_payload('{"date": "2026-03-14", "amount": %s}' % raw)
        assert data.amount == expected

    def test_blank_strings_become_none(self):
        data = parse_extraction_payload('{"date": "", "pickupLocation": "  ", "amount": 0}')
        assert data.trip_date is None
        assert data.pickup_location is None
        assert data.amount == Decimal("0.00")

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_response(self, text):
        with pytest.raises(EmptyResponseError):
            parse_extraction_payload(text)

    @pytest.mark.parametrize("text", ["not json at all", "{broken json", "[1, 2, 3]"])
    def test_malformed_response(self, text):
        with pytest.raises(MalformedResponseError):
            parse_extraction_payload(text)


class TestGeminiReceiptExtractor:
    """Tests for the extractor against a fake model."""

    def test_extract_sends_file_inline(self):
        data, model = extract_with(response())
        assert data.amount == Decimal("245.50")
        file_part, prompt = model.calls[0]
        assert file_part == {"mime_type": "application/pdf", "data": b"%PDF-1.4"}
        assert "JSON" in prompt

    def test_provider_error_is_classified(self):
        with pytest.raises(RateLimitError):
            extract_with(google_exceptions.ResourceExhausted("quota"))

    def test_blocked_prompt(self):
        with pytest.raises(ContentBlockedError):
            extract_with(response(block_reason="SAFETY"))

    def test_safety_finish_reason(self):
        with pytest.raises(ContentBlockedError):
            extract_with(response(finish="SAFETY"))

    def test_no_candidates(self):
        empty = SimpleNamespace(prompt_feedback=None, candidates=[], text="")
        with pytest.raises(EmptyResponseError):
            extract_with(empty)

    def test_partless_response(self):
        with pytest.raises(EmptyResponseError):
            extract_with(PartlessResponse())

    def test_malformed_text(self):
        with pytest.raises(MalformedResponseError):
            extract_with(response(text="I could not read this receipt."))
