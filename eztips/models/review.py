"""
Review Models

Reviews live in two places:

- the ledger copy, a ReviewEnvelope appended to a consensus topic, which is
  authoritative and immutable;
- the cache copy, an IndexedReview in the secondary index, which is advisory
  and carries the ledger coordinates (sequence number, consensus timestamp).

Field names are snake_case in Python and camelCase on the wire, matching the
envelope format already written to the topic.
"""

import json
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..errors import EnvelopeError

SUPPORTED_ENVELOPE_VERSIONS = ("1.0",)
CURRENT_ENVELOPE_VERSION = "1.0"
REVIEW_MESSAGE_TYPE = "review"

MAX_RATING = 5


class ReviewRecord(BaseModel):
    """
    A customer's review of a service worker, bound to one payment.

    rating is optional; 0 and None both mean "no rating given".
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    waiter_id: str = Field(min_length=1)
    waiter_name: str | None = None
    rating: float | None = None
    comment: str = ""
    tip_amount: float | None = None
    tip_token: str | None = Field(default="HBAR")
    correlation_id: str | None = Field(
        default=None,
        alias="transactionId",
        description="Payment transaction id this review is attached to",
    )

    @field_validator("rating", mode="before")
    @classmethod
    def validate_rating(cls, v: Any) -> Any:
        """Ratings are numbers in [0, 5]; booleans are not ratings."""
        if v is None:
            return None
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("rating must be a number")
        if v < 0 or v > MAX_RATING:
            raise ValueError(f"rating must be between 0 and {MAX_RATING}")
        return v


class ReviewEnvelope(BaseModel):
    """Versioned, tagged wrapper written to the reviews topic."""

    app: str
    version: str = CURRENT_ENVELOPE_VERSION
    type: str = REVIEW_MESSAGE_TYPE
    data: ReviewRecord
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if v not in SUPPORTED_ENVELOPE_VERSIONS:
            raise ValueError(f"unsupported envelope version {v!r}")
        return v

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v != REVIEW_MESSAGE_TYPE:
            raise ValueError(f"unexpected message type {v!r}")
        return v

    def encode(self) -> bytes:
        """Serialize to the UTF-8 JSON bytes submitted to the ledger."""
        payload = self.model_dump(mode="json", by_alias=True)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_envelope(raw: bytes | str, expected_app: str | None = None) -> ReviewEnvelope:
    """
    Decode and validate a review envelope read back from the ledger.

    Args:
        raw: UTF-8 JSON message body
        expected_app: If given, the envelope's app tag must match

    Raises:
        EnvelopeError: If the payload is not JSON, has an unknown version,
            is not a review, or is missing required fields
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        payload = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise EnvelopeError(f"Message is not UTF-8 JSON: {e}") from e

    if not isinstance(payload, dict):
        raise EnvelopeError("Message is not a JSON object")

    version = payload.get("version")
    if version not in SUPPORTED_ENVELOPE_VERSIONS:
        raise EnvelopeError(f"Unsupported envelope version: {version!r}")

    try:
        envelope = ReviewEnvelope.model_validate(payload)
    except ValidationError as e:
        raise EnvelopeError(f"Invalid review envelope: {e.error_count()} error(s)") from e

    if expected_app is not None and envelope.app != expected_app:
        raise EnvelopeError(f"Envelope app {envelope.app!r} does not match {expected_app!r}")

    return envelope


class IndexedReview(ReviewRecord):
    """Cache index entry for a review already accepted by the ledger."""

    hcs_message_id: str
    hcs_sequence_number: int
    hcs_timestamp: str
    verified: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_ledger(
        cls,
        record: ReviewRecord,
        message_id: str,
        sequence_number: int,
        timestamp: str,
        created_at: datetime | None = None,
    ) -> "IndexedReview":
        """Build an index entry from a record and its ledger coordinates."""
        extra: dict[str, Any] = {}
        if created_at is not None:
            extra["created_at"] = created_at
        return cls(
            **record.model_dump(),
            hcs_message_id=message_id,
            hcs_sequence_number=sequence_number,
            hcs_timestamp=timestamp,
            verified=True,
            **extra,
        )

    def to_index_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SubmissionReceipt(BaseModel):
    """Ledger coordinates of a submitted review."""

    message_id: str = Field(description="topic@sequence")
    sequence_number: int
    timestamp: str = Field(description="Consensus timestamp (seconds.nanos)")
    indexed: bool = Field(
        default=True, description="Whether the secondary index write succeeded"
    )


class VerificationResult(BaseModel):
    """Outcome of an independent ledger read. Informational only."""

    verified: bool
    payload: ReviewEnvelope | None = None
    error: str | None = None


class RatingSnapshot(BaseModel):
    """Windowed average and unwindowed total of valid ratings."""

    average: float = 0.0
    total: int = 0


class WaiterRatingSummary(BaseModel):
    """Rating snapshot plus the latest reviews for display."""

    waiter_id: str
    snapshot: RatingSnapshot
    latest_reviews: list[IndexedReview] = Field(default_factory=list)
