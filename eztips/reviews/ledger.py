"""
Review Ledger Client

Reviews are appended to a consensus topic, which gives each one an immutable
sequence number and consensus timestamp. The topic is the source of truth.

After the ledger accepts a message, an entry is written to the secondary
review index for fast reads. That write is not transactional with the ledger
submission: when it fails the submission still succeeds, and the review is
only missing from the fast path until reconcile() backfills it.
"""

from datetime import UTC, datetime
from decimal import Decimal

import structlog

from ..chains.mirror_client import MirrorNodeClient
from ..chains.transactions import TopicMessageBody, freeze_transaction
from ..chains.wallet import WalletSession
from ..config import TipsConfig, get_tips_config
from ..errors import (
    CacheReadError,
    CacheWriteError,
    EnvelopeError,
    LedgerSubmissionError,
    MirrorNodeError,
    PayloadTooLargeError,
    SignerError,
    WalletConnectionError,
)
from ..models.review import (
    IndexedReview,
    ReviewEnvelope,
    ReviewRecord,
    SubmissionReceipt,
    VerificationResult,
    decode_envelope,
)
from ..monitoring.logging import log_duration
from .index import ReviewIndex

logger = structlog.get_logger(__name__)


def parse_message_id(message_id: str) -> tuple[str, int]:
    """Split topic@sequence into its parts."""
    topic_id, sep, sequence = message_id.partition("@")
    if not sep or not topic_id or not sequence.isdigit():
        raise ValueError(f"Invalid message id {message_id!r}, expected topic@sequence")
    return topic_id, int(sequence)


def consensus_timestamp_to_datetime(timestamp: str) -> datetime | None:
    """Convert a seconds.nanos consensus timestamp to an aware datetime."""
    try:
        return datetime.fromtimestamp(float(Decimal(timestamp)), tz=UTC)
    except (ArithmeticError, ValueError):
        return None


class ReviewLedgerClient:
    """
    Submits reviews to the reviews topic and maintains the review index.

    Example:
        ```python
        client = ReviewLedgerClient(session, mirror, index)

        if not await client.check_duplicate_review(receipt.transaction_id, "0.0.4817263"):
            result = await client.submit(ReviewRecord(
                waiter_id="0.0.4817263",
                rating=5,
                comment="Lovely evening",
                tip_amount=100.0,
                correlation_id=receipt.transaction_id,
            ))
        ```
    """

    def __init__(
        self,
        session: WalletSession | None,
        mirror: MirrorNodeClient,
        index: ReviewIndex,
        config: TipsConfig | None = None,
    ):
        self.config = config or get_tips_config()
        self._session = session
        self._mirror = mirror
        self._index = index

    def _require_session(self) -> WalletSession:
        """Read-only uses (verify, reconcile) need no wallet; submit does."""
        if self._session is None:
            raise WalletConnectionError("No wallet session available for ledger writes")
        self._session.require_connected()
        return self._session

    @property
    def topic_id(self) -> str:
        return self.config.reviews_topic_id

    def build_envelope(self, record: ReviewRecord) -> ReviewEnvelope:
        return ReviewEnvelope(app=self.config.app_id, data=record)

    def encode(self, record: ReviewRecord) -> bytes:
        """
        Encode a review for submission.

        Raises:
            PayloadTooLargeError: If the envelope exceeds max_message_bytes
        """
        payload = self.build_envelope(record).encode()
        if len(payload) > self.config.max_message_bytes:
            raise PayloadTooLargeError(len(payload), self.config.max_message_bytes)
        return payload

    async def submit(self, record: ReviewRecord) -> SubmissionReceipt:
        """
        Append a review to the ledger, then index it best-effort.

        Returns:
            SubmissionReceipt with the ledger coordinates. indexed is False if
            the index write failed; the submission is still successful.

        Raises:
            WalletConnectionError: If the wallet session is not connected
            PayloadTooLargeError: If the encoded review is too large
            LedgerSubmissionError: If the signer or ledger rejects the message
        """
        session = self._require_session()
        payload = self.encode(record)
        log = logger.bind(
            topic_id=self.topic_id,
            waiter_id=record.waiter_id,
            correlation_id=record.correlation_id,
        )

        body = TopicMessageBody(topic_id=self.topic_id, message=payload.decode("utf-8"))

        try:
            async with session.exclusive():
                payer = session.require_connected()
                frozen = freeze_transaction(
                    body,
                    payer_account_id=payer,
                    node_account_ids=self.config.node_account_ids,
                )
                with log_duration(log, "review_submit", size=len(payload)):
                    result = await session.sign_and_broadcast(frozen.to_bytes())
            receipt = await session.get_receipt(result.transaction_id)
        except SignerError as e:
            raise LedgerSubmissionError(f"Failed to submit review to ledger: {e}") from e

        sequence_number = receipt.get("topicSequenceNumber")
        timestamp = receipt.get("consensusTimestamp") or ""
        if sequence_number is None:
            raise LedgerSubmissionError(
                f"Ledger receipt for {result.transaction_id} has no topic sequence number"
            )
        try:
            sequence_number = int(sequence_number)
        except (TypeError, ValueError) as e:
            raise LedgerSubmissionError(
                f"Ledger receipt for {result.transaction_id} has invalid topic sequence "
                f"number {sequence_number!r}"
            ) from e
        message_id = f"{self.topic_id}@{sequence_number}"

        log.info("review_submitted", message_id=message_id, sequence_number=sequence_number)

        indexed = await self._write_index(record, message_id, sequence_number, str(timestamp))

        return SubmissionReceipt(
            message_id=message_id,
            sequence_number=sequence_number,
            timestamp=str(timestamp),
            indexed=indexed,
        )

    async def _write_index(
        self,
        record: ReviewRecord,
        message_id: str,
        sequence_number: int,
        timestamp: str,
    ) -> bool:
        """Best-effort index write; failures are logged and swallowed."""
        try:
            entry = IndexedReview.from_ledger(record, message_id, sequence_number, timestamp)
            stored = await self._index.add(entry)
        except Exception as e:
            logger.error(
                "review_index_write_failed",
                message_id=message_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if not stored:
            logger.warning(
                "review_index_duplicate_skipped",
                message_id=message_id,
                waiter_id=record.waiter_id,
                correlation_id=record.correlation_id,
            )
        return True

    async def verify(self, message_id: str) -> VerificationResult:
        """
        Read a review straight from the ledger, bypassing the index.

        For audit only: mismatches are reported, never raised.
        """
        try:
            topic_id, sequence_number = parse_message_id(message_id)
        except ValueError as e:
            return VerificationResult(verified=False, error=str(e))

        try:
            raw = await self._mirror.get_topic_message(topic_id, sequence_number)
        except MirrorNodeError as e:
            logger.warning("review_verify_unreachable", message_id=message_id, error=str(e))
            return VerificationResult(verified=False, error=str(e))

        if raw is None:
            return VerificationResult(verified=False, error="Message not found on ledger")

        try:
            envelope = decode_envelope(raw, expected_app=self.config.app_id)
        except EnvelopeError as e:
            logger.warning("review_verify_mismatch", message_id=message_id, error=str(e))
            return VerificationResult(verified=False, error=str(e))

        return VerificationResult(verified=True, payload=envelope)

    async def check_duplicate_review(self, correlation_id: str, waiter_id: str) -> bool:
        """
        True if the index already holds a review for this payment and waiter.

        Advisory only: the ledger does not enforce uniqueness, and an index
        read failure is reported as "no duplicate".
        """
        try:
            duplicate = await self._index.exists(waiter_id, correlation_id)
        except CacheReadError as e:
            logger.error("review_duplicate_check_failed", error=str(e))
            return False

        if duplicate:
            logger.info(
                "review_duplicate_detected",
                correlation_id=correlation_id,
                waiter_id=waiter_id,
            )
        return duplicate

    async def get_waiter_reviews(self, waiter_id: str, limit: int | None = None) -> list[IndexedReview]:
        """Latest indexed reviews for a waiter; empty if the index is unreadable."""
        try:
            return await self._index.find_by_waiter(
                waiter_id, limit or self.config.review_fetch_limit
            )
        except CacheReadError as e:
            logger.error("review_index_read_failed", waiter_id=waiter_id, error=str(e))
            return []

    async def reconcile(self, after_sequence: int = 0, limit: int = 100) -> int:
        """
        Backfill index entries for ledger reviews the index is missing.

        Args:
            after_sequence: Only consider messages after this sequence number
            limit: Maximum messages to read in this pass

        A message whose index read or write fails is logged and skipped; the
        next pass picks it up again.

        Returns:
            Number of entries added to the index
        """
        messages = await self._mirror.list_topic_messages(
            self.topic_id, after_sequence=after_sequence, limit=limit
        )

        added = 0
        failed = 0
        for message in messages:
            sequence_number = int(message["sequence_number"])
            try:
                if await self._index.has_sequence(sequence_number):
                    continue
            except CacheReadError as e:
                failed += 1
                logger.error("reconcile_index_read_failed", sequence_number=sequence_number, error=str(e))
                continue

            try:
                envelope = decode_envelope(message["payload"], expected_app=self.config.app_id)
            except EnvelopeError as e:
                logger.debug("reconcile_skip_message", sequence_number=sequence_number, error=str(e))
                continue

            timestamp = str(message.get("consensus_timestamp") or "")
            entry = IndexedReview.from_ledger(
                envelope.data,
                message_id=f"{self.topic_id}@{sequence_number}",
                sequence_number=sequence_number,
                timestamp=timestamp,
                created_at=consensus_timestamp_to_datetime(timestamp),
            )
            try:
                if await self._index.add(entry):
                    added += 1
            except CacheWriteError as e:
                failed += 1
                logger.error("reconcile_index_write_failed", sequence_number=sequence_number, error=str(e))

        logger.info(
            "review_index_reconciled",
            topic_id=self.topic_id,
            scanned=len(messages),
            added=added,
            failed=failed,
        )
        return added

    def explorer_url(self, message_id: str) -> str:
        """HashScan link for a review message."""
        topic_id, sequence_number = parse_message_id(message_id)
        return self.config.get_explorer_url(f"topic/{topic_id}/message/{sequence_number}")
