"""
Composition Root

TipLedgerApp owns the wallet session, the mirror client, the review index and
the services built on them, so nothing in the core holds ambient global state.

A review that follows a payment runs as its own ReviewFollowUp task: the
payment has already succeeded when the review starts, a failed review can be
retried on its own, and a review problem never blocks or unwinds the
payment.

Flows are not cancelled when the caller goes away. A follow-up keeps running
until it finishes unless cancel() is called explicitly.
"""

import asyncio
from decimal import Decimal
from enum import Enum
from typing import Any

import httpx
import structlog

from .chains.address import AddressResolver
from .chains.mirror_client import MirrorNodeClient
from .chains.wallet import SignerConnector, WalletSession
from .config import TipsConfig, get_tips_config
from .errors import TipLedgerError
from .models.review import (
    ReviewRecord,
    SubmissionReceipt,
    VerificationResult,
    WaiterRatingSummary,
)
from .models.tipping import TipReceipt
from .reviews.index import ReviewIndex, init_review_index
from .reviews.ledger import ReviewLedgerClient
from .reviews.rating import RatingAggregator
from .tipping.service import TransactionOrchestrator

logger = structlog.get_logger(__name__)


class FollowUpState(str, Enum):
    """Lifecycle of a review follow-up task."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    DUPLICATE = "duplicate"    # Index already holds a review for this payment
    FAILED = "failed"          # Retryable with retry()
    CANCELLED = "cancelled"


class ReviewFollowUp:
    """
    A review submission decoupled from the payment that produced it.

    cancel() sets a cancellation token that is honoured before the duplicate
    check and before the ledger write. Once the write has started it runs to
    completion; a ledger message cannot be recalled.
    """

    def __init__(self, ledger: ReviewLedgerClient, record: ReviewRecord):
        self.record = record
        self.state = FollowUpState.PENDING
        self.receipt: SubmissionReceipt | None = None
        self.error: Exception | None = None
        self.attempts = 0
        self._ledger = ledger
        self._cancel_token = asyncio.Event()
        self._task: asyncio.Task[SubmissionReceipt | None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancel_token.is_set()

    @property
    def task(self) -> "asyncio.Task[SubmissionReceipt | None] | None":
        return self._task

    def start(self) -> "asyncio.Task[SubmissionReceipt | None]":
        """Schedule the submission; returns the running task if already started."""
        if self._task is None:
            self._task = asyncio.create_task(
                self._run(),
                name=f"review-follow-up-{self.record.correlation_id}",
            )
        return self._task

    def cancel(self) -> None:
        self._cancel_token.set()

    def retry(self) -> "asyncio.Task[SubmissionReceipt | None]":
        """Run a failed submission again."""
        if self.state != FollowUpState.FAILED:
            raise RuntimeError(f"Only failed follow-ups can be retried (state={self.state.value})")
        self.state = FollowUpState.PENDING
        self.error = None
        self._task = None
        return self.start()

    async def wait(self) -> SubmissionReceipt | None:
        return await self.start()

    async def _run(self) -> SubmissionReceipt | None:
        self.attempts += 1
        log = logger.bind(
            correlation_id=self.record.correlation_id,
            waiter_id=self.record.waiter_id,
            attempt=self.attempts,
        )

        if self.cancelled:
            self.state = FollowUpState.CANCELLED
            return None

        self.state = FollowUpState.RUNNING
        try:
            if self.record.correlation_id and await self._ledger.check_duplicate_review(
                self.record.correlation_id, self.record.waiter_id
            ):
                self.state = FollowUpState.DUPLICATE
                return None

            if self.cancelled:
                self.state = FollowUpState.CANCELLED
                return None

            receipt = await self._ledger.submit(self.record)
        except TipLedgerError as e:
            self.state = FollowUpState.FAILED
            self.error = e
            log.warning("review_follow_up_failed", error=str(e), error_type=type(e).__name__)
            return None
        except Exception as e:
            self.state = FollowUpState.FAILED
            self.error = e
            log.exception("review_follow_up_crashed", error=str(e), error_type=type(e).__name__)
            return None

        self.state = FollowUpState.SUCCEEDED
        self.receipt = receipt
        log.info("review_follow_up_succeeded", message_id=receipt.message_id)
        return receipt


class TipLedgerApp:
    """
    Application-level owner of the session and the services.

    Example:
        ```python
        app = TipLedgerApp(connector)
        await app.start()
        await app.connect()

        receipt, follow_up = await app.pay_and_review(
            recipient_native_id="0.0.4817263",
            tip_amount=Decimal("100"),
            cover_fee=False,
            rating=5,
            comment="Great service!",
        )
        await follow_up.wait()
        ```
    """

    def __init__(
        self,
        connector: SignerConnector,
        config: TipsConfig | None = None,
        index: ReviewIndex | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or get_tips_config()
        self.session = WalletSession(connector, self.config)
        self.mirror = MirrorNodeClient(self.config, http_client=http_client)
        self.resolver = AddressResolver(self.mirror)
        self.orchestrator = TransactionOrchestrator(
            self.session, self.resolver, self.mirror, self.config
        )
        self._index = index
        self._ledger: ReviewLedgerClient | None = None
        self._aggregator: RatingAggregator | None = None
        self._follow_ups: set[ReviewFollowUp] = set()
        self._started = False

    @property
    def ledger(self) -> ReviewLedgerClient:
        if self._ledger is None:
            raise RuntimeError("TipLedgerApp not started. Call start() first.")
        return self._ledger

    @property
    def aggregator(self) -> RatingAggregator:
        if self._aggregator is None:
            raise RuntimeError("TipLedgerApp not started. Call start() first.")
        return self._aggregator

    async def start(self) -> None:
        """Create the index, wire the review services and rehydrate the wallet."""
        if self._started:
            return

        if self._index is None:
            self._index = await init_review_index(
                self.config.redis_url,
                self.config.redis_password,
                prefix=self.config.index_key_prefix,
            )
        self._ledger = ReviewLedgerClient(self.session, self.mirror, self._index, self.config)
        self._aggregator = RatingAggregator(
            self._index,
            window=self.config.rating_window,
            fetch_limit=self.config.review_fetch_limit,
        )

        await self.session.initialize()
        self._started = True
        logger.info(
            "tip_ledger_started",
            network=self.config.network.value,
            wallet_state=self.session.state.value,
        )

    async def close(self) -> None:
        """
        Release HTTP and index resources.

        The wallet pairing is left alone so it can be rehydrated on the next
        start.
        """
        await self.mirror.close()
        if self._index is not None:
            await self._index.close()
        self._started = False

    # ==================== Wallet ====================

    async def connect(self) -> str:
        return await self.session.connect()

    async def disconnect(self) -> None:
        await self.session.disconnect()

    # ==================== Payments ====================

    async def send_tip(
        self,
        recipient_native_id: str,
        tip_amount: Decimal | float | str,
        cover_fee: bool = False,
        review_memo: str | None = "",
    ) -> TipReceipt:
        return await self.orchestrator.send_tip(
            recipient_native_id, tip_amount, cover_fee, review_memo
        )

    async def pay_and_review(
        self,
        recipient_native_id: str,
        tip_amount: Decimal | float | str,
        cover_fee: bool = False,
        rating: float | None = None,
        comment: str = "",
        waiter_name: str | None = None,
    ) -> tuple[TipReceipt, ReviewFollowUp | None]:
        """
        Pay a tip, then schedule the review as an independent follow-up.

        Review inputs are validated before anything is signed. Payment errors
        propagate. Review errors after payment are recorded on the returned
        ReviewFollowUp and never affect the payment.

        Returns:
            (receipt, follow_up); follow_up is None when there is nothing to review

        Raises:
            ValueError: If the rating or review fields are invalid; no payment
                is made
        """
        draft: ReviewRecord | None = None
        if rating or comment:
            draft = ReviewRecord(
                waiter_id=recipient_native_id,
                waiter_name=waiter_name,
                rating=rating,
                comment=comment,
                tip_token="HBAR",
            )

        receipt = await self.send_tip(recipient_native_id, tip_amount, cover_fee, comment)

        if draft is None:
            return receipt, None

        record = draft.model_copy(update={
            "tip_amount": float(receipt.total_paid),
            "correlation_id": receipt.transaction_id,
        })
        return receipt, self.schedule_review(record)

    def schedule_review(self, record: ReviewRecord) -> ReviewFollowUp:
        """Start a review submission in the background and track it."""
        follow_up = ReviewFollowUp(self.ledger, record)
        task = follow_up.start()
        self._follow_ups.add(follow_up)
        task.add_done_callback(lambda _t: self._follow_ups.discard(follow_up))
        return follow_up

    @property
    def pending_follow_ups(self) -> int:
        return len(self._follow_ups)

    # ==================== Reviews ====================

    async def submit_review(self, record: ReviewRecord) -> SubmissionReceipt:
        return await self.ledger.submit(record)

    async def verify_review(self, message_id: str) -> VerificationResult:
        return await self.ledger.verify(message_id)

    async def waiter_rating(self, waiter_id: str) -> WaiterRatingSummary:
        return await self.aggregator.summarize_waiter(waiter_id)

    async def reconcile_reviews(self, after_sequence: int = 0, limit: int = 100) -> int:
        return await self.ledger.reconcile(after_sequence=after_sequence, limit=limit)

    def status(self) -> dict[str, Any]:
        return {
            "network": self.config.network.value,
            "wallet_state": self.session.state.value,
            "account_id": self.session.account_id,
            "pending_follow_ups": self.pending_follow_ups,
        }
