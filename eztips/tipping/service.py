"""
Tip Transaction Orchestrator

Builds and executes a tip payment through the tip splitter contract:

1. resolve the recipient's native id to its EVM alias;
2. compute the fee split (fee coverage changes the payable amount);
3. build the payable sendTip(address, string) call, bound to a fixed gas
   budget and a fixed node set;
4. freeze it and hand it to the wallet session to sign and broadcast;
5. wait a settling delay and read the transaction status exactly once.

A transaction that is not yet visible on the mirror node is returned as
UNCONFIRMED rather than raised: consensus is expected shortly and the caller
proceeds optimistically. Steps 3 and 4 are never retried automatically.
"""

import asyncio
from decimal import Decimal, InvalidOperation

import structlog

from ..chains.address import AddressResolver, is_contract_address, to_native_id
from ..chains.mirror_client import MirrorNodeClient
from ..chains.transactions import build_send_tip_call, freeze_transaction
from ..chains.wallet import WalletSession
from ..config import TipsConfig, get_tips_config
from ..errors import MirrorNodeError, TipLedgerError, TransactionFailedError
from ..models.tipping import (
    TipReceipt,
    TipStatus,
    TipTransaction,
    TipVerification,
    tinybar_to_hbar,
)
from ..monitoring.logging import log_duration

logger = structlog.get_logger(__name__)

SUCCESS_STATUS = "SUCCESS"
TIP_TRANSACTION_MEMO = "Tip via Ez Crypto Tips"


class TransactionOrchestrator:
    """
    Executes tip payments against the tip splitter contract.

    Example:
        ```python
        orchestrator = TransactionOrchestrator(session, resolver, mirror)

        receipt = await orchestrator.send_tip(
            recipient_native_id="0.0.4817263",
            tip_amount=Decimal("100"),
            cover_fee=True,
            review_memo="Great service!",
        )
        # receipt.transaction_id is the correlation id for the review
        ```
    """

    # 1 tinybar up to a sanity ceiling
    MIN_TIP_AMOUNT = Decimal("0.00000001")
    MAX_TIP_AMOUNT = Decimal("1000000")

    def __init__(
        self,
        session: WalletSession,
        resolver: AddressResolver,
        mirror: MirrorNodeClient,
        config: TipsConfig | None = None,
    ):
        self.config = config or get_tips_config()
        self._session = session
        self._resolver = resolver
        self._mirror = mirror

    @property
    def contract_id(self) -> str:
        """
        Tip splitter contract id in native form.

        A contract configured in EVM form is reinterpreted as a native id.
        """
        configured = self.config.tip_splitter_contract_id
        if not configured:
            raise TipLedgerError(
                "Tip splitter contract not configured. Set EZTIPS_TIP_SPLITTER_CONTRACT_ID."
            )
        if is_contract_address(configured):
            native = to_native_id(configured)
            logger.warning(
                "contract_configured_in_evm_form",
                configured=configured,
                native_id=native,
            )
            return native
        return configured

    def _validate_amount(self, tip_amount: Decimal | float | str) -> Decimal:
        try:
            amount = Decimal(str(tip_amount))
        except InvalidOperation as e:
            raise ValueError(f"Invalid tip amount: {tip_amount!r}") from e
        if not amount.is_finite():
            raise ValueError(f"Invalid tip amount: {tip_amount!r}")
        if amount < self.MIN_TIP_AMOUNT:
            raise ValueError(f"Tip amount must be at least {self.MIN_TIP_AMOUNT} HBAR")
        if amount > self.MAX_TIP_AMOUNT:
            raise ValueError(f"Tip amount cannot exceed {self.MAX_TIP_AMOUNT} HBAR")
        return amount

    async def send_tip(
        self,
        recipient_native_id: str,
        tip_amount: Decimal | float | str,
        cover_fee: bool = False,
        review_memo: str | None = "",
    ) -> TipReceipt:
        """
        Pay a tip through the tip splitter contract.

        Args:
            recipient_native_id: Recipient account id (0.0.xxxxx)
            tip_amount: Tip in HBAR
            cover_fee: If True, the customer pays the platform fee on top
            review_memo: Review text passed to the contract

        Returns:
            TipReceipt whose transaction_id is the review correlation id

        Raises:
            ValueError: If the amount is out of bounds
            WalletConnectionError: If the wallet session is not connected
            AddressResolutionError: If the recipient has no EVM alias
            SignerError: If the wallet refuses to sign
            TransactionFailedError: If the ledger reports a failure status
        """
        amount = self._validate_amount(tip_amount)
        self._session.require_connected()

        tip = TipTransaction(
            recipient_native_id=recipient_native_id,
            tip_amount=amount,
            cover_fee=cover_fee,
            review_memo=review_memo,
            fee_rate=self.config.fee_rate,
        )
        log = logger.bind(recipient=recipient_native_id, cover_fee=cover_fee)

        recipient_address = await self._resolver.to_contract_address(recipient_native_id)

        call = build_send_tip_call(
            contract_id=self.contract_id,
            recipient_address=recipient_address,
            review_memo=tip.review_memo,
            payable_amount_tinybar=tip.payable_tinybar,
            gas=self.config.contract_gas_limit,
        )

        async with self._session.exclusive():
            payer = self._session.require_connected()
            frozen = freeze_transaction(
                call,
                payer_account_id=payer,
                node_account_ids=self.config.node_account_ids,
                memo=TIP_TRANSACTION_MEMO,
            )
            with log_duration(log, "tip_broadcast", total_paid=str(tip.total_paid)):
                result = await self._session.sign_and_broadcast(frozen.to_bytes())

        transaction_id = result.transaction_id
        status = await self._confirm(transaction_id)

        log.info(
            "tip_sent",
            transaction_id=transaction_id,
            status=status.value,
            total_paid=str(tip.total_paid),
            waiter_receives=str(tip.waiter_receives),
        )

        return TipReceipt(
            transaction_id=transaction_id,
            status=status,
            recipient_native_id=recipient_native_id,
            recipient_address=recipient_address,
            total_paid=tip.total_paid,
            waiter_receives=tip.waiter_receives,
            platform_fee=tip.platform_fee,
        )

    async def _confirm(self, transaction_id: str) -> TipStatus:
        """Single delayed status read; no backoff loop."""
        await asyncio.sleep(self.config.confirmation_delay_seconds)

        try:
            status = await self._mirror.get_transaction_status(transaction_id)
        except MirrorNodeError as e:
            logger.warning(
                "tip_status_check_failed",
                transaction_id=transaction_id,
                error=str(e),
            )
            return TipStatus.UNCONFIRMED

        if status is None:
            logger.info("tip_not_yet_visible", transaction_id=transaction_id)
            return TipStatus.UNCONFIRMED
        if status == SUCCESS_STATUS:
            return TipStatus.CONFIRMED

        logger.error("tip_failed", transaction_id=transaction_id, status=status)
        raise TransactionFailedError(transaction_id, status)

    async def verify_tip_transaction(
        self,
        transaction_id: str,
        waiter_native_id: str,
    ) -> TipVerification:
        """Audit a past tip: it succeeded and credited the waiter."""
        return await verify_tip_transfer(self._mirror, transaction_id, waiter_native_id)


async def verify_tip_transfer(
    mirror: MirrorNodeClient,
    transaction_id: str,
    waiter_native_id: str,
) -> TipVerification:
    """
    Check on the mirror node that a transaction succeeded and paid the waiter.

    Read-only and never raises for network problems; needs no wallet.
    """
    try:
        transaction = await mirror.get_transaction(transaction_id)
    except MirrorNodeError as e:
        return TipVerification(verified=False, error=str(e))

    if transaction is None:
        return TipVerification(verified=False, error="Transaction not found")

    result = transaction.get("result")
    if result != SUCCESS_STATUS:
        return TipVerification(
            verified=False,
            error=f"Transaction failed with status: {result}",
        )

    for transfer in transaction.get("transfers") or []:
        if transfer.get("account") == waiter_native_id and int(transfer.get("amount", 0)) > 0:
            return TipVerification(
                verified=True,
                amount=tinybar_to_hbar(int(transfer["amount"])),
            )

    return TipVerification(
        verified=False,
        error="No payment found to this waiter in transaction",
    )
