"""
Tests for the tip transaction orchestrator.

The wallet connector and mirror node are mocked; address resolution, call
encoding and freezing run for real.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from web3 import Web3

from eztips.chains.address import AddressResolver, long_zero_address
from eztips.chains.wallet import WalletSession
from eztips.config import TipsConfig
from eztips.errors import (
    AddressResolutionError,
    MirrorNodeError,
    SignerError,
    TipLedgerError,
    TransactionFailedError,
    WalletConnectionError,
)
from eztips.models.tipping import TipStatus
from eztips.tipping.service import (
    TIP_TRANSACTION_MEMO,
    TransactionOrchestrator,
    verify_tip_transfer,
)

from .conftest import (
    CONTRACT_ID,
    PAYER_ACCOUNT,
    PAYMENT_TX_ID,
    WAITER_ACCOUNT,
    WAITER_ALIAS,
    decode_signed_payload,
)


@pytest.fixture
def orchestrator(connected_session, mock_mirror, tips_config):
    """Create an orchestrator over a connected session."""
    return TransactionOrchestrator(
        connected_session, AddressResolver(mock_mirror), mock_mirror, tips_config
    )


# ==================== Sending Tips ====================


class TestSendTip:
    """Tests for the happy path of send_tip."""

    @pytest.mark.asyncio
    async def test_confirmed_tip(self, orchestrator, mock_connector):
        """Test a tip that the ledger reports as SUCCESS."""
        receipt = await orchestrator.send_tip(WAITER_ACCOUNT, Decimal("100"))

        assert receipt.status == TipStatus.CONFIRMED
        assert receipt.confirmed is True
        assert receipt.transaction_id == PAYMENT_TX_ID
        assert receipt.recipient_native_id == WAITER_ACCOUNT
        assert receipt.recipient_address.lower() == WAITER_ALIAS
        assert receipt.total_paid == Decimal("100")
        assert receipt.waiter_receives == Decimal("95")
        assert receipt.platform_fee == Decimal("5")
        mock_connector.sign_and_execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_frozen_call(self, orchestrator, mock_connector):
        """Test the signed transaction binds contract, gas, nodes and amount."""
        await orchestrator.send_tip(WAITER_ACCOUNT, "100", review_memo="Great service!")

        payload = decode_signed_payload(mock_connector)
        body = payload["body"]

        assert payload["payer_account_id"] == PAYER_ACCOUNT
        assert payload["node_account_ids"] == ["0.0.3", "0.0.4", "0.0.5"]
        assert payload["memo"] == TIP_TRANSACTION_MEMO
        assert body["kind"] == "contract_execute"
        assert body["contract_id"] == CONTRACT_ID
        assert body["gas"] == 300_000
        assert body["payable_amount_tinybar"] == 10_000_000_000

        recipient, memo = Web3().codec.decode(
            ["address", "string"], bytes.fromhex(body["function_parameters"])[4:]
        )
        assert recipient.lower() == WAITER_ALIAS
        assert memo == "Great service!"

    @pytest.mark.asyncio
    async def test_cover_fee(self, orchestrator, mock_connector):
        """Test covering the fee grosses up the payable amount."""
        receipt = await orchestrator.send_tip(WAITER_ACCOUNT, Decimal("100"), cover_fee=True)

        assert receipt.waiter_receives == Decimal("100")
        assert round(receipt.total_paid, 2) == Decimal("105.26")
        assert decode_signed_payload(mock_connector)["body"]["payable_amount_tinybar"] == 10_526_315_789

    @pytest.mark.asyncio
    async def test_settling_delay_then_single_read(self, connected_session, mock_mirror):
        """Test exactly one status read after the configured delay."""
        config = TipsConfig(
            walletconnect_project_id="pid",
            tip_splitter_contract_id=CONTRACT_ID,
            confirmation_delay_seconds=3.0,
        )
        orchestrator = TransactionOrchestrator(
            connected_session, AddressResolver(mock_mirror), mock_mirror, config
        )

        with patch("eztips.tipping.service.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await orchestrator.send_tip(WAITER_ACCOUNT, Decimal("1"))

        mock_sleep.assert_awaited_once_with(3.0)
        mock_mirror.get_transaction_status.assert_awaited_once_with(PAYMENT_TX_ID)


# ==================== Confirmation Outcomes ====================


class TestConfirmation:
    """Tests for the one-shot confirmation check."""

    @pytest.mark.asyncio
    async def test_not_yet_visible_is_unconfirmed(self, orchestrator, mock_mirror):
        """Test a transaction the mirror cannot see yet is returned, not raised."""
        mock_mirror.get_transaction_status = AsyncMock(return_value=None)

        receipt = await orchestrator.send_tip(WAITER_ACCOUNT, Decimal("5"))

        assert receipt.status == TipStatus.UNCONFIRMED
        assert receipt.transaction_id == PAYMENT_TX_ID
        mock_mirror.get_transaction_status.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_status_read_failure_is_unconfirmed(self, orchestrator, mock_mirror):
        """Test a failed status read does not fail an already broadcast payment."""
        mock_mirror.get_transaction_status = AsyncMock(side_effect=MirrorNodeError("timeout"))

        receipt = await orchestrator.send_tip(WAITER_ACCOUNT, Decimal("5"))

        assert receipt.status == TipStatus.UNCONFIRMED

    @pytest.mark.asyncio
    async def test_failure_code_raises(self, orchestrator, mock_mirror, mock_connector):
        """Test an explicit failure code is surfaced and not retried."""
        mock_mirror.get_transaction_status = AsyncMock(return_value="INSUFFICIENT_PAYER_BALANCE")

        with pytest.raises(TransactionFailedError) as exc_info:
            await orchestrator.send_tip(WAITER_ACCOUNT, Decimal("5"))

        assert exc_info.value.status == "INSUFFICIENT_PAYER_BALANCE"
        assert exc_info.value.transaction_id == PAYMENT_TX_ID
        mock_connector.sign_and_execute.assert_awaited_once()


# ==================== Failure Paths ====================


class TestSendTipFailures:
    """Tests for failures before and during broadcast."""

    @pytest.mark.asyncio
    async def test_requires_connected_wallet(self, mock_connector, mock_mirror, tips_config):
        """Test nothing is resolved or signed without a wallet."""
        session = WalletSession(mock_connector, tips_config)
        orchestrator = TransactionOrchestrator(
            session, AddressResolver(mock_mirror), mock_mirror, tips_config
        )

        with pytest.raises(WalletConnectionError):
            await orchestrator.send_tip(WAITER_ACCOUNT, Decimal("1"))

        mock_mirror.get_evm_alias.assert_not_awaited()
        mock_connector.sign_and_execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unresolvable_recipient(self, orchestrator, mock_mirror, mock_connector):
        """Test a recipient without an alias never reaches the contract call."""
        mock_mirror.get_evm_alias = AsyncMock(return_value=None)

        with pytest.raises(AddressResolutionError):
            await orchestrator.send_tip(WAITER_ACCOUNT, Decimal("1"))

        mock_connector.sign_and_execute.assert_not_awaited()
        mock_mirror.get_transaction_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signer_rejection_not_retried(self, orchestrator, mock_connector, mock_mirror):
        """Test a rejected signature is surfaced after a single attempt."""
        mock_connector.sign_and_execute = AsyncMock(side_effect=Exception("User declined"))

        with pytest.raises(SignerError):
            await orchestrator.send_tip(WAITER_ACCOUNT, Decimal("1"))

        assert mock_connector.sign_and_execute.await_count == 1
        mock_mirror.get_transaction_status.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-1", "abc", "NaN", "1000001", "0.000000001"])
    async def test_invalid_amounts(self, orchestrator, mock_mirror, amount):
        """Test out-of-range amounts are rejected before any lookup."""
        with pytest.raises(ValueError):
            await orchestrator.send_tip(WAITER_ACCOUNT, amount)
        mock_mirror.get_evm_alias.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_contract_not_configured(self, connected_session, mock_mirror, mock_connector):
        config = TipsConfig(walletconnect_project_id="pid", confirmation_delay_seconds=0)
        orchestrator = TransactionOrchestrator(
            connected_session, AddressResolver(mock_mirror), mock_mirror, config
        )

        with pytest.raises(TipLedgerError, match="not configured"):
            await orchestrator.send_tip(WAITER_ACCOUNT, Decimal("1"))
        mock_connector.sign_and_execute.assert_not_awaited()


# ==================== Contract Id ====================


class TestContractId:
    """Tests for contract id resolution."""

    def test_native_contract_id(self, orchestrator):
        assert orchestrator.contract_id == CONTRACT_ID

    def test_evm_contract_id_converted(self, connected_session, mock_mirror):
        """Test a contract configured in EVM form is reinterpreted."""
        config = TipsConfig(
            walletconnect_project_id="pid",
            tip_splitter_contract_id=long_zero_address(CONTRACT_ID),
        )
        orchestrator = TransactionOrchestrator(
            connected_session, AddressResolver(mock_mirror), mock_mirror, config
        )

        assert orchestrator.contract_id == CONTRACT_ID


# ==================== Concurrency ====================


class TestSessionSerialization:
    """Tests for concurrent payments sharing one session."""

    @pytest.mark.asyncio
    async def test_freeze_and_sign_serialized(self, orchestrator, mock_connector):
        """Test two payments never sign concurrently on one session."""
        active = 0
        peak = 0

        async def slow_sign(signer_account_id, transaction_list):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return {"response": {"transactionId": PAYMENT_TX_ID}}

        mock_connector.sign_and_execute = AsyncMock(side_effect=slow_sign)

        receipts = await asyncio.gather(
            orchestrator.send_tip(WAITER_ACCOUNT, Decimal("1")),
            orchestrator.send_tip(WAITER_ACCOUNT, Decimal("2")),
        )

        assert len(receipts) == 2
        assert peak == 1
        assert mock_connector.sign_and_execute.await_count == 2


# ==================== Verification ====================


class TestVerifyTipTransaction:
    """Tests for auditing past tips."""

    @pytest.mark.asyncio
    async def test_verified(self, orchestrator, mock_mirror):
        mock_mirror.get_transaction = AsyncMock(return_value={
            "result": "SUCCESS",
            "transfers": [
                {"account": PAYER_ACCOUNT, "amount": -1_000_000_000},
                {"account": WAITER_ACCOUNT, "amount": 950_000_000},
            ],
        })

        verification = await orchestrator.verify_tip_transaction(PAYMENT_TX_ID, WAITER_ACCOUNT)

        assert verification.verified is True
        assert verification.amount == Decimal("9.5")

    @pytest.mark.asyncio
    async def test_no_transfer_to_waiter(self, mock_mirror):
        mock_mirror.get_transaction = AsyncMock(return_value={
            "result": "SUCCESS",
            "transfers": [{"account": "0.0.98", "amount": 100}],
        })

        verification = await verify_tip_transfer(mock_mirror, PAYMENT_TX_ID, WAITER_ACCOUNT)

        assert verification.verified is False
        assert "No payment" in verification.error

    @pytest.mark.asyncio
    async def test_failed_transaction(self, mock_mirror):
        mock_mirror.get_transaction = AsyncMock(return_value={"result": "CONTRACT_REVERT_EXECUTED"})

        verification = await verify_tip_transfer(mock_mirror, PAYMENT_TX_ID, WAITER_ACCOUNT)

        assert verification.verified is False
        assert "CONTRACT_REVERT_EXECUTED" in verification.error

    @pytest.mark.asyncio
    async def test_not_found(self, mock_mirror):
        verification = await verify_tip_transfer(mock_mirror, PAYMENT_TX_ID, WAITER_ACCOUNT)

        assert verification.verified is False
        assert verification.error == "Transaction not found"

    @pytest.mark.asyncio
    async def test_mirror_unreachable(self, mock_mirror):
        mock_mirror.get_transaction = AsyncMock(side_effect=MirrorNodeError("down"))

        verification = await verify_tip_transfer(mock_mirror, PAYMENT_TX_ID, WAITER_ACCOUNT)

        assert verification.verified is False
        assert verification.error == "down"
