"""
Tests for contract-call encoding and transaction freezing.
"""

import json

import pytest
from pydantic import ValidationError
from web3 import Web3

from eztips.chains.transactions import (
    SEND_TIP_SIGNATURE,
    ContractExecuteBody,
    TopicMessageBody,
    build_send_tip_call,
    encode_send_tip,
    freeze_transaction,
    function_selector,
    valid_start_now,
)

RECIPIENT = "0x" + "ab" * 20
NOW_NS = 1_700_000_000_123_456_789


# ==================== Call Encoding ====================


class TestSendTipEncoding:
    """Tests for sendTip(address,string) encoding."""

    def test_signature(self):
        assert SEND_TIP_SIGNATURE == "sendTip(address,string)"

    def test_selector(self):
        """Test the selector is the first four bytes of keccak256."""
        selector = function_selector(SEND_TIP_SIGNATURE)

        assert len(selector) == 4
        assert selector == bytes(Web3.keccak(text="sendTip(address,string)"))[:4]

    def test_encoded_arguments(self):
        """Test the call data decodes back to the recipient and memo."""
        data = encode_send_tip(RECIPIENT, "Great service!")

        assert data[:4] == function_selector(SEND_TIP_SIGNATURE)
        address, memo = Web3().codec.decode(["address", "string"], data[4:])
        assert address.lower() == RECIPIENT
        assert memo == "Great service!"

    def test_build_send_tip_call(self):
        """Test the payable call binds gas and amount."""
        call = build_send_tip_call(
            contract_id="0.0.5829134",
            recipient_address=RECIPIENT,
            review_memo="",
            payable_amount_tinybar=10_000_000_000,
            gas=300_000,
        )

        assert call.kind == "contract_execute"
        assert call.function_name == "sendTip"
        assert call.gas == 300_000
        assert call.payable_amount_tinybar == 10_000_000_000
        assert bytes.fromhex(call.function_parameters) == encode_send_tip(RECIPIENT, "")


# ==================== Freezing ====================


class TestFreezeTransaction:
    """Tests for FrozenTransaction."""

    def _call(self):
        return build_send_tip_call("0.0.5829134", RECIPIENT, "memo", 1, 300_000)

    def test_valid_start_format(self):
        assert valid_start_now(NOW_NS) == "1700000000.123456789"
        assert valid_start_now(5) == "0.000000005"

    def test_transaction_id(self):
        """Test the id is derived from payer and valid start."""
        frozen = freeze_transaction(
            self._call(), "0.0.1001", ["0.0.3", "0.0.4", "0.0.5"], now_ns=NOW_NS
        )

        assert frozen.transaction_id == "0.0.1001@1700000000.123456789"
        assert frozen.node_account_ids == ("0.0.3", "0.0.4", "0.0.5")

    def test_bytes_are_canonical(self):
        """Test the same frozen transaction always serialises identically."""
        frozen = freeze_transaction(self._call(), "0.0.1001", ["0.0.3"], memo="m", now_ns=NOW_NS)
        again = freeze_transaction(self._call(), "0.0.1001", ["0.0.3"], memo="m", now_ns=NOW_NS)

        assert frozen.to_bytes() == again.to_bytes()
        payload = json.loads(frozen.to_bytes())
        assert payload["body"]["kind"] == "contract_execute"
        assert payload["memo"] == "m"

    def test_topic_message_body(self):
        """Test topic submissions freeze the same way."""
        body = TopicMessageBody(topic_id="0.0.7415185", message="{}")
        frozen = freeze_transaction(body, "0.0.1001", ["0.0.3"], now_ns=NOW_NS)

        payload = json.loads(frozen.to_bytes())
        assert payload["body"] == {
            "kind": "topic_message_submit",
            "topic_id": "0.0.7415185",
            "message": "{}",
        }

    def test_frozen_is_immutable(self):
        """Test a frozen transaction cannot be rebound."""
        frozen = freeze_transaction(self._call(), "0.0.1001", ["0.0.3"], now_ns=NOW_NS)

        with pytest.raises(ValidationError):
            frozen.node_account_ids = ("0.0.9",)

    def test_empty_node_set_rejected(self):
        with pytest.raises(ValidationError):
            freeze_transaction(self._call(), "0.0.1001", [], now_ns=NOW_NS)

    def test_negative_payable_rejected(self):
        with pytest.raises(ValidationError):
            ContractExecuteBody(
                contract_id="0.0.1",
                function_name="sendTip",
                function_parameters="",
                gas=1,
                payable_amount_tinybar=-1,
            )
