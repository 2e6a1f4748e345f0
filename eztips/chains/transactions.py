"""
Transaction Building and Freezing

Transactions are described as immutable models and "frozen" before signing:
bound to a payer, a valid-start timestamp (which makes the transaction id
deterministic) and a fixed node set. The frozen bytes are what the external
signer receives, so a retry of the same frozen object cannot land on a
different node or under a different id.
"""

import json
import time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from web3 import Web3

# Tip splitter contract interface. The contract keeps the platform fee (5%) of the
# payable amount and forwards the rest to the recipient.
TIP_SPLITTER_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "address", "name": "waiter", "type": "address"},
            {"internalType": "string", "name": "review", "type": "string"},
        ],
        "name": "sendTip",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
]

SEND_TIP_ABI = TIP_SPLITTER_ABI[0]
SEND_TIP_TYPES = [param["type"] for param in SEND_TIP_ABI["inputs"]]
SEND_TIP_SIGNATURE = f"{SEND_TIP_ABI['name']}({','.join(SEND_TIP_TYPES)})"

# Offline instance; only the ABI codec is used
_w3 = Web3()


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak256(signature)."""
    return bytes(Web3.keccak(text=signature)[:4])


def encode_send_tip(recipient_address: str, review_memo: str = "") -> bytes:
    """ABI-encode a sendTip(address,string) call."""
    args = _w3.codec.encode(
        SEND_TIP_TYPES,
        [Web3.to_checksum_address(recipient_address), review_memo],
    )
    return function_selector(SEND_TIP_SIGNATURE) + args


class ContractExecuteBody(BaseModel):
    """Payable contract call."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["contract_execute"] = "contract_execute"
    contract_id: str
    function_name: str
    function_parameters: str = Field(description="Hex ABI-encoded call data")
    gas: int = Field(gt=0)
    payable_amount_tinybar: int = Field(ge=0)


class TopicMessageBody(BaseModel):
    """Append one message to a consensus topic."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["topic_message_submit"] = "topic_message_submit"
    topic_id: str
    message: str = Field(description="UTF-8 message text")


class FrozenTransaction(BaseModel):
    """A transaction bound immutably to its parameters and node set."""

    model_config = ConfigDict(frozen=True)

    payer_account_id: str
    valid_start: str = Field(description="seconds.nanos")
    node_account_ids: tuple[str, ...] = Field(min_length=1)
    memo: str = ""
    body: ContractExecuteBody | TopicMessageBody = Field(discriminator="kind")

    @property
    def transaction_id(self) -> str:
        """Wallet-format id: payer@seconds.nanos."""
        return f"{self.payer_account_id}@{self.valid_start}"

    def to_bytes(self) -> bytes:
        """Canonical UTF-8 JSON bytes handed to the signer."""
        payload = self.model_dump(mode="json")
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def valid_start_now(now_ns: int | None = None) -> str:
    """Format a valid-start timestamp as seconds.nanos."""
    ns = time.time_ns() if now_ns is None else now_ns
    seconds, nanos = divmod(ns, 1_000_000_000)
    return f"{seconds}.{nanos:09d}"


def build_send_tip_call(
    contract_id: str,
    recipient_address: str,
    review_memo: str,
    payable_amount_tinybar: int,
    gas: int,
) -> ContractExecuteBody:
    """Build the payable sendTip call for the tip splitter contract."""
    data = encode_send_tip(recipient_address, review_memo)
    return ContractExecuteBody(
        contract_id=contract_id,
        function_name="sendTip",
        function_parameters=data.hex(),
        gas=gas,
        payable_amount_tinybar=payable_amount_tinybar,
    )


def freeze_transaction(
    body: ContractExecuteBody | TopicMessageBody,
    payer_account_id: str,
    node_account_ids: list[str] | tuple[str, ...],
    memo: str = "",
    now_ns: int | None = None,
) -> FrozenTransaction:
    """Bind a transaction body to a payer, a valid-start and a node set."""
    return FrozenTransaction(
        payer_account_id=payer_account_id,
        valid_start=valid_start_now(now_ns),
        node_account_ids=tuple(node_account_ids),
        memo=memo,
        body=body,
    )
