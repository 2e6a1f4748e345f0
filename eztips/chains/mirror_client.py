"""
Mirror Node Client

Read-only access to ledger, account and transaction state through the
mirror node REST API. No signing connection is needed, so this is the path
used for address resolution, confirmation checks and independent audits.
"""

import base64
import re
from typing import Any

import httpx
import structlog

from ..config import TipsConfig, get_tips_config
from ..errors import MirrorNodeError

logger = structlog.get_logger(__name__)

# Wallet format: 0.0.1234@1700000000.123456789
_WALLET_TX_ID = re.compile(r"^(\d+\.\d+\.\d+)@(\d+)\.(\d+)$")


def to_mirror_transaction_id(transaction_id: str) -> str:
    """
    Normalise a wallet-format transaction id to the mirror node format.

    0.0.1234@1700000000.123456789 -> 0.0.1234-1700000000-123456789.
    Ids already in mirror format are returned unchanged.
    """
    match = _WALLET_TX_ID.match(transaction_id.strip())
    if match is None:
        return transaction_id.strip()
    account, seconds, nanos = match.groups()
    return f"{account}-{seconds}-{nanos}"


class MirrorNodeClient:
    """
    Async client for the mirror node REST API.

    All methods return None for "not found" (HTTP 404) and raise
    MirrorNodeError for transport failures or unexpected responses, so callers
    can tell "not yet visible" apart from "could not ask".
    """

    def __init__(
        self,
        config: TipsConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or get_tips_config()
        self._base_url = self.config.get_mirror_node_url()
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self.config.http_timeout_seconds,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "MirrorNodeClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """GET a mirror path and decode the JSON body; None on 404."""
        client = self._get_client()
        try:
            response = await client.get(path, params=params)
        except httpx.HTTPError as e:
            logger.warning("mirror_request_failed", path=path, error=str(e))
            raise MirrorNodeError(f"Mirror node request to {path} failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise MirrorNodeError(
                f"Mirror node returned HTTP {response.status_code} for {path}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MirrorNodeError(f"Mirror node returned non-JSON body for {path}") from e

        if not isinstance(data, dict):
            raise MirrorNodeError(f"Unexpected mirror node response shape for {path}")
        return data

    # ==================== Accounts ====================

    async def get_account(self, account_id: str) -> dict[str, Any] | None:
        """Get account details (including evm_address) by native id."""
        return await self._get_json(f"/accounts/{account_id}")

    async def get_evm_alias(self, account_id: str) -> str | None:
        """Return the EVM address bound to an account, or None if none is bound."""
        account = await self.get_account(account_id)
        if not account:
            return None
        evm_address = account.get("evm_address")
        return evm_address or None

    # ==================== Transactions ====================

    async def get_transaction(self, transaction_id: str) -> dict[str, Any] | None:
        """
        Get the first record for a transaction id.

        Returns None when the transaction is not (yet) visible.
        """
        mirror_id = to_mirror_transaction_id(transaction_id)
        data = await self._get_json(f"/transactions/{mirror_id}")
        if not data:
            return None
        transactions = data.get("transactions") or []
        if not transactions:
            return None
        first: dict[str, Any] = transactions[0]
        return first

    async def get_transaction_status(self, transaction_id: str) -> str | None:
        """Return the result code (e.g. SUCCESS) or None if not yet visible."""
        transaction = await self.get_transaction(transaction_id)
        if transaction is None:
            return None
        result = transaction.get("result")
        return str(result) if result else None

    # ==================== Topics ====================

    async def get_topic_message(self, topic_id: str, sequence_number: int) -> bytes | None:
        """Fetch one topic message by sequence coordinate and base64-decode it."""
        data = await self._get_json(f"/topics/{topic_id}/messages/{sequence_number}")
        if not data:
            return None
        encoded = data.get("message")
        if not encoded:
            return None
        try:
            return base64.b64decode(encoded, validate=True)
        except ValueError as e:
            raise MirrorNodeError(
                f"Topic message {topic_id}@{sequence_number} is not valid base64"
            ) from e

    async def list_topic_messages(
        self,
        topic_id: str,
        after_sequence: int = 0,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """
        List topic messages with sequence number greater than after_sequence.

        Each item keeps the mirror fields (sequence_number, consensus_timestamp)
        and gains a decoded "payload" (bytes) next to the base64 "message".
        """
        data = await self._get_json(
            f"/topics/{topic_id}/messages",
            params={
                "sequencenumber": f"gt:{after_sequence}",
                "limit": limit,
                "order": "asc",
            },
        )
        if not data:
            return []

        messages: list[dict[str, Any]] = []
        for item in data.get("messages") or []:
            try:
                payload = base64.b64decode(item.get("message") or "", validate=True)
            except ValueError:
                logger.warning(
                    "topic_message_undecodable",
                    topic_id=topic_id,
                    sequence_number=item.get("sequence_number"),
                )
                continue
            messages.append({**item, "payload": payload})
        return messages
