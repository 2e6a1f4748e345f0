"""
Wallet Session

Owns the lifecycle of the connection to an external signing wallet
(WalletConnect pairing with a Hedera wallet). The session is the only
component that can sign and broadcast; every other component produces network
side effects through sign_and_broadcast().

State machine:

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED

A previously persisted pairing that is still live is picked up by
initialize() without prompting the user again.
"""

import asyncio
import base64
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, Field

from ..config import TipsConfig, get_tips_config
from ..errors import SignerError, WalletConnectionError

logger = structlog.get_logger(__name__)


class SessionState(str, Enum):
    """Connection state of a wallet session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class SignerConnector(Protocol):
    """
    The external signer protocol (a WalletConnect dApp connector).

    Sessions are dicts shaped like WalletConnect sessions:
    {"namespaces": {"hedera": {"accounts": ["hedera:testnet:0.0.1234"]}}}
    """

    async def initialize(self) -> None: ...

    async def active_sessions(self) -> list[dict[str, Any]]: ...

    async def open_pairing(self) -> dict[str, Any]: ...

    async def disconnect_all(self) -> None: ...

    async def sign_and_execute(
        self, signer_account_id: str, transaction_list: str
    ) -> dict[str, Any]: ...

    async def get_receipt(self, transaction_id: str) -> dict[str, Any]: ...


class BroadcastResult(BaseModel):
    """What the signer reports after executing a transaction."""

    transaction_id: str
    raw: dict[str, Any] = Field(default_factory=dict)


def account_from_session(session: dict[str, Any] | None) -> str | None:
    """Extract the native account id from a WalletConnect session."""
    if not session:
        return None
    accounts = (
        session.get("namespaces", {}).get("hedera", {}).get("accounts") or []
    )
    if not accounts:
        return None
    # CAIP-10: hedera:<network>:<account>
    account: str = accounts[0].split(":")[-1]
    return account or None


class WalletSession:
    """
    A single wallet handle bound to at most one account.

    The session has no internal queue. Callers that freeze and sign must hold
    exclusive() so that two payments or review writes sharing the session do
    not race over the frozen, node-bound transaction.
    """

    def __init__(
        self,
        connector: SignerConnector,
        config: TipsConfig | None = None,
    ):
        self.config = config or get_tips_config()
        self._connector = connector
        self._state = SessionState.DISCONNECTED
        self._account_id: str | None = None
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def account_id(self) -> str | None:
        return self._account_id

    @property
    def is_connected(self) -> bool:
        return self._state == SessionState.CONNECTED

    @property
    def signer_account_id(self) -> str:
        """CAIP-10 account id the signer expects (hedera:testnet:0.0.1234)."""
        account_id = self.require_connected()
        return f"hedera:{self.config.network.value}:{account_id}"

    def require_connected(self) -> str:
        """Return the connected account id or raise WalletConnectionError."""
        if self._state != SessionState.CONNECTED or not self._account_id:
            raise WalletConnectionError("Wallet not connected")
        return self._account_id

    # ==================== Lifecycle ====================

    async def initialize(self) -> None:
        """
        Initialize the connector and rehydrate a live pairing if one exists.

        Safe to call more than once.
        """
        if self._initialized:
            return

        try:
            await self._connector.initialize()
            sessions = await self._connector.active_sessions()
        except Exception as e:
            logger.error("wallet_connector_init_failed", error=str(e))
            raise WalletConnectionError(f"Failed to initialize wallet connector: {e}") from e

        self._initialized = True

        for session in sessions:
            account_id = account_from_session(session)
            if account_id:
                self._account_id = account_id
                self._state = SessionState.CONNECTED
                logger.info("wallet_session_rehydrated", account_id=account_id)
                break

    async def connect(self) -> str:
        """
        Open a pairing handshake with the signer.

        Returns:
            The connected native account id

        Raises:
            WalletConnectionError: If the user rejects, the handshake times
                out, or the wallet returns no account
        """
        await self.initialize()

        if self._state == SessionState.CONNECTED and self._account_id:
            return self._account_id
        if self._state == SessionState.CONNECTING:
            raise WalletConnectionError("Wallet connection already in progress")

        self._state = SessionState.CONNECTING
        try:
            async with asyncio.timeout(self.config.handshake_timeout_seconds):
                session = await self._connector.open_pairing()
        except TimeoutError as e:
            self._reset()
            logger.warning("wallet_pairing_timeout", timeout=self.config.handshake_timeout_seconds)
            raise WalletConnectionError("Wallet pairing timed out") from e
        except Exception as e:
            self._reset()
            logger.warning("wallet_pairing_rejected", error=str(e))
            raise WalletConnectionError(f"Failed to connect wallet: {e}") from e

        account_id = account_from_session(session)
        if not account_id:
            self._reset()
            raise WalletConnectionError("Wallet returned no Hedera account")

        self._account_id = account_id
        self._state = SessionState.CONNECTED
        logger.info("wallet_connected", account_id=account_id)
        return account_id

    async def disconnect(self) -> None:
        """Tear down the pairing. The account is cleared even if teardown fails."""
        try:
            await self._connector.disconnect_all()
        except Exception as e:
            logger.warning("wallet_disconnect_failed", error=str(e))
        finally:
            previous = self._account_id
            self._reset()
            logger.info("wallet_disconnected", account_id=previous)

    def _reset(self) -> None:
        self._account_id = None
        self._state = SessionState.DISCONNECTED

    # ==================== Signing ====================

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator["WalletSession"]:
        """Hold the session for one freeze-and-sign round trip."""
        async with self._lock:
            yield self

    async def sign_and_broadcast(self, frozen_tx_bytes: bytes) -> BroadcastResult:
        """
        Have the signer sign and execute a frozen transaction.

        Raises:
            WalletConnectionError: If the session is not connected
            SignerError: If the signer refuses or returns no transaction id
        """
        signer_account_id = self.signer_account_id
        transaction_list = base64.b64encode(frozen_tx_bytes).decode("ascii")

        try:
            result = await self._connector.sign_and_execute(
                signer_account_id=signer_account_id,
                transaction_list=transaction_list,
            )
        except Exception as e:
            logger.error("wallet_sign_failed", error=str(e))
            raise SignerError(f"Signer rejected transaction: {e}") from e

        transaction_id = ((result or {}).get("response") or {}).get("transactionId")
        if not transaction_id:
            raise SignerError("Signer returned no transaction id")

        logger.info("transaction_broadcast", transaction_id=transaction_id)
        return BroadcastResult(transaction_id=transaction_id, raw=result)

    async def get_receipt(self, transaction_id: str) -> dict[str, Any]:
        """Fetch the consensus receipt for a broadcast transaction (read-only)."""
        self.require_connected()
        try:
            receipt = await self._connector.get_receipt(transaction_id)
        except Exception as e:
            raise SignerError(f"Could not fetch receipt for {transaction_id}: {e}") from e
        return receipt or {}
