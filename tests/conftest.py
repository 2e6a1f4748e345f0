"""
eztips - Test Fixtures

Shared pytest fixtures for all test modules.
"""

import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from eztips.chains.wallet import WalletSession
from eztips.config import TipsConfig, configure_tips
from eztips.models.review import ReviewEnvelope, ReviewRecord

PAYER_ACCOUNT = "0.0.1001"
WAITER_ACCOUNT = "0.0.4817263"
WAITER_ALIAS = "0x" + "ab" * 20
CONTRACT_ID = "0.0.5829134"
PAYMENT_TX_ID = "0.0.1001@1700000000.000000001"


def hedera_session(account_id: str, network: str = "testnet") -> dict:
    """A WalletConnect session dict as the connector returns it."""
    return {"namespaces": {"hedera": {"accounts": [f"hedera:{network}:{account_id}"]}}}


def decode_signed_payload(connector: MagicMock, call_index: int = -1) -> dict:
    """Decode the frozen transaction a connector was asked to sign."""
    call = connector.sign_and_execute.await_args_list[call_index]
    transaction_list = call.kwargs["transaction_list"]
    return json.loads(base64.b64decode(transaction_list))


def encoded_envelope(record: ReviewRecord, app: str = "ez-crypto-tips") -> bytes:
    return ReviewEnvelope(app=app, data=record).encode()


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def tips_config():
    """Test configuration with no settling delay."""
    return TipsConfig(
        walletconnect_project_id="test-project-id",
        tip_splitter_contract_id=CONTRACT_ID,
        confirmation_delay_seconds=0,
        handshake_timeout_seconds=5,
    )


@pytest.fixture(autouse=True)
def global_config(tips_config):
    """Install the test configuration as the global instance."""
    configure_tips(tips_config)
    yield tips_config
    configure_tips(None)


# =============================================================================
# Signer Connector
# =============================================================================


@pytest.fixture
def mock_connector():
    """Create a mock WalletConnect signer connector."""
    connector = MagicMock()
    connector.initialize = AsyncMock()
    connector.active_sessions = AsyncMock(return_value=[])
    connector.open_pairing = AsyncMock(return_value=hedera_session(PAYER_ACCOUNT))
    connector.disconnect_all = AsyncMock()
    connector.sign_and_execute = AsyncMock(
        return_value={"response": {"transactionId": PAYMENT_TX_ID}}
    )
    connector.get_receipt = AsyncMock(
        return_value={
            "topicSequenceNumber": 42,
            "consensusTimestamp": "1700000003.000000001",
        }
    )
    return connector


@pytest.fixture
async def connected_session(mock_connector, tips_config):
    """A wallet session that has completed pairing."""
    session = WalletSession(mock_connector, tips_config)
    await session.connect()
    return session


# =============================================================================
# Mirror Node
# =============================================================================


@pytest.fixture
def mock_mirror():
    """Create a mock mirror node client."""
    mirror = MagicMock()
    mirror.get_evm_alias = AsyncMock(return_value=WAITER_ALIAS)
    mirror.get_transaction_status = AsyncMock(return_value="SUCCESS")
    mirror.get_transaction = AsyncMock(return_value=None)
    mirror.get_topic_message = AsyncMock(return_value=None)
    mirror.list_topic_messages = AsyncMock(return_value=[])
    mirror.close = AsyncMock()
    return mirror


# =============================================================================
# Reviews
# =============================================================================


@pytest.fixture
def sample_review():
    """A review attached to the default payment."""
    return ReviewRecord(
        waiter_id=WAITER_ACCOUNT,
        waiter_name="Sam",
        rating=5,
        comment="Lovely evening",
        tip_amount=10.0,
        correlation_id=PAYMENT_TX_ID,
    )
