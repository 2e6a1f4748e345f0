"""
Hedera Client Package

Everything that talks to the network:

- MirrorNodeClient: read-only REST access (accounts, transactions, topics)
- AddressResolver: native id <-> EVM address resolution
- WalletSession: external signer lifecycle, the only signing path
- transactions: contract-call encoding and transaction freezing

Usage:
    from eztips.chains import AddressResolver, MirrorNodeClient, WalletSession

    async def example(connector):
        mirror = MirrorNodeClient()
        session = WalletSession(connector)
        await session.initialize()
        if not session.is_connected:
            await session.connect()
        address = await AddressResolver(mirror).to_contract_address("0.0.1234")
"""

from .address import (
    AddressResolver,
    is_contract_address,
    is_native_id,
    long_zero_address,
    strip_checksum,
    to_native_id,
)
from .mirror_client import MirrorNodeClient, to_mirror_transaction_id
from .transactions import (
    TIP_SPLITTER_ABI,
    ContractExecuteBody,
    FrozenTransaction,
    TopicMessageBody,
    build_send_tip_call,
    encode_send_tip,
    freeze_transaction,
)
from .wallet import (
    BroadcastResult,
    SessionState,
    SignerConnector,
    WalletSession,
    account_from_session,
)

__all__ = [
    # Read path
    "MirrorNodeClient",
    "to_mirror_transaction_id",
    # Addresses
    "AddressResolver",
    "is_contract_address",
    "is_native_id",
    "long_zero_address",
    "strip_checksum",
    "to_native_id",
    # Transactions
    "TIP_SPLITTER_ABI",
    "ContractExecuteBody",
    "TopicMessageBody",
    "FrozenTransaction",
    "build_send_tip_call",
    "encode_send_tip",
    "freeze_transaction",
    # Wallet
    "WalletSession",
    "SessionState",
    "SignerConnector",
    "BroadcastResult",
    "account_from_session",
]
