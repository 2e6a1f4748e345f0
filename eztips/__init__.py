"""
Ez Crypto Tips - Tip Payments and Review Ledger

Customers tip service workers in HBAR through a fee-splitting contract and
optionally attach a rating. Reviews are written to a Hedera consensus topic,
which is the source of truth, and mirrored into a review index for fast
rating summaries.

Architecture Overview:
    TipLedgerApp (composition root)
      ├── WalletSession ──────── external signer (pairing, sign, broadcast)
      ├── AddressResolver ────── native id -> EVM alias via mirror node
      ├── TransactionOrchestrator  sendTip(address,string) payable call
      ├── ReviewLedgerClient ─── consensus topic + review index
      └── RatingAggregator ───── windowed average over the index

Quick Start:
    # 1. Configure environment
    export EZTIPS_TIP_SPLITTER_CONTRACT_ID="0.0.5829134"
    export EZTIPS_WALLETCONNECT_PROJECT_ID="..."

    # 2. Wire the application around a signer connector
    from eztips import TipLedgerApp

    app = TipLedgerApp(connector)
    await app.start()
    await app.connect()

    # 3. Pay and review
    receipt, follow_up = await app.pay_and_review("0.0.4817263", "10", rating=5)
"""

__version__ = "0.1.0"

from .app import FollowUpState, ReviewFollowUp, TipLedgerApp
from .chains import AddressResolver, MirrorNodeClient, SessionState, SignerConnector, WalletSession
from .config import HederaNetwork, TipsConfig, configure_tips, get_tips_config
from .errors import (
    AddressResolutionError,
    CacheReadError,
    CacheWriteError,
    EnvelopeError,
    LedgerSubmissionError,
    MirrorNodeError,
    PayloadTooLargeError,
    SignerError,
    TipLedgerError,
    TransactionFailedError,
    WalletConnectionError,
)
from .models import (
    IndexedReview,
    RatingSnapshot,
    ReviewEnvelope,
    ReviewRecord,
    SubmissionReceipt,
    TipReceipt,
    TipStatus,
    TipTransaction,
    VerificationResult,
    WaiterRatingSummary,
)
from .reviews import InMemoryReviewIndex, RatingAggregator, ReviewLedgerClient
from .tipping import TransactionOrchestrator

__all__ = [
    # Version
    "__version__",
    # Application
    "TipLedgerApp",
    "ReviewFollowUp",
    "FollowUpState",
    # Configuration
    "TipsConfig",
    "HederaNetwork",
    "get_tips_config",
    "configure_tips",
    # Components
    "AddressResolver",
    "MirrorNodeClient",
    "WalletSession",
    "SessionState",
    "SignerConnector",
    "TransactionOrchestrator",
    "ReviewLedgerClient",
    "RatingAggregator",
    "InMemoryReviewIndex",
    # Models
    "TipTransaction",
    "TipReceipt",
    "TipStatus",
    "ReviewRecord",
    "ReviewEnvelope",
    "IndexedReview",
    "SubmissionReceipt",
    "VerificationResult",
    "RatingSnapshot",
    "WaiterRatingSummary",
    # Errors
    "TipLedgerError",
    "WalletConnectionError",
    "AddressResolutionError",
    "TransactionFailedError",
    "LedgerSubmissionError",
    "PayloadTooLargeError",
    "SignerError",
    "CacheWriteError",
    "CacheReadError",
    "EnvelopeError",
    "MirrorNodeError",
]
