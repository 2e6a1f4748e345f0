"""
Data models for tip payments and ledger-backed reviews.
"""

from .review import (
    CURRENT_ENVELOPE_VERSION,
    SUPPORTED_ENVELOPE_VERSIONS,
    IndexedReview,
    RatingSnapshot,
    ReviewEnvelope,
    ReviewRecord,
    SubmissionReceipt,
    VerificationResult,
    WaiterRatingSummary,
    decode_envelope,
)
from .tipping import (
    TipReceipt,
    TipStatus,
    TipTransaction,
    TipVerification,
    calculate_tip_split,
    hbar_to_tinybar,
    tinybar_to_hbar,
)

__all__ = [
    # Tipping
    "TipTransaction",
    "TipReceipt",
    "TipStatus",
    "TipVerification",
    "calculate_tip_split",
    "hbar_to_tinybar",
    "tinybar_to_hbar",
    # Reviews
    "ReviewRecord",
    "ReviewEnvelope",
    "IndexedReview",
    "SubmissionReceipt",
    "VerificationResult",
    "RatingSnapshot",
    "WaiterRatingSummary",
    "decode_envelope",
    "CURRENT_ENVELOPE_VERSION",
    "SUPPORTED_ENVELOPE_VERSIONS",
]
