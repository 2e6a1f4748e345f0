"""
Error taxonomy for tip payments and review ledger writes.

Payment-path errors (connection, resolution, transaction) abort a payment and
are shown to the user. Review-path errors raised after a successful payment
are never allowed to roll the payment back.
"""


class TipLedgerError(Exception):
    """Base exception for all eztips errors."""
    pass


class WalletConnectionError(TipLedgerError, ConnectionError):
    """Raised when the signer handshake is unavailable, rejected or timed out."""
    pass


class AddressResolutionError(TipLedgerError):
    """Raised when a native account id has no contract-callable alias."""

    def __init__(self, native_id: str, reason: str = "no EVM alias is bound"):
        self.native_id = native_id
        self.reason = reason
        super().__init__(
            f"Recipient {native_id} cannot receive payments: {reason}"
        )


class TransactionFailedError(TipLedgerError):
    """Raised when the ledger reports an explicit failure status."""

    def __init__(self, transaction_id: str, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(f"Transaction {transaction_id} failed: {status}")


class LedgerSubmissionError(TipLedgerError):
    """Raised when a review message is rejected by the signer or ledger."""
    pass


class PayloadTooLargeError(LedgerSubmissionError):
    """Raised when an encoded review exceeds the per-message ceiling."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Review payload is {size} bytes, limit is {limit}")


class CacheWriteError(TipLedgerError):
    """Raised by index backends when a secondary index write fails."""
    pass


class EnvelopeError(TipLedgerError):
    """Raised when a ledger message cannot be decoded as a review envelope."""
    pass


class MirrorNodeError(TipLedgerError):
    """Raised when the mirror read service is unreachable or misbehaves."""
    pass


class SignerError(TipLedgerError):
    """Raised when the external signer refuses or fails to sign and broadcast."""
    pass


class CacheReadError(TipLedgerError):
    """Raised by index backends when a secondary index read fails."""
    pass
