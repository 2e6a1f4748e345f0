"""
Tip Payment Models

A tip is a payable call to the tip splitter contract. The contract keeps a
fixed platform fee (5%) and forwards the rest to the service worker; when the
customer chooses to cover the fee, the payable amount is grossed up so that
the worker receives the full tip.

Amounts are Decimal HBAR. The payable amount is converted to tinybar (the
chain's minor unit) by truncation.
"""

from datetime import UTC, datetime
from decimal import ROUND_FLOOR, Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from ..config import TINYBARS_PER_HBAR

DEFAULT_FEE_RATE = Decimal("0.05")


class TipStatus(str, Enum):
    """Outcome of the confirmation check for a tip transaction."""
    CONFIRMED = "confirmed"      # Ledger reported SUCCESS
    UNCONFIRMED = "unconfirmed"  # Not yet visible on the mirror, proceed optimistically
    FAILED = "failed"            # Explicit failure code


def hbar_to_tinybar(hbar: Decimal) -> int:
    """Convert an HBAR amount to tinybar, truncating sub-tinybar dust."""
    return int((Decimal(hbar) * TINYBARS_PER_HBAR).to_integral_value(rounding=ROUND_FLOOR))


def tinybar_to_hbar(tinybar: int) -> Decimal:
    """Convert tinybar to HBAR."""
    return Decimal(tinybar) / TINYBARS_PER_HBAR


class TipTransaction(BaseModel):
    """
    A single tip payment attempt.

    Transient: it exists only for the duration of one send_tip call. The
    derived amounts are computed before the contract call is built so that
    fee coverage changes what is paid, not what is reported afterwards.
    """

    recipient_native_id: str = Field(description="Recipient account id (0.0.xxxxx)")
    tip_amount: Decimal = Field(gt=0, description="Tip the customer entered, in HBAR")
    cover_fee: bool = Field(default=False, description="Customer pays the platform fee on top")
    review_memo: str = Field(default="", description="Review text passed to the contract")
    fee_rate: Decimal = Field(default=DEFAULT_FEE_RATE, ge=0, lt=1)

    @field_validator("review_memo", mode="before")
    @classmethod
    def default_memo(cls, v: str | None) -> str:
        return v or ""

    @property
    def total_paid(self) -> Decimal:
        """Amount debited from the customer."""
        if self.cover_fee:
            return self.tip_amount / (1 - self.fee_rate)
        return self.tip_amount

    @property
    def waiter_receives(self) -> Decimal:
        """Amount the contract forwards to the recipient."""
        if self.cover_fee:
            return self.tip_amount
        return self.tip_amount * (1 - self.fee_rate)

    @property
    def platform_fee(self) -> Decimal:
        """Amount the contract keeps."""
        return self.total_paid - self.waiter_receives

    @property
    def payable_tinybar(self) -> int:
        """Payable amount attached to the contract call."""
        return hbar_to_tinybar(self.total_paid)


class TipReceipt(BaseModel):
    """Result of a tip payment."""

    transaction_id: str = Field(description="Payment transaction id, used as correlation id")
    status: TipStatus
    recipient_native_id: str
    recipient_address: str = Field(description="EVM address passed to the contract")
    total_paid: Decimal
    waiter_receives: Decimal
    platform_fee: Decimal
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def confirmed(self) -> bool:
        return self.status == TipStatus.CONFIRMED


class TipVerification(BaseModel):
    """Result of auditing a past tip against the mirror node."""

    verified: bool
    amount: Decimal | None = Field(default=None, description="HBAR credited to the waiter")
    error: str | None = None


def calculate_tip_split(
    tip_amount: Decimal,
    cover_fee: bool = False,
    fee_rate: Decimal = DEFAULT_FEE_RATE,
) -> dict[str, Decimal]:
    """
    Calculate the fee breakdown shown to the customer before paying.

    Returns:
        Dict with total_paid, waiter_receives and platform_fee
    """
    tip = TipTransaction(
        recipient_native_id="0.0.0",
        tip_amount=tip_amount,
        cover_fee=cover_fee,
        fee_rate=fee_rate,
    )
    return {
        "total_paid": tip.total_paid,
        "waiter_receives": tip.waiter_receives,
        "platform_fee": tip.platform_fee,
    }
