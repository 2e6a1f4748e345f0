"""
Tip Payment Module

Fee-splitting HBAR tips paid through the tip splitter contract.
"""

from .service import TransactionOrchestrator, verify_tip_transfer

__all__ = ["TransactionOrchestrator", "verify_tip_transfer"]
