#!/usr/bin/env python3
"""
Ez Crypto Tips Audit CLI

Read-only checks against the mirror node. No wallet is needed.

Usage:
    python -m eztips.cli verify 0.0.7415185@42
    python -m eztips.cli reconcile --after 100 --limit 50
    python -m eztips.cli tx 0.0.1234@1700000000.123456789 --waiter 0.0.4817263
"""

import argparse
import asyncio
import sys

import structlog

from .chains.mirror_client import MirrorNodeClient
from .config import get_tips_config
from .monitoring.logging import configure_logging
from .reviews.index import init_review_index
from .reviews.ledger import ReviewLedgerClient
from .tipping.service import verify_tip_transfer

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ez Crypto Tips ledger audit")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level (default: WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    verify = subparsers.add_parser("verify", help="Verify a review message on the ledger")
    verify.add_argument("message_id", help="Review message id, topic@sequence")

    reconcile = subparsers.add_parser("reconcile", help="Backfill the review index from the ledger")
    reconcile.add_argument("--after", type=int, default=0, help="Start after this sequence number")
    reconcile.add_argument("--limit", type=int, default=100, help="Maximum messages to scan")

    tx = subparsers.add_parser("tx", help="Check a tip transaction")
    tx.add_argument("transaction_id", help="Transaction id, wallet or mirror format")
    tx.add_argument("--waiter", help="Native id of the waiter expected to be paid")

    return parser


async def run_verify(mirror: MirrorNodeClient, message_id: str) -> int:
    config = get_tips_config()
    ledger = ReviewLedgerClient(None, mirror, await init_review_index(), config)
    result = await ledger.verify(message_id)

    if not result.verified:
        print(f"NOT VERIFIED: {result.error}")
        return 1

    review = result.payload.data
    print(f"Verified review {message_id}")
    print(f"  Waiter: {review.waiter_id}")
    print(f"  Rating: {review.rating if review.rating is not None else '-'}")
    print(f"  Comment: {review.comment}")
    print(f"  Payment: {review.correlation_id or '-'}")
    print(f"  Explorer: {ledger.explorer_url(message_id)}")
    return 0


async def run_reconcile(mirror: MirrorNodeClient, after: int, limit: int) -> int:
    config = get_tips_config()
    index = await init_review_index(
        config.redis_url,
        config.redis_password,
        prefix=config.index_key_prefix,
    )
    try:
        ledger = ReviewLedgerClient(None, mirror, index, config)
        added = await ledger.reconcile(after_sequence=after, limit=limit)
    finally:
        await index.close()

    print(f"Reconciled topic {config.reviews_topic_id}: {added} entries added")
    return 0


async def run_tx(mirror: MirrorNodeClient, transaction_id: str, waiter: str | None) -> int:
    if waiter:
        verification = await verify_tip_transfer(mirror, transaction_id, waiter)
        if not verification.verified:
            print(f"NOT VERIFIED: {verification.error}")
            return 1
        print(f"Verified: {waiter} received {verification.amount} HBAR")
    else:
        status = await mirror.get_transaction_status(transaction_id)
        if status is None:
            print("Transaction not found")
            return 1
        print(f"Status: {status}")

    print(f"Explorer: {get_tips_config().get_explorer_url(f'transaction/{transaction_id}')}")
    return 0


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level, include_service_info=False)

    async with MirrorNodeClient() as mirror:
        try:
            if args.command == "verify":
                return await run_verify(mirror, args.message_id)
            if args.command == "reconcile":
                return await run_reconcile(mirror, args.after, args.limit)
            return await run_tx(mirror, args.transaction_id, args.waiter)
        except Exception as e:
            logger.error("audit_command_failed", command=args.command, error=str(e))
            print(f"Error: {e}")
            return 1


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
