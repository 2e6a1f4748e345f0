"""
Review Ledger Module

Reviews are written to a consensus topic (authoritative) and mirrored into a
secondary index (fast, advisory) from which rating snapshots are computed.
"""

from .index import InMemoryReviewIndex, RedisReviewIndex, ReviewIndex, init_review_index
from .ledger import ReviewLedgerClient, parse_message_id
from .rating import RatingAggregator

__all__ = [
    "ReviewLedgerClient",
    "RatingAggregator",
    "ReviewIndex",
    "InMemoryReviewIndex",
    "RedisReviewIndex",
    "init_review_index",
    "parse_message_id",
]
