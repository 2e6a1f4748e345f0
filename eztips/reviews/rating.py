"""
Rating Aggregation

The headline average reflects recent service quality (only the most recent
ratings count), while the total communicates accumulated volume (every valid
rating counts). Records are expected most recent first, which is the order
the review index returns them in.
"""

from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from ..models.review import IndexedReview, RatingSnapshot, ReviewRecord, WaiterRatingSummary
from .index import ReviewIndex

DEFAULT_RATING_WINDOW = 40
LATEST_REVIEWS_SHOWN = 3


def _rating_of(record: ReviewRecord | Mapping[str, Any]) -> float | None:
    """Return a usable rating, or None for absent, zero or non-numeric ratings."""
    if isinstance(record, Mapping):
        rating = record.get("rating")
    else:
        rating = record.rating
    if isinstance(rating, bool) or not isinstance(rating, (int, float)):
        return None
    return float(rating) if rating > 0 else None


class RatingAggregator:
    """Computes windowed rating snapshots from index records."""

    def __init__(
        self,
        index: ReviewIndex | None = None,
        window: int = DEFAULT_RATING_WINDOW,
        fetch_limit: int = 50,
    ):
        if window < 1:
            raise ValueError("window must be at least 1")
        self._index = index
        self.window = window
        self.fetch_limit = fetch_limit

    def summarize(self, records: Iterable[ReviewRecord | Mapping[str, Any]]) -> RatingSnapshot:
        """
        Average of the most recent `window` valid ratings, total of all.

        Args:
            records: Reviews ordered most recent first

        Returns:
            RatingSnapshot; {average: 0, total: 0} when no record has a rating
        """
        ratings = [r for r in (_rating_of(record) for record in records) if r is not None]
        if not ratings:
            return RatingSnapshot(average=0.0, total=0)

        recent = ratings[: self.window]
        mean = sum((Decimal(str(r)) for r in recent), Decimal(0)) / len(recent)
        average = float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))

        return RatingSnapshot(average=average, total=len(ratings))

    async def summarize_waiter(self, waiter_id: str) -> WaiterRatingSummary:
        """Read a waiter's reviews from the index and summarize them."""
        if self._index is None:
            raise RuntimeError("RatingAggregator has no review index")

        reviews: list[IndexedReview] = await self._index.find_by_waiter(
            waiter_id, limit=self.fetch_limit
        )
        return WaiterRatingSummary(
            waiter_id=waiter_id,
            snapshot=self.summarize(reviews),
            latest_reviews=reviews[:LATEST_REVIEWS_SHOWN],
        )
