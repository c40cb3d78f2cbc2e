"""
Rating derivation.

A book's aggregate rating is always recomputed from the full set of current
review ratings.  There is no running-average formula.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

MIN_RATING = 1
MAX_RATING = 5
RATING_QUANTUM = Decimal("0.01")
NO_RATING = Decimal("0.00")


@dataclass(frozen=True)
class RatingSummary:
    average_rating: Decimal
    total_reviews: int


def is_valid_rating(value: object) -> bool:
    """Ratings are integers 1..5.  Booleans are not ratings."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and MIN_RATING <= value <= MAX_RATING
    )


def summarize_ratings(ratings: Iterable[int]) -> RatingSummary:
    """
    Mean of ``ratings`` rounded half-up to two places, plus the count.

    No ratings gives 0.00 and a count of 0.
    """
    values = list(ratings)
    if not values:
        return RatingSummary(average_rating=NO_RATING, total_reviews=0)
    mean = Decimal(sum(values)) / Decimal(len(values))
    return RatingSummary(
        average_rating=mean.quantize(RATING_QUANTUM, rounding=ROUND_HALF_UP),
        total_reviews=len(values),
    )
