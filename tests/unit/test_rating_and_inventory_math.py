"""Rating derivation and inventory arithmetic."""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from library_kernel.domain.inventory import (
    copies_on_loan,
    is_significant_change,
    plan_resize,
)
from library_kernel.domain.rating import (
    NO_RATING,
    is_valid_rating,
    summarize_ratings,
)


class TestRatingSummary:

    def test_no_reviews(self):
        summary = summarize_ratings([])
        assert summary.average_rating == NO_RATING
        assert summary.total_reviews == 0

    def test_single_rating(self):
        assert summarize_ratings([4]).average_rating == Decimal("4.00")

    def test_mean_rounds_half_up(self):
        # 14 / 3 = 4.666...
        assert summarize_ratings([5, 5, 4]).average_rating == Decimal("4.67")
        # 13 / 3 = 4.333...
        assert summarize_ratings([5, 4, 4]).average_rating == Decimal("4.33")
        # 9 / 8 = 1.125 -> 1.13
        assert summarize_ratings([1, 1, 1, 1, 1, 1, 1, 2]).average_rating == Decimal("1.13")

    def test_count(self):
        assert summarize_ratings([1, 2, 3, 4, 5]).total_reviews == 5

    @given(st.lists(st.integers(min_value=1, max_value=5), min_size=1, max_size=200))
    def test_average_stays_within_rating_scale(self, ratings):
        summary = summarize_ratings(ratings)
        assert Decimal("1.00") <= summary.average_rating <= Decimal("5.00")
        assert summary.total_reviews == len(ratings)


class TestValidRating:

    @pytest.mark.parametrize("value", [1, 2, 3, 4, 5])
    def test_valid(self, value):
        assert is_valid_rating(value)

    @pytest.mark.parametrize("value", [0, 6, -1, 4.5, "4", None, True, False])
    def test_invalid(self, value):
        assert not is_valid_rating(value)


class TestPlanResize:

    def test_grow_keeps_copies_on_loan(self):
        # 5 total, 3 available -> 2 on loan; grow to 8 -> 6 available
        assert plan_resize(5, 3, 8) == 6

    def test_shrink_keeps_copies_on_loan(self):
        assert plan_resize(5, 3, 3) == 1

    def test_shrink_to_exactly_on_loan(self):
        assert plan_resize(5, 3, 2) == 0

    def test_shrink_below_on_loan_is_refused(self):
        assert plan_resize(5, 3, 1) is None

    def test_copies_on_loan(self):
        assert copies_on_loan(5, 3) == 2


class TestSignificantChange:

    def test_unchanged_is_not_significant(self):
        assert not is_significant_change(10, 10, Decimal("0.10"))

    def test_exactly_at_threshold_is_not_significant(self):
        assert not is_significant_change(10, 11, Decimal("0.10"))
        assert not is_significant_change(10, 9, Decimal("0.10"))

    def test_above_threshold_is_significant(self):
        assert is_significant_change(10, 12, Decimal("0.10"))
        assert is_significant_change(10, 8, Decimal("0.10"))

    def test_large_book(self):
        assert not is_significant_change(100, 110, Decimal("0.10"))
        assert is_significant_change(100, 111, Decimal("0.10"))

    def test_zero_ratio_flags_any_change(self):
        assert is_significant_change(10, 11, Decimal("0"))
