"""Read-only selectors returning DTOs."""

from library_kernel.selectors.base import BaseSelector
from library_kernel.selectors.book_selector import (
    BookDiscrepancy,
    BookSelector,
    BookSnapshot,
    ConsistencyReport,
)
from library_kernel.selectors.loan_selector import (
    CheckoutStatistics,
    LoanSelector,
    LoanSnapshot,
)
from library_kernel.selectors.review_selector import ReviewSelector, ReviewSnapshot

__all__ = [
    "BaseSelector",
    "BookDiscrepancy",
    "BookSelector",
    "BookSnapshot",
    "ConsistencyReport",
    "CheckoutStatistics",
    "LoanSelector",
    "LoanSnapshot",
    "ReviewSelector",
    "ReviewSnapshot",
]
