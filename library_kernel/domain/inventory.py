"""
Inventory arithmetic shared by InventoryLedger and the consistency guard.
"""

from decimal import Decimal


def copies_on_loan(total_copies: int, available_copies: int) -> int:
    return total_copies - available_copies


def plan_resize(old_total: int, old_available: int, new_total: int) -> int | None:
    """
    New available count after changing a book's total copies.

    The number of copies on loan is preserved:
    ``available = new_total - (old_total - old_available)``.  Returns None
    when that would be negative, i.e. when more copies are out than the new
    total allows.
    """
    new_available = new_total - copies_on_loan(old_total, old_available)
    if new_available < 0:
        return None
    return new_available


def is_significant_change(old_total: int, new_total: int, ratio: Decimal) -> bool:
    """
    True when the total moves by more than ``ratio`` of its old value.

    With the default ratio of 0.10 a book of 10 copies needs to change by
    two or more; a book of 100 copies by eleven or more.
    """
    if old_total == new_total:
        return False
    return Decimal(abs(new_total - old_total)) > Decimal(old_total) * ratio
