"""Book bounds checker shared by the ledger, the aggregator and the guard."""

from decimal import Decimal

from library_kernel.domain.invariants import BookState, check_book_state, clamp_book_state
from library_kernel.invariants import KernelInvariant


def _state(total=5, available=3, borrowed=10, rating="4.50"):
    return BookState(
        total_copies=total,
        available_copies=available,
        total_borrowed=borrowed,
        average_rating=Decimal(rating),
    )


def test_legal_state_has_no_violations():
    assert check_book_state(_state()) == ()


def test_boundaries_are_legal():
    assert check_book_state(_state(available=0, borrowed=0, rating="0.00")) == ()
    assert check_book_state(_state(available=5, rating="5.00")) == ()


def test_negative_available_clamps_to_zero():
    corrected, violations = clamp_book_state(_state(available=-1))
    assert corrected.available_copies == 0
    assert [v.invariant for v in violations] == [KernelInvariant.COPY_BOUNDS]


def test_available_above_total_clamps_to_total():
    corrected, violations = clamp_book_state(_state(total=5, available=7))
    assert corrected.available_copies == 5
    assert violations[0].field == "available_copies"
    assert violations[0].value == 7


def test_negative_borrow_counter_clamps_to_zero():
    corrected, violations = clamp_book_state(_state(borrowed=-2))
    assert corrected.total_borrowed == 0
    assert violations[0].invariant == KernelInvariant.BORROW_COUNTER


def test_rating_clamped_into_scale():
    corrected, _ = clamp_book_state(_state(rating="5.20"))
    assert corrected.average_rating == Decimal("5.00")
    corrected, _ = clamp_book_state(_state(rating="-0.10"))
    assert corrected.average_rating == Decimal("0.00")


def test_several_violations_reported_together():
    corrected, violations = clamp_book_state(_state(available=-1, borrowed=-1, rating="9"))
    assert {v.field for v in violations} == {
        "available_copies", "total_borrowed", "average_rating",
    }
    assert check_book_state(corrected) == ()


def test_describe_names_field_and_correction():
    _, violations = clamp_book_state(_state(available=-1))
    assert violations[0].describe() == "available_copies=-1 corrected to 0"


def test_legal_state_is_returned_unchanged():
    state = _state()
    corrected, violations = clamp_book_state(state)
    assert corrected is state
    assert violations == ()
