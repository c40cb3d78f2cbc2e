"""
CirculationOrchestrator -- DI container for the kernel services.

Responsibility:
    Builds every kernel service exactly once, in dependency order, around
    one Session, Clock, LendingPolicy and UserDirectory, and exposes them
    as public attributes.

Architecture position:
    Kernel > Services.  Entry point for callers (HTTP handlers, jobs,
    tests) that want the whole kernel for one unit of work.

Invariants enforced:
    - Single-instance lifecycle: all services share the same Session,
      Clock and policy.
"""

from sqlalchemy.orm import Session

from library_kernel.domain.clock import Clock, SystemClock
from library_kernel.domain.policy import LendingPolicy
from library_kernel.selectors.book_selector import BookSelector
from library_kernel.selectors.loan_selector import LoanSelector
from library_kernel.selectors.review_selector import ReviewSelector
from library_kernel.services.audit_trail import AuditTrail
from library_kernel.services.inventory_ledger import InventoryLedger
from library_kernel.services.lending_workflow import LendingWorkflow
from library_kernel.services.rating_aggregator import RatingAggregator
from library_kernel.services.review_workflow import ReviewWorkflow
from library_kernel.services.stock_service import StockService
from library_kernel.services.user_directory import SqlUserDirectory, UserDirectory


class CirculationOrchestrator:
    """Central factory for kernel services.

    Contract:
        Receives a Session and optional Clock, LendingPolicy and
        UserDirectory.  Constructs each service once and wires them
        together.

    Guarantees:
        - Workflows (lending, reviews, stock) commit on success and roll
          back on failure unless ``auto_commit=False``.
        - Leaf services (ledger, aggregator, audit_trail) never commit.

    Non-goals:
        - Does NOT own the Session lifecycle (the caller closes it).
        - Does NOT register ORM listeners; call
          ``library_kernel.db.install_kernel_listeners()`` once at startup.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: LendingPolicy | None = None,
        users: UserDirectory | None = None,
        auto_commit: bool = True,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or LendingPolicy()
        self.users = users or SqlUserDirectory(session)

        # Leaf services
        self.audit_trail = AuditTrail(session, self._clock)
        self.ledger = InventoryLedger(session)
        self.aggregator = RatingAggregator(session)

        # Workflows
        self.lending = LendingWorkflow(
            session, self._clock, self._policy,
            users=self.users,
            ledger=self.ledger,
            audit_trail=self.audit_trail,
            auto_commit=auto_commit,
        )
        self.reviews = ReviewWorkflow(
            session, self._clock, self._policy,
            users=self.users,
            aggregator=self.aggregator,
            audit_trail=self.audit_trail,
            auto_commit=auto_commit,
        )
        self.stock = StockService(
            session, self._clock, self._policy,
            users=self.users,
            ledger=self.ledger,
            audit_trail=self.audit_trail,
            auto_commit=auto_commit,
        )

        # Read side
        self.books = BookSelector(session)
        self.loans = LoanSelector(session, self._clock, self._policy)
        self.review_reader = ReviewSelector(session)

    @property
    def session(self) -> Session:
        """The SQLAlchemy session shared by all services."""
        return self._session

    @property
    def clock(self) -> Clock:
        """The clock shared by all services."""
        return self._clock

    @property
    def policy(self) -> LendingPolicy:
        return self._policy
