"""Kernel services: leaf services flush, workflows own the transaction."""

from library_kernel.services.audit_trail import AuditTrace, AuditTraceEntry, AuditTrail
from library_kernel.services.base import BaseService, TransactionalWorkflow
from library_kernel.services.inventory_ledger import (
    InventoryLedger,
    LedgerResult,
    LedgerStatus,
)
from library_kernel.services.lending_workflow import (
    BorrowResult,
    BorrowStatus,
    LendingWorkflow,
    ReturnResult,
    ReturnStatus,
)
from library_kernel.services.orchestrator import CirculationOrchestrator
from library_kernel.services.rating_aggregator import RatingAggregator
from library_kernel.services.review_workflow import (
    ReviewResult,
    ReviewStatus,
    ReviewWorkflow,
)
from library_kernel.services.stock_service import StockResult, StockService, StockStatus
from library_kernel.services.user_directory import SqlUserDirectory, UserDirectory

__all__ = [
    "AuditTrace",
    "AuditTraceEntry",
    "AuditTrail",
    "BaseService",
    "TransactionalWorkflow",
    "InventoryLedger",
    "LedgerResult",
    "LedgerStatus",
    "BorrowResult",
    "BorrowStatus",
    "LendingWorkflow",
    "ReturnResult",
    "ReturnStatus",
    "CirculationOrchestrator",
    "RatingAggregator",
    "ReviewResult",
    "ReviewStatus",
    "ReviewWorkflow",
    "StockResult",
    "StockService",
    "StockStatus",
    "SqlUserDirectory",
    "UserDirectory",
]
