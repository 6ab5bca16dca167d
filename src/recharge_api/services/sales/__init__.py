"""Sales: allocation orchestration, checkout and dashboard aggregates."""

from .checkout import CheckoutRequest, CheckoutResult, CheckoutService, CheckoutStatus
from .orchestrator import (
    AssignOutcome,
    AssignResult,
    BuyerInfo,
    SaleOrchestrator,
    SaleOutcome,
    SaleResult,
)
from .stats import DashboardStats, compute_dashboard_stats

__all__ = [
    "AssignOutcome",
    "AssignResult",
    "BuyerInfo",
    "CheckoutRequest",
    "CheckoutResult",
    "CheckoutService",
    "CheckoutStatus",
    "DashboardStats",
    "SaleOrchestrator",
    "SaleOutcome",
    "SaleResult",
    "compute_dashboard_stats",
]
