"""Reconciliation of Stripe purchases against recorded orders.

Features:
- Collect paid checkout sessions and standalone payment intents per Stripe customer
- Build per-email order aggregates from the order store
- Diff item aggregates by normalized name (missing, quantity and amount mismatches)
- Render summaries as JSON, CSV or text
"""

from .models import (
    DiscrepancyType,
    LookupFailure,
    StripeLineItem,
    StripeTransaction,
    StripeCustomerActivity,
    StripeActivity,
    LocalOrderItem,
    LocalCustomerOrders,
    ItemDiscrepancy,
    UserReconciliation,
    ReconciliationSummary,
    ReconciliationRequest,
)
from .psp_fetcher import (
    PSPFetcherBase,
    StripeFetcher,
    get_psp_fetcher,
    is_resource_missing,
)
from .reconciler import Reconciler, ItemTotals
from .service import ReconciliationService
from .report import ReportGenerator

__all__ = [
    # Models
    "DiscrepancyType",
    "LookupFailure",
    "StripeLineItem",
    "StripeTransaction",
    "StripeCustomerActivity",
    "StripeActivity",
    "LocalOrderItem",
    "LocalCustomerOrders",
    "ItemDiscrepancy",
    "UserReconciliation",
    "ReconciliationSummary",
    "ReconciliationRequest",
    # Fetchers
    "PSPFetcherBase",
    "StripeFetcher",
    "get_psp_fetcher",
    "is_resource_missing",
    # Core Components
    "Reconciler",
    "ItemTotals",
    "ReconciliationService",
    "ReportGenerator",
]
