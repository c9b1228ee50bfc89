"""Reconciliation logic comparing Stripe purchases with recorded orders."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol

from .models import (
    DiscrepancyType,
    ItemDiscrepancy,
    LocalCustomerOrders,
    LookupFailure,
    ReconciliationSummary,
    StripeCustomerActivity,
    UserReconciliation,
)

logger = logging.getLogger(__name__)


class _PurchasedItem(Protocol):
    name: str
    quantity: int
    total: int


@dataclass
class ItemTotals:
    """Summed quantity and amount for one normalized item name."""
    quantity: int = 0
    total: int = 0


class Reconciler:
    """Reconciliation engine diffing per-email item aggregates.

    Items are matched on their case-insensitive, trimmed name. A product
    renamed on one side will therefore show up as missing on both sides.
    """

    def __init__(self, amount_tolerance: int = 1):
        """Initialize the reconciler.

        Args:
            amount_tolerance: Largest amount difference (in minor units) still
                considered equal.
        """
        self.amount_tolerance = amount_tolerance

    @staticmethod
    def normalize_item_name(name: str) -> str:
        return name.lower().strip()

    def _amounts_match(self, stripe_amount: int, local_amount: int) -> bool:
        return abs(stripe_amount - local_amount) <= self.amount_tolerance

    def aggregate_items(self, items: Iterable[_PurchasedItem]) -> Dict[str, ItemTotals]:
        """Sum quantities and totals per normalized item name.

        Args:
            items: Line items exposing name, quantity and total.

        Returns:
            Mapping of normalized name to ItemTotals, in first-seen order.
        """
        aggregates: Dict[str, ItemTotals] = {}
        for item in items:
            totals = aggregates.setdefault(self.normalize_item_name(item.name), ItemTotals())
            totals.quantity += item.quantity
            totals.total += item.total
        return aggregates

    def compare_items(
        self,
        stripe_items: Dict[str, ItemTotals],
        local_items: Dict[str, ItemTotals],
    ) -> List[ItemDiscrepancy]:
        """Compare two item aggregates.

        Stripe item names come first, followed by names only recorded locally.
        A quantity mismatch takes precedence over an amount mismatch.

        Returns:
            List of ItemDiscrepancy, empty when both sides agree.
        """
        discrepancies: List[ItemDiscrepancy] = []
        all_names = list(stripe_items) + [n for n in local_items if n not in stripe_items]

        for name in all_names:
            stripe_item = stripe_items.get(name)
            local_item = local_items.get(name)

            if local_item is None:
                status = DiscrepancyType.MISSING_IN_SUPABASE
            elif stripe_item is None:
                status = DiscrepancyType.MISSING_IN_STRIPE
            elif stripe_item.quantity != local_item.quantity:
                status = DiscrepancyType.QUANTITY_MISMATCH
            elif not self._amounts_match(stripe_item.total, local_item.total):
                status = DiscrepancyType.AMOUNT_MISMATCH
            else:
                continue

            stripe_item = stripe_item or ItemTotals()
            local_item = local_item or ItemTotals()
            discrepancies.append(ItemDiscrepancy(
                item_name=name,
                stripe_quantity=stripe_item.quantity,
                stripe_total=stripe_item.total,
                supabase_quantity=local_item.quantity,
                supabase_total=local_item.total,
                status=status,
            ))

        return discrepancies

    def reconcile_user(
        self,
        email: str,
        stripe_data: Optional[StripeCustomerActivity],
        local_data: Optional[LocalCustomerOrders],
    ) -> UserReconciliation:
        """Reconcile the purchases recorded for one email on both sides."""
        stripe_items = self.aggregate_items(
            item
            for transaction in (stripe_data.transactions if stripe_data else [])
            for item in transaction.line_items
        )
        local_items = self.aggregate_items(local_data.order_items if local_data else [])
        discrepancies = self.compare_items(stripe_items, local_items)

        stripe_total = stripe_data.total_spent if stripe_data else 0
        local_total = local_data.total_spent if local_data else 0
        total_difference = stripe_total - local_total

        return UserReconciliation(
            email=email,
            stripe_customer_id=stripe_data.customer_id if stripe_data else None,
            supabase_user_id=local_data.user_id if local_data else None,
            stripe_name=stripe_data.name if stripe_data else None,
            supabase_name=local_data.name if local_data else None,
            stripe_total=stripe_total,
            supabase_total=local_total,
            total_difference=total_difference,
            stripe_item_count=sum(t.quantity for t in stripe_items.values()),
            supabase_item_count=sum(t.quantity for t in local_items.values()),
            discrepancies=discrepancies,
            has_issues=bool(discrepancies) or not self._amounts_match(stripe_total, local_total),
        )

    def reconcile(
        self,
        stripe_customers: Dict[str, StripeCustomerActivity],
        local_customers: Dict[str, LocalCustomerOrders],
        lookup_failures: Optional[List[LookupFailure]] = None,
    ) -> ReconciliationSummary:
        """Reconcile both sides for every email present in either.

        Only users with issues are listed, largest absolute difference first.

        Args:
            stripe_customers: Stripe aggregates keyed by lower-cased email.
            local_customers: Order-store aggregates keyed by lower-cased email.
            lookup_failures: Failed per-item lookups to carry into the summary.

        Returns:
            ReconciliationSummary.
        """
        all_emails = list(stripe_customers) + [e for e in local_customers if e not in stripe_customers]

        users: List[UserReconciliation] = []
        total_stripe_purchases = 0
        total_local_purchases = 0

        for email in all_emails:
            result = self.reconcile_user(email, stripe_customers.get(email), local_customers.get(email))
            total_stripe_purchases += result.stripe_item_count
            total_local_purchases += result.supabase_item_count
            if result.has_issues:
                users.append(result)

        users.sort(key=lambda u: abs(u.total_difference), reverse=True)

        total_stripe_amount = sum(c.total_spent for c in stripe_customers.values())
        total_local_amount = sum(c.total_spent for c in local_customers.values())

        summary = ReconciliationSummary(
            total_stripe_customers=len(stripe_customers),
            total_supabase_users=len(local_customers),
            total_matched_emails=sum(1 for e in stripe_customers if e in local_customers),
            users_with_discrepancies=len(users),
            total_stripe_purchases=total_stripe_purchases,
            total_supabase_purchases=total_local_purchases,
            total_stripe_amount=total_stripe_amount,
            total_supabase_amount=total_local_amount,
            amount_difference=total_stripe_amount - total_local_amount,
            users=users,
            lookup_failures=list(lookup_failures or []),
        )

        logger.info(
            f"Reconciliation complete: {summary.total_matched_emails} matched emails, "
            f"{summary.users_with_discrepancies} with discrepancies"
        )
        return summary
