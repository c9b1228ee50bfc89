"""Service verifying recorded orders against their Stripe objects."""

import asyncio
import logging
from typing import Dict, List, Optional

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import Order, OrderItem, OrderPaymentStatus, OrderRepository, ProfileRepository
from ..reconciliation.models import StripeTransaction
from ..reconciliation.psp_fetcher import PSPFetcherBase, get_psp_fetcher, is_resource_missing
from .models import (
    BulkVerificationSummary,
    OrderItemSnapshot,
    OrderVerification,
    StripeVerificationResult,
    UserVerificationResult,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

NO_COST_ITEM_NAME = "No-cost order (fully discounted or free)"

_COUNTERS = {
    VerificationStatus.MATCH: "matched_orders",
    VerificationStatus.MISMATCH: "mismatched_orders",
    VerificationStatus.PENDING: "pending_orders",
    VerificationStatus.NO_STRIPE_DATA: "no_stripe_data_orders",
    VerificationStatus.ERROR: "error_orders",
}


def _count(result: StripeVerificationResult, status: VerificationStatus) -> None:
    counter = _COUNTERS[status]
    setattr(result, counter, getattr(result, counter) + 1)


class OrderVerificationService:
    """Service comparing each order's total with the Stripe session or payment intent."""

    def __init__(
        self,
        session: AsyncSession,
        psp_fetcher: Optional[PSPFetcherBase] = None,
        amount_tolerance: int = 1,
    ):
        """Initialize the verification service.

        Args:
            session: Async database session.
            psp_fetcher: Optional fetcher instance. Will create default if not provided.
            amount_tolerance: Largest total difference (minor units) counted as a match.
        """
        self.session = session
        self.order_repo = OrderRepository(session)
        self.profile_repo = ProfileRepository(session)
        self._psp_fetcher = psp_fetcher
        self.amount_tolerance = amount_tolerance

    def _get_psp_fetcher(self) -> PSPFetcherBase:
        if self._psp_fetcher is None:
            self._psp_fetcher = get_psp_fetcher("stripe")
        return self._psp_fetcher

    def _fetch_stripe_charge(self, order: Order) -> StripeTransaction:
        """Fetch the checkout session of an order, or its payment intent."""
        fetcher = self._get_psp_fetcher()
        if order.stripe_session_id:
            return fetcher.retrieve_checkout_session(order.stripe_session_id)
        return fetcher.retrieve_payment_intent(order.stripe_payment_intent_id)

    @staticmethod
    def _snapshot(order: Order, items: List[OrderItem]) -> OrderVerification:
        return OrderVerification(
            order_id=order.id,
            order_number=order.order_number,
            stripe_session_id=order.stripe_session_id,
            stripe_payment_intent_id=order.stripe_payment_intent_id,
            db_total=order.total or 0,
            db_items=[
                OrderItemSnapshot(
                    name=item.item_name,
                    quantity=item.quantity or 1,
                    unit_price=item.unit_price or 0,
                    total=item.total or 0,
                )
                for item in items
            ],
        )

    async def _compare_with_stripe(self, order: Order, verification: OrderVerification) -> None:
        """Set the status of a non-pending order from its Stripe charge."""
        if not order.stripe_session_id and not order.stripe_payment_intent_id:
            verification.status = VerificationStatus.NO_STRIPE_DATA
            return

        try:
            charge = await asyncio.to_thread(self._fetch_stripe_charge, order)
        except stripe.StripeError as e:
            if is_resource_missing(e):
                verification.status = VerificationStatus.NO_STRIPE_DATA
            else:
                logger.warning(f"Error fetching Stripe data for order {order.id}: {e}")
                verification.status = VerificationStatus.ERROR
                verification.error_message = str(e) or "Failed to fetch Stripe data"
            return

        verification.stripe_total = charge.amount
        verification.stripe_items = [
            OrderItemSnapshot(
                name=item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total=item.total,
            )
            for item in charge.line_items
        ]

        if abs(verification.db_total - charge.amount) <= self.amount_tolerance:
            verification.status = VerificationStatus.MATCH
        else:
            verification.status = VerificationStatus.MISMATCH

    async def verify_user_orders(self, user_id: str) -> StripeVerificationResult:
        """Verify every order of a user, newest first.

        Args:
            user_id: Owner of the orders.

        Returns:
            StripeVerificationResult with per-order outcomes and counts.
        """
        self._get_psp_fetcher()
        orders = await self.order_repo.list_for_user(user_id)
        items_by_order = await self.order_repo.list_items_for_orders([o.id for o in orders])

        result = StripeVerificationResult(user_id=user_id, total_orders=len(orders))

        for order in orders:
            verification = self._snapshot(order, items_by_order.get(order.id, []))
            result.orders.append(verification)

            if order.payment_status == OrderPaymentStatus.PENDING.value:
                verification.status = VerificationStatus.PENDING
            else:
                await self._compare_with_stripe(order, verification)
            _count(result, verification.status)

        logger.info(
            f"Verified {result.total_orders} orders for user {user_id}: "
            f"{result.matched_orders} matched, {result.mismatched_orders} mismatched"
        )
        return result

    async def _verify_orders_in_bulk(
        self,
        user_id: str,
        orders: List[Order],
        items_by_order: Dict[str, List[OrderItem]],
    ) -> StripeVerificationResult:
        """Verify one user's orders the way the store-wide run does.

        Pending orders are counted but left out of the listed orders, and
        orders whose items discount them down to nothing match without a
        Stripe lookup.
        """
        result = StripeVerificationResult(user_id=user_id, total_orders=len(orders))

        for order in orders:
            if order.payment_status == OrderPaymentStatus.PENDING.value:
                _count(result, VerificationStatus.PENDING)
                continue

            items = items_by_order.get(order.id, [])
            verification = self._snapshot(order, items)
            result.orders.append(verification)

            total_discount = sum(item.discount_amount or 0 for item in items)
            if (order.total or 0) - total_discount <= 0:
                verification.status = VerificationStatus.MATCH
                verification.stripe_total = 0
                verification.stripe_items = [OrderItemSnapshot(name=NO_COST_ITEM_NAME)]
            else:
                await self._compare_with_stripe(order, verification)
            _count(result, verification.status)

        return result

    async def verify_all_orders(self) -> BulkVerificationSummary:
        """Verify every order in the store, grouped by user.

        Users are taken in the order of their newest order. Only users with
        at least one mismatched, errored or unverifiable order are listed.

        Returns:
            BulkVerificationSummary with store-wide counts.
        """
        self._get_psp_fetcher()
        orders = await self.order_repo.list_all_newest_first()
        if not orders:
            logger.info("No orders to verify")
            return BulkVerificationSummary()

        orders_by_user: Dict[str, List[Order]] = {}
        for order in orders:
            orders_by_user.setdefault(order.user_id, []).append(order)

        items_by_order = await self.order_repo.list_items_for_orders([o.id for o in orders])
        profiles = await self.profile_repo.get_by_ids(orders_by_user)

        summary = BulkVerificationSummary(total_users=len(orders_by_user), total_orders=len(orders))

        for user_id, user_orders in orders_by_user.items():
            result = await self._verify_orders_in_bulk(user_id, user_orders, items_by_order)

            summary.matched_orders += result.matched_orders
            summary.mismatched_orders += result.mismatched_orders
            summary.pending_orders += result.pending_orders
            summary.no_stripe_data_orders += result.no_stripe_data_orders
            summary.error_orders += result.error_orders

            if result.mismatched_orders or result.error_orders or result.no_stripe_data_orders:
                profile = profiles.get(user_id)
                summary.user_results.append(UserVerificationResult(
                    user_id=user_id,
                    user_name=(profile.full_name if profile else None) or "Unknown",
                    result=result,
                ))

        logger.info(
            f"Verified {summary.total_orders} orders of {summary.total_users} users: "
            f"{summary.matched_orders} matched, {summary.mismatched_orders} mismatched, "
            f"{len(summary.user_results)} users need attention"
        )
        return summary
