"""Service layer for reconciliation operations."""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from ..batching import process_in_batches
from ..database import OrderPaymentStatus, OrderRepository, ProfileRepository
from .models import (
    LocalCustomerOrders,
    LocalOrderItem,
    LookupFailure,
    ReconciliationRequest,
    ReconciliationSummary,
)
from .psp_fetcher import get_psp_fetcher, PSPFetcherBase
from .reconciler import Reconciler
from .report import ReportGenerator

logger = logging.getLogger(__name__)

CUSTOMER_LOOKUP_BATCH_SIZE = 10


class ReconciliationService:
    """Service running Stripe / order-store reconciliations."""

    def __init__(
        self,
        session: AsyncSession,
        psp_fetcher: Optional[PSPFetcherBase] = None,
    ):
        """Initialize the reconciliation service.

        Args:
            session: Async database session.
            psp_fetcher: Optional fetcher instance. Will create default if not provided.
        """
        self.session = session
        self.order_repo = OrderRepository(session)
        self.profile_repo = ProfileRepository(session)
        self._psp_fetcher = psp_fetcher

    def _get_psp_fetcher(self, provider: str = "stripe") -> PSPFetcherBase:
        if self._psp_fetcher is None:
            self._psp_fetcher = get_psp_fetcher(provider)
        return self._psp_fetcher

    async def resolve_user_emails(self) -> Tuple[Dict[str, str], List[LookupFailure]]:
        """Map user ids to emails through the Stripe customers on their orders.

        Each distinct Stripe customer id is looked up once; it resolves the
        user of the first order carrying it. Failed lookups leave the user
        unresolved and are reported.

        Returns:
            Tuple of (user id -> lower-cased email, lookup failures).
        """
        fetcher = self._get_psp_fetcher()
        links = await self.order_repo.list_customer_links()

        user_by_customer: Dict[str, str] = {}
        for user_id, customer_id in links:
            user_by_customer.setdefault(customer_id, user_id)
        customer_ids = list(user_by_customer)

        def lookup(customer_id: str) -> Tuple[Optional[str], Optional[LookupFailure]]:
            try:
                return fetcher.retrieve_customer_email(customer_id), None
            except stripe.StripeError as e:
                logger.warning(f"Error retrieving Stripe customer {customer_id}: {e}")
                return None, LookupFailure(
                    reference=customer_id,
                    operation="retrieve_customer",
                    message=str(e),
                )

        results = await asyncio.to_thread(
            process_in_batches, customer_ids, CUSTOMER_LOOKUP_BATCH_SIZE, lookup
        )

        emails: Dict[str, str] = {}
        failures: List[LookupFailure] = []
        for customer_id, (email, failure) in zip(customer_ids, results):
            if failure:
                failures.append(failure)
            elif email:
                emails[user_by_customer[customer_id]] = email

        logger.info(f"Resolved emails for {len(emails)} users from {len(customer_ids)} Stripe customers")
        return emails, failures

    async def fetch_local_customers(
        self,
        user_emails: Dict[str, str],
    ) -> Dict[str, LocalCustomerOrders]:
        """Build order-store aggregates keyed by email.

        Only paid orders of users with a resolved email are included.

        Args:
            user_emails: User id to lower-cased email mapping.

        Returns:
            LocalCustomerOrders keyed by email.
        """
        orders = await self.order_repo.list_by_payment_status(OrderPaymentStatus.PAID.value)
        items_by_order = await self.order_repo.list_items_for_orders([o.id for o in orders])
        profiles = await self.profile_repo.get_by_ids(
            o.user_id for o in orders if o.user_id in user_emails
        )

        customers: Dict[str, LocalCustomerOrders] = {}
        for order in orders:
            email = user_emails.get(order.user_id)
            if not email:
                continue

            items = [
                LocalOrderItem(
                    name=item.item_name,
                    quantity=item.quantity or 1,
                    unit_price=item.unit_price or 0,
                    total=item.total or 0,
                    item_type=item.item_type,
                    order_id=order.id,
                    order_number=order.order_number,
                )
                for item in items_by_order.get(order.id, [])
            ]

            existing = customers.get(email)
            if existing:
                existing.order_items.extend(items)
                existing.total_spent += order.total or 0
            else:
                profile = profiles.get(order.user_id)
                customers[email] = LocalCustomerOrders(
                    user_id=order.user_id,
                    email=email,
                    name=profile.full_name if profile else None,
                    order_items=items,
                    total_spent=order.total or 0,
                )

        logger.info(f"Built order aggregates for {len(customers)} emails")
        return customers

    async def run_reconciliation(
        self,
        request: ReconciliationRequest,
    ) -> ReconciliationSummary:
        """Execute a reconciliation run.

        Args:
            request: Reconciliation request parameters.

        Returns:
            ReconciliationSummary.

        Raises:
            Exception: Any configuration, Stripe listing or database failure.
        """
        if request.email_filter:
            logger.info(f"Starting reconciliation for {request.email_filter}")
        else:
            logger.info("Starting reconciliation for all customers")

        fetcher = self._get_psp_fetcher()
        stripe_activity = await asyncio.to_thread(fetcher.fetch_customer_activity, request.email_filter)

        user_emails, email_failures = await self.resolve_user_emails()
        local_customers = await self.fetch_local_customers(user_emails)
        if request.email_filter:
            wanted = request.email_filter.lower()
            local_customers = {e: c for e, c in local_customers.items() if e == wanted}

        reconciler = Reconciler(amount_tolerance=1)
        return reconciler.reconcile(
            stripe_customers=stripe_activity.customers,
            local_customers=local_customers,
            lookup_failures=stripe_activity.failures + email_failures,
        )

    def generate_report(
        self,
        summary: ReconciliationSummary,
        format: str = "json",
        include_details: bool = True,
    ) -> str:
        """Generate a formatted report from reconciliation results.

        Args:
            summary: ReconciliationSummary to format.
            format: Output format ('json', 'csv', 'text', 'detailed_text').
            include_details: Include per-user records (for JSON format).

        Returns:
            Formatted report string.
        """
        generator = ReportGenerator(summary)

        if format == "json":
            return generator.to_json(include_details=include_details)
        elif format == "csv":
            return generator.to_csv()
        elif format == "text":
            return generator.to_summary_text()
        elif format == "detailed_text":
            return generator.to_detailed_text()
        else:
            raise ValueError(f"Unsupported report format: {format}")
