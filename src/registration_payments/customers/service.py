"""Service listing Stripe customers with their spend totals."""

import logging
from typing import Any, Optional, Tuple

import stripe

from ..batching import process_in_batches
from ..reconciliation.models import LookupFailure
from ..reconciliation.psp_fetcher import PSPFetcherBase, get_field, get_psp_fetcher
from .models import (
    CustomerAddress,
    ListCustomersRequest,
    ListCustomersResponse,
    StripeCustomerSummary,
)

logger = logging.getLogger(__name__)

# Each customer costs one extra payment intent listing, so pages stay small
MAX_PAGE_SIZE = 25
PAYMENT_LOOKUP_BATCH_SIZE = 5


class CustomerDirectoryService:
    """Service for browsing Stripe customers."""

    def __init__(self, psp_fetcher: Optional[PSPFetcherBase] = None):
        self._psp_fetcher = psp_fetcher

    def _get_psp_fetcher(self) -> PSPFetcherBase:
        if self._psp_fetcher is None:
            self._psp_fetcher = get_psp_fetcher("stripe")
        return self._psp_fetcher

    @staticmethod
    def _convert_address(address: Any) -> Optional[CustomerAddress]:
        if address is None:
            return None
        return CustomerAddress(
            city=get_field(address, "city"),
            country=get_field(address, "country"),
            line1=get_field(address, "line1"),
            line2=get_field(address, "line2"),
            postal_code=get_field(address, "postal_code"),
            state=get_field(address, "state"),
        )

    @staticmethod
    def _default_source_id(customer: Any) -> Optional[str]:
        source = get_field(customer, "default_source")
        if isinstance(source, str):
            return source
        return get_field(source, "id")

    def _summarize(self, customer: Any) -> Tuple[StripeCustomerSummary, Optional[LookupFailure]]:
        fetcher = self._get_psp_fetcher()
        failure = None
        try:
            total_spent, payment_count = fetcher.fetch_succeeded_payment_totals(customer.id)
        except stripe.StripeError as e:
            logger.warning(f"Error fetching payments for customer {customer.id}: {e}")
            total_spent, payment_count = 0, 0
            failure = LookupFailure(
                reference=customer.id,
                operation="list_payment_intents",
                message=str(e),
            )

        summary = StripeCustomerSummary(
            id=customer.id,
            email=get_field(customer, "email"),
            name=get_field(customer, "name"),
            phone=get_field(customer, "phone"),
            created=get_field(customer, "created", 0),
            metadata=dict(get_field(customer, "metadata", {})),
            address=self._convert_address(get_field(customer, "address")),
            default_payment_method=self._default_source_id(customer),
            balance=get_field(customer, "balance", 0),
            currency=get_field(customer, "currency"),
            delinquent=bool(get_field(customer, "delinquent", False)),
            invoice_prefix=get_field(customer, "invoice_prefix"),
            total_spent=total_spent,
            payment_count=payment_count,
        )
        return summary, failure

    def list_customers(self, request: ListCustomersRequest) -> ListCustomersResponse:
        """List one page of Stripe customers with their succeeded payment totals.

        Args:
            request: Paging and filter parameters.

        Returns:
            ListCustomersResponse for the page.
        """
        fetcher = self._get_psp_fetcher()
        customers, has_more = fetcher.list_customers(
            limit=min(request.limit, MAX_PAGE_SIZE),
            starting_after=request.starting_after,
            email=request.email,
        )

        results = process_in_batches(customers, PAYMENT_LOOKUP_BATCH_SIZE, self._summarize)
        summaries = [summary for summary, _ in results]
        failures = [failure for _, failure in results if failure]

        logger.info(f"Listed {len(summaries)} Stripe customers (has_more={has_more})")
        return ListCustomersResponse(
            customers=summaries,
            has_more=has_more,
            total_count=len(summaries),
            lookup_failures=failures,
        )
