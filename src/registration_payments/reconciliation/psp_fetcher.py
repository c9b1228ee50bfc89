"""Stripe data fetching for reconciliation, customer listing and verification."""

import os
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Tuple

import stripe

from ..batching import process_in_batches
from .models import (
    LookupFailure,
    StripeActivity,
    StripeCustomerActivity,
    StripeLineItem,
    StripeTransaction,
)

logger = logging.getLogger(__name__)

CUSTOMER_PAGE_SIZE = 100
CUSTOMER_BATCH_SIZE = 5
LIST_PAGE_SIZE = 100

SESSION_LINE_ITEM_EXPAND = "line_items.data.price.product"

# Substrings Stripe uses when an object id does not exist
RESOURCE_MISSING_MARKERS = ("No such", "resource_missing", "does not exist")


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read an attribute from a Stripe object, treating missing and None alike."""
    if obj is None:
        return default
    value = getattr(obj, name, None)
    return default if value is None else value


def is_resource_missing(error: Exception) -> bool:
    """Check whether a Stripe error means the requested object does not exist."""
    if getattr(error, "code", None) == "resource_missing":
        return True
    message = str(error)
    return any(marker in message for marker in RESOURCE_MISSING_MARKERS)


class PSPFetcherBase(ABC):
    """Base class for payment provider fetchers."""

    @abstractmethod
    def fetch_customer_activity(self, email_filter: Optional[str] = None) -> StripeActivity:
        """Collect paid purchases of every customer, keyed by lower-cased email.

        Args:
            email_filter: Only consider customers with this email.

        Returns:
            StripeActivity with per-email aggregates and lookup failures.
        """
        raise NotImplementedError

    @abstractmethod
    def retrieve_customer_email(self, customer_id: str) -> Optional[str]:
        """Return the lower-cased email of a customer, or None if it has none
        or was deleted."""
        raise NotImplementedError

    @abstractmethod
    def list_customers(
        self,
        limit: int,
        starting_after: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Tuple[List[Any], bool]:
        """Fetch one page of customers.

        Returns:
            Tuple of (customers, has_more).
        """
        raise NotImplementedError

    @abstractmethod
    def fetch_succeeded_payment_totals(self, customer_id: str) -> Tuple[int, int]:
        """Return (amount, count) of succeeded payment intents of a customer."""
        raise NotImplementedError

    @abstractmethod
    def retrieve_checkout_session(self, session_id: str) -> StripeTransaction:
        """Fetch a checkout session with its line items."""
        raise NotImplementedError

    @abstractmethod
    def retrieve_payment_intent(self, payment_intent_id: str) -> StripeTransaction:
        """Fetch a payment intent as a single-item transaction."""
        raise NotImplementedError


class StripeFetcher(PSPFetcherBase):
    """Stripe implementation backed by the stripe-python SDK."""

    def __init__(self, api_key: Optional[str] = None):
        """Initialize the Stripe fetcher.

        Args:
            api_key: Stripe secret key. Falls back to the STRIPE_API_KEY, then
                STRIPE_SECRET_KEY environment variables.

        Raises:
            ValueError: If no API key is provided or found.
        """
        self._api_key = api_key or os.getenv("STRIPE_API_KEY") or os.getenv("STRIPE_SECRET_KEY")
        if not self._api_key:
            raise ValueError("STRIPE_API_KEY not configured")

    def _configure_stripe(self) -> None:
        """Configure the Stripe SDK with the API key."""
        stripe.api_key = self._api_key

    def _call(self, action: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Invoke a Stripe call whose failure must abort the whole request.

        Raises:
            ValueError: On authentication failure.
            ConnectionError: When Stripe cannot be reached.
            RuntimeError: On any other Stripe API error.
        """
        try:
            return func(*args, **kwargs)
        except stripe.AuthenticationError as e:
            logger.error("Stripe authentication failed")
            raise ValueError("Invalid Stripe API key") from e
        except stripe.APIConnectionError as e:
            logger.error("Failed to connect to Stripe API")
            raise ConnectionError("Failed to connect to Stripe API") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe API error during {action}: {type(e).__name__}")
            raise RuntimeError(f"Stripe API error: {e}") from e

    # Conversion helpers

    def _convert_line_item(self, line_item: Any) -> StripeLineItem:
        price = get_field(line_item, "price")
        product = get_field(price, "product")
        if isinstance(product, str):
            product_name, product_id = None, product
        else:
            product_name, product_id = get_field(product, "name"), get_field(product, "id")

        return StripeLineItem(
            name=product_name or get_field(line_item, "description") or "Unknown Item",
            quantity=get_field(line_item, "quantity") or 1,
            unit_price=get_field(price, "unit_amount") or 0,
            total=get_field(line_item, "amount_total") or 0,
            product_id=product_id,
        )

    def _convert_session(self, session: Any) -> StripeTransaction:
        payment_intent = get_field(session, "payment_intent")
        if isinstance(payment_intent, str):
            payment_intent_id = payment_intent
        else:
            payment_intent_id = get_field(payment_intent, "id")

        line_items = get_field(get_field(session, "line_items"), "data", [])
        return StripeTransaction(
            id=session.id,
            session_id=session.id,
            payment_intent_id=payment_intent_id,
            amount=get_field(session, "amount_total") or 0,
            status=get_field(session, "payment_status", "unknown"),
            created=get_field(session, "created", 0),
            line_items=[self._convert_line_item(li) for li in line_items],
        )

    def _convert_payment_intent(self, payment_intent: Any, item_name: str) -> StripeTransaction:
        amount = get_field(payment_intent, "amount") or 0
        return StripeTransaction(
            id=payment_intent.id,
            session_id=None,
            payment_intent_id=payment_intent.id,
            amount=amount,
            status=get_field(payment_intent, "status", "unknown"),
            created=get_field(payment_intent, "created", 0),
            line_items=[StripeLineItem(
                name=item_name,
                quantity=1,
                unit_price=amount,
                total=amount,
            )],
        )

    # Reconciliation

    def _collect_customer(self, customer: Any) -> Tuple[List[StripeTransaction], List[LookupFailure]]:
        """Collect paid transactions of one customer.

        Lookup errors are not raised: the failing part contributes nothing and
        is reported as a LookupFailure.
        """
        transactions: List[StripeTransaction] = []
        failures: List[LookupFailure] = []
        if not get_field(customer, "email"):
            return transactions, failures

        try:
            sessions = stripe.checkout.Session.list(
                customer=customer.id,
                limit=LIST_PAGE_SIZE,
                expand=[f"data.{SESSION_LINE_ITEM_EXPAND}"],
            )
            for session in sessions.auto_paging_iter():
                if get_field(session, "payment_status") != "paid":
                    continue
                transactions.append(self._convert_session(session))
        except stripe.StripeError as e:
            logger.warning(f"Error fetching sessions for customer {customer.id}: {e}")
            failures.append(LookupFailure(
                reference=customer.id,
                operation="list_checkout_sessions",
                message=str(e),
            ))

        # Payment intents not tied to a counted checkout session
        try:
            session_intents = {t.payment_intent_id for t in transactions if t.payment_intent_id}
            payment_intents = stripe.PaymentIntent.list(customer=customer.id, limit=LIST_PAGE_SIZE)
            for pi in payment_intents.auto_paging_iter():
                if get_field(pi, "status") != "succeeded" or pi.id in session_intents:
                    continue
                transactions.append(
                    self._convert_payment_intent(pi, get_field(pi, "description") or "Payment")
                )
        except stripe.StripeError as e:
            logger.warning(f"Error fetching payment intents for customer {customer.id}: {e}")
            failures.append(LookupFailure(
                reference=customer.id,
                operation="list_payment_intents",
                message=str(e),
            ))

        return transactions, failures

    def fetch_customer_activity(self, email_filter: Optional[str] = None) -> StripeActivity:
        """Collect paid purchases of every Stripe customer.

        Customers are listed page by page; each page is processed
        CUSTOMER_BATCH_SIZE customers at a time. Customers sharing an email are
        merged, the first one seen keeping its id and name.

        Args:
            email_filter: Only consider customers with this email.

        Returns:
            StripeActivity keyed by lower-cased email.
        """
        self._configure_stripe()
        activity = StripeActivity()
        starting_after: Optional[str] = None

        while True:
            params = {"limit": CUSTOMER_PAGE_SIZE}
            if starting_after:
                params["starting_after"] = starting_after
            if email_filter:
                params["email"] = email_filter

            page = self._call("customer listing", stripe.Customer.list, **params)
            customers = list(get_field(page, "data", []))
            results = process_in_batches(customers, CUSTOMER_BATCH_SIZE, self._collect_customer)

            for customer, (transactions, failures) in zip(customers, results):
                activity.failures.extend(failures)
                if not transactions:
                    continue
                email = customer.email.lower()
                total_spent = sum(t.amount for t in transactions)
                existing = activity.customers.get(email)
                if existing:
                    existing.transactions.extend(transactions)
                    existing.total_spent += total_spent
                else:
                    activity.customers[email] = StripeCustomerActivity(
                        customer_id=customer.id,
                        email=email,
                        name=get_field(customer, "name"),
                        transactions=transactions,
                        total_spent=total_spent,
                    )

            if not get_field(page, "has_more", False) or not customers:
                break
            starting_after = customers[-1].id

        logger.info(
            f"Fetched Stripe activity for {len(activity.customers)} emails "
            f"({len(activity.failures)} lookup failures)"
        )
        return activity

    def retrieve_customer_email(self, customer_id: str) -> Optional[str]:
        """Return the lower-cased email of a customer.

        Raises:
            stripe.StripeError: If the lookup fails.
        """
        self._configure_stripe()
        customer = stripe.Customer.retrieve(customer_id)
        if get_field(customer, "deleted", False):
            return None
        email = get_field(customer, "email")
        return email.lower() if email else None

    # Customer directory

    def list_customers(
        self,
        limit: int,
        starting_after: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Tuple[List[Any], bool]:
        """Fetch one page of customers with their default source expanded."""
        self._configure_stripe()
        params = {"limit": limit, "expand": ["data.default_source"]}
        if starting_after:
            params["starting_after"] = starting_after
        if email:
            params["email"] = email

        page = self._call("customer listing", stripe.Customer.list, **params)
        return list(get_field(page, "data", [])), bool(get_field(page, "has_more", False))

    def fetch_succeeded_payment_totals(self, customer_id: str) -> Tuple[int, int]:
        """Sum succeeded payment intents of a customer.

        Raises:
            stripe.StripeError: If the lookup fails.
        """
        self._configure_stripe()
        total_spent = 0
        payment_count = 0
        payment_intents = stripe.PaymentIntent.list(customer=customer_id, limit=LIST_PAGE_SIZE)
        for pi in payment_intents.auto_paging_iter():
            if get_field(pi, "status") == "succeeded":
                total_spent += get_field(pi, "amount") or 0
                payment_count += 1
        return total_spent, payment_count

    # Order verification

    def retrieve_checkout_session(self, session_id: str) -> StripeTransaction:
        """Fetch a checkout session with expanded line items.

        Raises:
            stripe.StripeError: If the lookup fails.
        """
        self._configure_stripe()
        session = stripe.checkout.Session.retrieve(session_id, expand=[SESSION_LINE_ITEM_EXPAND])
        return self._convert_session(session)

    def retrieve_payment_intent(self, payment_intent_id: str) -> StripeTransaction:
        """Fetch a payment intent; payment intents carry no line items, so the
        amount is reported as a single "Payment Total" item.

        Raises:
            stripe.StripeError: If the lookup fails.
        """
        self._configure_stripe()
        payment_intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        return self._convert_payment_intent(payment_intent, "Payment Total")


def get_psp_fetcher(provider: str = "stripe", api_key: Optional[str] = None) -> PSPFetcherBase:
    """Factory function to get the appropriate fetcher.

    Args:
        provider: Payment provider name.
        api_key: Optional API key for the provider.

    Returns:
        PSPFetcherBase implementation for the provider.

    Raises:
        ValueError: If the provider is not supported.
    """
    fetchers = {
        "stripe": StripeFetcher,
    }

    fetcher_class = fetchers.get(provider.lower())
    if not fetcher_class:
        raise ValueError(f"Unsupported PSP provider: {provider}")

    return fetcher_class(api_key=api_key)
