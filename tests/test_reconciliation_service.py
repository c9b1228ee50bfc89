"""Tests for the reconciliation service."""

import json
import os
import pytest
from unittest.mock import MagicMock, patch

import stripe

from registration_payments.reconciliation.models import (
    DiscrepancyType,
    LookupFailure,
    ReconciliationRequest,
    StripeActivity,
    StripeCustomerActivity,
    StripeLineItem,
    StripeTransaction,
)
from registration_payments.reconciliation.psp_fetcher import PSPFetcherBase
from registration_payments.reconciliation.service import ReconciliationService


def stripe_activity(*customers, failures=()):
    return StripeActivity(
        customers={c.email: c for c in customers},
        failures=list(failures),
    )


def stripe_purchase(email, customer_id, items):
    """Stripe aggregate holding one paid session of (name, quantity, total) items."""
    line_items = [StripeLineItem(name=n, quantity=q, total=t) for n, q, t in items]
    amount = sum(li.total for li in line_items)
    return StripeCustomerActivity(
        customer_id=customer_id,
        email=email,
        transactions=[StripeTransaction(
            id=f"cs_{customer_id}",
            session_id=f"cs_{customer_id}",
            amount=amount,
            status="paid",
            created=1700000000,
            line_items=line_items,
        )],
        total_spent=amount,
    )


@pytest.fixture
def mock_fetcher():
    """Fetcher resolving cus_jane and cus_bob, with no Stripe purchases by default."""
    fetcher = MagicMock(spec=PSPFetcherBase)
    emails = {"cus_jane": "jane@example.com", "cus_bob": "bob@example.com"}
    fetcher.retrieve_customer_email.side_effect = lambda customer_id: emails.get(customer_id)
    fetcher.fetch_customer_activity.return_value = StripeActivity()
    return fetcher


@pytest.fixture
def service(db_session, mock_fetcher):
    return ReconciliationService(db_session, psp_fetcher=mock_fetcher)


class TestResolveUserEmails:
    """Tests for mapping users to emails through their Stripe customers."""

    async def test_each_customer_looked_up_once(self, service, mock_fetcher, add_order):
        await add_order("user-jane", 5000, stripe_customer_id="cus_jane")
        await add_order("user-jane", 3000, stripe_customer_id="cus_jane")
        await add_order("user-bob", 1000, stripe_customer_id="cus_bob")
        await add_order("user-nobody", 1000)

        emails, failures = await service.resolve_user_emails()

        assert emails == {"user-jane": "jane@example.com", "user-bob": "bob@example.com"}
        assert failures == []
        looked_up = sorted(c.args[0] for c in mock_fetcher.retrieve_customer_email.call_args_list)
        assert looked_up == ["cus_bob", "cus_jane"]

    async def test_first_order_owner_wins(self, service, add_order):
        """A customer id shared by two users resolves the owner of the oldest order."""
        await add_order("user-first", 5000, stripe_customer_id="cus_jane")
        await add_order("user-second", 5000, stripe_customer_id="cus_jane")

        emails, _ = await service.resolve_user_emails()

        assert emails == {"user-first": "jane@example.com"}

    async def test_unresolvable_customers_are_skipped(self, service, add_order):
        await add_order("user-ghost", 5000, stripe_customer_id="cus_deleted")

        emails, failures = await service.resolve_user_emails()

        assert emails == {}
        assert failures == []

    async def test_lookup_errors_are_reported(self, service, mock_fetcher, add_order):
        def lookup(customer_id):
            if customer_id == "cus_broken":
                raise stripe.APIError("Stripe is down")
            return "jane@example.com"

        mock_fetcher.retrieve_customer_email.side_effect = lookup
        await add_order("user-jane", 5000, stripe_customer_id="cus_jane")
        await add_order("user-broken", 5000, stripe_customer_id="cus_broken")

        emails, failures = await service.resolve_user_emails()

        assert emails == {"user-jane": "jane@example.com"}
        assert len(failures) == 1
        assert failures[0].reference == "cus_broken"
        assert failures[0].operation == "retrieve_customer"
        assert "Stripe is down" in failures[0].message


class TestFetchLocalCustomers:
    """Tests for building order-store aggregates."""

    async def test_only_paid_orders_of_resolved_users(self, service, add_order, add_profile):
        await add_profile("user-jane", "Jane", "Doe")
        await add_order("user-jane", 5000, items=[("Entry", 1, 5000, 5000)])
        await add_order("user-jane", 2000, items=[("Dinner", 1, 2000, 2000)], payment_status="pending")
        await add_order("user-jane", 1500, items=[("T-Shirt", 1, 1500, 1500)], payment_status="refunded")
        await add_order("user-unknown", 9000, items=[("Entry", 1, 9000, 9000)])

        customers = await service.fetch_local_customers({"user-jane": "jane@example.com"})

        assert list(customers) == ["jane@example.com"]
        jane = customers["jane@example.com"]
        assert jane.user_id == "user-jane"
        assert jane.name == "Jane Doe"
        assert jane.total_spent == 5000
        assert [i.name for i in jane.order_items] == ["Entry"]

    async def test_orders_are_summed_per_email(self, service, add_order):
        first = await add_order("user-jane", 5000, items=[("Entry", 1, 5000, 5000)])
        await add_order("user-jane", 3000, items=[("Dinner", 2, 1500, 3000)])

        customers = await service.fetch_local_customers({"user-jane": "jane@example.com"})

        jane = customers["jane@example.com"]
        assert jane.total_spent == 8000
        assert [(i.name, i.quantity) for i in jane.order_items] == [("Entry", 1), ("Dinner", 2)]
        assert jane.order_items[0].order_number == first.order_number
        assert jane.name is None

    async def test_null_columns_get_defaults(self, service, add_order):
        await add_order("user-jane", None, items=[("Entry", None, None, None)])

        customers = await service.fetch_local_customers({"user-jane": "jane@example.com"})

        jane = customers["jane@example.com"]
        assert jane.total_spent == 0
        item = jane.order_items[0]
        assert (item.quantity, item.unit_price, item.total) == (1, 0, 0)


class TestRunReconciliation:
    """Tests for full reconciliation runs."""

    async def test_matching_purchases_report_no_issues(self, service, mock_fetcher, add_order):
        mock_fetcher.fetch_customer_activity.return_value = stripe_activity(
            stripe_purchase("jane@example.com", "cus_jane", [("Main Event", 2, 10000)]),
        )
        await add_order("user-jane", 10000, items=[("main event", 2, 5000, 10000)], stripe_customer_id="cus_jane")

        summary = await service.run_reconciliation(ReconciliationRequest())

        assert summary.total_matched_emails == 1
        assert summary.users_with_discrepancies == 0
        assert summary.users == []
        assert summary.amount_difference == 0

    async def test_stripe_item_missing_locally(self, service, mock_fetcher, add_order):
        mock_fetcher.fetch_customer_activity.return_value = stripe_activity(
            stripe_purchase("jane@example.com", "cus_jane", [("Entry", 1, 5000), ("Dinner", 1, 2500)]),
        )
        await add_order("user-jane", 5000, items=[("Entry", 1, 5000, 5000)], stripe_customer_id="cus_jane")

        summary = await service.run_reconciliation(ReconciliationRequest())

        assert summary.users_with_discrepancies == 1
        user = summary.users[0]
        assert user.email == "jane@example.com"
        assert user.supabase_user_id == "user-jane"
        assert user.total_difference == 2500
        assert [(d.item_name, d.status) for d in user.discrepancies] == [
            ("dinner", DiscrepancyType.MISSING_IN_SUPABASE),
        ]

    async def test_email_filter_restricts_both_sides(self, service, mock_fetcher, add_order):
        mock_fetcher.fetch_customer_activity.return_value = stripe_activity(
            stripe_purchase("jane@example.com", "cus_jane", [("Entry", 1, 5000)]),
        )
        await add_order("user-jane", 5000, items=[("Entry", 1, 5000, 5000)], stripe_customer_id="cus_jane")
        await add_order("user-bob", 5000, items=[("Entry", 1, 5000, 5000)], stripe_customer_id="cus_bob")

        summary = await service.run_reconciliation(ReconciliationRequest(email_filter="Jane@Example.com"))

        mock_fetcher.fetch_customer_activity.assert_called_once_with("Jane@Example.com")
        assert summary.total_supabase_users == 1
        assert summary.users == []

    async def test_email_filter_drops_other_local_only_users(self, service, mock_fetcher, add_order):
        await add_order("user-jane", 5000, items=[("Entry", 1, 5000, 5000)], stripe_customer_id="cus_jane")
        await add_order("user-bob", 3000, items=[("Entry", 1, 3000, 3000)], stripe_customer_id="cus_bob")

        summary = await service.run_reconciliation(ReconciliationRequest(email_filter="bob@example.com"))

        assert summary.total_stripe_customers == 0
        assert summary.total_supabase_users == 1
        assert summary.total_supabase_amount == 3000
        assert [u.email for u in summary.users] == ["bob@example.com"]
        assert summary.users[0].discrepancies[0].status == DiscrepancyType.MISSING_IN_STRIPE

    async def test_lookup_failures_are_combined(self, service, mock_fetcher, add_order):
        session_failure = LookupFailure(reference="cus_x", operation="list_checkout_sessions", message="boom")
        mock_fetcher.fetch_customer_activity.return_value = stripe_activity(failures=[session_failure])

        def lookup(customer_id):
            raise stripe.APIError("unavailable")

        mock_fetcher.retrieve_customer_email.side_effect = lookup
        await add_order("user-jane", 5000, stripe_customer_id="cus_jane")

        summary = await service.run_reconciliation(ReconciliationRequest())

        assert [f.operation for f in summary.lookup_failures] == ["list_checkout_sessions", "retrieve_customer"]

    async def test_repeated_runs_are_identical(self, service, mock_fetcher, add_order):
        mock_fetcher.fetch_customer_activity.return_value = stripe_activity(
            stripe_purchase("jane@example.com", "cus_jane", [("Entry", 1, 5000)]),
            stripe_purchase("bob@example.com", "cus_bob", [("Entry", 2, 10000)]),
        )
        await add_order("user-jane", 4000, items=[("Entry", 1, 4000, 4000)], stripe_customer_id="cus_jane")
        await add_order("user-bob", 5000, items=[("Entry", 1, 5000, 5000)], stripe_customer_id="cus_bob")

        first = await service.run_reconciliation(ReconciliationRequest())
        second = await service.run_reconciliation(ReconciliationRequest())

        assert first.to_full_dict() == second.to_full_dict()
        assert [u.email for u in first.users] == ["bob@example.com", "jane@example.com"]

    async def test_stripe_listing_failure_propagates(self, service, mock_fetcher):
        mock_fetcher.fetch_customer_activity.side_effect = RuntimeError("Stripe API error: boom")

        with pytest.raises(RuntimeError, match="Stripe API error"):
            await service.run_reconciliation(ReconciliationRequest())

    async def test_missing_stripe_key(self, db_session):
        service = ReconciliationService(db_session)

        with patch.dict(os.environ):
            os.environ.pop("STRIPE_API_KEY", None)
            os.environ.pop("STRIPE_SECRET_KEY", None)
            with pytest.raises(ValueError, match="STRIPE_API_KEY not configured"):
                await service.run_reconciliation(ReconciliationRequest())


class TestGenerateReport:
    """Tests for report rendering through the service."""

    async def test_formats(self, service, mock_fetcher, add_order):
        mock_fetcher.fetch_customer_activity.return_value = stripe_activity(
            stripe_purchase("jane@example.com", "cus_jane", [("Entry", 1, 5000)]),
        )
        summary = await service.run_reconciliation(ReconciliationRequest())

        assert json.loads(service.generate_report(summary, format="json"))["users"][0]["email"] == "jane@example.com"
        assert "users" not in json.loads(service.generate_report(summary, format="json", include_details=False))
        assert service.generate_report(summary, format="csv").startswith("email,")
        assert "RECONCILIATION SUMMARY" in service.generate_report(summary, format="text")
        assert "ACCOUNTS WITH ISSUES" in service.generate_report(summary, format="detailed_text")

    async def test_unknown_format(self, service):
        summary = await service.run_reconciliation(ReconciliationRequest())

        with pytest.raises(ValueError, match="Unsupported report format"):
            service.generate_report(summary, format="xml")
