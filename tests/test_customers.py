"""Tests for the Stripe customer directory."""

import pytest
from types import SimpleNamespace
from unittest.mock import MagicMock

import stripe

from fakes import make_customer
from registration_payments.customers.models import ListCustomersRequest
from registration_payments.customers.service import CustomerDirectoryService, MAX_PAGE_SIZE
from registration_payments.reconciliation.psp_fetcher import PSPFetcherBase


@pytest.fixture
def mock_fetcher():
    fetcher = MagicMock(spec=PSPFetcherBase)
    fetcher.list_customers.return_value = ([], False)
    fetcher.fetch_succeeded_payment_totals.return_value = (0, 0)
    return fetcher


@pytest.fixture
def service(mock_fetcher):
    return CustomerDirectoryService(psp_fetcher=mock_fetcher)


class TestListCustomersRequest:
    def test_defaults(self):
        request = ListCustomersRequest.model_validate({})
        assert request.limit == 50
        assert request.starting_after is None
        assert request.email is None

    def test_camel_case_input(self):
        request = ListCustomersRequest.model_validate({"limit": 10, "startingAfter": "cus_9"})
        assert request.starting_after == "cus_9"

    def test_limit_must_be_positive(self):
        with pytest.raises(ValueError):
            ListCustomersRequest(limit=0)


class TestCustomerDirectoryService:
    """Tests for CustomerDirectoryService."""

    def test_page_size_is_capped(self, service, mock_fetcher):
        service.list_customers(ListCustomersRequest(limit=50))

        mock_fetcher.list_customers.assert_called_once_with(
            limit=MAX_PAGE_SIZE,
            starting_after=None,
            email=None,
        )

    def test_smaller_page_and_filters_are_passed(self, service, mock_fetcher):
        service.list_customers(ListCustomersRequest(limit=10, starting_after="cus_5", email="a@example.com"))

        mock_fetcher.list_customers.assert_called_once_with(
            limit=10,
            starting_after="cus_5",
            email="a@example.com",
        )

    def test_customer_fields(self, service, mock_fetcher):
        customer = make_customer(
            "cus_1",
            "jane@example.com",
            "Jane Doe",
            phone="+33123456789",
            created=1700000000,
            metadata={"source": "registration"},
            address=SimpleNamespace(city="Paris", country="FR", line1="1 Rue X", line2=None,
                                    postal_code="75001", state=None),
            default_source=SimpleNamespace(id="card_123"),
            balance=-500,
            currency="eur",
            delinquent=False,
            invoice_prefix="ABC123",
        )
        mock_fetcher.list_customers.return_value = ([customer], True)
        mock_fetcher.fetch_succeeded_payment_totals.return_value = (12500, 3)

        response = service.list_customers(ListCustomersRequest())

        assert response.has_more is True
        assert response.total_count == 1
        summary = response.customers[0]
        assert summary.id == "cus_1"
        assert summary.email == "jane@example.com"
        assert summary.phone == "+33123456789"
        assert summary.metadata == {"source": "registration"}
        assert summary.address.city == "Paris"
        assert summary.address.postal_code == "75001"
        assert summary.default_payment_method == "card_123"
        assert summary.balance == -500
        assert summary.currency == "eur"
        assert summary.invoice_prefix == "ABC123"
        assert summary.total_spent == 12500
        assert summary.payment_count == 3

    def test_sparse_customer(self, service, mock_fetcher):
        mock_fetcher.list_customers.return_value = ([make_customer("cus_1", default_source="src_1")], False)

        summary = service.list_customers(ListCustomersRequest()).customers[0]

        assert summary.email is None
        assert summary.address is None
        assert summary.metadata == {}
        assert summary.balance == 0
        assert summary.delinquent is False
        assert summary.default_payment_method == "src_1"

    def test_order_is_preserved(self, service, mock_fetcher):
        customers = [make_customer(f"cus_{i}", f"c{i}@example.com") for i in range(12)]
        mock_fetcher.list_customers.return_value = (customers, False)

        response = service.list_customers(ListCustomersRequest())

        assert [c.id for c in response.customers] == [c.id for c in customers]

    def test_payment_lookup_failure_counts_as_zero(self, service, mock_fetcher):
        mock_fetcher.list_customers.return_value = (
            [make_customer("cus_ok", "ok@example.com"), make_customer("cus_bad", "bad@example.com")],
            False,
        )

        def totals(customer_id):
            if customer_id == "cus_bad":
                raise stripe.APIError("timeout")
            return 5000, 1

        mock_fetcher.fetch_succeeded_payment_totals.side_effect = totals

        response = service.list_customers(ListCustomersRequest())

        assert [(c.id, c.total_spent, c.payment_count) for c in response.customers] == [
            ("cus_ok", 5000, 1),
            ("cus_bad", 0, 0),
        ]
        assert len(response.lookup_failures) == 1
        assert response.lookup_failures[0].reference == "cus_bad"
        assert response.lookup_failures[0].operation == "list_payment_intents"

    def test_listing_failure_propagates(self, service, mock_fetcher):
        mock_fetcher.list_customers.side_effect = RuntimeError("Stripe API error: boom")

        with pytest.raises(RuntimeError):
            service.list_customers(ListCustomersRequest())

    def test_response_is_camel_case(self, service, mock_fetcher):
        mock_fetcher.list_customers.return_value = ([make_customer("cus_1", "a@example.com")], False)

        data = service.list_customers(ListCustomersRequest()).model_dump(by_alias=True)

        assert set(data) == {"customers", "hasMore", "totalCount", "lookupFailures"}
        assert "totalSpent" in data["customers"][0]
        assert "defaultPaymentMethod" in data["customers"][0]
