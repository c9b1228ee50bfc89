"""Stripe customer directory."""

from .models import (
    CustomerAddress,
    StripeCustomerSummary,
    ListCustomersRequest,
    ListCustomersResponse,
)
from .service import CustomerDirectoryService

__all__ = [
    "CustomerAddress",
    "StripeCustomerSummary",
    "ListCustomersRequest",
    "ListCustomersResponse",
    "CustomerDirectoryService",
]
