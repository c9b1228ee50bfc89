"""Models for the Stripe customer directory."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..reconciliation.models import CamelModel, LookupFailure


class CustomerAddress(BaseModel):
    """Postal address as stored on the Stripe customer (keys stay snake_case)."""
    city: Optional[str] = None
    country: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    postal_code: Optional[str] = None
    state: Optional[str] = None


class StripeCustomerSummary(CamelModel):
    """A Stripe customer with spend totals from succeeded payment intents."""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    created: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    address: Optional[CustomerAddress] = None
    default_payment_method: Optional[str] = None
    balance: int = 0
    currency: Optional[str] = None
    delinquent: bool = False
    invoice_prefix: Optional[str] = None
    total_spent: int = 0
    payment_count: int = 0


class ListCustomersRequest(CamelModel):
    """Request model for listing Stripe customers."""
    limit: int = Field(default=50, ge=1, description="Requested page size (capped at 25)")
    starting_after: Optional[str] = Field(default=None, description="Cursor: last customer id of the previous page")
    email: Optional[str] = Field(default=None, description="Exact email filter")


class ListCustomersResponse(CamelModel):
    """One page of the customer directory."""
    customers: List[StripeCustomerSummary] = Field(default_factory=list)
    has_more: bool = False
    total_count: int = 0
    lookup_failures: List[LookupFailure] = Field(default_factory=list)
