"""Models for Stripe / order-store reconciliation.

All projections are request-scoped. JSON field names are camelCase, which is
what the admin console consumes; Python attribute names stay snake_case.
"""

import enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DiscrepancyType(str, enum.Enum):
    """Kinds of per-item discrepancy between Stripe and the order store."""
    MISSING_IN_SUPABASE = "missing_in_supabase"
    MISSING_IN_STRIPE = "missing_in_stripe"
    QUANTITY_MISMATCH = "quantity_mismatch"
    AMOUNT_MISMATCH = "amount_mismatch"


class LookupFailure(CamelModel):
    """A single Stripe lookup that failed and was counted as zero."""
    source: str = Field(default="stripe", description="System the lookup was made against")
    reference: str = Field(..., description="Customer, session or payment intent id")
    operation: str = Field(..., description="Lookup that failed, e.g. list_checkout_sessions")
    message: str = Field(..., description="Error message reported by the provider")


class StripeLineItem(CamelModel):
    """A purchased item as seen by Stripe."""
    name: str
    quantity: int = 1
    unit_price: int = 0
    total: int = 0
    product_id: Optional[str] = None


class StripeTransaction(CamelModel):
    """A paid checkout session or a standalone succeeded payment intent."""
    id: str
    session_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    amount: int = 0
    status: str
    created: int = Field(..., description="Unix timestamp")
    line_items: List[StripeLineItem] = Field(default_factory=list)


class StripeCustomerActivity(CamelModel):
    """Stripe-side aggregate for one email."""
    customer_id: str
    email: str
    name: Optional[str] = None
    transactions: List[StripeTransaction] = Field(default_factory=list)
    total_spent: int = 0


class StripeActivity(CamelModel):
    """Result of a Stripe pass: aggregates keyed by lower-cased email."""
    customers: Dict[str, StripeCustomerActivity] = Field(default_factory=dict)
    failures: List[LookupFailure] = Field(default_factory=list)


class LocalOrderItem(CamelModel):
    """A purchased item as recorded in the order store."""
    name: str
    quantity: int = 1
    unit_price: int = 0
    total: int = 0
    item_type: Optional[str] = None
    order_id: str
    order_number: str


class LocalCustomerOrders(CamelModel):
    """Order-store aggregate for one email."""
    user_id: str
    email: str
    name: Optional[str] = Field(default=None, description="Profile first and last name")
    order_items: List[LocalOrderItem] = Field(default_factory=list)
    total_spent: int = 0


class ItemDiscrepancy(CamelModel):
    """Mismatch for one normalized item name."""
    item_name: str
    stripe_quantity: int = 0
    stripe_total: int = 0
    supabase_quantity: int = 0
    supabase_total: int = 0
    status: DiscrepancyType


class UserReconciliation(CamelModel):
    """Reconciliation outcome for one email."""
    email: str
    stripe_customer_id: Optional[str] = None
    supabase_user_id: Optional[str] = None
    stripe_name: Optional[str] = None
    supabase_name: Optional[str] = None
    stripe_total: int = 0
    supabase_total: int = 0
    total_difference: int = 0
    stripe_item_count: int = 0
    supabase_item_count: int = 0
    discrepancies: List[ItemDiscrepancy] = Field(default_factory=list)
    has_issues: bool = False


class ReconciliationSummary(CamelModel):
    """Complete reconciliation result returned to the admin console."""
    total_stripe_customers: int = 0
    total_supabase_users: int = 0
    total_matched_emails: int = 0
    users_with_discrepancies: int = 0
    total_stripe_purchases: int = 0
    total_supabase_purchases: int = 0
    total_stripe_amount: int = 0
    total_supabase_amount: int = 0
    amount_difference: int = 0
    users: List[UserReconciliation] = Field(default_factory=list)
    lookup_failures: List[LookupFailure] = Field(default_factory=list)

    def to_summary_dict(self) -> Dict[str, Any]:
        """Return the aggregate counts without per-user details."""
        data = self.model_dump(mode="json", by_alias=True, exclude={"users", "lookup_failures"})
        data["lookupFailureCount"] = len(self.lookup_failures)
        return data

    def to_full_dict(self) -> Dict[str, Any]:
        """Return the complete summary including users and lookup failures."""
        return self.model_dump(mode="json", by_alias=True)


class ReconciliationRequest(CamelModel):
    """Request model for a reconciliation run."""
    email_filter: Optional[str] = Field(default=None, description="Restrict Stripe customers to this email")

    @field_validator("email_filter")
    @classmethod
    def _blank_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None
