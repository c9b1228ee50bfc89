"""Models for per-user order verification against Stripe."""

import enum
from typing import List, Optional
from pydantic import Field

from ..reconciliation.models import CamelModel


class VerificationStatus(str, enum.Enum):
    """Outcome of verifying one order."""
    MATCH = "match"
    MISMATCH = "mismatch"
    NO_STRIPE_DATA = "no_stripe_data"
    PENDING = "pending"
    ERROR = "error"


class OrderItemSnapshot(CamelModel):
    """Item as recorded locally or reported by Stripe."""
    name: str
    quantity: int = 1
    unit_price: int = 0
    total: int = 0


class OrderVerification(CamelModel):
    """Verification of a single order."""
    order_id: str
    order_number: str
    stripe_session_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    db_total: int = 0
    stripe_total: Optional[int] = None
    status: VerificationStatus = VerificationStatus.NO_STRIPE_DATA
    db_items: List[OrderItemSnapshot] = Field(default_factory=list)
    stripe_items: Optional[List[OrderItemSnapshot]] = None
    error_message: Optional[str] = None


class VerifyOrdersRequest(CamelModel):
    """Request model for verifying the orders of one user."""
    user_id: str = Field(..., min_length=1)


class StripeVerificationResult(CamelModel):
    """Verification of every order of a user."""
    user_id: str
    total_orders: int = 0
    matched_orders: int = 0
    mismatched_orders: int = 0
    pending_orders: int = 0
    no_stripe_data_orders: int = 0
    error_orders: int = 0
    orders: List[OrderVerification] = Field(default_factory=list)


class UserVerificationResult(CamelModel):
    """Verification of one user's orders within a bulk run."""
    user_id: str
    user_name: str = "Unknown"
    result: StripeVerificationResult


class BulkVerificationSummary(CamelModel):
    """Verification of every order in the store.

    Only users with mismatched, errored or unverifiable orders are listed.
    """
    total_users: int = 0
    total_orders: int = 0
    matched_orders: int = 0
    mismatched_orders: int = 0
    pending_orders: int = 0
    no_stripe_data_orders: int = 0
    error_orders: int = 0
    user_results: List[UserVerificationResult] = Field(default_factory=list)
