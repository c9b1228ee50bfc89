"""Per-user verification of recorded orders against Stripe."""

from .models import (
    VerificationStatus,
    OrderItemSnapshot,
    OrderVerification,
    VerifyOrdersRequest,
    StripeVerificationResult,
    UserVerificationResult,
    BulkVerificationSummary,
)
from .service import OrderVerificationService

__all__ = [
    "VerificationStatus",
    "OrderItemSnapshot",
    "OrderVerification",
    "VerifyOrdersRequest",
    "StripeVerificationResult",
    "UserVerificationResult",
    "BulkVerificationSummary",
    "OrderVerificationService",
]
