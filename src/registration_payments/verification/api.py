"""API endpoints for verifying recorded orders against Stripe."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..api_utils import get_psp_fetcher_override, read_json_body, request_failed
from ..auth import RATE_LIMIT, limiter, verify_api_key
from ..database import get_db
from ..reconciliation.psp_fetcher import PSPFetcherBase
from .models import BulkVerificationSummary, StripeVerificationResult, VerifyOrdersRequest
from .service import OrderVerificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/verify-stripe-orders", tags=["verification"])
bulk_router = APIRouter(prefix="/bulk-verify-stripe-orders", tags=["verification"])


@router.post("", response_model=StripeVerificationResult)
@limiter.limit(RATE_LIMIT)
async def verify_stripe_orders(
    request: Request,
    db: AsyncSession = Depends(get_db),
    psp_fetcher: Optional[PSPFetcherBase] = Depends(get_psp_fetcher_override),
    api_key: str = Depends(verify_api_key),
):
    """
    Verify every order of a user against its Stripe checkout session or payment intent.

    Requires a JSON body `{"userId": "..."}`.
    """
    payload = await read_json_body(request)
    if not payload.get("userId"):
        raise HTTPException(status_code=400, detail="userId is required")

    try:
        body = VerifyOrdersRequest.model_validate(payload)
        service = OrderVerificationService(db, psp_fetcher=psp_fetcher)
        return await service.verify_user_orders(body.user_id)
    except Exception as e:
        raise request_failed("verify-stripe-orders", e)


@bulk_router.post("", response_model=BulkVerificationSummary)
@limiter.limit(RATE_LIMIT)
async def bulk_verify_stripe_orders(
    request: Request,
    db: AsyncSession = Depends(get_db),
    psp_fetcher: Optional[PSPFetcherBase] = Depends(get_psp_fetcher_override),
    api_key: str = Depends(verify_api_key),
):
    """
    Verify every order in the store against Stripe, grouped by user.

    Only users with mismatched, errored or unverifiable orders are listed
    in `userResults`. The request body is ignored.
    """
    try:
        service = OrderVerificationService(db, psp_fetcher=psp_fetcher)
        return await service.verify_all_orders()
    except Exception as e:
        raise request_failed("bulk-verify-stripe-orders", e)
