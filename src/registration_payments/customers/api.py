"""API endpoint for the Stripe customer directory."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from ..api_utils import get_psp_fetcher_override, read_json_body, request_failed
from ..auth import RATE_LIMIT, limiter, verify_api_key
from ..reconciliation.psp_fetcher import PSPFetcherBase
from .models import ListCustomersRequest, ListCustomersResponse
from .service import CustomerDirectoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/list-stripe-customers", tags=["customers"])


@router.post("", response_model=ListCustomersResponse)
@limiter.limit(RATE_LIMIT)
async def list_stripe_customers(
    request: Request,
    psp_fetcher: Optional[PSPFetcherBase] = Depends(get_psp_fetcher_override),
    api_key: str = Depends(verify_api_key),
):
    """
    List a page of Stripe customers with succeeded payment totals.

    Accepts an optional JSON body `{"limit": 50, "startingAfter": "cus_...", "email": "..."}`.
    """
    payload = await read_json_body(request)
    try:
        body = ListCustomersRequest.model_validate(payload)
        service = CustomerDirectoryService(psp_fetcher=psp_fetcher)
        return await asyncio.to_thread(service.list_customers, body)
    except Exception as e:
        raise request_failed("list-stripe-customers", e)
