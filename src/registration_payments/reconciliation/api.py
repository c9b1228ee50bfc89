"""API endpoints for reconciliation operations."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..api_utils import get_psp_fetcher_override, read_json_body, request_failed
from ..auth import RATE_LIMIT, limiter, verify_api_key
from ..database import get_db
from .models import ReconciliationRequest, ReconciliationSummary
from .psp_fetcher import PSPFetcherBase
from .service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconcile-stripe-orders", tags=["reconciliation"])

REPORT_FORMATS = ("json", "csv", "text", "detailed_text")


@router.post("", response_model=ReconciliationSummary)
@limiter.limit(RATE_LIMIT)
async def reconcile_stripe_orders(
    request: Request,
    db: AsyncSession = Depends(get_db),
    psp_fetcher: Optional[PSPFetcherBase] = Depends(get_psp_fetcher_override),
    api_key: str = Depends(verify_api_key),
):
    """
    Reconcile Stripe purchases against paid orders, per customer email.

    Accepts an optional JSON body `{"emailFilter": "..."}`. Returns aggregate
    counts and the accounts with discrepancies, largest absolute difference first.
    """
    payload = await read_json_body(request)
    try:
        body = ReconciliationRequest.model_validate(payload)
        service = ReconciliationService(db, psp_fetcher=psp_fetcher)
        return await service.run_reconciliation(body)
    except Exception as e:
        raise request_failed("reconcile-stripe-orders", e)


@router.post("/report")
@limiter.limit(RATE_LIMIT)
async def reconcile_stripe_orders_report(
    request: Request,
    include_details: bool = Query(default=True, description="Include per-user records"),
    format: str = Query(default="json", description="Output format: json, csv, text, detailed_text"),
    db: AsyncSession = Depends(get_db),
    psp_fetcher: Optional[PSPFetcherBase] = Depends(get_psp_fetcher_override),
    api_key: str = Depends(verify_api_key),
):
    """
    Run the reconciliation and render it as JSON, CSV or text.
    """
    if format not in REPORT_FORMATS:
        raise HTTPException(
            status_code=400,
            detail="format must be one of: json, csv, text, detailed_text"
        )

    payload = await read_json_body(request)
    try:
        body = ReconciliationRequest.model_validate(payload)
        service = ReconciliationService(db, psp_fetcher=psp_fetcher)
        summary = await service.run_reconciliation(body)
    except Exception as e:
        raise request_failed("reconcile-stripe-orders", e)

    if format == "json":
        return summary.to_full_dict() if include_details else summary.to_summary_dict()

    output = service.generate_report(
        summary=summary,
        format=format,
        include_details=include_details,
    )
    content_type = "text/csv" if format == "csv" else "text/plain"
    return PlainTextResponse(content=output, media_type=content_type)
