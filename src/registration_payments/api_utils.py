"""Request helpers shared by the API routers."""

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request

from .reconciliation.psp_fetcher import PSPFetcherBase

logger = logging.getLogger(__name__)


async def read_json_body(request: Request) -> Dict[str, Any]:
    """Read an optional JSON object body; anything unreadable counts as empty."""
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def get_psp_fetcher_override() -> Optional[PSPFetcherBase]:
    """Dependency returning a preconfigured fetcher.

    Returns None in production so services build the Stripe fetcher lazily and
    configuration errors surface as request errors. Tests override it.
    """
    return None


def request_failed(function_name: str, error: Exception) -> HTTPException:
    """Log a top-level failure and build the 400 response for it."""
    logger.error(f"Error in {function_name}: {error}")
    return HTTPException(status_code=400, detail=str(error) or "Unknown error")
