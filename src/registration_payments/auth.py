"""Bearer-token check and per-client rate limiting for the admin endpoints."""

import os
import secrets
import logging

from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

security = HTTPBearer()

# Every endpoint fans out into many Stripe calls, so clients are throttled
RATE_LIMIT = os.getenv("RATE_LIMIT", "30/minute")

limiter = Limiter(
    key_func=get_remote_address,
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
)


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Security(security)) -> str:
    """Check the bearer token sent by the admin console against API_KEY.

    Raises:
        HTTPException: 500 when API_KEY is not set, 401 when the token differs.
    """
    expected_key = os.getenv("API_KEY")
    if not expected_key:
        logger.error("API_KEY environment variable is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")

    token = credentials.credentials
    if not secrets.compare_digest(token.encode(), expected_key.encode()):
        logger.warning("Rejected request with an invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return token
