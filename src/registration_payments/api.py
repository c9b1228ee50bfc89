import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .auth import limiter
from .database import init_db, close_db
from .customers.api import router as customers_router
from .reconciliation.api import router as reconciliation_router
from .verification.api import bulk_router as bulk_verification_router
from .verification.api import router as verification_router

CORS_ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="Registration Payments - Admin Edge API", lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=CORS_ALLOWED_HEADERS,
)

app.include_router(reconciliation_router)
app.include_router(customers_router)
app.include_router(verification_router)
app.include_router(bulk_verification_router)


@app.get("/health")
async def health():
    return {"status": "healthy", "service": "registration-payments"}
