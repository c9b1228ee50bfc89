"""Shared test fixtures and configuration."""

import os
import pytest
from datetime import datetime, timedelta

# Set up test environment variables before importing modules
os.environ.setdefault("STRIPE_API_KEY", "sk_test_dummy_key_for_testing")
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing."""
    from registration_payments.database import Base, create_async_engine

    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a database session for testing."""
    from registration_payments.database import get_async_session_factory

    session_factory = get_async_session_factory(db_engine)
    async with session_factory() as session:
        yield session


@pytest.fixture
def add_order(db_session):
    """Return a coroutine adding an order (and its items) to the test database."""
    from registration_payments.database import Order, OrderItem

    base_time = datetime(2024, 3, 1, 12, 0, 0)
    counter = {"n": 0}

    async def _add_order(
        user_id,
        total,
        items=(),
        payment_status="paid",
        stripe_customer_id=None,
        stripe_session_id=None,
        stripe_payment_intent_id=None,
        created_at=None,
    ):
        counter["n"] += 1
        order = Order(
            id=f"order-{counter['n']:03d}",
            user_id=user_id,
            order_number=f"ORD-{1000 + counter['n']}",
            total=total,
            payment_status=payment_status,
            stripe_customer_id=stripe_customer_id,
            stripe_session_id=stripe_session_id,
            stripe_payment_intent_id=stripe_payment_intent_id,
            created_at=created_at or base_time + timedelta(minutes=counter["n"]),
        )
        db_session.add(order)
        # Items are (name, quantity, unit_price, total[, discount_amount])
        for index, (name, quantity, unit_price, item_total, *discount) in enumerate(items):
            db_session.add(OrderItem(
                id=f"{order.id}-item-{index}",
                order_id=order.id,
                item_name=name,
                item_type="registration",
                quantity=quantity,
                unit_price=unit_price,
                total=item_total,
                discount_amount=discount[0] if discount else 0,
            ))
        await db_session.flush()
        return order

    return _add_order


@pytest.fixture
def add_profile(db_session):
    """Return a coroutine adding a profile to the test database."""
    from registration_payments.database import Profile

    async def _add_profile(user_id, first_name=None, last_name=None):
        profile = Profile(id=user_id, first_name=first_name, last_name=last_name)
        db_session.add(profile)
        await db_session.flush()
        return profile

    return _add_profile


@pytest.fixture
def auth_headers():
    """Return headers with authentication."""
    return {"Authorization": "Bearer test_api_key_12345"}
