"""Repository layer for read access to the order store."""

import logging
from typing import Dict, List, Tuple, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Order,
    OrderItem,
    Profile,
    OrderPaymentStatus,
)

logger = logging.getLogger(__name__)

# Keeps IN (...) clauses under driver parameter limits
IN_CLAUSE_CHUNK_SIZE = 500


def _chunks(values: List[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class OrderRepository:
    """Repository for Order and OrderItem queries."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def list_customer_links(self) -> List[Tuple[str, str]]:
        """List (user_id, stripe_customer_id) pairs from orders that carry a
        Stripe customer reference, oldest order first.

        Returns:
            List of (user_id, stripe_customer_id) tuples, one per order.
        """
        result = await self.session.execute(
            select(Order.user_id, Order.stripe_customer_id)
            .where(Order.stripe_customer_id.is_not(None))
            .order_by(Order.created_at, Order.id)
        )
        return [(row.user_id, row.stripe_customer_id) for row in result.all()]

    async def list_by_payment_status(
        self,
        payment_status: str = OrderPaymentStatus.PAID.value,
    ) -> List[Order]:
        """List orders with the given payment status, oldest first.

        Args:
            payment_status: Payment status to filter by.

        Returns:
            List of Order instances.
        """
        result = await self.session.execute(
            select(Order)
            .where(Order.payment_status == payment_status)
            .order_by(Order.created_at, Order.id)
        )
        orders = list(result.scalars().all())
        logger.info(f"Fetched {len(orders)} orders with payment status {payment_status}")
        return orders

    async def list_for_user(self, user_id: str) -> List[Order]:
        """List all orders of a user, newest first.

        Args:
            user_id: Owner of the orders.

        Returns:
            List of Order instances.
        """
        result = await self.session.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id)
        )
        return list(result.scalars().all())

    async def list_all_newest_first(self) -> List[Order]:
        """List every order, newest first."""
        result = await self.session.execute(
            select(Order).order_by(Order.created_at.desc(), Order.id)
        )
        orders = list(result.scalars().all())
        logger.info(f"Fetched {len(orders)} orders")
        return orders

    async def list_items_for_orders(self, order_ids: List[str]) -> Dict[str, List[OrderItem]]:
        """Fetch the items of several orders, grouped by order id.

        Args:
            order_ids: Orders to fetch items for.

        Returns:
            Mapping of order id to its items. Orders without items are absent.
        """
        items_by_order: Dict[str, List[OrderItem]] = {}
        for chunk in _chunks(list(order_ids), IN_CLAUSE_CHUNK_SIZE):
            result = await self.session.execute(
                select(OrderItem)
                .where(OrderItem.order_id.in_(chunk))
                .order_by(OrderItem.order_id, OrderItem.id)
            )
            for item in result.scalars().all():
                items_by_order.setdefault(item.order_id, []).append(item)
        return items_by_order


class ProfileRepository:
    """Repository for Profile queries."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_ids(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        """Fetch profiles for the given user ids.

        Args:
            user_ids: User ids to look up.

        Returns:
            Mapping of user id to Profile. Unknown ids are absent.
        """
        profiles: Dict[str, Profile] = {}
        for chunk in _chunks(sorted(set(user_ids)), IN_CLAUSE_CHUNK_SIZE):
            result = await self.session.execute(
                select(Profile).where(Profile.id.in_(chunk))
            )
            for profile in result.scalars().all():
                profiles[profile.id] = profile
        return profiles
