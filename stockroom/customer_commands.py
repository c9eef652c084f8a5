"""
Stockroom — 顧客コマンド (Write 側)

顧客は変更履歴を持たない。部分更新の仕組みは商品と同じ Patch を使う。
"""

import logging

import redis.asyncio as aioredis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import notifications, store
from .results import Result
from .schemas import CustomerCreate, CustomerUpdate
from .store import Patch

logger = logging.getLogger(__name__)


async def create_customer(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    data: CustomerCreate,
) -> Result:
    try:
        customer = await store.customers.create(session, data.model_dump())
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to create customer")
        await session.rollback()
        return Result.store_failure("Could not create customer")

    await notifications.publish(
        redis, notifications.CUSTOMER_CHANNEL, "CustomerCreated", {"id": customer["id"]}
    )
    return Result.ok(customer)


async def update_customer(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    customer_id: int,
    data: CustomerUpdate,
) -> Result:
    try:
        current = await store.customers.get(session, customer_id)
        if current is None:
            return Result.not_found("Customer not found")
        patch = Patch.from_model(data)
        if patch.is_empty:
            return Result.ok(current)
        updated = await store.customers.update(session, customer_id, patch)
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to update customer %s", customer_id)
        await session.rollback()
        return Result.store_failure("Could not update customer")

    await notifications.publish(
        redis, notifications.CUSTOMER_CHANNEL, "CustomerUpdated", {"id": customer_id}
    )
    return Result.ok(updated)


async def delete_customer(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    customer_id: int,
) -> Result:
    try:
        deleted = await store.customers.delete(session, customer_id)
        if not deleted:
            await session.rollback()
            return Result.not_found("Customer not found")
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to delete customer %s", customer_id)
        await session.rollback()
        return Result.store_failure("Could not delete customer")

    await notifications.publish(
        redis, notifications.CUSTOMER_CHANNEL, "CustomerDeleted", {"id": customer_id}
    )
    return Result.ok()
