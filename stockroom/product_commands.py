"""
Stockroom — 商品コマンド (Write 側)

商品の作成・更新・削除。どのコマンドも 2 段階で動く:

    1. 主たる変更 (products テーブル) をコミット
    2. 変更履歴を追記 (ベストエフォート、失敗しても成功を返す)

ストアの失敗は Result.store_failure として返し、例外を HTTP 層へ出さない。
"""

import logging

import redis.asyncio as aioredis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import notifications, store
from .changes import Creation, Deletion, Modification
from .diff import diff
from .history_store import product_history
from .results import Result
from .schemas import ProductCreate, ProductUpdate
from .store import Patch

logger = logging.getLogger(__name__)


async def create_product(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    data: ProductCreate,
) -> Result:
    """
    商品作成コマンド

    1. 商品を INSERT してコミット
    2. 送信されたフィールド一式を create 履歴として追記
    3. Redis に変更を通知
    """
    fields = data.model_dump()
    try:
        product = await store.products.create(session, fields)
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to create product")
        await session.rollback()
        return Result.store_failure("Could not create product")

    await product_history.append(session, product["id"], Creation(fields=fields))
    await notifications.publish(
        redis, notifications.PRODUCT_CHANNEL, "ProductCreated", {"id": product["id"]}
    )
    return Result.ok(product)


async def update_product(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    product_id: int,
    data: ProductUpdate,
) -> Result:
    """
    商品更新コマンド

    1. 現在の商品を取得（無ければ not_found、履歴は書かない）
    2. 送られたフィールドだけで Patch を作る（空なら何もせず現状を返す）
    3. UPDATE してコミット
    4. 差分が空でなければ update 履歴を追記
    """
    try:
        current = await store.products.get(session, product_id)
        if current is None:
            return Result.not_found("Product not found")

        patch = Patch.from_model(data)
        if patch.is_empty:
            return Result.ok(current)

        updated = await store.products.update(session, product_id, patch)
        if updated is None:
            await session.rollback()
            return Result.not_found("Product not found")
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to update product %s", product_id)
        await session.rollback()
        return Result.store_failure("Could not update product")

    changes = diff(current, patch.fields)
    if changes:
        await product_history.append(session, product_id, Modification(fields=changes))
        await notifications.publish(
            redis, notifications.PRODUCT_CHANNEL, "ProductUpdated",
            {"id": product_id, "fields": sorted(changes)},
        )
    return Result.ok(updated)


async def delete_product(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    product_id: int,
) -> Result:
    """
    商品削除コマンド

    削除前のスナップショットを delete 履歴として残す。
    履歴はエンティティが消えた後も読める。
    """
    try:
        current = await store.products.get(session, product_id)
        if current is None:
            return Result.not_found("Product not found")
        await store.products.delete(session, product_id)
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to delete product %s", product_id)
        await session.rollback()
        return Result.store_failure("Could not delete product")

    await product_history.append(session, product_id, Deletion(snapshot=current))
    await notifications.publish(
        redis, notifications.PRODUCT_CHANNEL, "ProductDeleted", {"id": product_id}
    )
    return Result.ok()
