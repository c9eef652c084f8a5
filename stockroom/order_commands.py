"""
Stockroom — 注文コマンド (Write 側)

注文は明細 (order_items) を所有する。更新時は明細を id で突き合わせ、
total_amount を明細の subtotal の合計から再計算して同じ UPDATE で保存する。

履歴の追記は主たる変更のコミット後に行い、失敗しても注文の結果は変えない。
"""

import logging

import redis.asyncio as aioredis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import notifications, store
from .changes import Creation, Deletion, Modification
from .diff import diff, diff_items
from .history_store import order_history
from .reconcile import ItemPlan, order_total, plan_items
from .results import Result
from .schemas import OrderCreate, OrderUpdate
from .store import Patch, utcnow

logger = logging.getLogger(__name__)


def _order_fields(order: dict) -> dict:
    return {k: v for k, v in order.items() if k != "items"}


async def create_order(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    data: OrderCreate,
) -> Result:
    """
    注文作成コマンド

    1. 注文番号を採番 (ORD-YYMMDD-NNN)
    2. 明細から合計金額を算出し、注文と明細を INSERT してコミット
    3. 作成された注文と明細を create 履歴として追記
    """
    items = [item.model_dump(exclude={"id"}) for item in data.items]
    try:
        order_number = await store.orders.next_order_number(session, utcnow())
        order = await store.orders.create(session, {
            **data.model_dump(exclude={"items"}),
            "order_number": order_number,
            "total_amount": order_total(items),
        })
        for item in items:
            await store.orders.add_item(session, order["id"], item)
        order["items"] = await store.orders.list_items(session, order["id"])
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to create order")
        await session.rollback()
        return Result.store_failure("Could not create order")

    await order_history.append(
        session, order["id"], Creation(fields=_order_fields(order), items=order["items"])
    )
    await notifications.publish(
        redis, notifications.ORDER_CHANNEL, "OrderCreated",
        {"id": order["id"], "order_number": order["order_number"]},
    )
    return Result.ok(order)


async def _apply_item_plan(session: AsyncSession, order_id: int, plan: ItemPlan) -> list[dict]:
    """計画どおりに明細を書き込み、INSERT した明細を返す。"""
    for item in plan.to_delete:
        await store.orders.delete_item(session, item["id"])
    for current, submitted in plan.to_update:
        await store.orders.update_item(session, current["id"], submitted)
    return [await store.orders.add_item(session, order_id, item) for item in plan.to_create]


async def update_order(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    order_id: int,
    data: OrderUpdate,
) -> Result:
    """
    注文更新コマンド

    1. 現在の注文と明細を取得（無ければ not_found）
    2. 送られた注文フィールドで Patch を作る
       フィールドも明細も無ければ何もせず現状を返す
    3. 明細が送られていれば突き合わせて削除・更新・作成し、
       total_amount を再計算して Patch に加える
       明細の変更レコードは突き合わせの計画から作る
    4. 注文を UPDATE してコミット
    5. フィールド差分と明細差分のどちらかがあれば update 履歴を追記
    """
    try:
        current = await store.orders.get_with_items(session, order_id)
        if current is None:
            return Result.not_found("Order not found")

        patch = Patch.from_model(data, exclude=("items",))
        submitted = [item.model_dump() for item in data.items or []]
        if patch.is_empty and not submitted:
            return Result.ok(current)

        items = current["items"]
        item_changes = []
        if submitted:
            plan = plan_items(current["items"], submitted)
            if not plan.is_empty:
                created = await _apply_item_plan(session, order_id, plan)
                items = await store.orders.list_items(session, order_id)
                item_changes = diff_items(plan, created, items)
            patch.fields["total_amount"] = order_total(items)

        updated = await store.orders.update(session, order_id, patch)
        if updated is None:
            await session.rollback()
            return Result.not_found("Order not found")
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to update order %s", order_id)
        await session.rollback()
        return Result.store_failure("Could not update order")

    updated["items"] = items
    changes = Modification(
        fields=diff(current, patch.fields),
        items=item_changes,
    )
    if not changes.is_empty:
        await order_history.append(session, order_id, changes)
        await notifications.publish(
            redis, notifications.ORDER_CHANNEL, "OrderUpdated", {"id": order_id}
        )
    return Result.ok(updated)


async def delete_order(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    order_id: int,
) -> Result:
    """
    注文削除コマンド

    明細ごと削除し、削除前の注文（明細を含む）を delete 履歴に残す。
    """
    try:
        current = await store.orders.get_with_items(session, order_id)
        if current is None:
            return Result.not_found("Order not found")
        await store.orders.delete(session, order_id)
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to delete order %s", order_id)
        await session.rollback()
        return Result.store_failure("Could not delete order")

    await order_history.append(session, order_id, Deletion(snapshot=current))
    await notifications.publish(
        redis, notifications.ORDER_CHANNEL, "OrderDeleted",
        {"id": order_id, "order_number": current["order_number"]},
    )
    return Result.ok()
