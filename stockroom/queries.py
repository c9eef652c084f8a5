"""
Stockroom — クエリハンドラ (Read 側)

エンティティの読み出しはストアをそのまま使う。
履歴の読み出しは失敗しても例外を出さず、空の一覧を持つ失敗結果を返す。
保存された changes が壊れていても、空の変更として扱って一覧に含める。
"""

import logging

from sqlalchemy import desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import changes, store, tables
from .changes import HistoryEntry
from .history_store import HistoryLog, product_history
from .reconcile import to_money
from .results import Result

logger = logging.getLogger(__name__)


# ── エンティティ ─────────────────────────────────


async def get_product(session: AsyncSession, product_id: int) -> dict | None:
    return await store.products.get(session, product_id)


async def list_products(session: AsyncSession) -> list[dict]:
    return await store.products.list_all(session)


async def list_orderable_products(session: AsyncSession) -> list[dict]:
    return await store.products.list_orderable(session)


async def list_categories(session: AsyncSession) -> list[dict]:
    return await store.categories.list_all(session)


async def list_suppliers(session: AsyncSession) -> list[dict]:
    return await store.suppliers.list_all(session)


async def get_order(session: AsyncSession, order_id: int) -> dict | None:
    return await store.orders.get_with_items(session, order_id)


async def list_orders(session: AsyncSession) -> list[dict]:
    return await store.orders.list_all(session)


async def get_customer(session: AsyncSession, customer_id: int) -> dict | None:
    return await store.customers.get(session, customer_id)


async def list_customers(session: AsyncSession) -> list[dict]:
    return await store.customers.list_all(session)


async def list_customers_for_order(session: AsyncSession) -> list[dict]:
    return await store.customers.list_for_order(session)


# ── 変更履歴 ─────────────────────────────────────


def _to_entry(log: HistoryLog, row: dict) -> HistoryEntry:
    return HistoryEntry(
        id=row["id"],
        entity_kind=log.kind,
        entity_id=row["entity_id"],
        action_type=row["action_type"],
        changes=changes.decode(log.kind, row["action_type"], row["changes"]),
        created_at=row["created_at"],
        # 削除済みエンティティは JOIN できないので代替ラベルを使う
        label=row["label"] or log.kind.fallback_label(row["entity_id"]),
    )


async def _load_history(
    session: AsyncSession,
    log: HistoryLog,
    entity_id: int | None = None,
    limit: int | None = None,
) -> Result:
    try:
        rows = await log.load(session, entity_id=entity_id, limit=limit)
    except (SQLAlchemyError, OSError):
        logger.exception("Failed to load %s history", log.kind.value)
        return Result.store_failure("Could not load history", data=[])
    return Result.ok([_to_entry(log, row) for row in rows])


async def list_for_entity(session: AsyncSession, log: HistoryLog, entity_id: int) -> Result:
    """指定エンティティの全履歴（新しい順）"""
    return await _load_history(session, log, entity_id=entity_id)


async def list_recent(session: AsyncSession, log: HistoryLog, limit: int) -> Result:
    """種別全体の直近 limit 件（新しい順）"""
    return await _load_history(session, log, limit=limit)


# ── ダッシュボード ───────────────────────────────


async def inventory_stats(
    session: AsyncSession,
    low_stock_threshold: int,
    recent_limit: int,
) -> dict:
    """在庫ダッシュボード用の集計と最近の動き"""
    p, c = tables.products, tables.categories

    total_products = await session.scalar(select(func.count()).select_from(p))
    low_stock = await session.scalar(
        select(func.count()).select_from(p).where(p.c.stock < low_stock_threshold)
    )
    total_value = await session.scalar(select(func.sum(p.c.stock * p.c.price)))

    result = await session.execute(
        select(c.c.name.label("category"), func.count(p.c.id).label("count"))
        .select_from(c.outerjoin(p, p.c.category_id == c.c.id))
        .group_by(c.c.name)
        .order_by(desc("count"))
    )
    category_counts = [dict(row) for row in result.mappings().all()]

    recent = await list_recent(session, product_history, recent_limit)

    return {
        "total_products": total_products or 0,
        "low_stock_products": low_stock or 0,
        "total_value": to_money(total_value or 0),
        "category_counts": category_counts,
        "recent_activity": [entry.as_dict() for entry in recent.data],
    }
