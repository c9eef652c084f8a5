"""
Stockroom — 変更履歴ストア (History Append Log)

エンティティ種別ごとの追記専用ログ。行は INSERT されるだけで、
UPDATE も DELETE もしない。

append は「ベストエフォート」:
主たる変更がコミットされた後に呼ばれ、失敗してもログに残すだけで
呼び出し元には伝えない。履歴の書き込み失敗で主たる変更を
失敗させたりロールバックしたりはしない（最大 1 回、再試行なし）。
"""

import logging

from sqlalchemy import Table, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import changes as changes_mod
from . import tables
from .changes import EntityKind
from .store import utcnow

logger = logging.getLogger(__name__)


class HistoryLog:
    def __init__(
        self,
        kind: EntityKind,
        table: Table,
        entity_table: Table,
        label_column: str,
    ):
        self.kind = kind
        self.table = table
        self.entity_table = entity_table
        self.label_column = label_column

    async def append(self, session: AsyncSession, entity_id: int, changes) -> None:
        """
        履歴を 1 件追記して独立にコミットする。

        changes の kind がそのまま action_type になる。
        例外はすべてここで握りつぶし、ログに記録する。
        """
        try:
            await session.execute(
                insert(self.table).values(
                    entity_id=entity_id,
                    action_type=changes.kind,
                    changes=changes_mod.dumps(self.kind, changes),
                    created_at=utcnow(),
                )
            )
            await session.commit()
        except Exception:
            logger.exception(
                "Failed to record %s history for %s %s",
                changes.kind, self.kind.value, entity_id,
            )
            try:
                await session.rollback()
            except SQLAlchemyError:
                logger.warning("Rollback after history failure also failed")

    async def load(
        self,
        session: AsyncSession,
        entity_id: int | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """
        履歴を新しい順に読み出す。表示用ラベルはエンティティ表から
        LEFT JOIN で取る（削除済みなら None）。
        """
        h, e = self.table, self.entity_table
        stmt = select(
            h.c.id,
            h.c.entity_id,
            h.c.action_type,
            h.c.changes,
            h.c.created_at,
            e.c[self.label_column].label("label"),
        ).select_from(h.outerjoin(e, h.c.entity_id == e.c.id))
        if entity_id is not None:
            stmt = stmt.where(h.c.entity_id == entity_id)
        stmt = stmt.order_by(h.c.created_at.desc(), h.c.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return [dict(row) for row in result.mappings().all()]


product_history = HistoryLog(
    EntityKind.PRODUCT, tables.product_history, tables.products, "name"
)
order_history = HistoryLog(
    EntityKind.ORDER, tables.order_history, tables.orders, "order_number"
)
