"""
Stockroom — エンティティストア

エンティティ種別ごとの永続化。id による取得・作成・部分更新・削除・一覧。
部分更新は Patch（実際に指定されたフィールドだけを持つレコード）を
パラメータ化された UPDATE に渡す。SQL 文字列の連結は行わない。

ストアはコミットしない。トランザクションの境界はコマンド側が決める。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel
from sqlalchemy import Table, delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from . import tables
from .reconcile import line_subtotal, to_money


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Patch:
    """部分更新の内容。fields に無いフィールドには触れない。"""

    fields: dict[str, Any]
    touched_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_model(cls, model: BaseModel, exclude: tuple[str, ...] = ()) -> "Patch":
        data = model.model_dump(exclude_unset=True)
        return cls({k: v for k, v in data.items() if k not in exclude})

    @property
    def is_empty(self) -> bool:
        return not self.fields

    def values(self) -> dict[str, Any]:
        return {**self.fields, "updated_at": self.touched_at}


class EntityStore:
    def __init__(self, table: Table, order_by: str = "id", descending: bool = False):
        self.table = table
        self.order_by = order_by
        self.descending = descending

    def _select(self):
        return select(self.table)

    async def get(self, session: AsyncSession, entity_id: int) -> dict | None:
        result = await session.execute(
            self._select().where(self.table.c.id == entity_id)
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def list_all(
        self,
        session: AsyncSession,
        order_by: str | None = None,
        descending: bool | None = None,
    ) -> list[dict]:
        column = self.table.c[order_by or self.order_by]
        desc = self.descending if descending is None else descending
        result = await session.execute(
            self._select().order_by(column.desc() if desc else column.asc())
        )
        return [dict(row) for row in result.mappings().all()]

    async def create(self, session: AsyncSession, fields: dict[str, Any]) -> dict:
        now = utcnow()
        result = await session.execute(
            insert(self.table)
            .values(**fields, created_at=now, updated_at=now)
            .returning(*self.table.c)
        )
        return dict(result.mappings().one())

    async def update(
        self, session: AsyncSession, entity_id: int, patch: Patch
    ) -> dict | None:
        result = await session.execute(
            update(self.table)
            .where(self.table.c.id == entity_id)
            .values(**patch.values())
            .returning(*self.table.c)
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def delete(self, session: AsyncSession, entity_id: int) -> bool:
        result = await session.execute(
            delete(self.table).where(self.table.c.id == entity_id)
        )
        return result.rowcount > 0


class ProductStore(EntityStore):
    """商品。取得時にカテゴリ名と仕入先名を結合する。"""

    def __init__(self):
        super().__init__(tables.products, order_by="name")

    def _select(self):
        p, c, s = tables.products, tables.categories, tables.suppliers
        return select(
            p,
            c.c.name.label("category_name"),
            s.c.name.label("supplier_name"),
        ).select_from(
            p.outerjoin(c, p.c.category_id == c.c.id).outerjoin(
                s, p.c.supplier_id == s.c.id
            )
        )

    async def list_orderable(self, session: AsyncSession) -> list[dict]:
        """注文フォーム用: 販売終了ではなく在庫がある商品。"""
        p = tables.products
        result = await session.execute(
            select(p.c.id, p.c.name, p.c.sku, p.c.price, p.c.stock)
            .where(p.c.status != "Discontinued", p.c.stock > 0)
            .order_by(p.c.name.asc())
        )
        return [dict(row) for row in result.mappings().all()]


class OrderStore(EntityStore):
    """注文と、その注文が所有する明細。"""

    def __init__(self):
        super().__init__(tables.orders, order_by="created_at", descending=True)

    def _items_select(self):
        oi, p = tables.order_items, tables.products
        return select(
            oi,
            p.c.name.label("product_name"),
            p.c.sku.label("product_sku"),
        ).select_from(oi.outerjoin(p, oi.c.product_id == p.c.id))

    async def list_items(self, session: AsyncSession, order_id: int) -> list[dict]:
        result = await session.execute(
            self._items_select()
            .where(tables.order_items.c.order_id == order_id)
            .order_by(tables.order_items.c.id.asc())
        )
        return [dict(row) for row in result.mappings().all()]

    async def get_with_items(self, session: AsyncSession, order_id: int) -> dict | None:
        order = await self.get(session, order_id)
        if order is None:
            return None
        order["items"] = await self.list_items(session, order_id)
        return order

    async def add_item(self, session: AsyncSession, order_id: int, item: dict) -> dict:
        oi = tables.order_items
        result = await session.execute(
            insert(oi)
            .values(
                order_id=order_id,
                product_id=item["product_id"],
                quantity=item["quantity"],
                price=to_money(item["price"]),
                subtotal=line_subtotal(item["quantity"], item["price"]),
                created_at=utcnow(),
            )
            .returning(*oi.c)
        )
        return dict(result.mappings().one())

    async def update_item(self, session: AsyncSession, item_id: int, item: dict) -> None:
        oi = tables.order_items
        await session.execute(
            update(oi)
            .where(oi.c.id == item_id)
            .values(
                product_id=item["product_id"],
                quantity=item["quantity"],
                price=to_money(item["price"]),
                subtotal=line_subtotal(item["quantity"], item["price"]),
            )
        )

    async def delete_item(self, session: AsyncSession, item_id: int) -> None:
        oi = tables.order_items
        await session.execute(delete(oi).where(oi.c.id == item_id))

    async def delete(self, session: AsyncSession, entity_id: int) -> bool:
        # 明細は注文が所有する。外部キーの CASCADE に頼らず先に消す
        oi = tables.order_items
        await session.execute(delete(oi).where(oi.c.order_id == entity_id))
        return await super().delete(session, entity_id)

    async def next_order_number(self, session: AsyncSession, today: datetime) -> str:
        """
        その日の連番で ORD-YYMMDD-NNN を採番する。

        連番は 3 桁を超えうるので、文字列長 → 文字列の順で最大値を取る
        (-1000 は文字列比較では -999 より小さい)。
        """
        prefix = f"ORD-{today:%y%m%d}-"
        o = tables.orders
        result = await session.execute(
            select(o.c.order_number)
            .where(o.c.order_number.like(f"{prefix}%"))
            .order_by(func.length(o.c.order_number).desc(), o.c.order_number.desc())
            .limit(1)
        )
        last = result.scalar_one_or_none()
        sequence = int(last.rsplit("-", 1)[-1]) + 1 if last else 1
        return f"{prefix}{sequence:03d}"


class CustomerStore(EntityStore):
    def __init__(self):
        super().__init__(tables.customers, order_by="name")

    async def list_for_order(self, session: AsyncSession) -> list[dict]:
        """注文フォーム用: 連絡先だけに絞った顧客一覧。"""
        c = tables.customers
        result = await session.execute(
            select(c.c.id, c.c.name, c.c.email, c.c.phone).order_by(c.c.name.asc())
        )
        return [dict(row) for row in result.mappings().all()]


products = ProductStore()
orders = OrderStore()
customers = CustomerStore()
categories = EntityStore(tables.categories, order_by="name")
suppliers = EntityStore(tables.suppliers, order_by="name")
