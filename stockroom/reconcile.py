"""
Stockroom — 注文明細の突き合わせ (Line Item Reconciliation)

注文更新時、送信された明細と現在の明細を id で突き合わせる。

    送信側に id あり・現在にもある → 更新候補
    送信側に id なし              → 新規作成
    現在にあるが送信側にない       → 削除

金額はすべて Decimal で扱い、小数点以下 2 桁に丸める。
subtotal = quantity × price は明細を書き込むたびに再計算する。
"""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# 明細の「変更あり」を判定するフィールド
ITEM_FIELDS = ("product_id", "quantity", "price")


def to_money(value: Any) -> Decimal:
    """任意の数値を 2 桁の Decimal に正規化する。"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_subtotal(quantity: int, price: Any) -> Decimal:
    return to_money(to_money(price) * quantity)


def order_total(items: Iterable[dict]) -> Decimal:
    """明細の subtotal を合計して注文金額を算出する。"""
    return to_money(sum((line_subtotal(i["quantity"], i["price"]) for i in items), Decimal("0")))


def item_changed(current: dict, submitted: dict) -> bool:
    return any(current.get(f) != submitted.get(f) for f in ITEM_FIELDS)


@dataclass
class ItemPlan:
    """突き合わせ結果。どの明細をどう書き込むかだけを表す。"""

    to_create: list[dict] = field(default_factory=list)
    to_update: list[tuple[dict, dict]] = field(default_factory=list)
    to_delete: list[dict] = field(default_factory=list)
    unchanged: list[dict] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_delete)


def plan_items(current: list[dict], submitted: list[dict]) -> ItemPlan:
    """
    現在の明細と送信された明細から ItemPlan を作る。

    現在の明細は id をキーにした辞書に格納し、id なしの送信明細は
    別のバケットに分ける。存在しない id を持つ送信明細は無視する。
    """
    plan = ItemPlan()
    arena = {item["id"]: item for item in current}
    new_bucket = [item for item in submitted if item.get("id") is None]
    matched: set[int] = set()

    for item in submitted:
        item_id = item.get("id")
        if item_id is None:
            continue
        existing = arena.get(item_id)
        if existing is None:
            logger.warning("Ignoring submitted line item %s: not part of the order", item_id)
            continue
        matched.add(item_id)
        if item_changed(existing, item):
            plan.to_update.append((existing, item))
        else:
            plan.unchanged.append(existing)

    plan.to_delete = [item for item_id, item in arena.items() if item_id not in matched]
    plan.to_create = new_bucket
    return plan
