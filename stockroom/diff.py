"""
Stockroom — 差分エンジン

変更前のスナップショットと、呼び出し側が変更しようとしているフィールドを
比べて、実際に値が変わるフィールドだけを返す。副作用のない純粋関数。

空の結果は「履歴を書く必要がない」ことを意味する。
"""

from typing import Any, Mapping

from .changes import ActionType, FieldChange, ItemChange
from .reconcile import ItemPlan


def diff(before: Mapping[str, Any], proposed: Mapping[str, Any]) -> dict[str, FieldChange]:
    """
    proposed に含まれるフィールドだけを before と比較する。

    比較は単純な値の等価 (==)。ネストした構造の深い比較はしない。
    before に存在しないフィールドは無視する。
    """
    return {
        name: FieldChange(before=before[name], after=value)
        for name, value in proposed.items()
        if name in before and before[name] != value
    }


def diff_items(
    plan: ItemPlan,
    created: list[dict],
    after: list[dict],
) -> list[ItemChange]:
    """
    突き合わせ結果から明細の変更レコードを作る。

    書き込み後の id 同士を比べるのではなく、書き込み前に決めた計画を
    そのまま記録する。削除された明細の id は再利用されうるため。

    plan.to_delete → delete (削除前の明細)
    plan.to_update → update (明細全体の before/after)
    created        → create (INSERT された明細)

    after は書き込み後の明細一覧。商品名などを結合済みの行があれば
    そちらをスナップショットに使う。
    """
    after_by_id = {item["id"]: item for item in after}

    changes = [ItemChange(action=ActionType.DELETE, item=item) for item in plan.to_delete]
    for current, _ in plan.to_update:
        changes.append(ItemChange(
            action=ActionType.UPDATE,
            before=current,
            after=after_by_id.get(current["id"], current),
        ))
    for row in created:
        changes.append(ItemChange(
            action=ActionType.CREATE,
            item=after_by_id.get(row["id"], row),
        ))
    return changes
