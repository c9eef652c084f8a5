"""
Stockroom — 変更履歴のペイロード定義

履歴の changes 列は action_type によって形が変わる JSON ドキュメント。
ここではそれを明示的なバリアントとして定義する。

    Creation      作成時のフィールド一式
    Deletion      削除直前のスナップショット
    Modification  変更されたフィールドの {before, after} と明細の変更
    Unparsed      読み出した JSON が想定外の形だった場合の受け皿

保存形式 (エンティティ種別ごと):

    商品 create   {field: value, ...}
    商品 update   {field: {"before": .., "after": ..}, ...}
    商品 delete   {"deletedProduct": {...}}
    注文 create   {"order": {...}, "items": [...]}
    注文 update   {"order": {field: {before, after}}, "items": [{action, ...}]}
    注文 delete   {"deletedOrder": {..., "items": [...]}}
"""

import json
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, ValidationError


class EntityKind(str, Enum):
    PRODUCT = "product"
    ORDER = "order"

    @property
    def deleted_key(self) -> str:
        return {"product": "deletedProduct", "order": "deletedOrder"}[self.value]

    def fallback_label(self, entity_id: int) -> str:
        return f"{self.value.title()} #{entity_id}"


class ActionType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class FieldChange(BaseModel):
    before: Any = None
    after: Any = None


class ItemChange(BaseModel):
    """明細 1 件の変更。create/delete は item、update は before/after を持つ。"""
    action: ActionType
    item: dict[str, Any] | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None

    def as_payload(self) -> dict:
        if self.action is ActionType.UPDATE:
            return {"action": "update", "before": self.before, "after": self.after}
        return {"action": self.action.value, "item": self.item}


class Creation(BaseModel):
    kind: Literal["create"] = "create"
    fields: dict[str, Any]
    items: list[dict[str, Any]] | None = None


class Deletion(BaseModel):
    kind: Literal["delete"] = "delete"
    snapshot: dict[str, Any]


class Modification(BaseModel):
    kind: Literal["update"] = "update"
    fields: dict[str, FieldChange] = Field(default_factory=dict)
    items: list[ItemChange] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.fields or self.items)


class Unparsed(BaseModel):
    kind: Literal["unknown"] = "unknown"
    raw: Any = None


Changes = Annotated[
    Union[Creation, Deletion, Modification, Unparsed], Field(discriminator="kind")
]


# ── エンコード (書き込み側) ───────────────────────


def encode(kind: EntityKind, changes: Creation | Deletion | Modification | Unparsed) -> dict:
    """バリアントを保存形式の dict に変換する。Unparsed は空の dict になる。"""
    if isinstance(changes, Creation):
        if kind is EntityKind.ORDER:
            return {"order": changes.fields, "items": changes.items or []}
        return dict(changes.fields)
    if isinstance(changes, Deletion):
        return {kind.deleted_key: changes.snapshot}
    if isinstance(changes, Modification):
        fields = {
            name: {"before": c.before, "after": c.after}
            for name, c in changes.fields.items()
        }
        if kind is EntityKind.ORDER:
            return {"order": fields, "items": [i.as_payload() for i in changes.items]}
        return fields
    return {}


def dumps(kind: EntityKind, changes) -> str:
    return json.dumps(encode(kind, changes), default=str)


# ── デコード (読み出し側) ─────────────────────────


def _field_changes(raw: Any) -> dict[str, FieldChange]:
    """{before, after} の形をしていないエントリは捨てる。"""
    if not isinstance(raw, dict):
        return {}
    return {
        name: FieldChange(before=c["before"], after=c["after"])
        for name, c in raw.items()
        if isinstance(c, dict) and "before" in c and "after" in c
    }


def _item_changes(raw: Any) -> list[ItemChange]:
    if not isinstance(raw, list):
        return []
    result: list[ItemChange] = []
    for record in raw:
        if not isinstance(record, dict):
            continue
        try:
            # まとめ書き形式 {"action": "delete", "items": [...]} は 1 件ずつに展開
            if isinstance(record.get("items"), list):
                result.extend(
                    ItemChange(action=record.get("action"), item=i)
                    for i in record["items"]
                    if isinstance(i, dict)
                )
            else:
                result.append(ItemChange.model_validate(record))
        except ValidationError:
            continue
    return result


def decode(kind: EntityKind, action_type: str, raw: Any) -> Creation | Deletion | Modification | Unparsed:
    """
    保存された changes をバリアントに戻す。

    文字列なら JSON として読む。形が想定と違っても例外は投げず、
    Unparsed を返す（読み出しは決して失敗させない）。
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return Unparsed(raw=raw)
    if not isinstance(raw, dict):
        return Unparsed(raw=raw)

    try:
        action = ActionType(action_type)
    except ValueError:
        return Unparsed(raw=raw)

    if action is ActionType.CREATE:
        if kind is EntityKind.ORDER:
            if not isinstance(raw.get("order"), dict):
                return Unparsed(raw=raw)
            items = raw.get("items")
            return Creation(
                fields=raw["order"],
                items=[i for i in items if isinstance(i, dict)] if isinstance(items, list) else [],
            )
        return Creation(fields=raw)

    if action is ActionType.DELETE:
        snapshot = raw.get(kind.deleted_key)
        if not isinstance(snapshot, dict):
            return Unparsed(raw=raw)
        return Deletion(snapshot=snapshot)

    if kind is EntityKind.ORDER:
        return Modification(
            fields=_field_changes(raw.get("order")),
            items=_item_changes(raw.get("items")),
        )
    return Modification(fields=_field_changes(raw))


# ── 読み出しモデル ───────────────────────────────


class HistoryEntry(BaseModel):
    """履歴 1 件。一度書かれたら変更されない。"""
    id: int
    entity_kind: EntityKind
    entity_id: int
    action_type: str
    changes: Changes
    created_at: datetime
    label: str

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_id": self.entity_id,
            "action_type": self.action_type,
            "changes": encode(self.entity_kind, self.changes),
            "created_at": self.created_at.isoformat(),
            "label": self.label,
        }
