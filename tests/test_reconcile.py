from decimal import Decimal

from stockroom.reconcile import line_subtotal, order_total, plan_items, to_money


def _item(item_id, product_id, quantity, price):
    return {"id": item_id, "product_id": product_id, "quantity": quantity, "price": Decimal(price)}


def test_plan_matches_submitted_items_by_id():
    current = [_item(1, 10, 2, "3.00"), _item(2, 20, 1, "5.00"), _item(3, 30, 1, "2.00")]
    submitted = [
        _item(1, 10, 2, "3.00"),
        _item(3, 30, 2, "2.00"),
        {"id": None, "product_id": 40, "quantity": 1, "price": Decimal("4.00")},
    ]

    plan = plan_items(current, submitted)

    assert [i["id"] for i in plan.unchanged] == [1]
    assert [(c["id"], s["quantity"]) for c, s in plan.to_update] == [(3, 2)]
    assert [i["id"] for i in plan.to_delete] == [2]
    assert [i["product_id"] for i in plan.to_create] == [40]
    assert not plan.is_empty


def test_items_without_id_key_are_created():
    plan = plan_items([], [{"product_id": 1, "quantity": 1, "price": Decimal("1.00")}])
    assert len(plan.to_create) == 1


def test_unknown_ids_are_ignored_and_their_slot_is_not_kept():
    current = [_item(1, 10, 2, "3.00")]
    plan = plan_items(current, [_item(99, 10, 2, "3.00")])

    assert plan.to_create == []
    assert plan.to_update == []
    assert [i["id"] for i in plan.to_delete] == [1]


def test_resubmitting_current_items_is_an_empty_plan():
    current = [_item(1, 10, 2, "3.00"), _item(2, 20, 1, "5.00")]
    plan = plan_items(current, [dict(i, price=Decimal("3")) if i["id"] == 1 else dict(i) for i in current])
    assert plan.is_empty


def test_order_total_is_exact():
    items = [
        {"quantity": 3, "price": Decimal("0.10")},
        {"quantity": 1, "price": Decimal("0.20")},
        {"quantity": 7, "price": "19.99"},
    ]
    assert order_total(items) == Decimal("140.43")


def test_order_total_of_no_items_is_zero():
    assert order_total([]) == Decimal("0.00")


def test_line_subtotal_rounds_price_to_cents_first():
    assert line_subtotal(3, Decimal("3.333")) == Decimal("9.99")
    assert to_money(2.5) == Decimal("2.50")
