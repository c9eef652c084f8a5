from decimal import Decimal

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from stockroom import product_commands, queries, tables
from stockroom.changes import Unparsed
from stockroom.history_store import order_history, product_history
from stockroom.results import ErrorKind
from stockroom.schemas import ProductCreate, ProductUpdate
from stockroom.store import utcnow


async def _product(session, name, **fields):
    data = {"name": name, "stock": 5, "price": Decimal("1.00"), "cost_price": Decimal("0.50")}
    data.update(fields)
    return (await product_commands.create_product(session, None, ProductCreate(**data))).data


async def test_entity_history_is_newest_first_with_current_label(session):
    product = await _product(session, "Widget")
    await product_commands.update_product(session, None, product["id"], ProductUpdate(stock=6))
    await product_commands.update_product(session, None, product["id"], ProductUpdate(name="Gadget"))

    result = await queries.list_for_entity(session, product_history, product["id"])

    assert result.success
    entries = result.data
    assert [e.action_type for e in entries] == ["update", "update", "create"]
    assert [e.created_at for e in entries] == sorted((e.created_at for e in entries), reverse=True)
    assert {e.label for e in entries} == {"Gadget"}
    assert list(entries[0].changes.fields) == ["name"]


async def test_entity_history_only_contains_that_entity(session):
    first = await _product(session, "First")
    await _product(session, "Second")

    result = await queries.list_for_entity(session, product_history, first["id"])

    assert [e.entity_id for e in result.data] == [first["id"]]


async def test_unknown_entity_has_empty_history(session):
    result = await queries.list_for_entity(session, order_history, 999)
    assert result.success
    assert result.data == []


async def test_recent_history_spans_entities_and_respects_limit(session):
    for name in ("One", "Two", "Three", "Four"):
        await _product(session, name)

    result = await queries.list_recent(session, product_history, 3)

    assert result.success
    assert [e.label for e in result.data] == ["Four", "Three", "Two"]


async def test_malformed_changes_are_listed_as_empty(session):
    product = await _product(session, "Widget")
    await session.execute(insert(tables.product_history).values(
        entity_id=product["id"],
        action_type="update",
        changes="{broken",
        created_at=utcnow(),
    ))
    await session.commit()

    result = await queries.list_for_entity(session, product_history, product["id"])

    assert result.success
    newest = result.data[0]
    assert isinstance(newest.changes, Unparsed)
    assert newest.as_dict()["changes"] == {}
    assert newest.label == "Widget"


async def test_unreachable_store_yields_failure_with_empty_list(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'gone.db'}")
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with async_session() as session:
            by_entity = await queries.list_for_entity(session, product_history, 1)
        async with async_session() as session:
            recent = await queries.list_recent(session, order_history, 10)
    finally:
        await engine.dispose()

    for result in (by_entity, recent):
        assert not result.success
        assert result.reason is ErrorKind.STORE_FAILURE
        assert result.data == []


async def test_inventory_stats(session, catalog):
    await _product(session, "Nails", category_id=catalog["category_id"], stock=3, price=Decimal("0.10"))

    stats = await queries.inventory_stats(session, low_stock_threshold=10, recent_limit=5)

    assert stats["total_products"] == 4
    assert stats["low_stock_products"] == 1
    # 20 * (3 + 5 + 4) + 3 * 0.10
    assert stats["total_value"] == Decimal("240.30")
    assert stats["category_counts"] == [{"category": "Tools", "count": 4}]
    assert [a["label"] for a in stats["recent_activity"]] == ["Nails"]


async def test_orderable_products_skip_discontinued_and_empty(session, catalog):
    await _product(session, "Old", status="Discontinued")
    await _product(session, "Gone", stock=0)

    names = [p["name"] for p in await queries.list_orderable_products(session)]

    assert names == ["Hammer", "Pliers", "Wrench"]


async def test_products_carry_category_and_supplier_names(session, catalog):
    product = await queries.get_product(session, catalog["a"])

    assert product["category_name"] == "Tools"
    assert product["supplier_name"] == "Acme"


async def test_deleted_product_id_is_not_reused(session):
    old = await _product(session, "Old")
    await product_commands.delete_product(session, None, old["id"])
    new = await _product(session, "New")

    assert new["id"] != old["id"]

    old_history = (await queries.list_for_entity(session, product_history, old["id"])).data
    assert [(e.action_type, e.label) for e in old_history] == [
        ("delete", f"Product #{old['id']}"),
        ("create", f"Product #{old['id']}"),
    ]
    new_history = (await queries.list_for_entity(session, product_history, new["id"])).data
    assert [(e.action_type, e.label) for e in new_history] == [("create", "New")]


async def test_customers_for_order_form_carry_contact_fields_only(session):
    await session.execute(insert(tables.customers).values(
        name="Bea", email="bea@example.com", phone="555", address="1 Main St",
        created_at=utcnow(), updated_at=utcnow(),
    ))
    await session.execute(insert(tables.customers).values(
        name="Ada", created_at=utcnow(), updated_at=utcnow(),
    ))
    await session.commit()

    customers = await queries.list_customers_for_order(session)

    assert [c["name"] for c in customers] == ["Ada", "Bea"]
    assert set(customers[1]) == {"id", "name", "email", "phone"}
    assert customers[1]["phone"] == "555"
