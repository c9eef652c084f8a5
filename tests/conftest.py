"""
共通フィクスチャ

各テストは一時ディレクトリの SQLite (aiosqlite) に新しいスキーマを作って動く。
stockroom.main は import 時に DATABASE_URL を読むので、先に環境変数を設定する。
"""

import os
import tempfile
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

_API_DB_DIR = Path(tempfile.mkdtemp(prefix="stockroom-api-"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_API_DB_DIR / 'api.db'}")

from stockroom import store, tables  # noqa: E402
from stockroom.tables import metadata  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'stockroom.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session


@pytest.fixture
async def catalog(session):
    """カテゴリ 1 件・仕入先 1 件・商品 A/B/C を用意する。"""
    result = await session.execute(
        tables.categories.insert().values(name="Tools").returning(tables.categories.c.id)
    )
    category_id = result.scalar_one()
    result = await session.execute(
        tables.suppliers.insert().values(name="Acme").returning(tables.suppliers.c.id)
    )
    supplier_id = result.scalar_one()

    products = {}
    for key, name, price in (("a", "Hammer", "3.00"), ("b", "Wrench", "5.00"), ("c", "Pliers", "4.00")):
        product = await store.products.create(session, {
            "name": name,
            "sku": f"SKU-{key.upper()}",
            "category_id": category_id,
            "supplier_id": supplier_id,
            "stock": 20,
            "price": Decimal(price),
            "cost_price": Decimal("1.00"),
            "status": "In stock",
        })
        products[key] = product["id"]
    await session.commit()
    return {"category_id": category_id, "supplier_id": supplier_id, **products}


@pytest.fixture
def drop_table(engine):
    """テーブルを削除して、そのテーブルへの書き込みを確実に失敗させる。"""
    async def _drop(table):
        async with engine.begin() as conn:
            await conn.run_sync(table.drop)
    return _drop
