"""
Stockroom — FastAPI エントリーポイント

小規模事業者向けの在庫・注文・顧客管理 API。
Command (POST/PATCH/DELETE) と Query (GET) のエンドポイントを分離し、
商品と注文の変更は追記専用の変更履歴に記録する。

  ┌────────┐  /commands  ┌──────────────┐ 1. commit ┌──────────────┐
  │ Client │ ──────────▶ │   commands   │ ────────▶ │ entity store │
  │        │             │              │ 2. append └──────────────┘
  │        │             │              │ ────────▶ ┌──────────────┐
  │        │  /history   ├──────────────┤           │ history log  │
  │        │ ──────────▶ │   queries    │ ◀──────── └──────────────┘
  └────────┘             └──────────────┘
"""

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from . import config, customer_commands, order_commands, product_commands, queries
from .history_store import order_history, product_history
from .results import ErrorKind, Result
from .schemas import (
    CustomerCreate,
    CustomerUpdate,
    OrderCreate,
    OrderUpdate,
    ProductCreate,
    ProductUpdate,
)
from .tables import metadata

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

engine = create_async_engine(config.DATABASE_URL, echo=config.SQL_ECHO)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
redis_pool: aioredis.Redis | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global redis_pool
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    if config.REDIS_URL:
        redis_pool = aioredis.from_url(config.REDIS_URL, decode_responses=True)
    else:
        logger.info("REDIS_URL not set, change notifications disabled")
    yield
    if redis_pool is not None:
        await redis_pool.aclose()
    await engine.dispose()


app = FastAPI(title="Stockroom", lifespan=lifespan)


def _unwrap(result: Result):
    """成功ならデータを返し、失敗なら HTTP エラーに変換する。"""
    if result.success:
        return result.data if result.data is not None else {"success": True}
    status = 404 if result.reason is ErrorKind.NOT_FOUND else 500
    raise HTTPException(status, result.error)


def _history(result: Result) -> dict:
    # 履歴の読み出し失敗は 200 + success=false + 空配列で返す
    return {
        "success": result.success,
        "data": [entry.as_dict() for entry in result.data or []],
        "error": result.error,
    }


# ── Command Endpoints (Write 側) ─────────────────


@app.post("/commands/products")
async def cmd_create_product(req: ProductCreate):
    """商品作成コマンド"""
    async with async_session() as session:
        return _unwrap(await product_commands.create_product(session, redis_pool, req))


@app.patch("/commands/products/{product_id}")
async def cmd_update_product(product_id: int, req: ProductUpdate):
    """商品更新コマンド（送られたフィールドだけを変更）"""
    async with async_session() as session:
        return _unwrap(
            await product_commands.update_product(session, redis_pool, product_id, req)
        )


@app.delete("/commands/products/{product_id}")
async def cmd_delete_product(product_id: int):
    async with async_session() as session:
        return _unwrap(
            await product_commands.delete_product(session, redis_pool, product_id)
        )


@app.post("/commands/orders")
async def cmd_create_order(req: OrderCreate):
    """注文作成コマンド"""
    async with async_session() as session:
        return _unwrap(await order_commands.create_order(session, redis_pool, req))


@app.patch("/commands/orders/{order_id}")
async def cmd_update_order(order_id: int, req: OrderUpdate):
    """注文更新コマンド（明細は id で突き合わせる）"""
    async with async_session() as session:
        return _unwrap(
            await order_commands.update_order(session, redis_pool, order_id, req)
        )


@app.delete("/commands/orders/{order_id}")
async def cmd_delete_order(order_id: int):
    async with async_session() as session:
        return _unwrap(await order_commands.delete_order(session, redis_pool, order_id))


@app.post("/commands/customers")
async def cmd_create_customer(req: CustomerCreate):
    async with async_session() as session:
        return _unwrap(await customer_commands.create_customer(session, redis_pool, req))


@app.patch("/commands/customers/{customer_id}")
async def cmd_update_customer(customer_id: int, req: CustomerUpdate):
    async with async_session() as session:
        return _unwrap(
            await customer_commands.update_customer(session, redis_pool, customer_id, req)
        )


@app.delete("/commands/customers/{customer_id}")
async def cmd_delete_customer(customer_id: int):
    async with async_session() as session:
        return _unwrap(
            await customer_commands.delete_customer(session, redis_pool, customer_id)
        )


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/queries/products")
async def query_list_products():
    async with async_session() as session:
        return await queries.list_products(session)


@app.get("/queries/products/orderable")
async def query_orderable_products():
    """注文フォーム用の商品一覧"""
    async with async_session() as session:
        return await queries.list_orderable_products(session)


@app.get("/queries/products/{product_id}")
async def query_get_product(product_id: int):
    async with async_session() as session:
        product = await queries.get_product(session, product_id)
        if not product:
            raise HTTPException(404, "Product not found")
        return product


@app.get("/queries/categories")
async def query_list_categories():
    async with async_session() as session:
        return await queries.list_categories(session)


@app.get("/queries/suppliers")
async def query_list_suppliers():
    async with async_session() as session:
        return await queries.list_suppliers(session)


@app.get("/queries/orders")
async def query_list_orders():
    async with async_session() as session:
        return await queries.list_orders(session)


@app.get("/queries/orders/{order_id}")
async def query_get_order(order_id: int):
    async with async_session() as session:
        order = await queries.get_order(session, order_id)
        if not order:
            raise HTTPException(404, "Order not found")
        return order


@app.get("/queries/customers")
async def query_list_customers():
    async with async_session() as session:
        return await queries.list_customers(session)


@app.get("/queries/customers/order-form")
async def query_customers_for_order():
    """注文フォーム用の顧客一覧 (id・名前・連絡先のみ)"""
    async with async_session() as session:
        return await queries.list_customers_for_order(session)


@app.get("/queries/customers/{customer_id}")
async def query_get_customer(customer_id: int):
    async with async_session() as session:
        customer = await queries.get_customer(session, customer_id)
        if not customer:
            raise HTTPException(404, "Customer not found")
        return customer


@app.get("/queries/dashboard")
async def query_dashboard():
    """在庫ダッシュボード（最近の動きは直近 RECENT_ACTIVITY_LIMIT 件）"""
    async with async_session() as session:
        return await queries.inventory_stats(
            session, config.LOW_STOCK_THRESHOLD, config.RECENT_ACTIVITY_LIMIT
        )


# ── History Endpoints ────────────────────────────


@app.get("/history/products")
async def history_products(limit: int = Query(config.HISTORY_LIMIT, gt=0)):
    async with async_session() as session:
        return _history(await queries.list_recent(session, product_history, limit))


@app.get("/history/products/{product_id}")
async def history_product(product_id: int):
    async with async_session() as session:
        return _history(await queries.list_for_entity(session, product_history, product_id))


@app.get("/history/orders")
async def history_orders(limit: int = Query(config.HISTORY_LIMIT, gt=0)):
    async with async_session() as session:
        return _history(await queries.list_recent(session, order_history, limit))


@app.get("/history/orders/{order_id}")
async def history_order(order_id: int):
    async with async_session() as session:
        return _history(await queries.list_for_entity(session, order_history, order_id))


@app.get("/health")
async def health():
    return {"status": "ok", "service": "stockroom"}
