"""
Stockroom — テーブル定義

SQLAlchemy Core の MetaData で全テーブルを宣言する。
起動時に create_all でスキーマを作成する（マイグレーションは持たない）。

履歴テーブル (product_history / order_history) の entity_id は
外部キーにしない。エンティティが削除されても履歴は残る。

id を持つテーブルは AUTOINCREMENT で宣言する。SQLite は既定では削除された
最大の id を再利用するため、消えたエンティティの履歴が新しいエンティティに
結び付いてしまう。
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)

metadata = MetaData()

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100), nullable=False),
    Column("description", Text),
)

suppliers = Table(
    "suppliers",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(150), nullable=False),
    Column("contact_name", String(150)),
    Column("email", String(255)),
    Column("phone", String(50)),
    Column("address", Text),
)

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(200), nullable=False),
    Column("description", Text),
    Column("sku", String(100)),
    Column("category_id", Integer, ForeignKey("categories.id")),
    Column("supplier_id", Integer, ForeignKey("suppliers.id")),
    Column("stock", Integer, nullable=False, default=0),
    Column("price", Numeric(10, 2), nullable=False),
    Column("cost_price", Numeric(10, 2), nullable=False),
    Column("status", String(50), nullable=False),
    Column("image_url", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    sqlite_autoincrement=True,
)

customers = Table(
    "customers",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(200), nullable=False),
    Column("email", String(255)),
    Column("phone", String(50)),
    Column("address", Text),
    Column("notes", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    sqlite_autoincrement=True,
)

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("order_number", String(32), nullable=False, unique=True),
    Column("customer_name", String(200), nullable=False),
    Column("customer_email", String(255)),
    Column("customer_phone", String(50)),
    Column("status", String(50), nullable=False),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("notes", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    sqlite_autoincrement=True,
)

order_items = Table(
    "order_items",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "order_id",
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("product_id", Integer, ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("price", Numeric(10, 2), nullable=False),
    Column("subtotal", Numeric(12, 2), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    sqlite_autoincrement=True,
)


def _history_table(name: str) -> Table:
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True),
        Column("entity_id", Integer, nullable=False, index=True),
        Column("action_type", String(16), nullable=False),
        Column("changes", Text, nullable=False),
        Column("created_at", DateTime(timezone=True), nullable=False, index=True),
        sqlite_autoincrement=True,
    )


product_history = _history_table("product_history")
order_history = _history_table("order_history")
