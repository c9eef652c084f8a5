"""
Stockroom — リクエストモデル

入力の検証はここで完結させる（負の在庫や価格はコマンドに届く前に 422）。
更新用モデルは全フィールド任意。送られたフィールドだけが Patch に入る。
"""

from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


def _reject_nulls(model: BaseModel, names: tuple[str, ...]) -> None:
    for name in names:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{name} cannot be null")


# ── 商品 ─────────────────────────────────────────


class ProductCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    sku: str | None = None
    category_id: int | None = None
    supplier_id: int | None = None
    stock: int = Field(ge=0)
    price: Decimal = Field(ge=0, decimal_places=2)
    cost_price: Decimal = Field(ge=0, decimal_places=2)
    status: str = "In stock"
    image_url: str | None = None


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    sku: str | None = None
    category_id: int | None = None
    supplier_id: int | None = None
    stock: int | None = Field(default=None, ge=0)
    price: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    cost_price: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    status: str | None = None
    image_url: str | None = None

    @model_validator(mode="after")
    def _required_columns(self):
        _reject_nulls(self, ("name", "stock", "price", "cost_price", "status"))
        return self


# ── 注文 ─────────────────────────────────────────


class OrderItemInput(BaseModel):
    """注文明細。id があれば既存明細の更新、なければ新規。"""
    id: int | None = None
    product_id: int
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0, decimal_places=2)


class OrderCreate(BaseModel):
    customer_name: str = Field(min_length=1)
    customer_email: str | None = None
    customer_phone: str | None = None
    status: str = "Pending"
    notes: str | None = None
    items: list[OrderItemInput] = Field(default_factory=list)


class OrderUpdate(BaseModel):
    customer_name: str | None = Field(default=None, min_length=1)
    customer_email: str | None = None
    customer_phone: str | None = None
    status: str | None = None
    notes: str | None = None
    items: list[OrderItemInput] | None = None

    @model_validator(mode="after")
    def _required_columns(self):
        _reject_nulls(self, ("customer_name", "status"))
        return self


# ── 顧客 ─────────────────────────────────────────


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    notes: str | None = None


class CustomerUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def _required_columns(self):
        _reject_nulls(self, ("name",))
        return self
