"""
Order Service — リクエストモデル

API とオーケストレーターの間で受け渡す入力の形だけを定義する。
業務的な検証（数量・価格・必須項目）はオーケストレーター側で行い、
VALIDATION_ERROR として統一的に返す。
"""

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from .status import OrderStatus


class OrderItemRequest(BaseModel):
    product_id: str
    quantity: int
    # 省略時はカタログの現在価格で補完される
    price: Decimal | None = None


class CreateOrderRequest(BaseModel):
    user_id: str
    items: list[OrderItemRequest] = Field(default_factory=list)
    shipping_address: str | None = None
    shipping_city: str | None = None
    shipping_zip_code: str | None = None
    shipping_country: str | None = None
    notes: str | None = None


class UpdateStatusRequest(BaseModel):
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value):
        if isinstance(value, str):
            return OrderStatus.parse(value)
        return value
