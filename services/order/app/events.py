"""
Order Service — イベント定義

注文の状態変更ごとに他サービスへ通知するイベント。
イベントは過去の事実なので不変(frozen)として扱い、
明細も Order とは構造を共有しない平坦なコピーで持つ。

ワイヤ形式は camelCase の JSON:
    {orderId, userId, status, totalAmount,
     items: [{productId, productName, quantity, unitPrice}],
     eventKind, timestamp}
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .aggregate import Order, OrderItem
from .status import OrderStatus


class EventKind(str, Enum):
    CREATED = "CREATED"
    STATUS_UPDATED = "STATUS_UPDATED"
    CANCELLED = "CANCELLED"
    DELETED = "DELETED"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class OrderItemEvent(_WireModel):
    product_id: str
    product_name: str | None = None
    quantity: int
    unit_price: Decimal

    @classmethod
    def from_item(cls, item: OrderItem) -> "OrderItemEvent":
        return cls(
            product_id=item.product_id,
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price=item.price,
        )


class OrderEvent(_WireModel):
    order_id: str
    user_id: str | None = None
    status: OrderStatus | None = None
    total_amount: Decimal | None = None
    items: tuple[OrderItemEvent, ...] = ()
    event_kind: EventKind
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_order(cls, order: Order, kind: EventKind) -> "OrderEvent":
        """変更後の Order からイベントのスナップショットを作る。"""
        return cls(
            order_id=order.id,
            user_id=order.user_id,
            status=order.status,
            total_amount=order.total_amount,
            items=tuple(OrderItemEvent.from_item(item) for item in order.items),
            event_kind=kind,
        )

    @classmethod
    def deleted(cls, order_id: str) -> "OrderEvent":
        """削除イベント。レコードは既に無いので ID のみ持つ。"""
        return cls(order_id=order_id, event_kind=EventKind.DELETED)

    def to_payload(self) -> str:
        return self.model_dump_json(by_alias=True)
