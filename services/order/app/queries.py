"""
Order Service — クエリハンドラ (Read 側)

ストアへの単純な読み出しと、API 向けの dict への変換。
状態機械は関与しない。

集計 (stats) は呼び出し時点で都度数える。キャッシュはしない。
同時に更新が走っている場合、ステータス間で厳密に同じ時点の値になる保証はない。
"""

from datetime import datetime

from pydantic import BaseModel

from .aggregate import Order, as_utc
from .errors import OrderValidationError
from .status import OrderStatus
from .store import OrderStore


class OrderStats(BaseModel):
    total_orders: int
    pending_orders: int
    confirmed_orders: int
    processing_orders: int
    shipped_orders: int
    delivered_orders: int
    cancelled_orders: int


def order_to_dict(order: Order) -> dict:
    """注文を API レスポンス用の dict にする。金額は文字列（Decimal をそのまま表現）。"""
    return {
        "id": order.id,
        "user_id": order.user_id,
        "status": order.status.value,
        "total_amount": str(order.total_amount),
        "items": [
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "product_category": item.product_category,
                "quantity": item.quantity,
                "price": str(item.price),
                "subtotal": str(item.subtotal),
            }
            for item in order.items
        ],
        "shipping_address": order.shipping_address,
        "shipping_city": order.shipping_city,
        "shipping_zip_code": order.shipping_zip_code,
        "shipping_country": order.shipping_country,
        "notes": order.notes,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }


async def get_order(store: OrderStore, order_id: str) -> Order | None:
    return await store.find_by_id(order_id)


async def list_orders(store: OrderStore) -> list[Order]:
    return await store.find_all()


async def orders_for_user(store: OrderStore, user_id: str) -> list[Order]:
    return await store.find_by_user(user_id)


async def orders_with_status(store: OrderStore, status: OrderStatus) -> list[Order]:
    return await store.find_by_status(status)


async def orders_containing_product(store: OrderStore, product_id: str) -> list[Order]:
    return await store.find_by_product(product_id)


async def orders_between(
    store: OrderStore, start: datetime, end: datetime
) -> list[Order]:
    start, end = as_utc(start), as_utc(end)
    if start > end:
        raise OrderValidationError("Start date must not be after end date")
    return await store.find_between(start, end)


async def order_stats(store: OrderStore) -> OrderStats:
    counts = {status: await store.count_by_status(status) for status in OrderStatus}
    return OrderStats(
        total_orders=await store.count(),
        pending_orders=counts[OrderStatus.PENDING],
        confirmed_orders=counts[OrderStatus.CONFIRMED],
        processing_orders=counts[OrderStatus.PROCESSING],
        shipped_orders=counts[OrderStatus.SHIPPED],
        delivered_orders=counts[OrderStatus.DELIVERED],
        cancelled_orders=counts[OrderStatus.CANCELLED],
    )
