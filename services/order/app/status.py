"""
Order Service — 注文ステータスの状態機械

ステータス遷移の可否を判定する純粋関数のみを持つ。
I/O も内部状態も持たないので、オーケストレーターは変更前に
必ずここへ問い合わせる。

    PENDING ──▶ CONFIRMED ──▶ PROCESSING ──▶ SHIPPED ──▶ DELIVERED
       │            │              │
       └────────────┴──────────────┴──────▶ CANCELLED

DELIVERED と CANCELLED は終端状態で、出ていく遷移はない。
SHIPPED は終端ではないがキャンセルもできない（配送中のため）。
"""

from enum import Enum
from types import MappingProxyType


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: str) -> "OrderStatus":
        """大文字小文字を区別せずに文字列からステータスを得る。"""
        try:
            return cls(value.strip().upper())
        except (AttributeError, ValueError):
            raise ValueError(f"Unknown order status: {value!r}") from None


_DISPLAY_NAMES = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.CONFIRMED: "Confirmed",
    OrderStatus.PROCESSING: "Processing",
    OrderStatus.SHIPPED: "Shipped",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}

INITIAL_STATUS = OrderStatus.PENDING

FINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

# 自己遷移（同じステータスへの更新）は含まない
ALLOWED_TRANSITIONS: MappingProxyType = MappingProxyType(
    {
        OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
        OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
        OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
        OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
        OrderStatus.DELIVERED: frozenset(),
        OrderStatus.CANCELLED: frozenset(),
    }
)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """current → target の遷移が許可されているか。"""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def is_final(status: OrderStatus) -> bool:
    return status in FINAL_STATUSES


def is_cancellable(status: OrderStatus) -> bool:
    """SHIPPED 以降と CANCELLED はキャンセル不可。"""
    return status not in (
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    )
