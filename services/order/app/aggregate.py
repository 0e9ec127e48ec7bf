"""
Order Service — 注文集約 (Order Aggregate)

集約ルート Order と、その中に埋め込まれる値 OrderItem。

不変条件:
    - total_amount は常に Σ(price × quantity) と一致する（派生値）
    - items は空にできない
    - status は状態機械の判定を経由してのみ変更される

商品名・カテゴリは注文時点のスナップショット。
商品マスタが後で変わっても更新しない（注文履歴の再現性を優先）。
"""

from datetime import datetime, timezone
from decimal import Decimal

from . import status as state_machine
from .errors import IllegalTransition, OrderValidationError
from .status import OrderStatus

CENT = Decimal("0.01")

# orders.total_amount / order_items.price は NUMERIC(12,2)、quantity は INTEGER
MAX_AMOUNT = Decimal("9999999999.99")
MAX_QUANTITY = 2**31 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # タイムゾーン無しの値は UTC とみなす（SQLite はタイムゾーンを保持しない）
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_money(value) -> Decimal:
    """
    金額を Decimal（セント単位）に正規化する。float は文字列経由で変換。

    セント未満の桁を持つ値や上限を超える値は丸めずに拒否する。
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (ArithmeticError, TypeError, ValueError):
        raise OrderValidationError(f"Invalid amount: {value!r}") from None
    if not amount.is_finite():
        raise OrderValidationError(f"Invalid amount: {value!r}")
    try:
        cents = amount.quantize(CENT)
    except ArithmeticError:
        raise OrderValidationError(f"Invalid amount: {value!r}") from None
    if cents != amount:
        raise OrderValidationError(f"Amount has more than two decimal places: {value!r}")
    if abs(cents) > MAX_AMOUNT:
        raise OrderValidationError(f"Amount exceeds {MAX_AMOUNT}: {value!r}")
    return cents


class OrderItem:
    """注文明細。単独では永続化されず、常に Order の一部として扱う。"""

    def __init__(
        self,
        product_id: str,
        quantity: int,
        price,
        product_name: str | None = None,
        product_category: str | None = None,
    ) -> None:
        if not product_id or not str(product_id).strip():
            raise OrderValidationError("Product id is required")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise OrderValidationError(
                f"Quantity must be at least 1 for product: {product_id}"
            )
        if quantity > MAX_QUANTITY:
            raise OrderValidationError(
                f"Quantity exceeds {MAX_QUANTITY} for product: {product_id}"
            )
        if price is None:
            raise OrderValidationError(f"Price is required for product: {product_id}")
        price = to_money(price)
        if price < 0:
            raise OrderValidationError(
                f"Unit price cannot be negative for product: {product_id}"
            )

        self.product_id = product_id
        self.product_name = product_name
        self.product_category = product_category
        self.quantity = quantity
        self.price = price

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity

    def __repr__(self) -> str:
        return (
            f"OrderItem(product_id={self.product_id!r}, quantity={self.quantity}, "
            f"price={self.price})"
        )


class Order:
    """
    注文集約。

    status の変更は transition_to() / cancel() のみ。
    どちらも状態機械で可否を確認してから書き換える。
    DB からの復元は restore() を使う（遷移ではないので検証しない）。
    """

    def __init__(
        self,
        user_id: str,
        items: list[OrderItem],
        shipping_address: str | None = None,
        shipping_city: str | None = None,
        shipping_zip_code: str | None = None,
        shipping_country: str | None = None,
        notes: str | None = None,
    ) -> None:
        if not user_id or not str(user_id).strip():
            raise OrderValidationError("User id is required")

        now = utcnow()
        self.id: str | None = None
        self.user_id = user_id
        self._status = state_machine.INITIAL_STATUS
        self._items: tuple[OrderItem, ...] = ()
        self._total_amount = Decimal("0.00")
        self.created_at = now
        self.updated_at = now
        self.shipping_address = shipping_address
        self.shipping_city = shipping_city
        self.shipping_zip_code = shipping_zip_code
        self.shipping_country = shipping_country
        self.notes = notes
        self.version = 0
        self._set_items(items)

    # ── 復元 ────────────────────────────────────────

    @classmethod
    def restore(
        cls,
        order_id: str,
        user_id: str,
        items: list[OrderItem],
        status: OrderStatus,
        created_at: datetime,
        updated_at: datetime,
        version: int,
        **details,
    ) -> "Order":
        """永続化済みの注文を再構築する。ストア専用。"""
        order = cls(user_id, items, **details)
        order.id = order_id
        order._status = OrderStatus(status)
        order.created_at = created_at
        order.updated_at = updated_at
        order.version = version
        return order

    # ── 明細と合計 ──────────────────────────────────

    @property
    def items(self) -> tuple[OrderItem, ...]:
        return self._items

    @property
    def total_amount(self) -> Decimal:
        return self._total_amount

    def replace_items(self, items: list[OrderItem]) -> None:
        """明細を差し替え、合計を再計算して updated_at を更新する。"""
        self._set_items(items)
        self.updated_at = utcnow()

    def _set_items(self, items: list[OrderItem]) -> None:
        items = tuple(items or ())
        if not items:
            raise OrderValidationError("An order must contain at least one item")
        total = sum((item.subtotal for item in items), Decimal("0.00"))
        if total > MAX_AMOUNT:
            raise OrderValidationError(f"Order total exceeds {MAX_AMOUNT}: {total}")
        self._items = items
        self._total_amount = total

    # ── ステータス ──────────────────────────────────

    @property
    def status(self) -> OrderStatus:
        return self._status

    def transition_to(self, target: OrderStatus) -> None:
        if not state_machine.can_transition(self._status, target):
            raise IllegalTransition(self._status, target)
        self._status = target
        self.updated_at = utcnow()

    def cancel(self) -> None:
        if not state_machine.is_cancellable(self._status):
            raise IllegalTransition(
                self._status,
                OrderStatus.CANCELLED,
                f"Order with status {self._status.value} cannot be cancelled",
            )
        self._status = OrderStatus.CANCELLED
        self.updated_at = utcnow()

    def __repr__(self) -> str:
        return (
            f"Order(id={self.id!r}, user_id={self.user_id!r}, "
            f"status={self._status.value}, total_amount={self._total_amount})"
        )
