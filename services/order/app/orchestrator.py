"""
Order Service — 注文オーケストレーター

外部サービス（ユーザー・商品）、状態機械、ストア、イベント発行を組み合わせて
注文のユースケースを実行する。

注文作成のフロー:
  ┌──────────────────────────────────────────────────────────┐
  │  0. 入力の検証（必須項目・数量・価格）                      │
  │  1. Identity Service でユーザーの存在を確認                │
  │  2. 明細ごとに Catalog Service で商品を取得（逐次）         │
  │     └─ 商品名・カテゴリを上書き、価格は未指定時のみ補完     │
  │  3. 合計金額を再計算                                       │
  │  4. PENDING で永続化                                       │
  │  5. CREATED イベントを発行（失敗してもロールバックしない）   │
  └──────────────────────────────────────────────────────────┘

各ステップは次のステップの前提条件。途中で失敗した場合は何も保存しない。
分散トランザクションは使わない。イベント発行はコミット後のベストエフォート。
"""

import logging
from datetime import datetime

from . import queries
from .aggregate import MAX_QUANTITY, Order, OrderItem, to_money
from .clients import CatalogClient, IdentityClient, LookupStatus
from .errors import (
    IdentityUnavailable,
    IllegalDeletion,
    OrderNotFound,
    OrderServiceError,
    OrderValidationError,
    ProductInvalid,
    ProductUnavailable,
    UserNotFound,
)
from .events import EventKind
from .publisher import OrderEventPublisher
from .schemas import CreateOrderRequest, OrderItemRequest
from .status import OrderStatus
from .store import OrderStore

logger = logging.getLogger(__name__)


class OrderOrchestrator:
    """注文ユースケースのオーケストレーター"""

    def __init__(
        self,
        store: OrderStore,
        catalog: CatalogClient,
        identity: IdentityClient,
        publisher: OrderEventPublisher,
    ):
        self.store = store
        self.catalog = catalog
        self.identity = identity
        self.publisher = publisher

    # ── Command (Write 側) ────────────────────────────

    async def create_order(self, draft: CreateOrderRequest) -> Order:
        logger.info("Creating order for user %s", draft.user_id)
        try:
            self._validate_draft(draft)
            await self._check_user(draft.user_id)
            items = [await self._enrich_item(item) for item in draft.items]
            order = Order(
                draft.user_id,
                items,
                shipping_address=draft.shipping_address,
                shipping_city=draft.shipping_city,
                shipping_zip_code=draft.shipping_zip_code,
                shipping_country=draft.shipping_country,
                notes=draft.notes,
            )
        except OrderServiceError as e:
            logger.warning("Order creation rejected for user %s: %s", draft.user_id, e)
            raise

        saved = await self.store.save(order)
        logger.info("Order %s created (total: %s)", saved.id, saved.total_amount)

        await self.publisher.publish(saved, EventKind.CREATED)
        return saved

    async def update_status(self, order_id: str, new_status: OrderStatus) -> Order:
        logger.info("Updating order %s to %s", order_id, new_status.value)
        order = await self._load(order_id)
        try:
            order.transition_to(new_status)
        except OrderServiceError as e:
            logger.warning("Status update rejected for order %s: %s", order_id, e)
            raise

        updated = await self.store.save(order)
        logger.info("Order %s is now %s", order_id, updated.status.value)

        await self.publisher.publish(updated, EventKind.STATUS_UPDATED)
        return updated

    async def cancel_order(self, order_id: str) -> Order:
        logger.info("Cancelling order %s", order_id)
        order = await self._load(order_id)
        try:
            order.cancel()
        except OrderServiceError as e:
            logger.warning("Cancellation rejected for order %s: %s", order_id, e)
            raise

        cancelled = await self.store.save(order)
        logger.info("Order %s cancelled", order_id)

        await self.publisher.publish(cancelled, EventKind.CANCELLED)
        return cancelled

    async def delete_order(self, order_id: str) -> None:
        """配送済み (DELIVERED) の注文は履歴として残すため削除できない。"""
        logger.info("Deleting order %s", order_id)
        order = await self._load(order_id)
        if order.status is OrderStatus.DELIVERED:
            logger.warning("Refusing to delete delivered order %s", order_id)
            raise IllegalDeletion(f"Delivered order {order_id} cannot be deleted")

        # 読み込み後に更新されていれば version 不一致で ConcurrentModification
        if not await self.store.delete_by_id(order_id, order.version):
            # 読み込み後に別リクエストが先に削除した
            raise OrderNotFound(order_id)
        logger.info("Order %s deleted", order_id)

        await self.publisher.publish_deleted(order_id)

    # ── Query (Read 側) ───────────────────────────────

    async def get_order(self, order_id: str) -> Order:
        return await self._load(order_id)

    async def list_orders(self) -> list[Order]:
        return await queries.list_orders(self.store)

    async def orders_for_user(self, user_id: str) -> list[Order]:
        return await queries.orders_for_user(self.store, user_id)

    async def orders_with_status(self, status: OrderStatus) -> list[Order]:
        return await queries.orders_with_status(self.store, status)

    async def orders_containing_product(self, product_id: str) -> list[Order]:
        return await queries.orders_containing_product(self.store, product_id)

    async def orders_between(self, start: datetime, end: datetime) -> list[Order]:
        return await queries.orders_between(self.store, start, end)

    async def stats(self) -> queries.OrderStats:
        return await queries.order_stats(self.store)

    # ── 内部処理 ──────────────────────────────────────

    async def _load(self, order_id: str) -> Order:
        order = await queries.get_order(self.store, order_id)
        if order is None:
            logger.warning("Order %s not found", order_id)
            raise OrderNotFound(order_id)
        return order

    @staticmethod
    def _validate_draft(draft: CreateOrderRequest) -> None:
        """外部サービスに問い合わせる前に、入力だけで判定できる誤りを弾く。"""
        if not draft.user_id or not draft.user_id.strip():
            raise OrderValidationError("User id is required")
        if not draft.items:
            raise OrderValidationError("An order must contain at least one item")
        for item in draft.items:
            if not item.product_id or not item.product_id.strip():
                raise OrderValidationError("Product id is required for every item")
            if item.quantity < 1:
                raise OrderValidationError(
                    f"Quantity must be at least 1 for product: {item.product_id}"
                )
            if item.quantity > MAX_QUANTITY:
                raise OrderValidationError(
                    f"Quantity exceeds {MAX_QUANTITY} for product: {item.product_id}"
                )
            if item.price is not None and to_money(item.price) < 0:
                raise OrderValidationError(
                    f"Unit price cannot be negative for product: {item.product_id}"
                )

    async def _check_user(self, user_id: str) -> None:
        result = await self.identity.probe(user_id)
        if result is LookupStatus.UNAVAILABLE:
            raise IdentityUnavailable(user_id)
        if result is not LookupStatus.FOUND:
            raise UserNotFound(user_id)

    async def _enrich_item(self, draft: OrderItemRequest) -> OrderItem:
        """
        商品情報で明細を補完する。

        商品名・カテゴリは常にカタログの値で上書きする（注文時点のスナップショット）。
        価格は呼び出し側が指定していればそれを優先し、未指定の場合のみ補完する。
        """
        result = await self.catalog.lookup(draft.product_id)
        if result.status is LookupStatus.UNAVAILABLE:
            raise ProductUnavailable(draft.product_id)
        if result.status is not LookupStatus.FOUND:
            raise ProductInvalid(draft.product_id)

        snapshot = result.snapshot
        return OrderItem(
            product_id=draft.product_id,
            product_name=snapshot.name,
            product_category=snapshot.category,
            quantity=draft.quantity,
            price=draft.price if draft.price is not None else snapshot.price,
        )
