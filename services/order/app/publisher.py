"""
Order Service — イベント発行 (Redis Pub/Sub)

注文の変更がコミットされた後に呼ばれ、OrderEvent を
イベント種別ごとのチャネル（ルーティングキー）へ発行する。

発行はベストエフォート: 失敗はログに残すだけで呼び出し側へは伝播しない。
注文レコードが正であり、イベントはその写しに過ぎないため。
確実な配信が必要になったら Outbox パターンを検討する。

購読側は `order.*` をパターン購読すれば全種別を受け取れる。
"""

import logging
from collections.abc import Callable, Mapping
from types import MappingProxyType

import redis.asyncio as aioredis

from .aggregate import Order
from .events import EventKind, OrderEvent

logger = logging.getLogger(__name__)

# 起動時に渡す静的なルーティング表。実行中に書き換えない。
ROUTING_KEYS: Mapping[EventKind, str] = MappingProxyType(
    {
        EventKind.CREATED: "order.created",
        EventKind.STATUS_UPDATED: "order.status.updated",
        EventKind.CANCELLED: "order.cancelled",
        EventKind.DELETED: "order.deleted",
    }
)


class OrderEventPublisher:
    """OrderEvent を Redis に発行する。"""

    def __init__(
        self,
        redis: aioredis.Redis,
        routes: Mapping[EventKind, str] = ROUTING_KEYS,
    ):
        missing = set(EventKind) - set(routes)
        if missing:
            raise ValueError(
                f"No routing key for event kinds: {sorted(k.value for k in missing)}"
            )
        self.redis = redis
        self.routes = MappingProxyType(dict(routes))

    async def publish(self, order: Order, kind: EventKind) -> OrderEvent | None:
        """
        変更後の注文をイベントとして発行する。

        発行できたイベントを返す。失敗時は None（例外は投げない）。
        """
        if kind is EventKind.DELETED:
            return await self.publish_deleted(order.id)
        return await self._send(kind, order.id, lambda: OrderEvent.from_order(order, kind))

    async def publish_deleted(self, order_id: str) -> OrderEvent | None:
        return await self._send(
            EventKind.DELETED, order_id, lambda: OrderEvent.deleted(order_id)
        )

    async def _send(
        self, kind: EventKind, order_id: str | None, build: Callable[[], OrderEvent]
    ) -> OrderEvent | None:
        routing_key = self.routes[kind]
        try:
            event = build()
            await self.redis.publish(routing_key, event.to_payload())
        except Exception:
            logger.exception(
                "Failed to publish %s event for order %s", kind.value, order_id
            )
            return None
        logger.debug("Published %s to %s", event.event_kind.value, routing_key)
        logger.info(
            "Order event %s published for order %s (status: %s)",
            event.event_kind.value,
            event.order_id,
            event.status.value if event.status else "-",
        )
        return event
