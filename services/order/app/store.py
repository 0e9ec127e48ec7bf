"""
Order Service — 注文ストア

注文レコードの永続化だけを担当し、業務ルールは持たない。
OrderStore が契約で、SqlOrderStore が SQLAlchemy (async) による実装。

テーブル構成:
    orders       — 注文 1 件 = 1 行
    order_items  — 明細（order_id + position で順序を保持）

バージョン番号による楽観的ロックで同時書き込みを防ぐ:
UPDATE は読み込んだ時点の version と一致した行だけを更新し、
0 行なら別のリクエストが先に更新したとみなして ConcurrentModification を投げる。
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

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
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker

from .aggregate import Order, OrderItem, as_utc
from .errors import ConcurrentModification
from .status import OrderStatus

logger = logging.getLogger(__name__)

metadata = MetaData()

orders_table = Table(
    "orders",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("status", String(16), nullable=False, index=True),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("shipping_address", String(255)),
    Column("shipping_city", String(100)),
    Column("shipping_zip_code", String(20)),
    Column("shipping_country", String(100)),
    Column("notes", Text),
    Column("version", Integer, nullable=False),
)

order_items_table = Table(
    "order_items",
    metadata,
    Column("order_id", String(36), ForeignKey("orders.id"), primary_key=True),
    Column("position", Integer, primary_key=True),
    Column("product_id", String(64), nullable=False, index=True),
    Column("product_name", String(255)),
    Column("product_category", String(100)),
    Column("quantity", Integer, nullable=False),
    Column("price", Numeric(12, 2), nullable=False),
)


class OrderStore(ABC):
    """注文ストアの契約。キーは不透明な一意 ID。"""

    async def init_schema(self) -> None:
        """必要ならテーブルを作成する。"""

    @abstractmethod
    async def save(self, order: Order) -> Order:
        """新規なら ID を採番して挿入、既存なら version を確認して更新する。"""

    @abstractmethod
    async def find_by_id(self, order_id: str) -> Order | None: ...

    @abstractmethod
    async def find_all(self) -> list[Order]: ...

    @abstractmethod
    async def find_by_user(self, user_id: str) -> list[Order]: ...

    @abstractmethod
    async def find_by_status(self, status: OrderStatus) -> list[Order]: ...

    @abstractmethod
    async def find_between(self, start: datetime, end: datetime) -> list[Order]: ...

    @abstractmethod
    async def find_by_product(self, product_id: str) -> list[Order]: ...

    @abstractmethod
    async def count(self) -> int: ...

    @abstractmethod
    async def count_by_status(self, status: OrderStatus) -> int: ...

    @abstractmethod
    async def delete_by_id(self, order_id: str, version: int) -> bool:
        """
        version が一致する場合のみ削除する。

        行が無ければ False、version が異なれば ConcurrentModification。
        """


def _order_values(order: Order) -> dict:
    return {
        "user_id": order.user_id,
        "status": order.status.value,
        "total_amount": order.total_amount,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "shipping_address": order.shipping_address,
        "shipping_city": order.shipping_city,
        "shipping_zip_code": order.shipping_zip_code,
        "shipping_country": order.shipping_country,
        "notes": order.notes,
    }


def _item_rows(order_id: str, items) -> list[dict]:
    return [
        {
            "order_id": order_id,
            "position": position,
            "product_id": item.product_id,
            "product_name": item.product_name,
            "product_category": item.product_category,
            "quantity": item.quantity,
            "price": item.price,
        }
        for position, item in enumerate(items)
    ]


class SqlOrderStore(OrderStore):
    def __init__(self, session_factory: sessionmaker, engine: AsyncEngine | None = None):
        self.session_factory = session_factory
        self.engine = engine

    async def init_schema(self) -> None:
        if self.engine is None:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    # ── 書き込み ────────────────────────────────────

    async def save(self, order: Order) -> Order:
        is_new = order.id is None
        order_id = order.id or str(uuid4())
        new_version = order.version + 1

        async with self.session_factory() as session:
            async with session.begin():
                if is_new:
                    await session.execute(
                        insert(orders_table).values(
                            id=order_id, version=new_version, **_order_values(order)
                        )
                    )
                else:
                    result = await session.execute(
                        update(orders_table)
                        .where(orders_table.c.id == order_id)
                        .where(orders_table.c.version == order.version)
                        .values(version=new_version, **_order_values(order))
                    )
                    if result.rowcount == 0:
                        logger.warning(
                            "Stale write rejected for order %s (version %s)",
                            order_id,
                            order.version,
                        )
                        raise ConcurrentModification(order_id)
                    await session.execute(
                        delete(order_items_table).where(
                            order_items_table.c.order_id == order_id
                        )
                    )
                await session.execute(
                    insert(order_items_table), _item_rows(order_id, order.items)
                )

        order.id = order_id
        order.version = new_version
        return order

    async def delete_by_id(self, order_id: str, version: int) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(order_items_table).where(
                        order_items_table.c.order_id == order_id
                    )
                )
                result = await session.execute(
                    delete(orders_table)
                    .where(orders_table.c.id == order_id)
                    .where(orders_table.c.version == version)
                )
                if result.rowcount == 0:
                    current = await session.scalar(
                        select(orders_table.c.version).where(orders_table.c.id == order_id)
                    )
                    if current is not None:
                        logger.warning(
                            "Stale delete rejected for order %s (version %s, current %s)",
                            order_id,
                            version,
                            current,
                        )
                        # 明細の削除も含めてロールバックされる
                        raise ConcurrentModification(order_id)
                    return False
        return True

    # ── 読み出し ────────────────────────────────────

    async def find_by_id(self, order_id: str) -> Order | None:
        orders = await self._query(
            select(orders_table).where(orders_table.c.id == order_id)
        )
        return orders[0] if orders else None

    async def find_all(self) -> list[Order]:
        return await self._query(
            select(orders_table).order_by(orders_table.c.created_at.desc())
        )

    async def find_by_user(self, user_id: str) -> list[Order]:
        return await self._query(
            select(orders_table)
            .where(orders_table.c.user_id == user_id)
            .order_by(orders_table.c.created_at.desc())
        )

    async def find_by_status(self, status: OrderStatus) -> list[Order]:
        return await self._query(
            select(orders_table)
            .where(orders_table.c.status == OrderStatus(status).value)
            .order_by(orders_table.c.created_at.desc())
        )

    async def find_between(self, start: datetime, end: datetime) -> list[Order]:
        return await self._query(
            select(orders_table)
            .where(orders_table.c.created_at >= as_utc(start))
            .where(orders_table.c.created_at <= as_utc(end))
            .order_by(orders_table.c.created_at.asc())
        )

    async def find_by_product(self, product_id: str) -> list[Order]:
        containing = (
            select(order_items_table.c.order_id)
            .where(order_items_table.c.product_id == product_id)
            .distinct()
        )
        return await self._query(
            select(orders_table)
            .where(orders_table.c.id.in_(containing))
            .order_by(orders_table.c.created_at.desc())
        )

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(orders_table)
            )
            return result.scalar_one()

    async def count_by_status(self, status: OrderStatus) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(orders_table)
                .where(orders_table.c.status == OrderStatus(status).value)
            )
            return result.scalar_one()

    async def _query(self, statement) -> list[Order]:
        async with self.session_factory() as session:
            rows = (await session.execute(statement)).fetchall()
            if not rows:
                return []
            items_by_order = await self._load_items(session, [row.id for row in rows])
        return [self._to_order(row, items_by_order.get(row.id, [])) for row in rows]

    async def _load_items(
        self, session: AsyncSession, order_ids: list[str]
    ) -> dict[str, list[OrderItem]]:
        result = await session.execute(
            select(order_items_table)
            .where(order_items_table.c.order_id.in_(order_ids))
            .order_by(order_items_table.c.order_id, order_items_table.c.position)
        )
        items: dict[str, list[OrderItem]] = {}
        for row in result.fetchall():
            items.setdefault(row.order_id, []).append(
                OrderItem(
                    product_id=row.product_id,
                    product_name=row.product_name,
                    product_category=row.product_category,
                    quantity=row.quantity,
                    price=Decimal(str(row.price)),
                )
            )
        return items

    @staticmethod
    def _to_order(row, items: list[OrderItem]) -> Order:
        return Order.restore(
            order_id=row.id,
            user_id=row.user_id,
            items=items,
            status=OrderStatus(row.status),
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
            version=row.version,
            shipping_address=row.shipping_address,
            shipping_city=row.shipping_city,
            shipping_zip_code=row.shipping_zip_code,
            shipping_country=row.shipping_country,
            notes=row.notes,
        )
