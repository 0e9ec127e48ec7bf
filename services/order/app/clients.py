"""
Order Service — 外部サービスクライアント

商品（Catalog）とユーザー（Identity）は他サービスが所有するデータ。
注文作成時に HTTP で問い合わせて検証・補完する。

どの呼び出しもタイムアウトで上限を設け、呼び出し側に例外を投げない:
    - lookup / probe は FOUND / NOT_FOUND / UNAVAILABLE のいずれかを返す
    - exists は失敗をすべて False に畳み込む（fail-closed）
リトライはこの層では行わない。
"""

import logging
from decimal import Decimal
from enum import Enum
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_TIMEOUT = 5.0
DEFAULT_PROBE_TIMEOUT = 3.0


class LookupStatus(str, Enum):
    FOUND = "FOUND"
    NOT_FOUND = "NOT_FOUND"
    UNAVAILABLE = "UNAVAILABLE"


class ProductSnapshot(BaseModel):
    """カタログから取得した商品情報（取得時点のスナップショット）"""
    id: str
    name: str
    category: str | None = None
    price: Decimal
    stock: int | None = None


class ProductLookup(BaseModel):
    status: LookupStatus
    snapshot: ProductSnapshot | None = None

    @classmethod
    def found(cls, snapshot: ProductSnapshot) -> "ProductLookup":
        return cls(status=LookupStatus.FOUND, snapshot=snapshot)

    @classmethod
    def not_found(cls) -> "ProductLookup":
        return cls(status=LookupStatus.NOT_FOUND)

    @classmethod
    def unavailable(cls) -> "ProductLookup":
        return cls(status=LookupStatus.UNAVAILABLE)


def _path_id(value: str) -> str:
    return quote(str(value), safe="")


class CatalogClient:
    """商品サービスへのクライアント"""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.lookup_timeout = lookup_timeout
        self.probe_timeout = probe_timeout

    async def lookup(self, product_id: str) -> ProductLookup:
        """
        商品情報を取得する。

        404、空ボディ、JSON の null → NOT_FOUND
        タイムアウト・通信エラー・その他の HTTP エラー・不正なボディ → UNAVAILABLE
        """
        logger.info("Looking up product %s", product_id)
        url = f"{self.base_url}/api/products/internal/{_path_id(product_id)}"
        try:
            resp = await self.http.get(url, timeout=self.lookup_timeout)
            if resp.status_code == 404:
                logger.warning("Product %s not found in catalog", product_id)
                return ProductLookup.not_found()
            resp.raise_for_status()
            body = resp.json() if resp.content.strip() else None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Catalog lookup failed for product %s: %s", product_id, e)
            return ProductLookup.unavailable()

        if body is None:
            logger.warning("Catalog returned no body for product %s", product_id)
            return ProductLookup.not_found()

        try:
            snapshot = ProductSnapshot.model_validate(body)
        except ValidationError as e:
            logger.warning("Malformed catalog response for product %s: %s", product_id, e)
            return ProductLookup.unavailable()
        return ProductLookup.found(snapshot)

    async def exists(self, product_id: str) -> bool:
        """軽量な存在確認。エラーはすべて False。"""
        logger.info("Checking existence of product %s", product_id)
        url = f"{self.base_url}/api/products/{_path_id(product_id)}"
        try:
            resp = await self.http.get(url, timeout=self.probe_timeout)
        except httpx.HTTPError as e:
            logger.warning("Product existence check failed for %s: %s", product_id, e)
            return False
        return resp.is_success


class IdentityClient:
    """ユーザーサービスへのクライアント"""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
    ):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def probe(self, user_id: str) -> LookupStatus:
        """ユーザーの存在を確認し、到達不能を NOT_FOUND と区別して返す。"""
        logger.info("Checking existence of user %s", user_id)
        url = f"{self.base_url}/api/users/{_path_id(user_id)}"
        try:
            resp = await self.http.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning("User existence check failed for %s: %s", user_id, e)
            return LookupStatus.UNAVAILABLE

        if resp.is_success:
            return LookupStatus.FOUND
        if resp.status_code == 404:
            return LookupStatus.NOT_FOUND
        logger.warning(
            "User service answered %s for user %s", resp.status_code, user_id
        )
        return LookupStatus.UNAVAILABLE

    async def exists(self, user_id: str) -> bool:
        return await self.probe(user_id) is LookupStatus.FOUND
