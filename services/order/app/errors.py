"""
Order Service — エラー定義

呼び出し側に返す失敗はすべて OrderServiceError の派生クラスで表す。
kind は機械判定用のコード、reason は人間向けの説明。
HTTP 層は status_code をそのままレスポンスに使う。

「存在しない」と「確認できなかった」を区別するため、
外部サービスに到達できなかった場合は *Unavailable 系を投げる。
これらは NotFound 系のサブクラスでもあるので、従来どおり
UserNotFound / ProductInvalid で捕捉するコードはそのまま動く。
"""

from .status import OrderStatus


class OrderServiceError(Exception):
    kind = "ORDER_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.reason}


class OrderValidationError(OrderServiceError):
    """必須項目の欠落、数量 0 以下、負の価格など。"""
    kind = "VALIDATION_ERROR"
    status_code = 400


class UserNotFound(OrderServiceError):
    kind = "USER_NOT_FOUND"
    status_code = 422

    def __init__(self, user_id: str, reason: str | None = None) -> None:
        super().__init__(reason or f"User not found: {user_id}")
        self.user_id = user_id


class ProductInvalid(OrderServiceError):
    kind = "PRODUCT_INVALID"
    status_code = 422

    def __init__(self, product_id: str, reason: str | None = None) -> None:
        super().__init__(reason or f"Invalid product: {product_id}")
        self.product_id = product_id


class OrderNotFound(OrderServiceError):
    kind = "ORDER_NOT_FOUND"
    status_code = 404

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class IllegalTransition(OrderServiceError):
    """状態機械が遷移を拒否した。メッセージに遷移元と遷移先を含める。"""
    kind = "ILLEGAL_TRANSITION"
    status_code = 409

    def __init__(
        self,
        current: OrderStatus,
        requested: OrderStatus,
        reason: str | None = None,
    ) -> None:
        super().__init__(
            reason
            or f"Transition not allowed from {current.value} to {requested.value}"
        )
        self.current = current
        self.requested = requested


class IllegalDeletion(OrderServiceError):
    kind = "ILLEGAL_DELETION"
    status_code = 409


class ConcurrentModification(OrderServiceError):
    """楽観的ロックの競合。読み込んだ後に別のリクエストが更新した。"""
    kind = "CONCURRENT_MODIFICATION"
    status_code = 409

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} was modified concurrently")
        self.order_id = order_id


class TransportUnavailable(OrderServiceError):
    kind = "TRANSPORT_UNAVAILABLE"
    status_code = 503
    retryable = True


class ProductUnavailable(ProductInvalid, TransportUnavailable):
    kind = "PRODUCT_UNAVAILABLE"
    status_code = 503
    retryable = True

    def __init__(self, product_id: str) -> None:
        super().__init__(
            product_id, f"Product service unavailable while checking: {product_id}"
        )


class IdentityUnavailable(UserNotFound, TransportUnavailable):
    kind = "IDENTITY_UNAVAILABLE"
    status_code = 503
    retryable = True

    def __init__(self, user_id: str) -> None:
        super().__init__(
            user_id, f"User service unavailable while checking: {user_id}"
        )
