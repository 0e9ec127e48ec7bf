from datetime import timedelta
from decimal import Decimal

import pytest

from services.order.app.aggregate import MAX_AMOUNT, MAX_QUANTITY, Order, OrderItem, to_money
from services.order.app.errors import IllegalTransition, OrderValidationError
from services.order.app.status import OrderStatus


def make_order(*items):
    items = items or (OrderItem("p1", 2, "9.99"),)
    return Order("u1", list(items))


class TestOrderItem:

    def test_subtotal(self):
        assert OrderItem("p1", 3, "4.50").subtotal == Decimal("13.50")

    def test_float_price_is_converted_exactly(self):
        assert OrderItem("p1", 1, 0.1).price == Decimal("0.10")

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_rejects_non_positive_quantity(self, quantity):
        with pytest.raises(OrderValidationError, match="Quantity"):
            OrderItem("p1", quantity, "1.00")

    def test_rejects_negative_price(self):
        with pytest.raises(OrderValidationError, match="negative"):
            OrderItem("p1", 1, "-0.01")

    def test_rejects_missing_price(self):
        with pytest.raises(OrderValidationError):
            OrderItem("p1", 1, None)

    def test_rejects_blank_product(self):
        with pytest.raises(OrderValidationError):
            OrderItem("  ", 1, "1.00")

    def test_zero_price_is_allowed(self):
        assert OrderItem("gift", 1, "0").subtotal == Decimal("0.00")

    def test_sub_cent_price_is_rejected_not_rounded(self):
        with pytest.raises(OrderValidationError, match="decimal places"):
            OrderItem("p1", 1000, "1.005")

    def test_trailing_zeros_are_not_sub_cent(self):
        assert OrderItem("p1", 1, "1.500").price == Decimal("1.50")

    def test_quantity_beyond_integer_column_is_rejected(self):
        with pytest.raises(OrderValidationError, match="Quantity exceeds"):
            OrderItem("p1", MAX_QUANTITY + 1, "1.00")

    def test_price_beyond_numeric_column_is_rejected(self):
        assert OrderItem("p1", 1, MAX_AMOUNT).price == MAX_AMOUNT
        with pytest.raises(OrderValidationError, match="exceeds"):
            OrderItem("p1", 1, MAX_AMOUNT + Decimal("0.01"))


class TestOrderTotals:

    def test_total_is_sum_of_subtotals(self):
        order = make_order(OrderItem("p1", 2, "9.99"), OrderItem("p2", 1, "12.50"))
        assert order.total_amount == Decimal("32.48")

    def test_repeated_additions_do_not_drift(self):
        order = make_order(*[OrderItem(f"p{i}", 1, "0.10") for i in range(10)])
        assert order.total_amount == Decimal("1.00")

    def test_replace_items_recalculates_total(self):
        order = make_order()
        before = order.updated_at

        order.replace_items([OrderItem("p2", 4, "12.50")])

        assert order.total_amount == Decimal("50.00")
        assert order.updated_at >= before

    def test_replace_items_rejects_empty(self):
        order = make_order()
        with pytest.raises(OrderValidationError):
            order.replace_items([])
        assert order.total_amount == Decimal("19.98")

    def test_empty_order_is_rejected(self):
        with pytest.raises(OrderValidationError):
            Order("u1", [])

    def test_total_beyond_numeric_column_is_rejected(self):
        with pytest.raises(OrderValidationError, match="total exceeds"):
            make_order(OrderItem("p1", 1_000_000, "100000"))

    def test_total_is_read_only(self):
        order = make_order()
        with pytest.raises(AttributeError):
            order.total_amount = Decimal("1.00")


class TestOrderStatus:

    def test_new_order_is_pending(self):
        order = make_order()
        assert order.status is OrderStatus.PENDING
        assert order.id is None
        assert order.created_at == order.updated_at

    def test_status_cannot_be_assigned_directly(self):
        order = make_order()
        with pytest.raises(AttributeError):
            order.status = OrderStatus.SHIPPED

    def test_transition_refreshes_updated_at(self):
        order = make_order()
        stale = order.updated_at - timedelta(seconds=5)
        order.updated_at = stale
        created_at = order.created_at

        order.transition_to(OrderStatus.CONFIRMED)

        assert order.status is OrderStatus.CONFIRMED
        assert order.updated_at > stale
        assert order.created_at == created_at

    def test_illegal_transition_names_both_statuses(self):
        order = make_order()
        with pytest.raises(IllegalTransition) as exc_info:
            order.transition_to(OrderStatus.SHIPPED)
        assert "PENDING" in exc_info.value.reason
        assert "SHIPPED" in exc_info.value.reason
        assert order.status is OrderStatus.PENDING

    def test_cancel_shipped_order_fails(self):
        order = make_order()
        for status in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED):
            order.transition_to(status)

        with pytest.raises(IllegalTransition):
            order.cancel()
        assert order.status is OrderStatus.SHIPPED

    def test_restore_keeps_persisted_status(self):
        original = make_order()
        restored = Order.restore(
            order_id="o1",
            user_id="u1",
            items=list(original.items),
            status=OrderStatus.DELIVERED,
            created_at=original.created_at,
            updated_at=original.updated_at,
            version=3,
        )
        assert restored.status is OrderStatus.DELIVERED
        assert restored.version == 3


def test_to_money_rejects_garbage():
    with pytest.raises(OrderValidationError):
        to_money("ten dollars")
