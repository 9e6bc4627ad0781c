"""
供应商履约服务测试
"""
import itertools
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from ff_core.models import SupplierOrder
from ff_core.models.enums import SupplierOrderStatus
from ff_core.models.base import utcnow
from ff_core.services.status_flow import SUPPLIER_ORDER_FLOW
from ff_core.utils.errors import (
    ConflictError,
    IllegalTransitionError,
    MissingTrackingNumberError,
    NotFoundError,
    ValidationError,
)


async def _split_single(container, seed, unit_price="100.00", quantity=2, rate="15"):
    supplier = await seed.supplier(commission_rate=rate)
    order = await seed.order([
        {"name": "Robot kit", "unit_price": unit_price, "quantity": quantity, "supplier_id": supplier.id},
    ])
    supplier_orders = await container.fulfillment.split_order(order.id)
    return supplier, order, supplier_orders[0]


async def _advance_through(service, supplier_order_id, statuses, tracking_number="FAN12345678ABCD"):
    result = None
    for status in statuses:
        result = await service.advance_supplier_order(
            supplier_order_id,
            status,
            tracking_number=tracking_number if status == "SHIPPED" else None
        )
    return result


SHIP_PATH = ["CONFIRMED", "IN_PRODUCTION", "READY_TO_SHIP", "SHIPPED"]

# 从 PENDING 推进到每个状态的路径
PATH_TO = {
    "PENDING": [],
    "CONFIRMED": SHIP_PATH[:1],
    "IN_PRODUCTION": SHIP_PATH[:2],
    "READY_TO_SHIP": SHIP_PATH[:3],
    "SHIPPED": SHIP_PATH,
    "DELIVERED": SHIP_PATH + ["DELIVERED"],
    "CANCELLED": ["CANCELLED"],
}

LEGAL_SUPPLIER_ORDER_TRANSITIONS = {
    ("PENDING", "CONFIRMED"), ("PENDING", "CANCELLED"),
    ("CONFIRMED", "IN_PRODUCTION"), ("CONFIRMED", "CANCELLED"),
    ("IN_PRODUCTION", "READY_TO_SHIP"), ("IN_PRODUCTION", "CANCELLED"),
    ("READY_TO_SHIP", "SHIPPED"), ("READY_TO_SHIP", "CANCELLED"),
    ("SHIPPED", "DELIVERED"),
}

ILLEGAL_SUPPLIER_ORDER_TRANSITIONS = [
    pytest.param(current.value, target.value, id=f"{current.value}->{target.value}")
    for current, target in itertools.product(SupplierOrderStatus, SupplierOrderStatus)
    if (current.value, target.value) not in LEGAL_SUPPLIER_ORDER_TRANSITIONS
]


class TestSplitOrder:
    async def test_creates_pending_supplier_order_per_supplier_item(self, container, seed):
        supplier = await seed.supplier(commission_rate="15")
        order = await seed.order([
            {"name": "Robot kit", "unit_price": "100.00", "quantity": 2, "supplier_id": supplier.id},
            {"name": "Puzzle", "unit_price": "19.99", "quantity": 3, "supplier_id": supplier.id},
            {"name": "Gift wrap", "unit_price": "5.00", "quantity": 1},  # 平台自营
        ])

        supplier_orders = await container.fulfillment.split_order(order.id)

        assert len(supplier_orders) == 2
        by_price = {so.unit_price: so for so in supplier_orders}
        robot = by_price[Decimal("100.00")]
        assert robot.status == "PENDING"
        assert robot.total_price == Decimal("200.00")
        assert robot.commission == Decimal("30.00")
        assert robot.supplier_revenue == Decimal("170.00")
        assert robot.commission_rate == Decimal("15")
        puzzle = by_price[Decimal("19.99")]
        assert puzzle.commission + puzzle.supplier_revenue == puzzle.total_price

    async def test_split_is_idempotent(self, container, seed):
        supplier = await seed.supplier()
        order = await seed.order([{"name": "Robot kit", "supplier_id": supplier.id}])

        first = await container.fulfillment.split_order(order.id)
        second = await container.fulfillment.split_order(order.id)

        assert [so.id for so in first] == [so.id for so in second]
        created = [e for e in container.event_bus.events if e[0] == "ff.supplier_order.created"]
        assert len(created) == 1

    async def test_unknown_order(self, container):
        with pytest.raises(NotFoundError):
            await container.fulfillment.split_order("missing")


class TestAdvanceSupplierOrder:
    async def test_full_happy_path(self, container, seed):
        _, _, supplier_order = await _split_single(container, seed)

        result = await _advance_through(
            container.fulfillment, supplier_order.id,
            ["CONFIRMED", "IN_PRODUCTION", "READY_TO_SHIP", "SHIPPED", "DELIVERED"]
        )

        assert result.status == "DELIVERED"
        assert result.tracking_number == "FAN12345678ABCD"
        assert result.shipped_at is not None

    async def test_persists_status_and_notes(self, container, seed):
        _, _, supplier_order = await _split_single(container, seed)

        await container.fulfillment.advance_supplier_order(supplier_order.id, "CONFIRMED", notes="Confirmed by phone")
        stored = await container.fulfillment.get_supplier_order(supplier_order.id)

        assert stored.status == "CONFIRMED"
        assert stored.notes == "Confirmed by phone"
        assert stored.version == supplier_order.version + 1

    @pytest.mark.parametrize("current, target", ILLEGAL_SUPPLIER_ORDER_TRANSITIONS)
    async def test_illegal_transitions_leave_record_unchanged(self, container, seed, current, target):
        _, _, supplier_order = await _split_single(container, seed)
        await _advance_through(container.fulfillment, supplier_order.id, PATH_TO[current])
        before = await container.fulfillment.get_supplier_order(supplier_order.id)
        assert before.status == current

        with pytest.raises(IllegalTransitionError) as exc_info:
            await container.fulfillment.advance_supplier_order(
                supplier_order.id, target, tracking_number="OTHER00000000", notes="should not be saved"
            )

        assert exc_info.value.status == 409
        after = await container.fulfillment.get_supplier_order(supplier_order.id)
        assert after.status == before.status
        assert after.version == before.version
        assert after.tracking_number == before.tracking_number
        assert after.notes == before.notes
        assert after.shipped_at == before.shipped_at

    async def test_tracking_number_is_saved_only_when_shipping(self, container, seed):
        _, _, supplier_order = await _split_single(container, seed)

        confirmed = await container.fulfillment.advance_supplier_order(
            supplier_order.id, "CONFIRMED", tracking_number="EARLY123"
        )
        assert confirmed.status == "CONFIRMED"
        assert confirmed.tracking_number is None

        await _advance_through(
            container.fulfillment, supplier_order.id,
            ["IN_PRODUCTION", "READY_TO_SHIP", "SHIPPED"]
        )
        delivered = await container.fulfillment.advance_supplier_order(
            supplier_order.id, "DELIVERED", tracking_number="OVERWRITE999"
        )

        assert delivered.status == "DELIVERED"
        assert delivered.tracking_number == "FAN12345678ABCD"
        stored = await container.fulfillment.get_supplier_order(supplier_order.id)
        assert stored.tracking_number == "FAN12345678ABCD"

    async def test_shipped_requires_tracking_number(self, container, seed):
        _, _, supplier_order = await _split_single(container, seed)
        await _advance_through(container.fulfillment, supplier_order.id, ["CONFIRMED", "IN_PRODUCTION", "READY_TO_SHIP"])

        for tracking in (None, "", "   "):
            with pytest.raises(MissingTrackingNumberError):
                await container.fulfillment.advance_supplier_order(
                    supplier_order.id, "SHIPPED", tracking_number=tracking
                )

        stored = await container.fulfillment.get_supplier_order(supplier_order.id)
        assert stored.status == "READY_TO_SHIP"
        assert stored.shipped_at is None

    async def test_shipped_is_reached_only_once(self, container, seed):
        _, _, supplier_order = await _split_single(container, seed)
        await _advance_through(
            container.fulfillment, supplier_order.id,
            ["CONFIRMED", "IN_PRODUCTION", "READY_TO_SHIP", "SHIPPED"]
        )
        shipped = await container.fulfillment.get_supplier_order(supplier_order.id)

        with pytest.raises(IllegalTransitionError):
            await container.fulfillment.advance_supplier_order(
                supplier_order.id, "SHIPPED", tracking_number="OTHER00000000"
            )

        await container.fulfillment.advance_supplier_order(supplier_order.id, "DELIVERED")
        delivered = await container.fulfillment.get_supplier_order(supplier_order.id)
        assert delivered.shipped_at == shipped.shipped_at
        assert delivered.tracking_number == "FAN12345678ABCD"

    async def test_unknown_status_is_invalid_input(self, container, seed):
        _, _, supplier_order = await _split_single(container, seed)

        with pytest.raises(ValidationError) as exc_info:
            await container.fulfillment.advance_supplier_order(supplier_order.id, "LOST_AT_SEA")

        assert exc_info.value.code == "INVALID_STATUS"

    async def test_missing_supplier_order(self, container):
        with pytest.raises(NotFoundError):
            await container.fulfillment.advance_supplier_order("missing", "CONFIRMED")

    async def test_publishes_status_changed_event(self, container, seed):
        _, _, supplier_order = await _split_single(container, seed)

        await container.fulfillment.advance_supplier_order(supplier_order.id, "CONFIRMED")

        topic, payload = container.event_bus.events[-1]
        assert topic == "ff.supplier_order.status_changed"
        assert payload["from_status"] == "PENDING"
        assert payload["to_status"] == "CONFIRMED"

    async def test_event_bus_failure_does_not_fail_operation(self, container, seed):
        _, _, supplier_order = await _split_single(container, seed)

        async def broken_publish(topic, payload, key=None):
            raise ConnectionError("redis down")

        container.event_bus.publish = broken_publish

        result = await container.fulfillment.advance_supplier_order(supplier_order.id, "CONFIRMED")
        assert result.status == "CONFIRMED"

    async def test_stale_version_is_reported_as_conflict(self, container):
        async def stale_write(session):
            raise StaleDataError("UPDATE statement on table 'supplier_orders' expected to update 1 row(s); 0 were matched.")

        with pytest.raises(ConflictError) as exc_info:
            await container.fulfillment.execute_with_transaction(stale_write)

        assert exc_info.value.code == "CONCURRENT_UPDATE"


def test_transition_table():
    for current, target in itertools.product(SupplierOrderStatus, SupplierOrderStatus):
        expected = (current.value, target.value) in LEGAL_SUPPLIER_ORDER_TRANSITIONS
        assert SUPPLIER_ORDER_FLOW.can_transition(current.value, target.value) is expected, (current, target)
        if not expected:
            with pytest.raises(IllegalTransitionError):
                SUPPLIER_ORDER_FLOW.validate(current.value, target.value)

    terminal = {s.value for s in SupplierOrderStatus if SUPPLIER_ORDER_FLOW.is_terminal(s)}
    assert terminal == {"DELIVERED", "CANCELLED"}


class TestRevenueSummary:
    async def test_counts_only_confirmed_onwards(self, container, seed):
        supplier = await seed.supplier(commission_rate="15")
        order = await seed.order([
            {"name": "Robot kit", "unit_price": "100.00", "quantity": 2, "supplier_id": supplier.id},
            {"name": "Puzzle", "unit_price": "19.99", "quantity": 3, "supplier_id": supplier.id},
            {"name": "Blocks", "unit_price": "50.00", "quantity": 1, "supplier_id": supplier.id},
        ])
        supplier_orders = await container.fulfillment.split_order(order.id)
        by_price = {so.unit_price: so for so in supplier_orders}

        await container.fulfillment.advance_supplier_order(by_price[Decimal("100.00")].id, "CONFIRMED")
        await _advance_through(
            container.fulfillment, by_price[Decimal("19.99")].id,
            ["CONFIRMED", "IN_PRODUCTION", "READY_TO_SHIP", "SHIPPED"]
        )
        # 50.00 的履约单保持 PENDING，不计入

        summary = await container.fulfillment.supplier_revenue_summary(supplier.id, "30d")

        assert summary["order_count"] == 2
        assert summary["total_units"] == 5
        assert summary["total_revenue"] == Decimal("220.97")
        assert summary["commission_earned"] == Decimal("39.00")
        assert summary["average_order_value"] == Decimal("44.19")
        assert summary["by_status"] == {"CONFIRMED": 1, "SHIPPED": 1}

    async def test_window_excludes_older_orders(self, container, seed, db_manager):
        supplier, _, supplier_order = await _split_single(container, seed)
        await container.fulfillment.advance_supplier_order(supplier_order.id, "CONFIRMED")

        async with db_manager.get_transaction() as session:
            await session.execute(
                update(SupplierOrder)
                .where(SupplierOrder.id == supplier_order.id)
                .values(created_at=utcnow() - timedelta(days=40))
                .execution_options(synchronize_session=False)
            )

        recent = await container.fulfillment.supplier_revenue_summary(supplier.id, "30d")
        quarter = await container.fulfillment.supplier_revenue_summary(supplier.id, "90d")

        assert recent["order_count"] == 0
        assert recent["average_order_value"] == Decimal("0.00")
        assert quarter["order_count"] == 1

    async def test_unknown_period(self, container, seed):
        supplier = await seed.supplier()

        with pytest.raises(ValidationError) as exc_info:
            await container.fulfillment.supplier_revenue_summary(supplier.id, "2w")

        assert exc_info.value.code == "INVALID_PERIOD"
