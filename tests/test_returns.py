"""
退货申请服务测试（状态变更与退款）
"""
import itertools
from datetime import timedelta

import pytest
from sqlalchemy import update

from ff_core.gateways import RefundOutcome
from ff_core.models import ReturnRequest
from ff_core.models.base import utcnow
from ff_core.models.enums import ReturnStatus
from ff_core.services.returns import ReturnsService
from ff_core.services.status_flow import RETURN_FLOW
from ff_core.utils.errors import (
    ConflictError,
    GatewayError,
    IllegalTransitionError,
    NotFoundError,
    ValidationError,
)

LEGAL_RETURN_TRANSITIONS = {
    ("PENDING", "APPROVED"), ("PENDING", "REJECTED"),
    ("APPROVED", "RECEIVED"),
    ("RECEIVED", "REFUNDED"),
}

ILLEGAL_RETURN_TRANSITIONS = [
    pytest.param(current.value, target.value, id=f"{current.value}->{target.value}")
    for current, target in itertools.product(ReturnStatus, ReturnStatus)
    if (current.value, target.value) not in LEGAL_RETURN_TRANSITIONS
]


async def _seed_return(seed, status="PENDING", reason="DAMAGED_OR_DEFECTIVE"):
    order = await seed.order([{"name": "Robot kit", "unit_price": "100.00", "quantity": 1}])
    return await seed.return_request(order, order.items[0], reason=reason, status=status)


async def _set_refund_requested_at(db_manager, return_id, requested_at):
    async with db_manager.get_transaction() as session:
        await session.execute(
            update(ReturnRequest)
            .where(ReturnRequest.id == return_id)
            .values(refund_requested_at=requested_at)
            .execution_options(synchronize_session=False)
        )


class TestTransitionStatus:
    async def test_reject_pending_return(self, container, seed):
        return_request = await _seed_return(seed)

        result = await container.returns.transition_status(return_request.id, "REJECTED")

        assert result.status == "REJECTED"
        stored = await container.returns.get_return(return_request.id)
        assert stored.status == "REJECTED"
        assert container.event_bus.topics() == ["ff.returns.status_changed"]

    async def test_receive_approved_return_stamps_received_at(self, container, seed):
        return_request = await _seed_return(seed, status="APPROVED")

        result = await container.returns.transition_status(return_request.id, "RECEIVED")

        assert result.status == "RECEIVED"
        assert result.received_at is not None

    @pytest.mark.parametrize("target", ["APPROVED", "REFUNDED"])
    async def test_dedicated_targets_are_refused(self, container, seed, target):
        return_request = await _seed_return(seed)

        with pytest.raises(ValidationError) as exc_info:
            await container.returns.transition_status(return_request.id, target)

        assert exc_info.value.code == "USE_DEDICATED_OPERATION"
        stored = await container.returns.get_return(return_request.id)
        assert stored.status == "PENDING"

    @pytest.mark.parametrize("current, target", ILLEGAL_RETURN_TRANSITIONS)
    async def test_illegal_transitions_leave_record_unchanged(self, container, seed, refund_gateway, current, target):
        return_request = await _seed_return(seed, status=current)
        before = await container.returns.get_return(return_request.id)

        if target == "APPROVED":
            # 批准只能走合并批准：非 PENDING 的申请被跳过
            summary = await container.consolidator.bulk_approve([return_request.id])
            assert summary.skipped == {return_request.id: "NOT_PENDING"}
        elif target == "REFUNDED":
            with pytest.raises(IllegalTransitionError):
                await container.returns.refund_return(return_request.id)
            assert refund_gateway.calls == []
        else:
            with pytest.raises(IllegalTransitionError) as exc_info:
                await container.returns.transition_status(return_request.id, target)
            assert exc_info.value.status == 409

        after = await container.returns.get_return(return_request.id)
        assert after.status == current
        assert after.version == before.version
        assert after.tracking_number is None
        assert after.refund_status is None
        assert after.refund_requested_at is None

    async def test_unknown_status(self, container, seed):
        return_request = await _seed_return(seed)

        with pytest.raises(ValidationError) as exc_info:
            await container.returns.transition_status(return_request.id, "LOST")

        assert exc_info.value.code == "INVALID_STATUS"

    async def test_unknown_return(self, container):
        with pytest.raises(NotFoundError):
            await container.returns.transition_status("missing", "REJECTED")


class TestRefund:
    async def test_successful_refund(self, container, seed, refund_gateway):
        return_request = await _seed_return(seed, status="RECEIVED")

        result = await container.returns.refund_return(return_request.id)

        assert result.status == "REFUNDED"
        assert result.refund_status == "SUCCESS"
        assert result.refund_error is None
        assert result.refunded_at is not None
        assert result.refund_requested_at is not None
        assert refund_gateway.calls == [return_request.id]
        assert container.event_bus.topics() == ["ff.returns.refunded"]

    async def test_declined_refund_is_recorded_as_failed(self, container, seed, refund_gateway):
        refund_gateway.outcome = RefundOutcome(success=False, reason="Card expired")
        return_request = await _seed_return(seed, status="RECEIVED")

        result = await container.returns.refund_return(return_request.id)

        assert result.status == "REFUNDED"
        assert result.refund_status == "FAILED"
        assert result.refund_error == "Card expired"

    async def test_gateway_error_is_recorded_as_failed(self, container, seed, refund_gateway):
        refund_gateway.error = GatewayError(detail="Refund service returned HTTP 503")
        return_request = await _seed_return(seed, status="RECEIVED")

        result = await container.returns.refund_return(return_request.id)

        assert result.refund_status == "FAILED"
        assert result.refund_error == "Refund service returned HTTP 503"

    async def test_unexpected_exception_is_recorded_as_failed(self, container, seed, refund_gateway):
        refund_gateway.error = RuntimeError("socket closed")
        return_request = await _seed_return(seed, status="RECEIVED")

        result = await container.returns.refund_return(return_request.id)

        assert result.refund_status == "FAILED"
        assert result.refund_error == "socket closed"

    async def test_timeout_is_recorded_as_pending(self, container, seed, refund_gateway):
        refund_gateway.delay = 1.0
        return_request = await _seed_return(seed, status="RECEIVED")

        result = await container.returns.refund_return(return_request.id)

        assert result.status == "REFUNDED"
        assert result.refund_status == "PENDING"
        assert "did not answer" in result.refund_error

    async def test_second_refund_is_refused_while_first_is_in_flight(self, container, seed, refund_gateway):
        return_request = await _seed_return(seed, status="RECEIVED")
        observed = {}

        async def refund_again(return_id):
            with pytest.raises(ConflictError) as exc_info:
                await container.returns.refund_return(return_id)
            observed["code"] = exc_info.value.code
            in_flight = await container.returns.get_return(return_id)
            observed["status"] = in_flight.status
            observed["claimed"] = in_flight.refund_requested_at is not None

        refund_gateway.during_refund = refund_again

        result = await container.returns.refund_return(return_request.id)

        assert observed == {"code": "REFUND_IN_PROGRESS", "status": "RECEIVED", "claimed": True}
        assert result.status == "REFUNDED"
        assert result.refund_status == "SUCCESS"
        assert refund_gateway.calls == [return_request.id]

    async def test_fresh_claim_blocks_refund(self, container, seed, refund_gateway, db_manager):
        return_request = await _seed_return(seed, status="RECEIVED")
        await _set_refund_requested_at(db_manager, return_request.id, utcnow())

        with pytest.raises(ConflictError) as exc_info:
            await container.returns.refund_return(return_request.id)

        assert exc_info.value.code == "REFUND_IN_PROGRESS"
        assert refund_gateway.calls == []

    async def test_stale_claim_can_be_retried(self, container, seed, refund_gateway, db_manager):
        return_request = await _seed_return(seed, status="RECEIVED")
        await _set_refund_requested_at(db_manager, return_request.id, utcnow() - timedelta(hours=1))

        result = await container.returns.refund_return(return_request.id)

        assert result.status == "REFUNDED"
        assert result.refund_status == "SUCCESS"
        assert refund_gateway.calls == [return_request.id]

    async def test_change_during_refund_keeps_claim(self, container, seed, refund_gateway, db_manager):
        return_request = await _seed_return(seed, status="RECEIVED")

        async def concurrent_write(return_id):
            async with db_manager.get_transaction() as session:
                await session.execute(
                    update(ReturnRequest)
                    .where(ReturnRequest.id == return_id)
                    .values(version=ReturnRequest.version + 1)
                    .execution_options(synchronize_session=False)
                )

        refund_gateway.during_refund = concurrent_write

        with pytest.raises(ConflictError) as exc_info:
            await container.returns.refund_return(return_request.id)

        assert exc_info.value.code == "REFUND_CLAIM_LOST"
        stored = await container.returns.get_return(return_request.id)
        assert stored.status == "RECEIVED"
        assert stored.refund_status is None
        assert stored.refund_requested_at is not None
        assert "ff.returns.refunded" not in container.event_bus.topics()

    async def test_refund_without_gateway(self, db_manager, seed):
        service = ReturnsService(db_manager)
        return_request = await _seed_return(seed, status="RECEIVED")

        with pytest.raises(ValidationError) as exc_info:
            await service.refund_return(return_request.id)

        assert exc_info.value.code == "REFUND_GATEWAY_NOT_CONFIGURED"

    async def test_refund_unknown_return(self, container):
        with pytest.raises(NotFoundError):
            await container.returns.refund_return("missing")


def test_return_transition_table():
    for current, target in itertools.product(ReturnStatus, ReturnStatus):
        expected = (current.value, target.value) in LEGAL_RETURN_TRANSITIONS
        assert RETURN_FLOW.can_transition(current.value, target.value) is expected, (current, target)
        if not expected:
            with pytest.raises(IllegalTransitionError):
                RETURN_FLOW.validate(current.value, target.value)

    terminal = {s.value for s in ReturnStatus if RETURN_FLOW.is_terminal(s)}
    assert terminal == {"REJECTED", "REFUNDED"}
