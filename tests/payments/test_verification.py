import logging

import pytest

from application.dto import Principal
from application.services.reconciliation import ReconciliationService
from application.services.verification_service import VerificationService
from core.settings import GatewayErrorPolicy
from domain.common.exceptions import (
    DomainValidationException,
    OrderAccessDeniedException,
    OrderNotFoundException,
)
from domain.order.entity import PaymentMethod, PaymentStatus
from domain.payment.events import PaymentAssumedCompleted, PaymentCompleted


@pytest.fixture
def make_service(uow_factory, gateway, events):
    def _make(policy=GatewayErrorPolicy.STRICT):
        reconciliation = ReconciliationService("esewa", event_handler=events.append)
        return VerificationService(uow_factory, gateway, reconciliation, policy=policy)
    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.mark.asyncio
async def test_complete_status_marks_order_verified(service, gateway, store, add_order, owner):
    order_id = add_order(total_amount="500", transaction_id="TX1")
    gateway.ref_ids["TX1"] = "000AWEO"

    result = await service.verify_order(order_id, owner)

    assert result.success is True
    assert result.updated is True
    assert result.gateway_status == "COMPLETE"
    assert result.reference_id == "000AWEO"
    order = store.get(order_id)
    assert order.payment_status == PaymentStatus.COMPLETED
    assert order.payment_verified is True
    assert gateway.calls == [("TX1", 500)]


@pytest.mark.asyncio
async def test_caller_reference_used_when_gateway_has_none(service, store, add_order, owner):
    order_id = add_order(transaction_id="TX1")

    result = await service.verify_order(order_id, owner, reference_id="CLIENT-REF")

    assert result.reference_id == "CLIENT-REF"
    assert store.get(order_id).payment_details.reference_id == "CLIENT-REF"


@pytest.mark.asyncio
async def test_canceled_status_fails_order(service, gateway, store, add_order, owner):
    order_id = add_order(transaction_id="TX1")
    gateway.statuses["TX1"] = "CANCELED"

    result = await service.verify_order(order_id, owner)

    assert result.success is False
    assert result.payment_status == "failed"
    assert store.get(order_id).payment_status == PaymentStatus.FAILED


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["PENDING", "AMBIGUOUS", "NOT_FOUND", "FULL_REFUND"])
async def test_undecided_status_leaves_order_pending(service, gateway, store, add_order, owner, status):
    order_id = add_order(transaction_id="TX1")
    gateway.statuses["TX1"] = status

    result = await service.verify_order(order_id, owner)

    assert result.success is False
    assert result.gateway_status == status
    assert status in result.message
    assert store.get(order_id).payment_status == PaymentStatus.PENDING
    assert store.writes == 0


@pytest.mark.asyncio
async def test_strict_policy_keeps_order_pending_when_gateway_down(
    service, gateway, store, add_order, owner, events, caplog
):
    order_id = add_order(transaction_id="TX1")
    gateway.unreachable_all = True

    with caplog.at_level(logging.ERROR):
        result = await service.verify_order(order_id, owner)

    assert result.success is False
    assert result.assumed is False
    assert result.gateway_error == "connection refused"
    assert store.get(order_id).payment_status == PaymentStatus.PENDING
    assert events == []
    assert any("gateway_verification_failed" in str(r.msg) for r in caplog.records)


@pytest.mark.asyncio
async def test_assume_paid_policy_completes_without_reporting(make_service, gateway, store, add_order, owner, events):
    service = make_service(GatewayErrorPolicy.ASSUME_PAID)
    order_id = add_order(transaction_id="TX1")
    gateway.unreachable_all = True

    result = await service.verify_order(order_id, owner)

    assert result.success is True
    assert result.assumed is True
    assert result.gateway_error is None
    assert store.get(order_id).payment_status == PaymentStatus.COMPLETED
    assert store.get(order_id).payment_verified is True
    assert [type(e) for e in events] == [PaymentCompleted, PaymentAssumedCompleted]


@pytest.mark.asyncio
async def test_assume_paid_report_error_policy_includes_error(make_service, gateway, store, add_order, owner):
    service = make_service(GatewayErrorPolicy.ASSUME_PAID_REPORT_ERROR)
    order_id = add_order(transaction_id="TX1")
    gateway.unreachable_all = True

    result = await service.verify_order(order_id, owner)

    assert result.success is True
    assert result.assumed is True
    assert result.gateway_error == "connection refused"
    assert store.get(order_id).payment_status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_completed_order_is_not_queried_again(service, gateway, add_order, owner):
    order_id = add_order(transaction_id="TX1", payment_status=PaymentStatus.COMPLETED)

    result = await service.verify_order(order_id, owner)

    assert result.success is True
    assert result.message == "Payment already verified"
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_failed_order_stays_failed(service, gateway, store, add_order, owner):
    order_id = add_order(transaction_id="TX1", payment_status=PaymentStatus.FAILED)

    result = await service.verify_order(order_id, owner)

    assert result.success is False
    assert gateway.calls == []
    assert store.get(order_id).payment_status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_order_without_transaction_id_cannot_be_verified(service, gateway, add_order, owner):
    order_id = add_order(transaction_id=None)

    with pytest.raises(DomainValidationException):
        await service.verify_order(order_id, owner)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_missing_or_unknown_order(service, owner):
    with pytest.raises(DomainValidationException):
        await service.verify_order(None, owner)
    with pytest.raises(OrderNotFoundException):
        await service.verify_order(404, owner)


@pytest.mark.asyncio
async def test_admin_may_verify_any_order_but_stranger_may_not(service, store, add_order, admin):
    order_id = add_order(user_id=1, transaction_id="TX1")

    with pytest.raises(OrderAccessDeniedException):
        await service.verify_order(order_id, Principal(user_id=2))
    assert store.get(order_id).payment_status == PaymentStatus.PENDING

    result = await service.verify_order(order_id, admin)
    assert result.success is True


@pytest.mark.asyncio
async def test_batch_verifies_every_pending_order_of_caller(service, gateway, store, add_order, owner):
    mine = [add_order(user_id=1, transaction_id=f"TX{i}") for i in range(3)]
    theirs = add_order(user_id=2, transaction_id="TX-THEIRS")
    add_order(user_id=1, transaction_id=None)
    add_order(user_id=1, transaction_id="TX-COD", payment_method=PaymentMethod.COD)

    result = await service.verify_all_pending(owner)

    assert result.updated == 3
    assert result.failed == []
    assert all(store.get(i).payment_status == PaymentStatus.COMPLETED for i in mine)
    assert store.get(theirs).payment_status == PaymentStatus.PENDING
    assert {tx for tx, _ in gateway.calls} == {"TX0", "TX1", "TX2"}


@pytest.mark.asyncio
async def test_batch_keeps_going_when_one_gateway_call_fails(service, gateway, store, add_order, owner):
    first = add_order(transaction_id="TX-A")
    broken = add_order(transaction_id="TX-B")
    last = add_order(transaction_id="TX-C")
    gateway.unreachable.add("TX-B")

    result = await service.verify_all_pending(owner)

    assert result.updated == 2
    assert [f.order_id for f in result.failed] == [broken]
    assert store.get(first).payment_status == PaymentStatus.COMPLETED
    assert store.get(last).payment_status == PaymentStatus.COMPLETED
    assert store.get(broken).payment_status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_batch_counts_cancellations_as_updates(service, gateway, store, add_order, owner):
    order_id = add_order(transaction_id="TX1")
    gateway.statuses["TX1"] = "CANCELED"

    result = await service.verify_all_pending(owner)

    assert result.updated == 1
    assert store.get(order_id).payment_status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_batch_with_nothing_pending(service, gateway, owner):
    result = await service.verify_all_pending(owner)
    assert result.updated == 0
    assert result.failed == []
    assert gateway.calls == []
