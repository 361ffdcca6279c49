from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from domain.common.exceptions import PaymentAlreadyFinalizedException, TransactionIdConflictException
from domain.order.entity import Order, PaymentMethod, PaymentStatus
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


async def _setup():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessions = async_sessionmaker(bind=engine, expire_on_commit=False)

    def uow(**kwargs):
        return SQLAlchemyUnitOfWork(session_factory=sessions, **kwargs)

    return engine, uow


async def _create(uow, **fields) -> Order:
    values = dict(user_id=1, total_amount=Decimal("500"), payment_method=PaymentMethod.ESEWA, id=None)
    values.update(fields)
    async with uow() as work:
        return await work.order_repository.create(Order(**values))


@pytest.mark.asyncio
async def test_create_and_load_order():
    engine, uow = await _setup()
    try:
        created = await _create(uow, total_amount=Decimal("499.99"), transaction_id="TX1")

        async with uow(readonly=True) as work:
            by_id = await work.order_repository.get_by_id(created.id)
            by_tx = await work.order_repository.get_by_transaction_id("TX1")
            missing = await work.order_repository.get_by_id(404)

        assert by_id.total_amount == Decimal("499.99")
        assert by_id.payment_status == PaymentStatus.PENDING
        assert by_id.payment_details is None
        assert by_id.created_at.tzinfo is not None
        assert by_tx.id == created.id
        assert missing is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_duplicate_transaction_id_is_rejected():
    engine, uow = await _setup()
    try:
        await _create(uow, transaction_id="TX-TAKEN")
        other = await _create(uow)

        other.assign_transaction("TX-TAKEN")
        with pytest.raises(TransactionIdConflictException):
            async with uow() as work:
                await work.order_repository.save_transaction_id(other)

        async with uow(readonly=True) as work:
            assert (await work.order_repository.get_by_id(other.id)).transaction_id is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_transaction_id_of_final_payment_is_not_replaced():
    engine, uow = await _setup()
    try:
        order = await _create(uow, transaction_id="TX-OLD", payment_status=PaymentStatus.FAILED)
        order.transaction_id = "TX-NEW"

        with pytest.raises(PaymentAlreadyFinalizedException):
            async with uow() as work:
                await work.order_repository.save_transaction_id(order)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_transition_is_compare_and_swap():
    engine, uow = await _setup()
    try:
        created = await _create(uow, transaction_id="TX1")

        async with uow(readonly=True) as work:
            first = await work.order_repository.get_by_id(created.id)
            second = await work.order_repository.get_by_id(created.id)

        first.mark_payment_completed(gateway="esewa", reference_id="REF1", verified=True)
        async with uow() as work:
            assert await work.order_repository.transition_payment(first) is True

        second.mark_payment_failed()
        async with uow() as work:
            assert await work.order_repository.transition_payment(second) is False

        async with uow(readonly=True) as work:
            stored = await work.order_repository.get_by_id(created.id)
        assert stored.payment_status == PaymentStatus.COMPLETED
        assert stored.payment_verified is True
        assert stored.payment_details.reference_id == "REF1"
        assert stored.payment_details.amount == Decimal("500")
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_recent_pending_orders_newest_first():
    engine, uow = await _setup()
    try:
        old = await _create(uow, transaction_id="TX-OLD", created_at=T0)
        new = await _create(uow, transaction_id="TX-NEW", created_at=T0 + timedelta(minutes=5))
        await _create(uow, transaction_id=None, created_at=T0 + timedelta(minutes=9))
        await _create(uow, transaction_id="TX-COD", payment_method=PaymentMethod.COD, created_at=T0 + timedelta(minutes=9))
        await _create(
            uow, transaction_id="TX-DONE", payment_status=PaymentStatus.COMPLETED, created_at=T0 + timedelta(minutes=9)
        )

        async with uow(readonly=True) as work:
            recent = await work.order_repository.list_recent_pending(PaymentMethod.ESEWA, 2)
            single = await work.order_repository.list_recent_pending(PaymentMethod.ESEWA, 1)

        assert [o.id for o in recent] == [new.id, old.id]
        assert [o.id for o in single] == [new.id]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_pending_orders_by_user():
    engine, uow = await _setup()
    try:
        mine = await _create(uow, user_id=1, transaction_id="TX1")
        await _create(uow, user_id=2, transaction_id="TX2")
        await _create(uow, user_id=1, transaction_id="TX3", payment_status=PaymentStatus.COMPLETED)

        async with uow(readonly=True) as work:
            pending = await work.order_repository.list_pending_by_user(1, PaymentMethod.ESEWA)

        assert [o.id for o in pending] == [mine.id]
    finally:
        await engine.dispose()
