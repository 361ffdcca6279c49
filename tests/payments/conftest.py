"""In-memory stand-ins for the order store and the gateway."""
from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest

from application.dto import Principal
from application.dtos.payments import GatewayStatus
from application.ports.payment_gateway import GatewayUnreachableError
from core.settings import EsewaSettings, PaymentUrls
from domain.common.exceptions import (
    PaymentAlreadyFinalizedException,
    PaymentPersistenceException,
    TransactionIdConflictException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, PaymentMethod, PaymentStatus
from domain.order.repository import OrderRepository
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class OrderStore:
    def __init__(self):
        self.orders: dict[int, Order] = {}
        self.next_id = 1
        self.writes = 0
        self.commits = 0
        self.fail_writes = False

    def get(self, order_id: int) -> Order:
        return self.orders[order_id]


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, store: OrderStore):
        self.store = store

    async def create(self, order: Order) -> Order:
        stored = copy.deepcopy(order)
        stored.id = self.store.next_id
        if stored.created_at is None:
            stored.created_at = BASE_TIME + timedelta(minutes=stored.id)
        stored.updated_at = stored.updated_at or stored.created_at
        self.store.next_id += 1
        self.store.orders[stored.id] = stored
        return copy.deepcopy(stored)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        order = self.store.orders.get(order_id)
        return copy.deepcopy(order) if order else None

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Order]:
        for order in self.store.orders.values():
            if order.transaction_id == transaction_id:
                return copy.deepcopy(order)
        return None

    async def list_recent_pending(self, payment_method: PaymentMethod, limit: int = 2):
        pending = [
            o for o in self.store.orders.values()
            if o.payment_method == payment_method
            and o.payment_status == PaymentStatus.PENDING
            and o.transaction_id
        ]
        pending.sort(key=lambda o: (o.created_at, o.id), reverse=True)
        return [copy.deepcopy(o) for o in pending[:limit]]

    async def list_pending_by_user(self, user_id: int, payment_method: PaymentMethod):
        pending = [
            o for o in self.store.orders.values()
            if o.user_id == user_id
            and o.payment_method == payment_method
            and o.payment_status == PaymentStatus.PENDING
        ]
        pending.sort(key=lambda o: (o.created_at, o.id), reverse=True)
        return [copy.deepcopy(o) for o in pending]

    async def save_transaction_id(self, order: Order) -> Order:
        for other in self.store.orders.values():
            if other.id != order.id and other.transaction_id == order.transaction_id:
                raise TransactionIdConflictException(order.transaction_id)
        stored = self.store.orders[order.id]
        if stored.is_payment_final():
            raise PaymentAlreadyFinalizedException(order.id, stored.payment_status.value)
        stored.transaction_id = order.transaction_id
        return order

    async def transition_payment(self, order: Order, expected_status: PaymentStatus = PaymentStatus.PENDING) -> bool:
        if self.store.fail_writes:
            raise PaymentPersistenceException(details={"order_id": order.id})
        stored = self.store.orders[order.id]
        if stored.payment_status != expected_status:
            return False
        self.store.orders[order.id] = copy.deepcopy(order)
        self.store.writes += 1
        return True


class FakeUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: OrderStore, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self.store = store
        self.order_repository = InMemoryOrderRepository(store)

    async def commit(self) -> None:
        self._committed = True
        self.store.commits += 1

    async def rollback(self) -> None:
        self._committed = False


class StubGateway:
    provider = "esewa"
    status_url = "https://rc-epay.esewa.com.np/api/epay/transaction/status/"

    def __init__(self):
        self.statuses: dict[str, str] = {}
        self.ref_ids: dict[str, str] = {}
        self.default_status = "COMPLETE"
        self.unreachable: set[str] = set()
        self.unreachable_all = False
        self.calls: list[tuple[str, object]] = []
        self.closed = False

    async def query_status(self, transaction_uuid, total_amount) -> GatewayStatus:
        self.calls.append((transaction_uuid, total_amount))
        if self.unreachable_all or transaction_uuid in self.unreachable:
            raise GatewayUnreachableError("connection refused", provider=self.provider, url=self.status_url)
        status = self.statuses.get(transaction_uuid, self.default_status)
        return GatewayStatus(
            status=status,
            transaction_uuid=transaction_uuid,
            total_amount=str(total_amount),
            ref_id=self.ref_ids.get(transaction_uuid),
            outcome=PROVIDER_STATUS_TO_INTERNAL["esewa"].get(status),
        )

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def store() -> OrderStore:
    return OrderStore()


@pytest.fixture
def uow_factory(store):
    def factory(**kwargs):
        return FakeUnitOfWork(store, **kwargs)
    return factory


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def esewa() -> EsewaSettings:
    return EsewaSettings()


@pytest.fixture
def urls() -> PaymentUrls:
    return PaymentUrls(frontend_url="http://shop.test", backend_url="http://api.test")


@pytest.fixture
def owner() -> Principal:
    return Principal(user_id=1)


@pytest.fixture
def admin() -> Principal:
    return Principal(user_id=99, is_superuser=True)


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def add_order(store):
    """Insert an order synchronously and return its id."""
    def _add(
        *,
        user_id: int = 1,
        total_amount="500",
        payment_method: PaymentMethod = PaymentMethod.ESEWA,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        transaction_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> int:
        order_id = store.next_id
        store.next_id += 1
        created = created_at or BASE_TIME + timedelta(minutes=order_id)
        store.orders[order_id] = Order(
            id=order_id,
            user_id=user_id,
            total_amount=Decimal(str(total_amount)),
            payment_method=payment_method,
            payment_status=payment_status,
            transaction_id=transaction_id,
            created_at=created,
            updated_at=created,
        )
        return order_id
    return _add
