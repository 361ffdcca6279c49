"""
Order repository - SQLAlchemy implementation
"""
from typing import Optional, List
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from domain.order.entity import Order, PaymentDetails, PaymentMethod, PaymentStatus
from domain.order.repository import OrderRepository
from domain.common.exceptions import (
    OrderNotFoundException,
    PaymentAlreadyFinalizedException,
    PaymentPersistenceException,
    TransactionIdConflictException,
)
from infrastructure.models.order import OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """SQLAlchemy implementation of the order store"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        details = None
        if model.payment_gateway:
            details = PaymentDetails(
                gateway=model.payment_gateway,
                reference_id=model.payment_reference_id or "",
                amount=Decimal(str(model.payment_amount if model.payment_amount is not None else model.total_amount)),
                paid_at=model.paid_at,
            )
        return Order(
            id=model.id,
            user_id=model.user_id,
            total_amount=Decimal(str(model.total_amount)),
            payment_method=PaymentMethod(model.payment_method),
            payment_status=PaymentStatus(model.payment_status),
            status=model.status,
            transaction_id=model.transaction_id,
            payment_details=details,
            payment_verified=bool(model.payment_verified),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        columns = dict(
            id=entity.id,
            user_id=entity.user_id,
            total_amount=entity.total_amount,
            payment_method=entity.payment_method.value,
            status=entity.status.value,
            transaction_id=entity.transaction_id,
            **self._payment_columns(entity),
        )
        # unset timestamps fall back to the column defaults
        if entity.created_at is not None:
            columns["created_at"] = entity.created_at
        if entity.updated_at is not None:
            columns["updated_at"] = entity.updated_at
        return OrderModel(**columns)

    @staticmethod
    def _payment_columns(entity: Order) -> dict:
        details = entity.payment_details
        return {
            "payment_status": entity.payment_status.value,
            "payment_verified": entity.payment_verified,
            "payment_gateway": details.gateway if details else None,
            "payment_reference_id": details.reference_id if details else None,
            "payment_amount": details.amount if details else None,
            "paid_at": details.paid_at if details else None,
        }

    async def create(self, order: Order) -> Order:
        db_order = self._to_model(order)
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info("order_created", order_id=db_order.id, user_id=db_order.user_id)
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.id == order_id)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.transaction_id == transaction_id)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def list_recent_pending(
        self,
        payment_method: PaymentMethod,
        limit: int = 2,
    ) -> List[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(
                OrderModel.payment_method == payment_method.value,
                OrderModel.payment_status == PaymentStatus.PENDING.value,
                OrderModel.transaction_id.is_not(None),
            )
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_pending_by_user(
        self,
        user_id: int,
        payment_method: PaymentMethod,
    ) -> List[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(
                OrderModel.user_id == user_id,
                OrderModel.payment_method == payment_method.value,
                OrderModel.payment_status == PaymentStatus.PENDING.value,
            )
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def save_transaction_id(self, order: Order) -> Order:
        stmt = (
            update(OrderModel)
            .where(
                OrderModel.id == order.id,
                OrderModel.payment_status == PaymentStatus.PENDING.value,
            )
            .values(transaction_id=order.transaction_id, updated_at=order.updated_at)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except IntegrityError as exc:
            logger.warning(
                "transaction_id_conflict",
                order_id=order.id,
                transaction_id=order.transaction_id,
                error=str(exc.orig),
            )
            raise TransactionIdConflictException(order.transaction_id) from exc
        except SQLAlchemyError as exc:
            raise PaymentPersistenceException(
                "Failed to store transaction id",
                details={"order_id": order.id, "transaction_id": order.transaction_id},
            ) from exc

        if result.rowcount != 1:
            current = await self.get_by_id(order.id)
            if current is None:
                raise OrderNotFoundException(order.id)
            raise PaymentAlreadyFinalizedException(order.id, current.payment_status.value)

        logger.info("transaction_id_saved", order_id=order.id, transaction_id=order.transaction_id)
        return order

    async def transition_payment(
        self,
        order: Order,
        expected_status: PaymentStatus = PaymentStatus.PENDING,
    ) -> bool:
        stmt = (
            update(OrderModel)
            .where(
                OrderModel.id == order.id,
                OrderModel.payment_status == expected_status.value,
            )
            .values(updated_at=order.updated_at, **self._payment_columns(order))
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PaymentPersistenceException(
                details={
                    "order_id": order.id,
                    "transaction_id": order.transaction_id,
                    "payment_status": order.payment_status.value,
                },
            ) from exc

        written = result.rowcount == 1
        logger.info(
            "payment_transition_written" if written else "payment_transition_skipped",
            order_id=order.id,
            expected_status=expected_status.value,
            payment_status=order.payment_status.value,
        )
        return written
