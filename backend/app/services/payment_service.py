"""
支付记录服务 - 与支付网关协作方的边界
核心只负责：与预订/服务预订在同一事务内创建 PENDING 支付记录；读取支付状态。
网关回调通过 apply_gateway_status 写入结果，签名校验等不在本服务范围内。
"""
from typing import Callable, Optional, Union
import logging

from sqlalchemy.orm import Session

from app.config import settings
from app.database import atomic
from app.exceptions import NotFoundError, ValidationError
from app.models.ontology import (
    Payment, ServicePayment, PaymentStatus, Reservation, ReservationStatus,
    ServiceBooking, ServiceBookingStatus
)
from app.models.events import EventType, PaymentStatusChangedData
from app.services.event_bus import event_bus, Event

logger = logging.getLogger(__name__)

RESERVATION_PAYMENT = "reservation"
SERVICE_PAYMENT = "service"


class PaymentService:
    """支付记录服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish

    # ============== 事务内调用：创建待支付记录 ==============

    def create_pending_payment(self, reservation: Reservation) -> Payment:
        """为预订创建待支付记录（由调用方提交事务）"""
        payment = Payment(
            reservation_id=reservation.id,
            user_id=reservation.user_id,
            amount=reservation.total_price,
            currency=settings.CURRENCY,
            status=PaymentStatus.PENDING,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def create_pending_service_payment(self, booking: ServiceBooking) -> ServicePayment:
        """为服务预订创建待支付记录（由调用方提交事务）"""
        payment = ServicePayment(
            booking_id=booking.id,
            user_id=booking.user_id,
            amount=booking.total_price,
            currency=settings.CURRENCY,
            status=PaymentStatus.PENDING,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    # ============== 读取 ==============

    def get_reservation_payment(self, reservation_id: int) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.reservation_id == reservation_id).first()

    def get_service_payment(self, booking_id: int) -> Optional[ServicePayment]:
        return self.db.query(ServicePayment).filter(ServicePayment.booking_id == booking_id).first()

    @staticmethod
    def is_approved(payment: Optional[Union[Payment, ServicePayment]]) -> bool:
        return payment is not None and payment.status == PaymentStatus.APPROVED

    # ============== 网关回调边界 ==============

    def apply_gateway_status(self, kind: str, payment_id: int, status: PaymentStatus,
                             transaction_id: Optional[str] = None,
                             payment_method: Optional[str] = None) -> Union[Payment, ServicePayment]:
        """
        写入网关结果

        APPROVED：待确认的预订/服务预订改为 CONFIRMED
        REJECTED：待确认的预订/服务预订改为 CANCELLED（服务预订同时释放时段名额）
        REFUNDED：只记录
        """
        if kind not in (RESERVATION_PAYMENT, SERVICE_PAYMENT):
            raise ValidationError(f"未知的支付类型: {kind}")

        model = Payment if kind == RESERVATION_PAYMENT else ServicePayment
        with atomic(self.db):
            payment = self.db.query(model).filter(model.id == payment_id).with_for_update().first()
            if not payment:
                raise NotFoundError("支付记录不存在")

            old_status = payment.status
            payment.status = status
            if transaction_id:
                payment.transaction_id = transaction_id
            if payment_method:
                payment.payment_method = payment_method

            if kind == RESERVATION_PAYMENT:
                self._sync_reservation(payment.reservation, status)
            else:
                self._sync_service_booking(payment.booking, status)

        logger.info(f"Payment {kind}#{payment_id}: {old_status.value} -> {status.value}")
        if old_status != status:
            self._publish_event(Event.of(
                EventType.PAYMENT_STATUS_CHANGED,
                PaymentStatusChangedData(
                    payment_kind=kind,
                    payment_id=payment.id,
                    old_status=old_status.value,
                    new_status=status.value,
                ),
                source="payment_service",
            ))
        return payment

    def _sync_reservation(self, reservation: Reservation, status: PaymentStatus) -> None:
        if reservation.status != ReservationStatus.PENDING:
            return
        if status == PaymentStatus.APPROVED:
            reservation.status = ReservationStatus.CONFIRMED
        elif status == PaymentStatus.REJECTED:
            reservation.status = ReservationStatus.CANCELLED

    def _sync_service_booking(self, booking: ServiceBooking, status: PaymentStatus) -> None:
        if booking.status != ServiceBookingStatus.PENDING:
            return
        if status == PaymentStatus.APPROVED:
            from app.services.service_booking_service import ServiceBookingService
            ServiceBookingService(self.db, event_publisher=self._publish_event).mark_confirmed(booking)
        elif status == PaymentStatus.REJECTED:
            from app.services.service_booking_service import ServiceBookingService
            ServiceBookingService(self.db, event_publisher=self._publish_event).mark_cancelled(booking)
