"""
服务预订 - 本体操作层
管理 ServiceBooking 对象：预订附加服务时段、取消、员工处理

名额占用/释放与预订记录、支付记录在同一事务内完成
"""
from typing import Callable, List, Optional, Tuple
from datetime import datetime
import logging

from sqlalchemy.orm import Session, joinedload

from app.database import atomic
from app.exceptions import (
    ConflictError, InternalError, NotFoundError, PermissionDeniedError, ValidationError
)
from app.models.ontology import (
    HotelService, Reservation, ServiceBooking, ServiceBookingStatus, ServicePayment,
    ServiceTimeSlot, ACTIVE_RESERVATION_STATUSES
)
from app.models.schemas import ServiceBookingCreate
from app.models.events import EventType, ServiceBookingData
from app.services.date_utils import Clock, parse_hhmm, format_hhmm, parse_local_date
from app.services.event_bus import event_bus, Event
from app.services.payment_service import PaymentService
from app.services.time_slot_service import TimeSlotService

logger = logging.getLogger(__name__)

OPEN_BOOKING_STATUSES = (ServiceBookingStatus.PENDING, ServiceBookingStatus.CONFIRMED)

# 员工可设置的目标状态 -> 时间戳字段
STATUS_TIMESTAMPS = {
    ServiceBookingStatus.CONFIRMED: "confirmed_at",
    ServiceBookingStatus.COMPLETED: "completed_at",
    ServiceBookingStatus.CANCELLED: "cancelled_at",
}


def capacity_message(remaining: int) -> str:
    if remaining <= 0:
        return "该时段已满"
    return f"该时段仅剩 {remaining} 个名额"


class ServiceBookingService:
    """服务预订服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None,
                 clock: Optional[Clock] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish
        self._clock = clock or datetime.now
        self.slots = TimeSlotService(db, event_publisher=self._publish_event)
        self.payment_service = PaymentService(db, event_publisher=self._publish_event)

    def _event(self, event_type: EventType, booking: ServiceBooking, slot: ServiceTimeSlot) -> Event:
        return Event.of(
            event_type,
            ServiceBookingData(
                booking_id=booking.id,
                service_id=booking.service_id,
                time_slot_id=booking.time_slot_id,
                reservation_id=booking.reservation_id,
                participants=booking.participants,
                slot_booked=slot.booked,
                slot_capacity=slot.capacity,
            ),
            source="service_booking_service",
        )

    # ============== 查询 ==============

    def list_for_user(self, user_id: int) -> List[ServiceBooking]:
        """用户的服务预订"""
        return self.db.query(ServiceBooking).filter(
            ServiceBooking.user_id == user_id
        ).order_by(ServiceBooking.booking_date.desc(), ServiceBooking.booking_time).all()

    def list_bookings(self, status: Optional[ServiceBookingStatus] = None,
                      service_id: Optional[int] = None) -> List[ServiceBooking]:
        """员工查看服务预订"""
        query = self.db.query(ServiceBooking).options(joinedload(ServiceBooking.payment))
        if status:
            query = query.filter(ServiceBooking.status == status)
        if service_id is not None:
            query = query.filter(ServiceBooking.service_id == service_id)
        return query.order_by(ServiceBooking.created_at.desc()).all()

    # ============== 预订 ==============

    def book(self, data: ServiceBookingCreate, user_id: int) -> Tuple[ServiceBooking, ServicePayment]:
        """
        预订服务时段

        Returns:
            (服务预订, 待支付记录)

        Raises:
            NotFoundError: 服务或住店预订不存在
            PermissionDeniedError: 住店预订不属于当前用户
            ValidationError: 人数、日期、时间不合法
            ConflictError: 服务下架、时段关闭或名额不足
        """
        booking_date = parse_local_date(data.booking_date)
        booking_time = format_hhmm(parse_hhmm(data.booking_time))

        with atomic(self.db):
            service = self.db.query(HotelService).filter(HotelService.id == data.service_id).first()
            if not service:
                raise NotFoundError("服务不存在")
            if not service.is_active:
                raise ConflictError("该服务暂不可预订")

            reservation = self.db.query(Reservation).filter(
                Reservation.id == data.reservation_id
            ).first()
            if not reservation:
                raise NotFoundError("住店预订不存在")
            if reservation.user_id != user_id:
                raise PermissionDeniedError("无权使用该住店预订")
            if reservation.status not in ACTIVE_RESERVATION_STATUSES:
                raise ConflictError(f"住店预订状态为 {reservation.status.value}，不能预订附加服务")

            if not service.min_capacity <= data.participants <= service.max_capacity:
                raise ValidationError(
                    f"参与人数必须在 {service.min_capacity} 到 {service.max_capacity} 之间"
                )
            if not reservation.check_in <= booking_date < reservation.check_out:
                raise ValidationError(
                    f"服务日期必须在住店期间（{reservation.check_in.isoformat()} 至 "
                    f"{reservation.check_out.isoformat()}）"
                )

            slot = self.slots.get_or_create_slot(service, booking_date, booking_time)
            if not slot.is_available:
                raise ConflictError("该时段不可预订")
            if data.participants > slot.remaining:
                raise ConflictError(capacity_message(slot.remaining))

            if not self.slots.reserve_capacity(slot.id, data.participants):
                self.db.refresh(slot)
                logger.warning(f"Slot #{slot.id} capacity race: {slot.booked}/{slot.capacity}")
                if not slot.is_available:
                    raise ConflictError("该时段不可预订")
                raise ConflictError(capacity_message(slot.remaining))

            booking = ServiceBooking(
                service_id=service.id,
                time_slot_id=slot.id,
                reservation_id=reservation.id,
                user_id=user_id,
                booking_date=booking_date,
                booking_time=booking_time,
                participants=data.participants,
                total_price=service.price_for(data.participants),
                status=ServiceBookingStatus.PENDING,
                special_requests=data.special_requests,
            )
            self.db.add(booking)
            self.db.flush()
            payment = self.payment_service.create_pending_service_payment(booking)

        self.db.refresh(booking)
        self.db.refresh(slot)
        logger.info(
            f"Service booking #{booking.id}: service #{service.id} {booking_date} {booking_time} "
            f"x{data.participants}, slot {slot.booked}/{slot.capacity}"
        )
        self._publish_event(self._event(EventType.SERVICE_BOOKING_CREATED, booking, slot))
        return booking, payment

    # ============== 状态变更（在调用方事务内） ==============

    def mark_confirmed(self, booking: ServiceBooking) -> None:
        booking.status = ServiceBookingStatus.CONFIRMED
        booking.confirmed_at = self._clock()

    def mark_completed(self, booking: ServiceBooking) -> None:
        booking.status = ServiceBookingStatus.COMPLETED
        booking.completed_at = self._clock()

    def mark_cancelled(self, booking: ServiceBooking) -> None:
        """取消并释放时段名额"""
        if not self.slots.release_capacity(booking.time_slot_id, booking.participants):
            raise InternalError(
                f"Slot #{booking.time_slot_id} booked count below {booking.participants} "
                f"while cancelling booking #{booking.id}"
            )
        booking.status = ServiceBookingStatus.CANCELLED
        booking.cancelled_at = self._clock()

    # ============== 取消 / 员工处理 ==============

    def cancel_booking(self, booking_id: int, user_id: int, is_staff: bool = False) -> ServiceBooking:
        """本人或员工取消服务预订；已付款的需联系酒店"""
        with atomic(self.db):
            booking = self.db.query(ServiceBooking).filter(
                ServiceBooking.id == booking_id
            ).with_for_update().first()
            if not booking:
                raise NotFoundError("服务预订不存在")
            if not is_staff and booking.user_id != user_id:
                raise PermissionDeniedError("无权取消该服务预订")
            if booking.status not in OPEN_BOOKING_STATUSES:
                raise ConflictError(f"服务预订状态为 {booking.status.value}，不能取消")
            if PaymentService.is_approved(self.payment_service.get_service_payment(booking.id)):
                raise ConflictError("该服务预订已付款，请联系酒店办理取消")

            self.mark_cancelled(booking)

        slot = booking.time_slot
        logger.info(f"Service booking #{booking.id} cancelled, slot {slot.booked}/{slot.capacity}")
        self._publish_event(self._event(EventType.SERVICE_BOOKING_CANCELLED, booking, slot))
        return booking

    def update_status(self, booking_id: int, status: Optional[ServiceBookingStatus] = None,
                      staff_notes: Optional[str] = None) -> ServiceBooking:
        """
        员工更新服务预订

        CONFIRMED / COMPLETED / CANCELLED 分别记录对应时间；
        取消时释放名额；已完成或已取消的预订不能再改状态
        """
        with atomic(self.db):
            booking = self.db.query(ServiceBooking).filter(
                ServiceBooking.id == booking_id
            ).with_for_update().first()
            if not booking:
                raise NotFoundError("服务预订不存在")

            old_status = booking.status
            if status is not None and status != old_status:
                if status not in STATUS_TIMESTAMPS:
                    raise ConflictError(f"不能把服务预订改为 {status.value}")
                if old_status not in OPEN_BOOKING_STATUSES:
                    raise ConflictError(f"服务预订已处于终态 {old_status.value}，不能再修改")

                if status == ServiceBookingStatus.CONFIRMED:
                    self.mark_confirmed(booking)
                elif status == ServiceBookingStatus.COMPLETED:
                    self.mark_completed(booking)
                else:
                    self.mark_cancelled(booking)

            if staff_notes is not None:
                booking.staff_notes = staff_notes

        self.db.refresh(booking)
        logger.info(f"Service booking #{booking.id}: {old_status.value} -> {booking.status.value}")
        if booking.status == ServiceBookingStatus.CANCELLED and old_status != booking.status:
            slot = booking.time_slot
            self._publish_event(self._event(EventType.SERVICE_BOOKING_CANCELLED, booking, slot))
        return booking
