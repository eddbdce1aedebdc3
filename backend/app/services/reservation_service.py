"""
预订服务 - 本体操作层
管理 Reservation 对象（预订阶段的聚合根）

创建、改状态、取消都在锁定房间行的事务内完成：
重叠检查与写入之间没有其他事务能插入同一房间的预订
"""
from typing import Callable, List, Optional, Tuple
from datetime import date
from decimal import Decimal
import logging

from sqlalchemy.orm import Session, joinedload

from app.config import settings
from app.database import atomic
from app.exceptions import (
    ConflictError, InternalError, NotFoundError, PermissionDeniedError, ValidationError
)
from app.models.ontology import (
    Reservation, ReservationStatus, Room, RoomStatus,
    ACTIVE_RESERVATION_STATUSES, OCCUPYING_RESERVATION_STATUSES
)
from app.models.schemas import ReservationCreate
from app.models.events import (
    EventType, ReservationCreatedData, ReservationStatusChangedData
)
from app.services.availability_service import find_conflicting_reservations
from app.services.date_utils import (
    Clock, add_years, nights_between, parse_local_date, today_local
)
from app.services.event_bus import event_bus, Event
from app.services.payment_service import PaymentService
from app.services.room_service import lock_room, room_status_event

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (ReservationStatus.CHECKED_OUT, ReservationStatus.CANCELLED)
CANCELLABLE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)

# 预订状态 -> 房态联动（CANCELLED 另行判断）
ROOM_STATUS_ON_RESERVATION = {
    ReservationStatus.CHECKED_IN: RoomStatus.OCCUPIED,
    ReservationStatus.CHECKED_OUT: RoomStatus.CLEANING,
}


class ReservationService:
    """预订服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None,
                 clock: Optional[Clock] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish
        self._clock = clock
        self.payment_service = PaymentService(db, event_publisher=self._publish_event)

    def _today(self) -> date:
        return today_local(self._clock)

    # ============== 查询 ==============

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        """获取单个预订"""
        return self.db.query(Reservation).options(
            joinedload(Reservation.room), joinedload(Reservation.payment)
        ).filter(Reservation.id == reservation_id).first()

    def get_reservation_for(self, reservation_id: int, user_id: int, is_staff: bool) -> Reservation:
        """获取预订并校验访问权（本人或员工）"""
        reservation = self.get_reservation(reservation_id)
        if not reservation:
            raise NotFoundError("预订不存在")
        if not is_staff and reservation.user_id != user_id:
            raise PermissionDeniedError("无权查看该预订")
        return reservation

    def list_for_user(self, user_id: int) -> List[Reservation]:
        """用户的全部预订"""
        return self.db.query(Reservation).options(
            joinedload(Reservation.room), joinedload(Reservation.payment)
        ).filter(
            Reservation.user_id == user_id
        ).order_by(Reservation.check_in.desc()).all()

    def list_active_for_user(self, user_id: int) -> List[Reservation]:
        """用户尚未结束的活动预订（可挂附加服务）"""
        return self.db.query(Reservation).options(
            joinedload(Reservation.room)
        ).filter(
            Reservation.user_id == user_id,
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            Reservation.check_out >= self._today(),
        ).order_by(Reservation.check_in).all()

    def list_reservations(self, status: Optional[ReservationStatus] = None,
                          room_id: Optional[int] = None) -> List[Reservation]:
        """员工查看预订列表"""
        query = self.db.query(Reservation).options(
            joinedload(Reservation.room), joinedload(Reservation.payment)
        )
        if status:
            query = query.filter(Reservation.status == status)
        if room_id is not None:
            query = query.filter(Reservation.room_id == room_id)
        return query.order_by(Reservation.check_in.desc()).all()

    # ============== 创建 ==============

    def validate_request(self, data: ReservationCreate) -> Tuple[date, date, int]:
        """存储前校验：人数、日期格式、晚数、提前量；返回 (入住, 离店, 晚数)"""
        if not isinstance(data.guests, int) or not 1 <= data.guests <= settings.MAX_GUESTS_PER_RESERVATION:
            raise ValidationError(f"入住人数必须在 1 到 {settings.MAX_GUESTS_PER_RESERVATION} 之间")

        check_in = parse_local_date(data.check_in)
        check_out = parse_local_date(data.check_out)

        nights = nights_between(check_in, check_out)
        if nights < 1:
            raise ValidationError("离店日期必须晚于入住日期")
        if nights > settings.MAX_RESERVATION_NIGHTS:
            raise ValidationError(f"单次预订不能超过 {settings.MAX_RESERVATION_NIGHTS} 晚")

        today = self._today()
        if check_in < today:
            raise ValidationError("入住日期不能早于今天")
        if check_in > add_years(today, settings.MAX_ADVANCE_YEARS):
            raise ValidationError(f"最多只能提前 {settings.MAX_ADVANCE_YEARS} 年预订")

        return check_in, check_out, nights

    def create_reservation(self, data: ReservationCreate, user_id: int) -> Tuple[Reservation, int]:
        """
        创建预订（PENDING）及配对的待支付记录

        Returns:
            (预订, 晚数)

        Raises:
            ValidationError: 输入不合法或人数超过房间容量
            NotFoundError: 房间不存在
            ConflictError: 房间不可预订或日期与已有预订重叠
        """
        check_in, check_out, nights = self.validate_request(data)

        with atomic(self.db):
            room = lock_room(self.db, data.room_id)
            if not room:
                raise NotFoundError("房间不存在")

            if room.status in (RoomStatus.CLOSED, RoomStatus.MAINTENANCE):
                raise ConflictError(f"房间 {room.number} 当前状态为 {room.status.value}，暂不可预订")

            if data.guests > room.capacity:
                raise ValidationError(f"房间 {room.number} 最多可入住 {room.capacity} 人")

            conflicts = find_conflicting_reservations(self.db, room.id, check_in, check_out)
            if conflicts:
                existing = conflicts[0]
                logger.warning(
                    f"Reservation conflict on room {room.number}: "
                    f"{check_in}..{check_out} overlaps #{existing.id}"
                )
                raise ConflictError(
                    f"房间 {room.number} 在 {existing.check_in.isoformat()} 至 "
                    f"{existing.check_out.isoformat()} 已被预订"
                )

            total_price = Decimal(room.price) * nights
            if total_price <= 0:
                raise InternalError(f"Computed non-positive total {total_price} for room {room.id}")

            reservation = Reservation(
                user_id=user_id,
                room_id=room.id,
                check_in=check_in,
                check_out=check_out,
                guests=data.guests,
                total_price=total_price,
                status=ReservationStatus.PENDING,
                special_requests=data.special_requests,
            )
            self.db.add(reservation)
            self.db.flush()
            payment = self.payment_service.create_pending_payment(reservation)

        self.db.refresh(reservation)
        logger.info(
            f"Reservation #{reservation.id} created: room {room.number} "
            f"{check_in}..{check_out} ({nights} nights, total {total_price})"
        )

        self._publish_event(Event.of(
            EventType.RESERVATION_CREATED,
            ReservationCreatedData(
                reservation_id=reservation.id,
                room_id=room.id,
                user_id=user_id,
                check_in=check_in,
                check_out=check_out,
                nights=nights,
                total_price=float(total_price),
                payment_id=payment.id,
            ),
            source="reservation_service",
        ))
        return reservation, nights

    # ============== 状态变更 ==============

    def _has_other_occupying(self, room_id: int, reservation_id: int) -> bool:
        return self.db.query(Reservation.id).filter(
            Reservation.room_id == room_id,
            Reservation.id != reservation_id,
            Reservation.status.in_(OCCUPYING_RESERVATION_STATUSES),
        ).first() is not None

    def _check_status_guards(self, reservation: Reservation, status: ReservationStatus) -> None:
        if reservation.status in TERMINAL_STATUSES:
            raise ConflictError(f"预订已处于终态 {reservation.status.value}，不能再修改")

        today = self._today()
        if status == ReservationStatus.CONFIRMED and reservation.check_in < today:
            raise ConflictError("入住日期已过，不能确认该预订")
        if status == ReservationStatus.CHECKED_IN and reservation.check_in > today:
            raise ConflictError(f"入住日期为 {reservation.check_in.isoformat()}，尚不能办理入住")

    def _room_status_after(self, reservation: Reservation, room: Room,
                           status: ReservationStatus) -> RoomStatus:
        if status in ROOM_STATUS_ON_RESERVATION:
            return ROOM_STATUS_ON_RESERVATION[status]
        if status == ReservationStatus.CANCELLED:
            # 维修/关闭中的房间不因取消而变为可售
            if room.status in (RoomStatus.MAINTENANCE, RoomStatus.CLOSED):
                return room.status
            if not self._has_other_occupying(room.id, reservation.id):
                return RoomStatus.AVAILABLE
        return room.status

    def update_status(self, reservation_id: int, status: ReservationStatus,
                      changed_by: Optional[int] = None) -> Tuple[Reservation, RoomStatus]:
        """
        员工修改预订状态，并在同一事务内联动房态

        Returns:
            (预订, 联动后的房态)
        """
        with atomic(self.db):
            reservation = self.db.query(Reservation).filter(
                Reservation.id == reservation_id
            ).with_for_update().first()
            if not reservation:
                raise NotFoundError("预订不存在")

            room = lock_room(self.db, reservation.room_id)
            old_status = reservation.status
            old_room_status = room.status

            if old_status == status:
                return reservation, room.status

            self._check_status_guards(reservation, status)
            reservation.status = status
            room.status = self._room_status_after(reservation, room, status)

        self.db.refresh(reservation)
        logger.info(
            f"Reservation #{reservation.id}: {old_status.value} -> {status.value}, "
            f"room {room.number} {old_room_status.value} -> {room.status.value}"
        )

        self._publish_event(Event.of(
            EventType.RESERVATION_STATUS_CHANGED,
            ReservationStatusChangedData(
                reservation_id=reservation.id,
                room_id=room.id,
                old_status=old_status.value,
                new_status=status.value,
                room_status=room.status.value,
                changed_by=changed_by,
            ),
            source="reservation_service",
        ))
        if room.status != old_room_status:
            self._publish_event(room_status_event(
                room, old_room_status, changed_by,
                reason=f"reservation:{status.value}", source="reservation_service",
            ))

        return reservation, room.status

    def cancel_reservation(self, reservation_id: int, user_id: int, is_staff: bool = False) -> Reservation:
        """
        取消预订（本人或员工）

        只允许 PENDING/CONFIRMED；已付款的预订需联系酒店处理
        """
        with atomic(self.db):
            reservation = self.db.query(Reservation).filter(
                Reservation.id == reservation_id
            ).with_for_update().first()
            if not reservation:
                raise NotFoundError("预订不存在")
            if not is_staff and reservation.user_id != user_id:
                raise PermissionDeniedError("无权取消该预订")

            room = lock_room(self.db, reservation.room_id)
            old_status = reservation.status
            old_room_status = room.status

            if old_status not in CANCELLABLE_STATUSES:
                raise ConflictError(f"预订状态为 {old_status.value}，不能取消")

            payment = self.payment_service.get_reservation_payment(reservation.id)
            if PaymentService.is_approved(payment):
                raise ConflictError("该预订已付款，请联系酒店办理取消")

            reservation.status = ReservationStatus.CANCELLED
            if room.status == RoomStatus.OCCUPIED and not self._has_other_occupying(room.id, reservation.id):
                room.status = RoomStatus.AVAILABLE

        self.db.refresh(reservation)
        logger.info(f"Reservation #{reservation.id} cancelled by user {user_id}")

        self._publish_event(Event.of(
            EventType.RESERVATION_CANCELLED,
            ReservationStatusChangedData(
                reservation_id=reservation.id,
                room_id=room.id,
                old_status=old_status.value,
                new_status=ReservationStatus.CANCELLED.value,
                room_status=room.status.value,
                changed_by=user_id,
            ),
            source="reservation_service",
        ))
        if room.status != old_room_status:
            self._publish_event(room_status_event(
                room, old_room_status, user_id,
                reason="reservation:CANCELLED", source="reservation_service",
            ))
        return reservation
