"""
房间服务 - 本体操作层
管理 Room 对象
房态只能经由 apply_action（房态状态机）或预订状态联动修改，
状态变更在事务提交后发布事件
"""
from typing import Callable, List, Optional
import logging

from sqlalchemy.orm import Session

from app.config import settings
from app.database import atomic
from app.exceptions import ConflictError, NotFoundError
from app.models.ontology import (
    Room, RoomType, RoomStatus, RoomAction, Reservation, ReservationStatus,
    ACTIVE_RESERVATION_STATUSES
)
from app.models.schemas import RoomCreate, RoomUpdate
from app.models.events import EventType, RoomStatusChangedData
from app.services.date_utils import Clock, today_local
from app.services.event_bus import event_bus, Event
from app.services.room_state_machine import RoomSnapshot, resolve_transition

logger = logging.getLogger(__name__)

# 更新时允许置空的字段
ROOM_NULLABLE_FIELDS = ("description", "amenities")


def lock_room(db: Session, room_id: int) -> Optional[Room]:
    """在当前事务内锁定房间行（SQLite 由 BEGIN IMMEDIATE 保证串行）"""
    return db.query(Room).filter(Room.id == room_id).with_for_update().first()


def active_reservations(db: Session, room_id: int) -> List[Reservation]:
    """房间的活动预订，按入住日升序"""
    return db.query(Reservation).filter(
        Reservation.room_id == room_id,
        Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
    ).order_by(Reservation.check_in).all()


def room_status_event(room: Room, old_status: RoomStatus, changed_by: Optional[int],
                      reason: str, source: str) -> Event:
    return Event.of(
        EventType.ROOM_STATUS_CHANGED,
        RoomStatusChangedData(
            room_id=room.id,
            room_number=room.number,
            old_status=old_status.value,
            new_status=room.status.value,
            changed_by=changed_by,
            reason=reason,
        ),
        source=source,
    )


class RoomService:
    """房间服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None,
                 clock: Optional[Clock] = None):
        self.db = db
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish
        self._clock = clock

    # ============== 房间目录 ==============

    def get_rooms(self, floor: Optional[int] = None,
                  room_type: Optional[RoomType] = None,
                  status: Optional[RoomStatus] = None) -> List[Room]:
        """获取房间列表"""
        query = self.db.query(Room)

        if floor is not None:
            query = query.filter(Room.floor == floor)
        if room_type:
            query = query.filter(Room.type == room_type)
        if status:
            query = query.filter(Room.status == status)

        return query.order_by(Room.floor, Room.number).all()

    def get_room(self, room_id: int) -> Optional[Room]:
        """获取单个房间"""
        return self.db.query(Room).filter(Room.id == room_id).first()

    def get_room_by_number(self, number: str) -> Optional[Room]:
        """根据房间号获取房间"""
        return self.db.query(Room).filter(Room.number == number).first()

    def create_room(self, data: RoomCreate) -> Room:
        """创建房间（初始状态 AVAILABLE）"""
        if self.get_room_by_number(data.number):
            raise ConflictError(f"房间号 '{data.number}' 已存在")

        room = Room(**data.model_dump(), status=RoomStatus.AVAILABLE)
        with atomic(self.db):
            self.db.add(room)
        self.db.refresh(room)
        logger.info(f"Room {room.number} created")
        return room

    def update_room(self, room_id: int, data: RoomUpdate) -> Room:
        """更新房间元数据；房态不在此处修改"""
        with atomic(self.db):
            room = lock_room(self.db, room_id)
            if not room:
                raise NotFoundError("房间不存在")
            for key, value in data.changes(nullable=ROOM_NULLABLE_FIELDS).items():
                setattr(room, key, value)
        self.db.refresh(room)
        return room

    # ============== 房态操作 ==============

    def reservation_info(self, reservations: List[Reservation]) -> dict:
        return {
            "has_active_reservations": bool(reservations),
            "has_checked_in": any(r.status == ReservationStatus.CHECKED_IN for r in reservations),
            "total_active_reservations": len(reservations),
            "next_check_in": reservations[0].check_in if reservations else None,
        }

    def apply_action(self, room_id: int, action: RoomAction,
                     changed_by: Optional[int] = None) -> dict:
        """
        执行员工房态操作

        锁定房间、读取活动预订、判定转换、写入新状态在同一事务内完成。

        Returns:
            {"room": Room, "message": str, "reservation_info": dict}

        Raises:
            NotFoundError: 房间不存在
            ConflictError: 当前状态下不允许该操作
        """
        with atomic(self.db):
            room = lock_room(self.db, room_id)
            if not room:
                raise NotFoundError("房间不存在")

            reservations = active_reservations(self.db, room_id)
            snapshot = RoomSnapshot.from_reservations(
                room.status, reservations, today_local(self._clock)
            )
            transition = resolve_transition(action, snapshot, settings.MAINTENANCE_WARNING_DAYS)
            room.status = transition.to_status
            info = self.reservation_info(reservations)

        self.db.refresh(room)
        logger.info(
            f"Room {room.number}: {action.value} "
            f"{transition.from_status.value} -> {transition.to_status.value}"
        )

        if transition.changed:
            self._publish_event(room_status_event(
                room, transition.from_status, changed_by,
                reason=f"action:{action.value}", source="room_service",
            ))

        return {"room": room, "message": transition.message, "reservation_info": info}
