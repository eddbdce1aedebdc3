"""
可用性服务 - 预订重叠检查
两个半开区间 [a, b) 与 [c, d) 重叠当且仅当 a < d 且 c < b，
即：已有预订不满足 (check_out <= 新入住 或 check_in >= 新离店)。
"""
from typing import List, Optional, Tuple
from datetime import date
from decimal import Decimal
import logging

from sqlalchemy import and_, exists
from sqlalchemy.orm import Session

from app.exceptions import ValidationError
from app.models.ontology import (
    Room, RoomType, RoomStatus, Reservation, ACTIVE_RESERVATION_STATUSES
)
from app.services.date_utils import Clock, parse_local_date, nights_between, today_local

logger = logging.getLogger(__name__)

# 可出现在搜索结果中的房态（入住中的房间对未来日期仍可售）
SEARCHABLE_ROOM_STATUSES = (RoomStatus.AVAILABLE, RoomStatus.OCCUPIED)


def overlap_condition(check_in: date, check_out: date):
    """与 [check_in, check_out) 重叠的预订过滤条件"""
    return and_(
        Reservation.check_in < check_out,
        Reservation.check_out > check_in,
    )


def find_conflicting_reservations(db: Session, room_id: int, check_in: date, check_out: date) -> List[Reservation]:
    """
    查询指定房间与日期区间冲突的活动预订

    必须在已锁定房间行的事务中调用，结果才可作为写入依据
    """
    return db.query(Reservation).filter(
        Reservation.room_id == room_id,
        Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        overlap_condition(check_in, check_out),
    ).order_by(Reservation.check_in).all()


class AvailabilityService:
    """房间可用性查询"""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self._clock = clock

    def parse_search_range(self, check_in: Optional[str], check_out: Optional[str]) -> Tuple[date, date, int]:
        """校验查询日期，返回 (入住, 离店, 晚数)"""
        if not check_in or not check_out:
            raise ValidationError("入住和离店日期为必填项")

        check_in_date = parse_local_date(check_in)
        check_out_date = parse_local_date(check_out)

        if check_out_date <= check_in_date:
            raise ValidationError("离店日期必须晚于入住日期")

        if check_in_date < today_local(self._clock):
            raise ValidationError("入住日期不能早于今天")

        return check_in_date, check_out_date, nights_between(check_in_date, check_out_date)

    def search_available_rooms(self, check_in: date, check_out: date,
                               guests: Optional[int] = None,
                               room_type: Optional[RoomType] = None) -> List[dict]:
        """
        搜索可预订房间

        条件：房态为 AVAILABLE/OCCUPIED、容量满足人数、房型匹配、
        区间内没有活动预订。每条结果附带晚数和总价。
        """
        nights = nights_between(check_in, check_out)

        conflict = exists().where(
            Reservation.room_id == Room.id,
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
            overlap_condition(check_in, check_out),
        )
        query = self.db.query(Room).filter(
            Room.status.in_(SEARCHABLE_ROOM_STATUSES),
            ~conflict,
        )
        if guests is not None:
            if guests < 1:
                raise ValidationError("入住人数必须大于 0")
            query = query.filter(Room.capacity >= guests)
        if room_type is not None:
            query = query.filter(Room.type == room_type)

        rooms = query.order_by(Room.floor, Room.number).all()
        logger.debug(f"Availability {check_in}..{check_out}: {len(rooms)} rooms")

        return [
            {
                "id": room.id,
                "number": room.number,
                "type": room.type,
                "price": room.price,
                "capacity": room.capacity,
                "floor": room.floor,
                "status": room.status,
                "description": room.description,
                "amenities": room.amenities,
                "nights": nights,
                "total_price": Decimal(room.price) * nights,
            }
            for room in rooms
        ]
