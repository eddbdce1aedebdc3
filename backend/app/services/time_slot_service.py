"""
服务时段容量引擎
生成时段、查询可用时段、维护名额计数

booked 的增减全部是单条带条件的 UPDATE，不做先读后写：
    预订: booked = booked + n  WHERE booked + n <= capacity
    释放: booked = booked - n  WHERE booked >= n
影响行数为 0 即说明条件不成立
"""
from typing import Callable, List, Optional, Tuple
from datetime import date
import logging

from sqlalchemy import update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import atomic
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.ontology import HotelService, ServiceBooking, ServiceTimeSlot
from app.models.events import EventType, TimeSlotsGeneratedData
from app.services.date_utils import (
    add_minutes, format_hhmm, iter_days, parse_hhmm, parse_local_date, weekday_name
)
from app.services.event_bus import event_bus, Event

logger = logging.getLogger(__name__)


def slot_times(service: HotelService) -> List[Tuple[str, str]]:
    """一天内的 (开始, 结束) 时段：从 start_time 起每 slot_interval 分钟一个，直到放不下 duration"""
    current = parse_hhmm(service.start_time)
    day_end = parse_hhmm(service.end_time)
    times = []
    while current + service.duration <= day_end:
        times.append((format_hhmm(current), format_hhmm(current + service.duration)))
        current += service.slot_interval
    return times


def build_slot(service: HotelService, day: date, start_time: str) -> ServiceTimeSlot:
    """按服务定义构造一个空时段"""
    return ServiceTimeSlot(
        service_id=service.id,
        date=day,
        start_time=start_time,
        end_time=add_minutes(start_time, service.duration),
        capacity=service.max_capacity,
        booked=0,
        is_available=True,
    )


class TimeSlotService:
    """服务时段服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish

    def _require_service(self, service_id: int) -> HotelService:
        service = self.db.query(HotelService).filter(HotelService.id == service_id).first()
        if not service:
            raise NotFoundError("服务不存在")
        return service

    def _require_slot(self, service_id: int, slot_id: int) -> ServiceTimeSlot:
        slot = self.db.query(ServiceTimeSlot).filter(
            ServiceTimeSlot.id == slot_id,
            ServiceTimeSlot.service_id == service_id,
        ).first()
        if not slot:
            raise NotFoundError("时段不存在")
        return slot

    # ============== 生成 ==============

    def generate_slots(self, service_id: int, start_date, end_date) -> int:
        """
        为 [start_date, end_date] 内每个可用星期生成时段

        已存在的 (service_id, date, start_time) 跳过，重复调用不产生重复行。

        Returns:
            新建的时段数
        """
        start = parse_local_date(start_date)
        end = parse_local_date(end_date)
        if end < start:
            raise ValidationError("开始日期不能晚于结束日期")

        with atomic(self.db):
            service = self._require_service(service_id)
            times = slot_times(service)
            existing = {
                (slot_date, start_time)
                for slot_date, start_time in self.db.query(
                    ServiceTimeSlot.date, ServiceTimeSlot.start_time
                ).filter(
                    ServiceTimeSlot.service_id == service_id,
                    ServiceTimeSlot.date >= start,
                    ServiceTimeSlot.date <= end,
                )
            }

            created = 0
            for day in iter_days(start, end):
                if weekday_name(day) not in service.available_days:
                    continue
                for start_time, _ in times:
                    if (day, start_time) in existing:
                        continue
                    self.db.add(build_slot(service, day, start_time))
                    created += 1
            try:
                self.db.flush()
            except IntegrityError:
                raise ConflictError("时段正在被并发生成，请稍后重试")

        logger.info(f"Generated {created} slots for service #{service_id} ({start}..{end})")
        self._publish_event(Event.of(
            EventType.TIME_SLOTS_GENERATED,
            TimeSlotsGeneratedData(service_id=service_id, start_date=start, end_date=end, count=created),
            source="time_slot_service",
        ))
        return created

    # ============== 查询 ==============

    def list_slots(self, service_id: int, start_date=None, end_date=None,
                   only_available: bool = False) -> List[ServiceTimeSlot]:
        """服务的时段列表"""
        self._require_service(service_id)
        query = self.db.query(ServiceTimeSlot).filter(ServiceTimeSlot.service_id == service_id)
        if start_date:
            query = query.filter(ServiceTimeSlot.date >= parse_local_date(start_date))
        if end_date:
            query = query.filter(ServiceTimeSlot.date <= parse_local_date(end_date))
        if only_available:
            query = query.filter(ServiceTimeSlot.is_available == True)  # noqa: E712
        return query.order_by(ServiceTimeSlot.date, ServiceTimeSlot.start_time).all()

    def available_slots(self, service_id: int, day) -> List[ServiceTimeSlot]:
        """某日仍可预订（开放且未满）的时段"""
        self._require_service(service_id)
        return self.db.query(ServiceTimeSlot).filter(
            ServiceTimeSlot.service_id == service_id,
            ServiceTimeSlot.date == parse_local_date(day),
            ServiceTimeSlot.is_available == True,  # noqa: E712
            ServiceTimeSlot.booked < ServiceTimeSlot.capacity,
        ).order_by(ServiceTimeSlot.start_time).all()

    def find_slot(self, service_id: int, day: date, start_time: str) -> Optional[ServiceTimeSlot]:
        return self.db.query(ServiceTimeSlot).filter(
            ServiceTimeSlot.service_id == service_id,
            ServiceTimeSlot.date == day,
            ServiceTimeSlot.start_time == start_time,
        ).first()

    def get_or_create_slot(self, service: HotelService, day: date, start_time: str) -> ServiceTimeSlot:
        """
        查找时段；未预先生成时按服务定义即时创建

        在调用方事务内执行，创建冲突（并发创建同一时段）时回退到保存点并重新读取
        """
        slot = self.find_slot(service.id, day, start_time)
        if slot:
            return slot

        start = parse_hhmm(start_time)
        if start < parse_hhmm(service.start_time) or start + service.duration > parse_hhmm(service.end_time):
            raise ValidationError(
                f"预订时间须在服务时间 {service.start_time}-{service.end_time} 内，且能完成 {service.duration} 分钟的服务"
            )

        try:
            with self.db.begin_nested():
                slot = build_slot(service, day, start_time)
                self.db.add(slot)
            logger.info(f"Synthesized slot {day} {start_time} for service #{service.id}")
            return slot
        except IntegrityError:
            slot = self.find_slot(service.id, day, start_time)
            if not slot:
                raise
            return slot

    # ============== 名额计数 ==============

    def reserve_capacity(self, slot_id: int, participants: int) -> bool:
        """原子占用名额；名额不足或时段关闭时返回 False"""
        result = self.db.execute(
            update(ServiceTimeSlot)
            .where(
                ServiceTimeSlot.id == slot_id,
                ServiceTimeSlot.is_available == True,  # noqa: E712
                ServiceTimeSlot.booked + participants <= ServiceTimeSlot.capacity,
            )
            .values(booked=ServiceTimeSlot.booked + participants)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def release_capacity(self, slot_id: int, participants: int) -> bool:
        """原子释放名额；计数不足时返回 False"""
        result = self.db.execute(
            update(ServiceTimeSlot)
            .where(
                ServiceTimeSlot.id == slot_id,
                ServiceTimeSlot.booked >= participants,
            )
            .values(booked=ServiceTimeSlot.booked - participants)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ============== 时段管理 ==============

    def update_slot(self, service_id: int, slot_id: int, capacity: Optional[int] = None,
                    is_available: Optional[bool] = None) -> ServiceTimeSlot:
        """修改时段容量或开放状态；容量不能低于已订人数"""
        with atomic(self.db):
            slot = self._require_slot(service_id, slot_id)

            if capacity is not None:
                if capacity < 0:
                    raise ValidationError("容量不能为负数")
                result = self.db.execute(
                    update(ServiceTimeSlot)
                    .where(ServiceTimeSlot.id == slot_id, ServiceTimeSlot.booked <= capacity)
                    .values(capacity=capacity)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    self.db.refresh(slot)
                    raise ConflictError(f"容量不能低于已预订人数 {slot.booked}")

            if is_available is not None:
                self.db.execute(
                    update(ServiceTimeSlot)
                    .where(ServiceTimeSlot.id == slot_id)
                    .values(is_available=is_available)
                    .execution_options(synchronize_session=False)
                )

        self.db.refresh(slot)
        logger.info(f"Slot #{slot_id} updated: capacity={slot.capacity} available={slot.is_available}")
        return slot

    def delete_slot(self, service_id: int, slot_id: int) -> None:
        """删除时段；已有预订人数时拒绝"""
        with atomic(self.db):
            slot = self._require_slot(service_id, slot_id)
            has_bookings = self.db.query(ServiceBooking.id).filter(
                ServiceBooking.time_slot_id == slot_id
            ).first() is not None
            if slot.booked == 0 and has_bookings:
                raise ConflictError("该时段有历史预订记录，不能删除，可改为关闭")
            result = self.db.execute(
                delete(ServiceTimeSlot)
                .where(ServiceTimeSlot.id == slot_id, ServiceTimeSlot.booked == 0)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(f"该时段已有 {slot.booked} 人预订，不能删除")
            self.db.expunge(slot)
        logger.info(f"Slot #{slot_id} deleted")
