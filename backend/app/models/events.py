"""
领域事件定义 (Domain Events)
事件在事务提交之后发布，处理器失败不影响业务结果
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from typing import Optional, Dict, Any


class EventType(str, Enum):
    """事件类型枚举"""
    # 房间相关
    ROOM_STATUS_CHANGED = "room.status_changed"

    # 预订相关
    RESERVATION_CREATED = "reservation.created"
    RESERVATION_STATUS_CHANGED = "reservation.status_changed"
    RESERVATION_CANCELLED = "reservation.cancelled"

    # 附加服务相关
    TIME_SLOTS_GENERATED = "time_slots.generated"
    SERVICE_BOOKING_CREATED = "service_booking.created"
    SERVICE_BOOKING_CANCELLED = "service_booking.cancelled"

    # 支付相关
    PAYMENT_STATUS_CHANGED = "payment.status_changed"


@dataclass
class BaseEventData:
    """事件数据基类"""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        result = asdict(self)
        # 处理日期序列化
        for key, value in result.items():
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
        return result


@dataclass
class RoomStatusChangedData(BaseEventData):
    """房间状态变更事件数据"""
    room_id: int = 0
    room_number: str = ""
    old_status: str = ""
    new_status: str = ""
    changed_by: Optional[int] = None
    reason: str = ""


@dataclass
class ReservationCreatedData(BaseEventData):
    """预订创建事件数据"""
    reservation_id: int = 0
    room_id: int = 0
    user_id: int = 0
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    nights: int = 0
    total_price: float = 0.0
    payment_id: int = 0


@dataclass
class ReservationStatusChangedData(BaseEventData):
    """预订状态变更事件数据"""
    reservation_id: int = 0
    room_id: int = 0
    old_status: str = ""
    new_status: str = ""
    room_status: str = ""
    changed_by: Optional[int] = None


@dataclass
class TimeSlotsGeneratedData(BaseEventData):
    """时段生成事件数据"""
    service_id: int = 0
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    count: int = 0


@dataclass
class ServiceBookingData(BaseEventData):
    """服务预订事件数据（创建/取消共用）"""
    booking_id: int = 0
    service_id: int = 0
    time_slot_id: int = 0
    reservation_id: int = 0
    participants: int = 0
    slot_booked: int = 0
    slot_capacity: int = 0


@dataclass
class PaymentStatusChangedData(BaseEventData):
    """支付状态变更事件数据"""
    payment_kind: str = ""
    payment_id: int = 0
    old_status: str = ""
    new_status: str = ""
