"""
Pydantic 模式定义
用于 API 请求/响应验证
请求体字段同时接受 snake_case 与接口约定中的 camelCase 名称
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict, AliasChoices
from app.exceptions import ValidationError
from app.models.ontology import (
    RoomType, RoomStatus, RoomAction, ReservationStatus, PaymentStatus,
    ServiceType, ServiceCategory, ServiceBookingStatus
)


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class RequestModel(BaseModel):
    """请求体基类"""
    model_config = ConfigDict(populate_by_name=True)

    def changes(self, nullable: tuple = ()) -> dict:
        """客户端显式提交的字段；不可为空的字段提交 null 时拒绝"""
        fields = self.model_dump(exclude_unset=True)
        for key, value in fields.items():
            if value is None and key not in nullable:
                raise ValidationError(f"字段 {key} 不能为空")
        return fields


# ============== 房间 Schemas ==============

class RoomCreate(RequestModel):
    number: str = Field(..., min_length=1, max_length=10)
    type: RoomType
    price: Decimal = Field(..., gt=0)
    capacity: int = Field(..., ge=1)
    floor: int
    description: Optional[str] = None
    amenities: List[str] = Field(default_factory=list)


class RoomUpdate(RequestModel):
    """房间元数据更新（不含状态）"""
    type: Optional[RoomType] = None
    price: Optional[Decimal] = Field(None, gt=0)
    capacity: Optional[int] = Field(None, ge=1)
    floor: Optional[int] = None
    description: Optional[str] = None
    amenities: Optional[List[str]] = None


class RoomResponse(BaseModel):
    id: int
    number: str
    type: RoomType
    price: Decimal
    capacity: int
    floor: int
    status: RoomStatus
    description: Optional[str] = None
    amenities: Optional[List[str]] = None
    model_config = ConfigDict(from_attributes=True)


class RoomStatusAction(RequestModel):
    action: RoomAction


class ReservationInfo(BaseModel):
    has_active_reservations: bool
    has_checked_in: bool
    total_active_reservations: int
    next_check_in: Optional[date] = None


class RoomStatusResponse(BaseModel):
    message: str
    room: RoomResponse
    reservation_info: ReservationInfo


class AvailableRoom(RoomResponse):
    nights: int
    total_price: Decimal


class AvailabilityResponse(BaseModel):
    rooms: List[AvailableRoom]
    check_in: date
    check_out: date
    nights: int
    guests: Optional[int] = None
    type: str = "all"


# ============== 预订 Schemas ==============

class ReservationCreate(RequestModel):
    """日期保持原始字符串，由日期工具按本地日历日解析"""
    room_id: int = Field(..., validation_alias=_alias("room_id", "roomId"))
    check_in: str = Field(..., validation_alias=_alias("check_in", "checkIn"))
    check_out: str = Field(..., validation_alias=_alias("check_out", "checkOut"))
    guests: int
    special_requests: Optional[str] = Field(
        None, validation_alias=_alias("special_requests", "specialRequests")
    )


class ReservationStatusUpdate(RequestModel):
    status: ReservationStatus


class PaymentResponse(BaseModel):
    id: int
    amount: Decimal
    currency: str
    status: PaymentStatus
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ReservationRoom(BaseModel):
    id: int
    number: str
    type: RoomType
    price: Decimal
    model_config = ConfigDict(from_attributes=True)


class ReservationResponse(BaseModel):
    id: int
    user_id: int
    room_id: int
    check_in: date
    check_out: date
    guests: int
    nights: int
    total_price: Decimal
    status: ReservationStatus
    special_requests: Optional[str] = None
    created_at: datetime
    room: Optional[ReservationRoom] = None
    payment: Optional[PaymentResponse] = None
    model_config = ConfigDict(from_attributes=True)


class ReservationCreated(BaseModel):
    reservation: ReservationResponse
    nights: int


class ReservationStatusResult(BaseModel):
    reservation: ReservationResponse
    room_status_updated: RoomStatus


# ============== 附加服务 Schemas ==============

class HotelServiceBase(RequestModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    type: ServiceType
    category: ServiceCategory
    price: Decimal = Field(..., ge=0)
    price_per_person: bool = Field(True, validation_alias=_alias("price_per_person", "pricePerPerson"))
    duration: int = Field(..., gt=0)
    min_capacity: int = Field(1, ge=1, validation_alias=_alias("min_capacity", "minCapacity"))
    max_capacity: int = Field(..., ge=1, validation_alias=_alias("max_capacity", "maxCapacity"))
    available_days: Optional[List[str]] = Field(
        None, validation_alias=_alias("available_days", "availableDays")
    )
    start_time: str = Field("09:00", validation_alias=_alias("start_time", "startTime"))
    end_time: str = Field("18:00", validation_alias=_alias("end_time", "endTime"))
    slot_interval: int = Field(60, gt=0, validation_alias=_alias("slot_interval", "slotInterval"))
    is_active: bool = Field(True, validation_alias=_alias("is_active", "isActive"))


class HotelServiceCreate(HotelServiceBase):
    pass


class HotelServiceUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    type: Optional[ServiceType] = None
    category: Optional[ServiceCategory] = None
    price: Optional[Decimal] = Field(None, ge=0)
    price_per_person: Optional[bool] = Field(None, validation_alias=_alias("price_per_person", "pricePerPerson"))
    duration: Optional[int] = Field(None, gt=0)
    min_capacity: Optional[int] = Field(None, ge=1, validation_alias=_alias("min_capacity", "minCapacity"))
    max_capacity: Optional[int] = Field(None, ge=1, validation_alias=_alias("max_capacity", "maxCapacity"))
    available_days: Optional[List[str]] = Field(
        None, validation_alias=_alias("available_days", "availableDays")
    )
    start_time: Optional[str] = Field(None, validation_alias=_alias("start_time", "startTime"))
    end_time: Optional[str] = Field(None, validation_alias=_alias("end_time", "endTime"))
    slot_interval: Optional[int] = Field(None, gt=0, validation_alias=_alias("slot_interval", "slotInterval"))
    is_active: Optional[bool] = Field(None, validation_alias=_alias("is_active", "isActive"))


class HotelServiceResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    type: ServiceType
    category: ServiceCategory
    price: Decimal
    price_per_person: bool
    duration: int
    min_capacity: int
    max_capacity: int
    available_days: List[str]
    start_time: str
    end_time: str
    slot_interval: int
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


# ============== 服务时段 Schemas ==============

class GenerateSlotsRequest(RequestModel):
    start_date: str = Field(..., validation_alias=_alias("start_date", "startDate"))
    end_date: str = Field(..., validation_alias=_alias("end_date", "endDate"))


class GenerateSlotsResponse(BaseModel):
    count: int
    message: str


class TimeSlotUpdate(RequestModel):
    capacity: Optional[int] = Field(None, ge=0)
    is_available: Optional[bool] = Field(None, validation_alias=_alias("is_available", "isAvailable"))


class TimeSlotResponse(BaseModel):
    id: int
    service_id: int
    date: date
    start_time: str
    end_time: str
    capacity: int
    booked: int
    available: int
    is_available: bool

    @classmethod
    def from_slot(cls, slot) -> "TimeSlotResponse":
        return cls(
            id=slot.id,
            service_id=slot.service_id,
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            capacity=slot.capacity,
            booked=slot.booked,
            available=slot.capacity - slot.booked,
            is_available=slot.is_available,
        )


# ============== 服务预订 Schemas ==============

class ServiceBookingCreate(RequestModel):
    service_id: int = Field(..., validation_alias=_alias("service_id", "serviceId"))
    reservation_id: int = Field(..., validation_alias=_alias("reservation_id", "reservationId"))
    booking_date: str = Field(..., validation_alias=_alias("booking_date", "bookingDate"))
    booking_time: str = Field(..., validation_alias=_alias("booking_time", "bookingTime"))
    participants: int
    special_requests: Optional[str] = Field(
        None, validation_alias=_alias("special_requests", "specialRequests")
    )


class ServiceBookingStatusUpdate(RequestModel):
    status: Optional[ServiceBookingStatus] = None
    staff_notes: Optional[str] = Field(None, validation_alias=_alias("staff_notes", "staffNotes"))


class ServicePaymentResponse(PaymentResponse):
    booking_id: int


class ServiceBookingResponse(BaseModel):
    id: int
    service_id: int
    time_slot_id: int
    reservation_id: int
    user_id: int
    booking_date: date
    booking_time: str
    participants: int
    total_price: Decimal
    status: ServiceBookingStatus
    special_requests: Optional[str] = None
    staff_notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ServiceBookingCreated(BaseModel):
    booking: ServiceBookingResponse
    payment: ServicePaymentResponse
