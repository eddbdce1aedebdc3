"""
本体对象定义 (Ontology Objects)
酒店预订核心：房间、预订、支付记录、附加服务、服务时段、服务预订
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Boolean, Numeric, JSON, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from app.database import Base


# ============== 枚举定义 ==============

class RoomType(str, Enum):
    """房型枚举"""
    SUITE_SINGLE = "SUITE_SINGLE"
    SUITE_DOUBLE = "SUITE_DOUBLE"
    VILLA_PETIT = "VILLA_PETIT"
    VILLA_GRANDE = "VILLA_GRANDE"


class RoomStatus(str, Enum):
    """房间运营状态"""
    AVAILABLE = "AVAILABLE"        # 空闲可售
    OCCUPIED = "OCCUPIED"          # 入住中
    CLEANING = "CLEANING"          # 待清洁/清洁中
    MAINTENANCE = "MAINTENANCE"    # 维修中
    CLOSED = "CLOSED"              # 已关闭（软删除）


class RoomAction(str, Enum):
    """员工房态操作指令"""
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    MAINTENANCE = "MAINTENANCE"
    CLEANING = "CLEANING"
    DIRTY = "DIRTY"                # 与 CLEANING 同义
    CLEAN = "CLEAN"


class ReservationStatus(str, Enum):
    """预订状态"""
    PENDING = "PENDING"            # 待支付
    CONFIRMED = "CONFIRMED"        # 已确认
    CHECKED_IN = "CHECKED_IN"      # 已入住
    CHECKED_OUT = "CHECKED_OUT"    # 已退房
    CANCELLED = "CANCELLED"        # 已取消


# 占用房间日期区间的预订状态
ACTIVE_RESERVATION_STATUSES = (
    ReservationStatus.PENDING,
    ReservationStatus.CONFIRMED,
    ReservationStatus.CHECKED_IN,
)

# 取消后判断房间是否仍被占用时使用的状态
OCCUPYING_RESERVATION_STATUSES = (
    ReservationStatus.CONFIRMED,
    ReservationStatus.CHECKED_IN,
)


class PaymentStatus(str, Enum):
    """支付状态（由支付网关回调更新）"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REFUNDED = "REFUNDED"


class UserRole(str, Enum):
    """用户角色"""
    USER = "USER"                  # 客人
    OPERATOR = "OPERATOR"          # 前台/运营
    ADMIN = "ADMIN"                # 管理员


STAFF_ROLES = (UserRole.OPERATOR, UserRole.ADMIN)


class ServiceType(str, Enum):
    """附加服务类型"""
    SPA = "SPA"
    EXPERIENCE = "EXPERIENCE"


class ServiceCategory(str, Enum):
    """附加服务类别（取值范围依赖服务类型）"""
    SPIRITUAL_ILLUMINATION = "SPIRITUAL_ILLUMINATION"
    PHYSICAL_OPTIMISATION = "PHYSICAL_OPTIMISATION"
    MENTAL_EQUILIBRIUM = "MENTAL_EQUILIBRIUM"
    CULINARY_EXPERIENCE = "CULINARY_EXPERIENCE"
    NATURE_CULTURE = "NATURE_CULTURE"
    WINE_EXPERIENCE = "WINE_EXPERIENCE"
    RELAXATION_NATURE = "RELAXATION_NATURE"


SERVICE_CATEGORIES = {
    ServiceType.SPA: (
        ServiceCategory.SPIRITUAL_ILLUMINATION,
        ServiceCategory.PHYSICAL_OPTIMISATION,
        ServiceCategory.MENTAL_EQUILIBRIUM,
    ),
    ServiceType.EXPERIENCE: (
        ServiceCategory.CULINARY_EXPERIENCE,
        ServiceCategory.NATURE_CULTURE,
        ServiceCategory.WINE_EXPERIENCE,
        ServiceCategory.RELAXATION_NATURE,
    ),
}


class ServiceBookingStatus(str, Enum):
    """服务预订状态"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


WEEKDAYS = ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]


# ============== 本体对象定义 ==============

class User(Base):
    """
    用户对象（认证协作方提供的主体）
    只用于所有权校验和角色判断
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(120), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.USER)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    reservations = relationship("Reservation", back_populates="user")

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


class Room(Base):
    """
    房间对象 - 并发争用的核心行
    status 只能经由房态状态机或预订状态联动修改
    """
    __tablename__ = "rooms"
    __table_args__ = (
        CheckConstraint("price > 0", name="ck_room_price_positive"),
        CheckConstraint("capacity > 0", name="ck_room_capacity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(10), unique=True, nullable=False)      # 房间号
    type = Column(SQLEnum(RoomType), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)                 # 每晚价格
    capacity = Column(Integer, nullable=False)                     # 最大入住人数
    floor = Column(Integer, nullable=False)
    status = Column(SQLEnum(RoomStatus), nullable=False, default=RoomStatus.AVAILABLE)
    description = Column(Text)
    amenities = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reservations = relationship("Reservation", back_populates="room")


class Reservation(Base):
    """
    预订对象 - 预订阶段的聚合根
    同一房间内活动预订的 [check_in, check_out) 区间两两不重叠
    """
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("check_out > check_in", name="ck_reservation_dates"),
        CheckConstraint("guests >= 1", name="ck_reservation_guests"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    guests = Column(Integer, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(ReservationStatus), nullable=False, default=ReservationStatus.PENDING)
    special_requests = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="reservations")
    room = relationship("Room", back_populates="reservations")
    payment = relationship("Payment", back_populates="reservation", uselist=False)
    service_bookings = relationship("ServiceBooking", back_populates="reservation")

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days


class Payment(Base):
    """
    支付记录 - 与预订一一对应
    本核心只创建 PENDING 记录并读取状态；其余由支付网关回调维护
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    payment_method = Column(String(50))
    transaction_id = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reservation = relationship("Reservation", back_populates="payment")


class HotelService(Base):
    """
    附加服务对象（SPA / 体验活动）
    按周排期：available_days 中的每天从 start_time 起每 slot_interval 分钟一个时段
    """
    __tablename__ = "hotel_services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    type = Column(SQLEnum(ServiceType), nullable=False)
    category = Column(SQLEnum(ServiceCategory), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    price_per_person = Column(Boolean, default=True)
    duration = Column(Integer, nullable=False)                    # 分钟
    min_capacity = Column(Integer, nullable=False, default=1)
    max_capacity = Column(Integer, nullable=False)
    available_days = Column(JSON, nullable=False, default=lambda: list(WEEKDAYS))
    start_time = Column(String(5), nullable=False)                # HH:MM
    end_time = Column(String(5), nullable=False)                  # HH:MM
    slot_interval = Column(Integer, nullable=False, default=60)   # 分钟
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    time_slots = relationship("ServiceTimeSlot", back_populates="service")
    bookings = relationship("ServiceBooking", back_populates="service")

    def price_for(self, participants: int) -> Decimal:
        """计算服务总价"""
        if self.price_per_person:
            return Decimal(self.price) * participants
        return Decimal(self.price)


class ServiceTimeSlot(Base):
    """
    服务时段 - 并发争用的核心行
    0 <= booked <= capacity，booked 只通过条件 UPDATE 原子增减
    """
    __tablename__ = "service_time_slots"
    __table_args__ = (
        UniqueConstraint("service_id", "date", "start_time", name="uq_slot_service_date_start"),
        CheckConstraint("booked >= 0", name="ck_slot_booked_non_negative"),
        CheckConstraint("booked <= capacity", name="ck_slot_booked_within_capacity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    service_id = Column(Integer, ForeignKey("hotel_services.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    capacity = Column(Integer, nullable=False)
    booked = Column(Integer, nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    service = relationship("HotelService", back_populates="time_slots")
    bookings = relationship("ServiceBooking", back_populates="time_slot")

    @property
    def remaining(self) -> int:
        return self.capacity - self.booked


class ServiceBooking(Base):
    """
    服务预订 - 挂在一次住店预订下
    booking_date 必须落在 [reservation.check_in, reservation.check_out)
    """
    __tablename__ = "service_bookings"

    id = Column(Integer, primary_key=True, index=True)
    service_id = Column(Integer, ForeignKey("hotel_services.id"), nullable=False, index=True)
    time_slot_id = Column(Integer, ForeignKey("service_time_slots.id"), nullable=False)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    booking_date = Column(Date, nullable=False)
    booking_time = Column(String(5), nullable=False)
    participants = Column(Integer, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(ServiceBookingStatus), nullable=False, default=ServiceBookingStatus.PENDING)
    special_requests = Column(Text)
    staff_notes = Column(Text)
    confirmed_at = Column(DateTime)
    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    service = relationship("HotelService", back_populates="bookings")
    time_slot = relationship("ServiceTimeSlot", back_populates="bookings")
    reservation = relationship("Reservation", back_populates="service_bookings")
    payment = relationship("ServicePayment", back_populates="booking", uselist=False)


class ServicePayment(Base):
    """服务支付记录 - 与服务预订一一对应"""
    __tablename__ = "service_payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("service_bookings.id"), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    payment_method = Column(String(50))
    transaction_id = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = relationship("ServiceBooking", back_populates="payment")
