"""
Pytest 配置和共享 fixtures
"""
import pytest
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.database import Base, get_db, configure_sqlite_locking
from app.models import ontology  # noqa: F401
from app.models.ontology import (
    User, UserRole, Room, RoomType, RoomStatus, Reservation, ReservationStatus,
    HotelService, ServiceType, ServiceCategory, ServiceTimeSlot, WEEKDAYS
)
from app.security.auth import get_password_hash, create_access_token
from app.services.date_utils import get_clock
from app.main import app

# 所有测试共用的"现在"：2025-03-10 周一上午
FIXED_NOW = datetime(2025, 3, 10, 10, 0, 0)


def _noop_publisher(event):
    pass


@pytest.fixture
def clock():
    """固定时钟"""
    return lambda: FIXED_NOW


@pytest.fixture
def noop_publisher():
    return _noop_publisher


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = configure_sqlite_locking(create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    ))
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """创建数据库会话"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session, clock):
    """创建测试客户端"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============== 认证相关 Fixtures ==============

def _user(db, email, name, role):
    user = User(
        email=email,
        name=name,
        password_hash=get_password_hash("123456"),
        role=role,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def guest_user(db_session):
    """普通客人"""
    return _user(db_session, "guest@hotel.test", "客人小张", UserRole.USER)


@pytest.fixture
def other_user(db_session):
    """另一位客人"""
    return _user(db_session, "other@hotel.test", "客人小刘", UserRole.USER)


@pytest.fixture
def operator_user(db_session):
    """前台运营"""
    return _user(db_session, "operator@hotel.test", "前台小王", UserRole.OPERATOR)


@pytest.fixture
def admin_user(db_session):
    """管理员"""
    return _user(db_session, "admin@hotel.test", "管理员", UserRole.ADMIN)


@pytest.fixture
def guest_headers(guest_user):
    return {"Authorization": f"Bearer {create_access_token(guest_user.id, guest_user.role)}"}


@pytest.fixture
def other_headers(other_user):
    return {"Authorization": f"Bearer {create_access_token(other_user.id, other_user.role)}"}


@pytest.fixture
def operator_headers(operator_user):
    return {"Authorization": f"Bearer {create_access_token(operator_user.id, operator_user.role)}"}


@pytest.fixture
def admin_headers(admin_user):
    return {"Authorization": f"Bearer {create_access_token(admin_user.id, admin_user.role)}"}


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def make_room(db_session):
    """房间工厂"""
    counter = [200]

    def factory(price="100.00", capacity=2, status=RoomStatus.AVAILABLE,
                room_type=RoomType.SUITE_DOUBLE, number=None, floor=1):
        counter[0] += 1
        room = Room(
            number=number or str(counter[0]),
            type=room_type,
            price=Decimal(price),
            capacity=capacity,
            floor=floor,
            status=status,
            amenities=[],
        )
        db_session.add(room)
        db_session.commit()
        db_session.refresh(room)
        return room
    return factory


@pytest.fixture
def sample_room(make_room):
    """$100/晚、可住 2 人的房间"""
    return make_room(number="101")


@pytest.fixture
def make_reservation(db_session, guest_user):
    """直接写库的预订工厂（绕过业务校验，用于构造场景）"""
    def factory(room, check_in, check_out, status=ReservationStatus.CONFIRMED, user=None, guests=1):
        reservation = Reservation(
            user_id=(user or guest_user).id,
            room_id=room.id,
            check_in=check_in,
            check_out=check_out,
            guests=guests,
            total_price=Decimal(room.price) * (check_out - check_in).days,
            status=status,
        )
        db_session.add(reservation)
        db_session.commit()
        db_session.refresh(reservation)
        return reservation
    return factory


@pytest.fixture
def make_service(db_session):
    """附加服务工厂：默认 09:00-12:00，每 60 分钟一个 60 分钟时段，最多 5 人"""
    def factory(**overrides):
        fields = dict(
            name="森林冥想",
            type=ServiceType.SPA,
            category=ServiceCategory.MENTAL_EQUILIBRIUM,
            price=Decimal("50.00"),
            price_per_person=True,
            duration=60,
            min_capacity=1,
            max_capacity=5,
            available_days=list(WEEKDAYS),
            start_time="09:00",
            end_time="12:00",
            slot_interval=60,
            is_active=True,
        )
        fields.update(overrides)
        service = HotelService(**fields)
        db_session.add(service)
        db_session.commit()
        db_session.refresh(service)
        return service
    return factory


@pytest.fixture
def make_slot(db_session):
    """时段工厂"""
    def factory(service, day=date(2025, 3, 11), start_time="10:00", capacity=5, booked=0,
                is_available=True):
        slot = ServiceTimeSlot(
            service_id=service.id,
            date=day,
            start_time=start_time,
            end_time="11:00",
            capacity=capacity,
            booked=booked,
            is_available=is_available,
        )
        db_session.add(slot)
        db_session.commit()
        db_session.refresh(slot)
        return slot
    return factory
