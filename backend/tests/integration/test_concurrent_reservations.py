"""
并发预订测试 - 同一房间同一日期的并发请求只能成功一个
使用文件数据库，每个线程一个独立会话
"""
import threading
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from app.database import Base, build_engine
from app.exceptions import ConflictError
from app.models.ontology import Reservation, Room, RoomStatus, RoomType, User, UserRole
from app.models.schemas import ReservationCreate
from app.services.reservation_service import ReservationService

FIXED_NOW = datetime(2025, 3, 10, 10, 0, 0)
WORKERS = 20


@pytest.fixture
def file_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'concurrency.db'}", connect_args={"timeout": 30})
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def seeded(file_engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    session = Session()
    room = Room(number="101", type=RoomType.SUITE_DOUBLE, price=Decimal("100.00"), capacity=2,
                floor=1, status=RoomStatus.AVAILABLE, amenities=[])
    users = [
        User(email=f"guest{i}@hotel.test", name=f"客人{i}", password_hash="x", role=UserRole.USER)
        for i in range(WORKERS)
    ]
    session.add(room)
    session.add_all(users)
    session.commit()
    ids = room.id, [u.id for u in users]
    session.close()
    return Session, ids


def test_only_one_concurrent_booking_succeeds(seeded):
    Session, (room_id, user_ids) = seeded
    barrier = threading.Barrier(WORKERS)
    results = []
    lock = threading.Lock()

    def worker(user_id):
        session = Session()
        service = ReservationService(session, event_publisher=lambda event: None, clock=lambda: FIXED_NOW)
        request = ReservationCreate(room_id=room_id, check_in="2025-03-15", check_out="2025-03-17", guests=1)
        barrier.wait()
        try:
            service.create_reservation(request, user_id)
            outcome = "ok"
        except ConflictError:
            outcome = "conflict"
        except Exception as e:
            outcome = f"error: {e!r}"
        finally:
            session.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker, args=(user_id,)) for user_id in user_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count("ok") == 1, results
    assert results.count("conflict") == WORKERS - 1, results

    session = Session()
    try:
        assert session.query(Reservation).filter(Reservation.room_id == room_id).count() == 1
    finally:
        session.close()
