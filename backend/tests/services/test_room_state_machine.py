"""
房态状态机测试 - 纯规则表 + 加锁执行
"""
import pytest
from datetime import date

from app.exceptions import ConflictError, NotFoundError
from app.models.events import EventType
from app.models.ontology import RoomAction, RoomStatus, ReservationStatus
from app.services.room_service import RoomService
from app.services.room_state_machine import RoomSnapshot, resolve_transition

TODAY = date(2025, 3, 10)


def _snapshot(status, check_ins=(), checked_in=False, current_stay=False):
    return RoomSnapshot(
        status=status,
        today=TODAY,
        active_check_ins=list(check_ins),
        has_checked_in=checked_in,
        has_current_stay=current_stay,
    )


class TestTransitionTable:
    """规则表"""

    def test_open_closed_room_without_reservations(self):
        result = resolve_transition(RoomAction.OPEN, _snapshot(RoomStatus.CLOSED))
        assert result.to_status == RoomStatus.AVAILABLE

    def test_open_closed_room_with_reservation_goes_to_cleaning(self):
        result = resolve_transition(RoomAction.OPEN, _snapshot(RoomStatus.CLOSED, [date(2025, 3, 20)]))
        assert result.to_status == RoomStatus.CLEANING

    @pytest.mark.parametrize("status", [RoomStatus.AVAILABLE, RoomStatus.CLEANING, RoomStatus.MAINTENANCE])
    def test_open_requires_closed(self, status):
        with pytest.raises(ConflictError, match=f"当前状态为 {status.value}"):
            resolve_transition(RoomAction.OPEN, _snapshot(status))

    def test_close_idle_room(self):
        result = resolve_transition(RoomAction.CLOSED, _snapshot(RoomStatus.AVAILABLE))
        assert result.to_status == RoomStatus.CLOSED

    def test_close_blocked_by_active_reservations(self):
        snapshot = _snapshot(RoomStatus.AVAILABLE, [date(2025, 3, 15), date(2025, 3, 20)])
        with pytest.raises(ConflictError, match="2 个活动预订，最近一个在 5 天后入住"):
            resolve_transition(RoomAction.CLOSED, snapshot)

    def test_close_blocked_by_guest_inside(self):
        snapshot = _snapshot(RoomStatus.OCCUPIED, [date(2025, 3, 9)], checked_in=True)
        with pytest.raises(ConflictError, match="在住客人"):
            resolve_transition(RoomAction.CLOSED, snapshot)

    def test_maintenance_warns_when_guest_arrives_soon(self):
        result = resolve_transition(
            RoomAction.MAINTENANCE, _snapshot(RoomStatus.AVAILABLE, [date(2025, 3, 12)]), warning_days=3
        )
        assert result.to_status == RoomStatus.MAINTENANCE
        assert "2 天后入住" in result.message

    def test_maintenance_without_warning(self):
        result = resolve_transition(
            RoomAction.MAINTENANCE, _snapshot(RoomStatus.AVAILABLE, [date(2025, 3, 20)]), warning_days=3
        )
        assert result.to_status == RoomStatus.MAINTENANCE
        assert "警告" not in result.message

    def test_maintenance_rejected_on_closed_room(self):
        with pytest.raises(ConflictError, match="已关闭"):
            resolve_transition(RoomAction.MAINTENANCE, _snapshot(RoomStatus.CLOSED))

    @pytest.mark.parametrize("action", [RoomAction.CLEANING, RoomAction.DIRTY])
    def test_dirty_is_cleaning(self, action):
        result = resolve_transition(action, _snapshot(RoomStatus.AVAILABLE))
        assert result.to_status == RoomStatus.CLEANING

    @pytest.mark.parametrize("action", [RoomAction.CLEANING, RoomAction.DIRTY])
    def test_cleaning_blocked_by_guest_inside(self, action):
        with pytest.raises(ConflictError):
            resolve_transition(action, _snapshot(RoomStatus.OCCUPIED, [TODAY], checked_in=True))

    def test_clean_on_closed_room_rejected(self):
        with pytest.raises(ConflictError, match="当前状态为 CLOSED"):
            resolve_transition(RoomAction.CLEAN, _snapshot(RoomStatus.CLOSED))

    def test_clean_with_current_stay_becomes_occupied(self):
        result = resolve_transition(
            RoomAction.CLEAN, _snapshot(RoomStatus.CLEANING, [date(2025, 3, 9)], current_stay=True)
        )
        assert result.to_status == RoomStatus.OCCUPIED

    def test_clean_without_stay_becomes_available(self):
        result = resolve_transition(RoomAction.CLEAN, _snapshot(RoomStatus.CLEANING, [date(2025, 3, 20)]))
        assert result.to_status == RoomStatus.AVAILABLE

    def test_snapshot_from_reservations(self, sample_room, make_reservation):
        make_reservation(sample_room, date(2025, 3, 20), date(2025, 3, 22))
        make_reservation(sample_room, date(2025, 3, 9), date(2025, 3, 11), status=ReservationStatus.CHECKED_IN)

        snapshot = RoomSnapshot.from_reservations(RoomStatus.OCCUPIED, sample_room.reservations, TODAY)

        assert snapshot.next_check_in == date(2025, 3, 9)
        assert snapshot.has_checked_in
        assert snapshot.has_current_stay
        assert snapshot.next_future_check_in() == date(2025, 3, 20)


class TestApplyAction:
    """RoomService.apply_action"""

    @pytest.fixture
    def events(self):
        return []

    @pytest.fixture
    def service(self, db_session, events, clock):
        return RoomService(db_session, event_publisher=events.append, clock=clock)

    def test_open_with_one_active_reservation(self, service, make_room, make_reservation, events):
        room = make_room(status=RoomStatus.CLOSED)
        make_reservation(room, date(2025, 3, 15), date(2025, 3, 17), status=ReservationStatus.PENDING)

        result = service.apply_action(room.id, RoomAction.OPEN, changed_by=1)

        assert result["room"].status == RoomStatus.CLEANING
        assert result["reservation_info"] == {
            "has_active_reservations": True,
            "has_checked_in": False,
            "total_active_reservations": 1,
            "next_check_in": date(2025, 3, 15),
        }
        assert events[0].event_type == EventType.ROOM_STATUS_CHANGED.value
        assert events[0].data["old_status"] == "CLOSED"

    def test_rejection_leaves_room_untouched(self, service, db_session, make_room, events):
        room = make_room(status=RoomStatus.CLOSED)

        with pytest.raises(ConflictError):
            service.apply_action(room.id, RoomAction.CLEAN)

        db_session.refresh(room)
        assert room.status == RoomStatus.CLOSED
        assert events == []

    def test_clean_room_with_guest_staying_today(self, service, make_room, make_reservation):
        room = make_room(status=RoomStatus.CLEANING)
        make_reservation(room, date(2025, 3, 10), date(2025, 3, 12))

        result = service.apply_action(room.id, RoomAction.CLEAN)
        assert result["room"].status == RoomStatus.OCCUPIED

    def test_same_state_publishes_nothing(self, service, make_room, events):
        room = make_room(status=RoomStatus.CLEANING)
        result = service.apply_action(room.id, RoomAction.DIRTY)
        assert result["room"].status == RoomStatus.CLEANING
        assert events == []

    def test_unknown_room(self, service):
        with pytest.raises(NotFoundError):
            service.apply_action(999, RoomAction.OPEN)
