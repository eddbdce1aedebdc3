"""
房态状态机
员工操作指令 -> 前置条件 -> 新房态

规则只依赖房间当前状态和其活动预订的事实快照（RoomSnapshot），
快照必须在锁定房间行的同一事务中读取。
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

from app.exceptions import ConflictError
from app.models.ontology import RoomAction, RoomStatus, ReservationStatus

logger = logging.getLogger(__name__)


@dataclass
class RoomSnapshot:
    """房间及其活动预订（PENDING/CONFIRMED/CHECKED_IN）的事实"""
    status: RoomStatus
    today: date
    active_check_ins: List[date] = field(default_factory=list)  # 按入住日升序
    has_checked_in: bool = False
    has_current_stay: bool = False

    @classmethod
    def from_reservations(cls, status: RoomStatus, reservations: Sequence, today: date) -> "RoomSnapshot":
        ordered = sorted(reservations, key=lambda r: r.check_in)
        return cls(
            status=status,
            today=today,
            active_check_ins=[r.check_in for r in ordered],
            has_checked_in=any(r.status == ReservationStatus.CHECKED_IN for r in ordered),
            has_current_stay=any(r.check_in <= today < r.check_out for r in ordered),
        )

    @property
    def has_active_reservations(self) -> bool:
        return bool(self.active_check_ins)

    @property
    def total_active(self) -> int:
        return len(self.active_check_ins)

    @property
    def next_check_in(self) -> Optional[date]:
        return self.active_check_ins[0] if self.active_check_ins else None

    def days_until(self, day: date) -> int:
        return (day - self.today).days

    def next_future_check_in(self) -> Optional[date]:
        future = [d for d in self.active_check_ins if d > self.today]
        return future[0] if future else None


Guard = Tuple[Callable[[RoomSnapshot], bool], Callable[[RoomSnapshot], str]]
Target = Callable[[RoomSnapshot, int], Tuple[RoomStatus, str]]


@dataclass
class ActionRule:
    """
    指令规则

    Attributes:
        guards: (必须成立的条件, 不成立时的说明) 列表，按顺序检查
        target: 计算新房态和提示信息
    """
    guards: List[Guard]
    target: Target


@dataclass
class RoomTransition:
    """状态机判定结果"""
    action: RoomAction
    from_status: RoomStatus
    to_status: RoomStatus
    message: str

    @property
    def changed(self) -> bool:
        return self.from_status != self.to_status


# ============== 条件 ==============

def _no_guest_inside(message: str) -> Guard:
    return (lambda s: not s.has_checked_in, lambda s: message)


def _not_closed(message: str) -> Guard:
    return (lambda s: s.status != RoomStatus.CLOSED, lambda s: message)


def _closing_blocked_message(s: RoomSnapshot) -> str:
    days = max(s.days_until(s.next_check_in), 0)
    return (
        f"无法关闭：房间有 {s.total_active} 个活动预订，"
        f"最近一个在 {days} 天后入住，请先取消这些预订"
    )


# ============== 目标状态 ==============

def _open_target(s: RoomSnapshot, warning_days: int) -> Tuple[RoomStatus, str]:
    if s.has_active_reservations:
        return RoomStatus.CLEANING, "房间已开放，因有待入住预订先标记为待清洁"
    return RoomStatus.AVAILABLE, "房间已开放并可售"


def _maintenance_target(s: RoomSnapshot, warning_days: int) -> Tuple[RoomStatus, str]:
    upcoming = s.next_future_check_in()
    if upcoming is not None:
        days = s.days_until(upcoming)
        if days <= warning_days:
            return RoomStatus.MAINTENANCE, f"警告：下一位客人 {days} 天后入住，请确保按时完成维修"
    return RoomStatus.MAINTENANCE, "房间已进入维修状态"


def _clean_target(s: RoomSnapshot, warning_days: int) -> Tuple[RoomStatus, str]:
    if s.has_current_stay:
        return RoomStatus.OCCUPIED, "房间已清洁，当前有在住客人"
    return RoomStatus.AVAILABLE, "房间已清洁并可售"


_CLEANING_RULE = ActionRule(
    guards=[
        _not_closed("无法标记清洁：房间已关闭，请先开放房间"),
        _no_guest_inside("无法标记清洁：房间内有在住客人，请等待退房"),
    ],
    target=lambda s, w: (RoomStatus.CLEANING, "房间已标记为待清洁"),
)

ROOM_ACTION_RULES: Dict[RoomAction, ActionRule] = {
    RoomAction.OPEN: ActionRule(
        guards=[(
            lambda s: s.status == RoomStatus.CLOSED,
            lambda s: f"无法开放：当前状态为 {s.status.value}，只有 CLOSED 的房间可以开放",
        )],
        target=_open_target,
    ),
    RoomAction.CLOSED: ActionRule(
        guards=[
            _no_guest_inside("无法关闭：房间内有在住客人，请等待退房"),
            (lambda s: not s.has_active_reservations, _closing_blocked_message),
        ],
        target=lambda s, w: (RoomStatus.CLOSED, "房间已关闭"),
    ),
    RoomAction.MAINTENANCE: ActionRule(
        guards=[
            _no_guest_inside("无法进入维修：房间内有在住客人，请等待退房"),
            _not_closed("无法进入维修：房间已关闭，请先开放房间"),
        ],
        target=_maintenance_target,
    ),
    RoomAction.CLEANING: _CLEANING_RULE,
    RoomAction.DIRTY: _CLEANING_RULE,
    RoomAction.CLEAN: ActionRule(
        guards=[(
            lambda s: s.status == RoomStatus.CLEANING,
            lambda s: f"无法标记为已清洁：当前状态为 {s.status.value}，只有 CLEANING 的房间可以标记",
        )],
        target=_clean_target,
    ),
}


def resolve_transition(action: RoomAction, snapshot: RoomSnapshot,
                       warning_days: int = 3) -> RoomTransition:
    """根据指令和快照计算新房态；前置条件不满足时抛出 ConflictError"""
    rule = ROOM_ACTION_RULES.get(action)
    if rule is None:
        raise ConflictError(f"无法识别的房态操作: {action}")

    for condition, explain in rule.guards:
        if not condition(snapshot):
            message = explain(snapshot)
            logger.info(f"Room action {action.value} rejected from {snapshot.status.value}: {message}")
            raise ConflictError(message)

    to_status, message = rule.target(snapshot, warning_days)
    return RoomTransition(
        action=action,
        from_status=snapshot.status,
        to_status=to_status,
        message=message,
    )
