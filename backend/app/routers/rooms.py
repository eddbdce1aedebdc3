"""
房间路由
房间浏览与可用性查询（公开）、房间目录维护与房态操作（员工）
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.exceptions import HotelError, NotFoundError, ValidationError, to_http_exception
from app.models.ontology import User, RoomType, RoomStatus
from app.models.schemas import (
    RoomCreate, RoomUpdate, RoomResponse, RoomStatusAction, RoomStatusResponse,
    AvailabilityResponse
)
from app.services.availability_service import AvailabilityService
from app.services.date_utils import Clock, get_clock
from app.services.room_service import RoomService
from app.security.auth import require_staff

router = APIRouter(prefix="/rooms", tags=["房间管理"])


@router.get("/availability", response_model=AvailabilityResponse)
def search_availability(
    check_in: Optional[str] = Query(None),
    check_out: Optional[str] = Query(None),
    guests: Optional[int] = Query(None),
    type: Optional[str] = Query(None),
    checkIn: Optional[str] = Query(None, include_in_schema=False),
    checkOut: Optional[str] = Query(None, include_in_schema=False),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """查询日期区间内可预订的房间"""
    service = AvailabilityService(db, clock=clock)
    try:
        start, end, nights = service.parse_search_range(check_in or checkIn, check_out or checkOut)
        room_type = None
        if type and type != "all":
            try:
                room_type = RoomType(type)
            except ValueError:
                raise ValidationError(f"无效的房型: {type}")
        rooms = service.search_available_rooms(start, end, guests=guests, room_type=room_type)
    except HotelError as e:
        raise to_http_exception(e)

    return AvailabilityResponse(
        rooms=rooms,
        check_in=start,
        check_out=end,
        nights=nights,
        guests=guests,
        type=type or "all",
    )


@router.get("", response_model=List[RoomResponse])
def list_rooms(
    floor: Optional[int] = None,
    room_type: Optional[RoomType] = Query(None, alias="type"),
    room_status: Optional[RoomStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db)
):
    """获取房间列表"""
    return RoomService(db).get_rooms(floor=floor, room_type=room_type, status=room_status)


@router.get("/{room_id}", response_model=RoomResponse)
def get_room(room_id: int, db: Session = Depends(get_db)):
    """获取单个房间"""
    room = RoomService(db).get_room(room_id)
    if not room:
        raise to_http_exception(NotFoundError("房间不存在"))
    return room


@router.post("", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
def create_room(
    data: RoomCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """创建房间"""
    try:
        return RoomService(db).create_room(data)
    except HotelError as e:
        raise to_http_exception(e)


@router.put("/{room_id}", response_model=RoomResponse)
def update_room(
    room_id: int,
    data: RoomUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """更新房间信息（不含房态）"""
    try:
        return RoomService(db).update_room(room_id, data)
    except HotelError as e:
        raise to_http_exception(e)


@router.post("/{room_id}/status", response_model=RoomStatusResponse)
def change_room_status(
    room_id: int,
    data: RoomStatusAction,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
    clock: Clock = Depends(get_clock)
):
    """执行房态操作（OPEN / CLOSED / MAINTENANCE / CLEANING / DIRTY / CLEAN）"""
    service = RoomService(db, clock=clock)
    try:
        return service.apply_action(room_id, data.action, changed_by=current_user.id)
    except HotelError as e:
        raise to_http_exception(e)
