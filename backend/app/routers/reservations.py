"""
预订管理路由
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.exceptions import HotelError, to_http_exception
from app.models.ontology import User, ReservationStatus
from app.models.schemas import (
    ReservationCreate, ReservationStatusUpdate, ReservationResponse,
    ReservationCreated, ReservationStatusResult
)
from app.services.date_utils import Clock, get_clock
from app.services.reservation_service import ReservationService
from app.security.auth import get_current_user, require_staff

router = APIRouter(prefix="/reservations", tags=["预订管理"])


@router.get("", response_model=List[ReservationResponse])
def list_reservations(
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    room_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """获取预订列表（员工）"""
    return ReservationService(db).list_reservations(status=reservation_status, room_id=room_id)


@router.get("/mine", response_model=List[ReservationResponse])
def list_my_reservations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """当前用户的全部预订"""
    return ReservationService(db).list_for_user(current_user.id)


@router.get("/active", response_model=List[ReservationResponse])
def list_my_active_reservations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock)
):
    """当前用户尚未结束的预订（用于预订附加服务）"""
    return ReservationService(db, clock=clock).list_active_for_user(current_user.id)


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """获取预订详情（本人或员工）"""
    try:
        return ReservationService(db).get_reservation_for(
            reservation_id, current_user.id, current_user.is_staff
        )
    except HotelError as e:
        raise to_http_exception(e)


@router.post("", response_model=ReservationCreated, status_code=status.HTTP_201_CREATED)
def create_reservation(
    data: ReservationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock)
):
    """创建预订（待支付）"""
    service = ReservationService(db, clock=clock)
    try:
        reservation, nights = service.create_reservation(data, current_user.id)
    except HotelError as e:
        raise to_http_exception(e)
    return ReservationCreated(
        reservation=ReservationResponse.model_validate(reservation),
        nights=nights,
    )


@router.patch("/{reservation_id}", response_model=ReservationStatusResult)
def update_reservation_status(
    reservation_id: int,
    data: ReservationStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
    clock: Clock = Depends(get_clock)
):
    """修改预订状态并联动房态（员工）"""
    service = ReservationService(db, clock=clock)
    try:
        reservation, room_status = service.update_status(
            reservation_id, data.status, changed_by=current_user.id
        )
    except HotelError as e:
        raise to_http_exception(e)
    return ReservationStatusResult(
        reservation=ReservationResponse.model_validate(reservation),
        room_status_updated=room_status,
    )


@router.delete("/{reservation_id}", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """取消预订（本人或员工）"""
    try:
        return ReservationService(db).cancel_reservation(
            reservation_id, current_user.id, is_staff=current_user.is_staff
        )
    except HotelError as e:
        raise to_http_exception(e)
