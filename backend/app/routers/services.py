"""
附加服务路由
服务目录、时段管理、服务预订
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.exceptions import HotelError, to_http_exception
from app.models.ontology import User, ServiceType, ServiceBookingStatus
from app.models.schemas import (
    HotelServiceCreate, HotelServiceUpdate, HotelServiceResponse,
    GenerateSlotsRequest, GenerateSlotsResponse, TimeSlotUpdate, TimeSlotResponse,
    ServiceBookingCreate, ServiceBookingStatusUpdate, ServiceBookingResponse,
    ServiceBookingCreated, ServicePaymentResponse
)
from app.services.catalog_service import CatalogService
from app.services.date_utils import Clock, get_clock
from app.services.service_booking_service import ServiceBookingService
from app.services.time_slot_service import TimeSlotService
from app.security.auth import get_current_user, require_staff, require_admin

router = APIRouter(prefix="/services", tags=["附加服务"])


# ============== 服务预订 ==============

@router.post("/book", response_model=ServiceBookingCreated, status_code=status.HTTP_201_CREATED)
def book_service(
    data: ServiceBookingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock)
):
    """预订服务时段（待支付）"""
    try:
        booking, payment = ServiceBookingService(db, clock=clock).book(data, current_user.id)
    except HotelError as e:
        raise to_http_exception(e)
    return ServiceBookingCreated(
        booking=ServiceBookingResponse.model_validate(booking),
        payment=ServicePaymentResponse.model_validate(payment),
    )


@router.get("/bookings/mine", response_model=List[ServiceBookingResponse])
def list_my_bookings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """当前用户的服务预订"""
    return ServiceBookingService(db).list_for_user(current_user.id)


@router.get("/bookings", response_model=List[ServiceBookingResponse])
def list_bookings(
    booking_status: Optional[ServiceBookingStatus] = Query(None, alias="status"),
    service_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """全部服务预订（员工）"""
    return ServiceBookingService(db).list_bookings(status=booking_status, service_id=service_id)


@router.patch("/bookings/{booking_id}", response_model=ServiceBookingResponse)
def update_booking(
    booking_id: int,
    data: ServiceBookingStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
    clock: Clock = Depends(get_clock)
):
    """更新服务预订状态或备注（员工）"""
    try:
        return ServiceBookingService(db, clock=clock).update_status(
            booking_id, status=data.status, staff_notes=data.staff_notes
        )
    except HotelError as e:
        raise to_http_exception(e)


@router.delete("/bookings/{booking_id}", response_model=ServiceBookingResponse)
def cancel_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    clock: Clock = Depends(get_clock)
):
    """取消服务预订（本人或员工）"""
    try:
        return ServiceBookingService(db, clock=clock).cancel_booking(
            booking_id, current_user.id, is_staff=current_user.is_staff
        )
    except HotelError as e:
        raise to_http_exception(e)


# ============== 服务目录 ==============

@router.get("", response_model=List[HotelServiceResponse])
def list_services(
    service_type: Optional[ServiceType] = Query(None, alias="type"),
    db: Session = Depends(get_db)
):
    """上架服务列表"""
    return CatalogService(db).list_services(service_type=service_type)


@router.get("/{service_id}", response_model=HotelServiceResponse)
def get_service(service_id: int, db: Session = Depends(get_db)):
    """获取服务详情"""
    try:
        return CatalogService(db).require_service(service_id)
    except HotelError as e:
        raise to_http_exception(e)


@router.post("", response_model=HotelServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(
    data: HotelServiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """创建服务"""
    try:
        return CatalogService(db).create_service(data)
    except HotelError as e:
        raise to_http_exception(e)


@router.put("/{service_id}", response_model=HotelServiceResponse)
def update_service(
    service_id: int,
    data: HotelServiceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """更新服务"""
    try:
        return CatalogService(db).update_service(service_id, data)
    except HotelError as e:
        raise to_http_exception(e)


@router.delete("/{service_id}")
def delete_service(
    service_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """删除服务（管理员；已有预订时拒绝）"""
    try:
        CatalogService(db).delete_service(service_id)
    except HotelError as e:
        raise to_http_exception(e)
    return {"message": "服务已删除"}


# ============== 时段管理 ==============

@router.post("/{service_id}/generate-slots", response_model=GenerateSlotsResponse)
def generate_slots(
    service_id: int,
    data: GenerateSlotsRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """按服务排期批量生成时段（幂等）"""
    try:
        count = TimeSlotService(db).generate_slots(service_id, data.start_date, data.end_date)
    except HotelError as e:
        raise to_http_exception(e)
    return GenerateSlotsResponse(count=count, message=f"已生成 {count} 个时段")


@router.get("/{service_id}/slots", response_model=List[TimeSlotResponse])
def list_slots(
    service_id: int,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    only_available: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """服务的时段列表（员工）"""
    try:
        slots = TimeSlotService(db).list_slots(
            service_id, start_date=start_date, end_date=end_date, only_available=only_available
        )
    except HotelError as e:
        raise to_http_exception(e)
    return [TimeSlotResponse.from_slot(slot) for slot in slots]


@router.get("/{service_id}/available-slots", response_model=List[TimeSlotResponse])
def available_slots(
    service_id: int,
    date: str = Query(...),
    db: Session = Depends(get_db)
):
    """某日可预订的时段"""
    try:
        slots = TimeSlotService(db).available_slots(service_id, date)
    except HotelError as e:
        raise to_http_exception(e)
    return [TimeSlotResponse.from_slot(slot) for slot in slots]


@router.patch("/{service_id}/slots/{slot_id}", response_model=TimeSlotResponse)
def update_slot(
    service_id: int,
    slot_id: int,
    data: TimeSlotUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """修改时段容量或开放状态"""
    try:
        slot = TimeSlotService(db).update_slot(
            service_id, slot_id, capacity=data.capacity, is_available=data.is_available
        )
    except HotelError as e:
        raise to_http_exception(e)
    return TimeSlotResponse.from_slot(slot)


@router.delete("/{service_id}/slots/{slot_id}")
def delete_slot(
    service_id: int,
    slot_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """删除时段（无人预订时）"""
    try:
        TimeSlotService(db).delete_slot(service_id, slot_id)
    except HotelError as e:
        raise to_http_exception(e)
    return {"message": "时段已删除"}
