"""
附加服务目录 - 本体操作层
管理 HotelService 对象（SPA / 体验活动）
"""
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from app.database import atomic
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.ontology import (
    HotelService, ServiceBooking, ServiceType, ServiceCategory, SERVICE_CATEGORIES, WEEKDAYS
)
from app.models.schemas import HotelServiceCreate, HotelServiceUpdate
from app.services.date_utils import parse_hhmm

logger = logging.getLogger(__name__)

# 更新时允许置空的字段（available_days 置空即恢复全周）
SERVICE_NULLABLE_FIELDS = ("description", "available_days")


def validate_service_fields(fields: dict) -> None:
    """校验服务定义的组合约束（类型/类别、时间窗、容量区间、可用星期）"""
    service_type = fields.get("type")
    category = fields.get("category")
    if service_type is not None and category is not None:
        if ServiceCategory(category) not in SERVICE_CATEGORIES[ServiceType(service_type)]:
            raise ValidationError(f"类别 {ServiceCategory(category).value} 不属于服务类型 {ServiceType(service_type).value}")

    start = parse_hhmm(fields["start_time"])
    end = parse_hhmm(fields["end_time"])
    if start >= end:
        raise ValidationError("开始时间必须早于结束时间")

    if fields["min_capacity"] > fields["max_capacity"]:
        raise ValidationError("最小人数不能大于最大人数")

    if fields.get("duration", 0) <= 0 or fields.get("slot_interval", 0) <= 0:
        raise ValidationError("时长和时段间隔必须大于 0")

    for day in fields.get("available_days") or []:
        if day not in WEEKDAYS:
            raise ValidationError(f"无效的星期: {day}")


class CatalogService:
    """附加服务目录"""

    def __init__(self, db: Session):
        self.db = db

    def list_services(self, service_type: Optional[ServiceType] = None,
                      include_inactive: bool = False) -> List[HotelService]:
        """服务列表（默认只含上架服务）"""
        query = self.db.query(HotelService)
        if not include_inactive:
            query = query.filter(HotelService.is_active == True)  # noqa: E712
        if service_type:
            query = query.filter(HotelService.type == service_type)
        return query.order_by(HotelService.type, HotelService.name).all()

    def get_service(self, service_id: int) -> Optional[HotelService]:
        return self.db.query(HotelService).filter(HotelService.id == service_id).first()

    def require_service(self, service_id: int) -> HotelService:
        service = self.get_service(service_id)
        if not service:
            raise NotFoundError("服务不存在")
        return service

    def create_service(self, data: HotelServiceCreate) -> HotelService:
        """创建服务；available_days 缺省为全周"""
        fields = data.model_dump()
        if not fields.get("available_days"):
            fields["available_days"] = list(WEEKDAYS)
        validate_service_fields(fields)

        service = HotelService(**fields)
        with atomic(self.db):
            self.db.add(service)
        self.db.refresh(service)
        logger.info(f"Hotel service #{service.id} '{service.name}' created")
        return service

    def update_service(self, service_id: int, data: HotelServiceUpdate) -> HotelService:
        """更新服务；与现有字段合并后整体校验"""
        with atomic(self.db):
            service = self.require_service(service_id)
            changes = data.changes(nullable=SERVICE_NULLABLE_FIELDS)
            if "available_days" in changes and not changes["available_days"]:
                changes["available_days"] = list(WEEKDAYS)

            merged = {
                column: getattr(service, column)
                for column in ("type", "category", "start_time", "end_time", "min_capacity",
                               "max_capacity", "duration", "slot_interval", "available_days")
            }
            merged.update(changes)
            validate_service_fields(merged)

            for key, value in changes.items():
                setattr(service, key, value)
        self.db.refresh(service)
        return service

    def delete_service(self, service_id: int) -> None:
        """删除服务；已有服务预订时拒绝"""
        with atomic(self.db):
            service = self.require_service(service_id)
            booking_count = self.db.query(ServiceBooking).filter(
                ServiceBooking.service_id == service_id
            ).count()
            if booking_count:
                raise ConflictError(f"该服务已有 {booking_count} 个预订，不能删除，可改为下架")
            for slot in service.time_slots:
                self.db.delete(slot)
            self.db.delete(service)
        logger.info(f"Hotel service #{service_id} deleted")
