# Business Services
from app.services.room_service import RoomService
from app.services.availability_service import AvailabilityService
from app.services.reservation_service import ReservationService
from app.services.payment_service import PaymentService
from app.services.catalog_service import CatalogService
from app.services.time_slot_service import TimeSlotService
from app.services.service_booking_service import ServiceBookingService

__all__ = [
    'RoomService', 'AvailabilityService', 'ReservationService', 'PaymentService',
    'CatalogService', 'TimeSlotService', 'ServiceBookingService'
]
