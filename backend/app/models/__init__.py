# Ontology Models
from app.models.ontology import (
    User, Room, Reservation, Payment,
    HotelService, ServiceTimeSlot, ServiceBooking, ServicePayment
)

__all__ = [
    'User', 'Room', 'Reservation', 'Payment',
    'HotelService', 'ServiceTimeSlot', 'ServiceBooking', 'ServicePayment'
]
