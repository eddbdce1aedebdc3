"""
支付记录边界测试 - 网关回调写入结果
"""
import pytest
from datetime import date

from app.exceptions import NotFoundError, ValidationError
from app.models.events import EventType
from app.models.ontology import PaymentStatus, ReservationStatus, ServiceBookingStatus
from app.models.schemas import ReservationCreate, ServiceBookingCreate
from app.services.payment_service import PaymentService, RESERVATION_PAYMENT, SERVICE_PAYMENT
from app.services.reservation_service import ReservationService
from app.services.service_booking_service import ServiceBookingService


@pytest.fixture
def events():
    return []


@pytest.fixture
def payments(db_session, events):
    return PaymentService(db_session, event_publisher=events.append)


@pytest.fixture
def pending_reservation(db_session, sample_room, guest_user, noop_publisher, clock):
    reservation, _ = ReservationService(db_session, event_publisher=noop_publisher, clock=clock).create_reservation(
        ReservationCreate(room_id=sample_room.id, check_in="2025-03-10", check_out="2025-03-12", guests=1),
        guest_user.id,
    )
    return reservation


class TestReservationPayment:

    def test_approved_confirms_reservation(self, payments, pending_reservation, events):
        payment = payments.apply_gateway_status(
            RESERVATION_PAYMENT, pending_reservation.payment.id, PaymentStatus.APPROVED,
            transaction_id="MP-1", payment_method="credit_card",
        )

        assert payment.transaction_id == "MP-1"
        assert pending_reservation.status == ReservationStatus.CONFIRMED
        assert events[0].event_type == EventType.PAYMENT_STATUS_CHANGED.value
        assert events[0].data["new_status"] == "APPROVED"

    def test_rejected_cancels_reservation(self, payments, pending_reservation):
        payments.apply_gateway_status(RESERVATION_PAYMENT, pending_reservation.payment.id, PaymentStatus.REJECTED)
        assert pending_reservation.status == ReservationStatus.CANCELLED

    def test_refund_only_records(self, payments, db_session, pending_reservation):
        pending_reservation.status = ReservationStatus.CHECKED_OUT
        db_session.commit()

        payment = payments.apply_gateway_status(
            RESERVATION_PAYMENT, pending_reservation.payment.id, PaymentStatus.REFUNDED
        )
        assert payment.status == PaymentStatus.REFUNDED
        assert pending_reservation.status == ReservationStatus.CHECKED_OUT

    def test_unknown_kind_and_id(self, payments):
        with pytest.raises(ValidationError):
            payments.apply_gateway_status("invoice", 1, PaymentStatus.APPROVED)
        with pytest.raises(NotFoundError):
            payments.apply_gateway_status(RESERVATION_PAYMENT, 999, PaymentStatus.APPROVED)


class TestServicePayment:

    def test_rejected_releases_slot(self, payments, db_session, make_service, pending_reservation,
                                    guest_user, noop_publisher, clock):
        service = make_service()
        booking, payment = ServiceBookingService(db_session, event_publisher=noop_publisher, clock=clock).book(
            ServiceBookingCreate(service_id=service.id, reservation_id=pending_reservation.id,
                                 booking_date="2025-03-11", booking_time="09:00", participants=3),
            guest_user.id,
        )

        payments.apply_gateway_status(SERVICE_PAYMENT, payment.id, PaymentStatus.REJECTED)

        db_session.refresh(booking)
        assert booking.status == ServiceBookingStatus.CANCELLED
        assert booking.time_slot.booked == 0
        assert booking.time_slot.date == date(2025, 3, 11)

    def test_approved_confirms_booking(self, payments, db_session, make_service, pending_reservation,
                                       guest_user, noop_publisher, clock):
        booking, payment = ServiceBookingService(db_session, event_publisher=noop_publisher, clock=clock).book(
            ServiceBookingCreate(service_id=make_service().id, reservation_id=pending_reservation.id,
                                 booking_date="2025-03-10", booking_time="10:00", participants=1),
            guest_user.id,
        )

        payments.apply_gateway_status(SERVICE_PAYMENT, payment.id, PaymentStatus.APPROVED)

        db_session.refresh(booking)
        assert booking.status == ServiceBookingStatus.CONFIRMED
        assert booking.confirmed_at is not None
