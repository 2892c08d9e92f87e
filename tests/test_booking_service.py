import pytest
from sqlalchemy.exc import IntegrityError

from tovis.models import Bookings, CalendarBlocks
from tovis.services.actor import Actor, Role
from tovis.services.booking_machine import BookingPolicy
from tovis.services.booking_service import EXPIRED_REASON, BookingService
from tovis.services.errors import (
    AlreadyFinalizedError,
    ConcurrentSessionError,
    ConflictError,
    ForbiddenError,
    InvalidRangeError,
    NotFoundError,
)
from tovis.services.pending_expiry import expire_stale_pending
from tovis.services.slots import BookingConfig

from .conftest import at


@pytest.fixture
def service_layer(db, clock):
    return BookingService(db, clock=clock, config=BookingConfig(), policy=BookingPolicy())


def book(service_layer, actor, service, when):
    return service_layer.create(actor, service.professional_id, service.id, when)


class TestCreate:
    def test_creates_pending_booking(self, service_layer, client_actor, service):
        booking = book(service_layer, client_actor, service, at(10))
        assert booking.id is not None
        assert booking.status == "PENDING"
        assert booking.client_id == client_actor.user_id
        assert booking.duration_minutes_snapshot == 30

    def test_double_booking_is_rejected(self, service_layer, client_actor, service):
        book(service_layer, client_actor, service, at(10))
        other = Actor(user_id=777, role=Role.CLIENT)
        with pytest.raises(ConflictError):
            book(service_layer, other, service, at(10, 15))

    def test_adjacent_booking_is_fine(self, service_layer, client_actor, service):
        book(service_layer, client_actor, service, at(10))
        assert book(service_layer, client_actor, service, at(10, 30)).status == "PENDING"

    def test_cancelled_booking_frees_time(self, service_layer, client_actor, service):
        first = book(service_layer, client_actor, service, at(10))
        service_layer.change_status(first.id, client_actor, "CANCELLED")
        assert book(service_layer, client_actor, service, at(10)).status == "PENDING"

    def test_block_rejects_booking(self, db, service_layer, client_actor, service):
        db.add(CalendarBlocks(professional_id=service.professional_id, starts_at=at(12), ends_at=at(13)))
        db.commit()
        with pytest.raises(ConflictError):
            book(service_layer, client_actor, service, at(12, 30))

    def test_outside_working_hours(self, service_layer, client_actor, service):
        with pytest.raises(ConflictError):
            book(service_layer, client_actor, service, at(16, 45))

    def test_in_the_past(self, service_layer, client_actor, service, clock):
        clock.set(at(11))
        with pytest.raises(InvalidRangeError):
            book(service_layer, client_actor, service, at(10))

    def test_beyond_horizon(self, db, clock, client_actor, service):
        layer = BookingService(db, clock=clock, config=BookingConfig(horizon_days=1))
        with pytest.raises(InvalidRangeError):
            book(layer, client_actor, service, at(10, days=2))

    def test_professional_cannot_book(self, service_layer, pro_actor, service):
        with pytest.raises(ForbiddenError):
            book(service_layer, pro_actor, service, at(10))

    def test_unknown_service(self, service_layer, client_actor, professional):
        with pytest.raises(NotFoundError):
            service_layer.create(client_actor, professional.id, 999, at(10))

    def test_failed_create_leaves_nothing(self, db, service_layer, client_actor, service):
        with pytest.raises(ConflictError):
            book(service_layer, client_actor, service, at(18))
        assert db.query(Bookings).count() == 0


class TestReadAccess:
    def test_client_sees_own_booking(self, service_layer, client_actor, pro_actor, service):
        booking = book(service_layer, client_actor, service, at(10))
        assert service_layer.get(booking.id, client_actor).id == booking.id
        assert service_layer.get(booking.id, pro_actor).id == booking.id

    def test_stranger_is_forbidden(self, service_layer, client_actor, service):
        booking = book(service_layer, client_actor, service, at(10))
        with pytest.raises(ForbiddenError):
            service_layer.get(booking.id, Actor(user_id=999, role=Role.CLIENT))

    def test_missing(self, service_layer, pro_actor):
        with pytest.raises(NotFoundError):
            service_layer.get(123, pro_actor)

    def test_list_for_professional(self, service_layer, client_actor, pro_actor, service):
        late = book(service_layer, client_actor, service, at(14))
        early = book(service_layer, client_actor, service, at(10))
        book(service_layer, client_actor, service, at(10, days=1))

        listed = service_layer.list_for_professional(pro_actor, at(0), at(0, days=1))
        assert [b.id for b in listed] == [early.id, late.id]

    def test_list_requires_professional(self, service_layer, client_actor):
        with pytest.raises(ForbiddenError):
            service_layer.list_for_professional(client_actor, at(0), at(0, days=1))


class TestSessions:
    def test_accept_does_not_start(self, service_layer, client_actor, pro_actor, service):
        booking = book(service_layer, client_actor, service, at(10))
        accepted = service_layer.change_status(booking.id, pro_actor, "ACCEPTED")
        assert accepted.status == "ACCEPTED"
        assert accepted.started_at is None

    def test_one_active_session_per_professional(self, service_layer, client_actor, pro_actor, service, clock):
        b1 = book(service_layer, client_actor, service, at(10))
        b2 = book(service_layer, client_actor, service, at(10, 30))
        service_layer.change_status(b1.id, pro_actor, "ACCEPTED")
        service_layer.change_status(b2.id, pro_actor, "ACCEPTED")

        clock.set(at(10))
        assert service_layer.start(b1.id, pro_actor).started_at is not None

        clock.set(at(10, 25))
        with pytest.raises(ConcurrentSessionError):
            service_layer.start(b2.id, pro_actor)

        completed = service_layer.change_status(b1.id, pro_actor, "COMPLETED")
        assert completed.finished_at is not None

        started = service_layer.start(b2.id, pro_actor)
        assert started.started_at is not None
        assert started.finished_at is None

    def test_start_is_idempotent(self, service_layer, client_actor, pro_actor, service, clock):
        booking = book(service_layer, client_actor, service, at(10))
        service_layer.change_status(booking.id, pro_actor, "ACCEPTED")
        clock.set(at(10))
        first = service_layer.start(booking.id, pro_actor).started_at
        clock.set(at(10, 5))
        assert service_layer.start(booking.id, pro_actor).started_at == first

    def test_completed_booking_cannot_be_cancelled(self, service_layer, client_actor, pro_actor, service, clock):
        booking = book(service_layer, client_actor, service, at(10))
        service_layer.change_status(booking.id, pro_actor, "ACCEPTED")
        clock.set(at(10))
        service_layer.start(booking.id, pro_actor)
        service_layer.change_status(booking.id, pro_actor, "COMPLETED")
        with pytest.raises(AlreadyFinalizedError):
            service_layer.change_status(booking.id, client_actor, "CANCELLED")

    def test_unique_index_backs_the_invariant(self, db, add_booking):
        add_booking(at(10), status="ACCEPTED", started_at=at(10))
        with pytest.raises(IntegrityError):
            add_booking(at(11), status="ACCEPTED", started_at=at(11))
        db.rollback()


class TestPendingExpiry:
    def test_expires_only_stale_pending(self, db, service_layer, client_actor, pro_actor, service, clock):
        stale = book(service_layer, client_actor, service, at(9))
        accepted = book(service_layer, client_actor, service, at(9, 30))
        service_layer.change_status(accepted.id, pro_actor, "ACCEPTED")
        upcoming = book(service_layer, client_actor, service, at(15))

        clock.set(at(12))
        assert expire_stale_pending(db, clock=clock) == [stale.id]

        db.expire_all()
        assert db.get(Bookings, stale.id).status == "CANCELLED"
        assert db.get(Bookings, stale.id).cancel_reason == EXPIRED_REASON
        assert db.get(Bookings, accepted.id).status == "ACCEPTED"
        assert db.get(Bookings, upcoming.id).status == "PENDING"

    def test_not_over_yet(self, db, service_layer, client_actor, service, clock):
        booking = book(service_layer, client_actor, service, at(9))
        clock.set(at(9, 15))
        assert expire_stale_pending(db, clock=clock) == []
        assert service_layer.expire_pending(booking.id) is None
