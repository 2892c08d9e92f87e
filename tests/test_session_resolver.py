from tovis.services.session_resolver import SessionMode, SessionWindow, resolve

from .conftest import at

WINDOW = SessionWindow(lookback_minutes=30, lookahead_minutes=180)


def test_idle_without_bookings(db, professional):
    view = resolve(db, professional.id, at(14), WINDOW)
    assert view.mode == SessionMode.IDLE
    assert view.booking is None


def test_upcoming_then_active_then_idle(db, professional, add_booking):
    booking = add_booking(at(14, 20), status="ACCEPTED")

    view = resolve(db, professional.id, at(14), WINDOW)
    assert view.mode == SessionMode.UPCOMING
    assert view.booking.id == booking.id

    booking.started_at = at(14, 20)
    db.commit()
    view = resolve(db, professional.id, at(14, 25), WINDOW)
    assert view.mode == SessionMode.ACTIVE
    assert view.booking.id == booking.id

    booking.status = "COMPLETED"
    booking.finished_at = at(15)
    db.commit()
    assert resolve(db, professional.id, at(15), WINDOW).mode == SessionMode.IDLE


def test_active_wins_over_upcoming(db, professional, add_booking):
    add_booking(at(14, 30), status="ACCEPTED")
    active = add_booking(at(13, 30), status="ACCEPTED", started_at=at(13, 35))

    view = resolve(db, professional.id, at(14), WINDOW)
    assert view.mode == SessionMode.ACTIVE
    assert view.booking.id == active.id


def test_earliest_upcoming_is_chosen(db, professional, add_booking):
    add_booking(at(16))
    first = add_booking(at(15))
    view = resolve(db, professional.id, at(14), WINDOW)
    assert view.booking.id == first.id


def test_outside_window_is_idle(db, professional, add_booking):
    add_booking(at(13))  # older than the lookback
    add_booking(at(17, 30))  # beyond the lookahead
    assert resolve(db, professional.id, at(14), WINDOW).mode == SessionMode.IDLE


def test_cancelled_bookings_are_ignored(db, professional, add_booking):
    add_booking(at(14, 20), status="CANCELLED")
    assert resolve(db, professional.id, at(14), WINDOW).mode == SessionMode.IDLE


def test_other_professionals_bookings_are_ignored(db, professional, other_professional, add_booking):
    add_booking(at(14, 20))
    assert resolve(db, other_professional.id, at(14), WINDOW).mode == SessionMode.IDLE
