"""Unit tests for the scheduling engine against a real SQLite store."""

import threading
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import Session, select

from booking.auth import Identity
from booking.db import build_engine, create_db_and_tables
from booking.errors import (
    Conflict,
    Forbidden,
    InvalidInterval,
    InvalidRange,
    InvalidState,
    NotFound,
    Unavailable,
)
from booking.models import (
    Appointment,
    AppointmentStatus,
    Client,
    Notification,
    NotificationKind,
    Role,
    Service,
    User,
)
from booking.notifications import NotificationEmitter
from booking.scheduling import SchedulingEngine
from booking.store import AppointmentStore, CalendarLocks


def at(hour, minute=0, day=1):
    return datetime(2025, 1, day, hour, minute)


def scheduled_in(session, service_id):
    return session.exec(
        select(Appointment)
        .where(Appointment.service_id == service_id)
        .where(Appointment.status == AppointmentStatus.scheduled)
    ).all()


# ============================================================================
# Booking
# ============================================================================


def test_book_defaults_end_to_service_duration(scheduler, actor, service, customer):
    appt = scheduler.book(actor, service.id, customer.id, at(10))

    assert appt.id is not None
    assert appt.starts_at == at(10)
    assert appt.ends_at == at(10, 30)
    assert appt.status == AppointmentStatus.scheduled
    assert appt.user_id == actor.user_id


def test_book_with_explicit_end(scheduler, actor, service, customer):
    appt = scheduler.book(actor, service.id, customer.id, at(10), at(11, 15))

    assert appt.ends_at == at(11, 15)


def test_book_converts_aware_times_to_utc(scheduler, actor, service, customer):
    plus_one = timezone(timedelta(hours=1))
    appt = scheduler.book(actor, service.id, customer.id, datetime(2025, 1, 1, 11, 0, tzinfo=plus_one))

    assert appt.starts_at == at(10)


@pytest.mark.parametrize("end", [at(10), at(9, 59)])
def test_book_rejects_empty_or_inverted_interval(scheduler, actor, service, customer, end):
    with pytest.raises(InvalidInterval):
        scheduler.book(actor, service.id, customer.id, at(10), end)


def test_book_unknown_service_or_client(scheduler, actor, service, customer):
    with pytest.raises(NotFound):
        scheduler.book(actor, 999, customer.id, at(10))
    with pytest.raises(NotFound):
        scheduler.book(actor, service.id, 999, at(10))


def test_book_archived_service_is_not_found(scheduler, session, actor, service, customer):
    service.archived = True
    session.add(service)
    session.commit()

    with pytest.raises(NotFound):
        scheduler.book(actor, service.id, customer.id, at(10))


def test_adjacent_bookings_both_succeed(scheduler, session, actor, service, customer):
    scheduler.book(actor, service.id, customer.id, at(10))
    scheduler.book(actor, service.id, customer.id, at(10, 30))
    scheduler.book(actor, service.id, customer.id, at(9, 30))

    assert len(scheduled_in(session, service.id)) == 3


def test_overlapping_booking_conflicts_and_reports_ids(scheduler, session, actor, service, customer):
    first = scheduler.book(actor, service.id, customer.id, at(10))

    with pytest.raises(Conflict) as excinfo:
        scheduler.book(actor, service.id, customer.id, at(10, 15))

    assert excinfo.value.conflicts == [first.id]
    assert [a.id for a in scheduled_in(session, service.id)] == [first.id]


def test_conflict_lists_every_colliding_appointment(scheduler, actor, service, customer):
    a = scheduler.book(actor, service.id, customer.id, at(10))
    b = scheduler.book(actor, service.id, customer.id, at(10, 30))

    with pytest.raises(Conflict) as excinfo:
        scheduler.book(actor, service.id, customer.id, at(10, 15), at(10, 45))

    assert excinfo.value.conflicts == [a.id, b.id]


def test_different_services_do_not_conflict(scheduler, actor, make_service, customer):
    cut = make_service("Haircut")
    color = make_service("Color")

    scheduler.book(actor, cut.id, customer.id, at(10))
    scheduler.book(actor, color.id, customer.id, at(10))


def test_services_sharing_a_resource_conflict(scheduler, actor, make_service, customer):
    cut = make_service("Haircut", resource="anna")
    color = make_service("Color", duration_minutes=60, resource="anna")
    other = make_service("Beard", resource="marco")

    booked = scheduler.book(actor, cut.id, customer.id, at(10))
    scheduler.book(actor, other.id, customer.id, at(10))

    with pytest.raises(Conflict) as excinfo:
        scheduler.book(actor, color.id, customer.id, at(9, 45))
    assert excinfo.value.conflicts == [booked.id]


def test_cancelled_appointment_frees_the_slot(scheduler, actor, service, customer):
    first = scheduler.book(actor, service.id, customer.id, at(10))
    scheduler.cancel(actor, first.id)

    second = scheduler.book(actor, service.id, customer.id, at(10))
    assert second.id != first.id


def test_concurrent_bookings_keep_the_calendar_free_of_overlaps(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    create_db_and_tables(engine)
    with Session(engine) as session:
        owner = User(name="owner", email="owner@example.com", password_hash="x")
        session.add(owner)
        session.commit()
        service = Service(name="Haircut", duration_minutes=30)
        customer = Client(name="C", owner_id=owner.id)
        session.add(service)
        session.add(customer)
        session.commit()
        owner_id, service_id, customer_id = owner.id, service.id, customer.id

    actor = Identity(user_id=owner_id, role=Role.user)
    locks = CalendarLocks()
    attempts = 6
    barrier = threading.Barrier(attempts)
    outcomes = []

    def attempt(offset):
        with Session(engine) as session:
            scheduler = SchedulingEngine(AppointmentStore(session), NotificationEmitter(engine), locks, lock_timeout=30)
            barrier.wait()
            try:
                scheduler.book(actor, service_id, customer_id, at(10, offset))
                outcomes.append("booked")
            except Conflict:
                outcomes.append("conflict")

    threads = [threading.Thread(target=attempt, args=(i,)) for i in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("booked") == 1
    assert outcomes.count("conflict") == attempts - 1
    with Session(engine) as session:
        assert len(scheduled_in(session, service_id)) == 1
    engine.dispose()


# ============================================================================
# Reschedule
# ============================================================================


def test_reschedule_overlapping_only_itself_succeeds(scheduler, actor, service, customer):
    appt = scheduler.book(actor, service.id, customer.id, at(10))

    moved = scheduler.reschedule(actor, appt.id, at(10, 15))

    assert moved.id == appt.id
    assert (moved.starts_at, moved.ends_at) == (at(10, 15), at(10, 45))


def test_reschedule_conflict_leaves_record_unchanged(scheduler, session, actor, service, customer):
    a = scheduler.book(actor, service.id, customer.id, at(10))
    b = scheduler.book(actor, service.id, customer.id, at(11))

    with pytest.raises(Conflict) as excinfo:
        scheduler.reschedule(actor, b.id, at(10, 20))

    assert excinfo.value.conflicts == [a.id]
    unchanged = scheduler.get(b.id)
    assert (unchanged.starts_at, unchanged.ends_at) == (at(11), at(11, 30))


def test_reschedule_with_explicit_end_and_bad_interval(scheduler, actor, service, customer):
    appt = scheduler.book(actor, service.id, customer.id, at(10))

    moved = scheduler.reschedule(actor, appt.id, at(12), at(13))
    assert moved.ends_at == at(13)

    with pytest.raises(InvalidInterval):
        scheduler.reschedule(actor, appt.id, at(12), at(11))


def test_reschedule_cancelled_appointment_is_invalid(scheduler, actor, service, customer):
    appt = scheduler.book(actor, service.id, customer.id, at(10))
    scheduler.cancel(actor, appt.id)

    with pytest.raises(InvalidState):
        scheduler.reschedule(actor, appt.id, at(12))


def test_only_owner_or_admin_may_change_an_appointment(scheduler, make_user, actor, service, customer):
    appt = scheduler.book(actor, service.id, customer.id, at(10))
    stranger = make_user("stranger@example.com")
    admin = make_user("admin@example.com", role=Role.admin)

    with pytest.raises(Forbidden):
        scheduler.reschedule(Identity(stranger.id, Role.user), appt.id, at(12))
    with pytest.raises(Forbidden):
        scheduler.cancel(Identity(stranger.id, Role.user), appt.id)

    moved = scheduler.reschedule(Identity(admin.id, Role.admin), appt.id, at(12))
    assert moved.starts_at == at(12)


# ============================================================================
# Cancel / complete
# ============================================================================


def test_cancel_then_cancel_again_is_invalid_state(scheduler, actor, service, customer):
    appt = scheduler.book(actor, service.id, customer.id, at(10))

    cancelled = scheduler.cancel(actor, appt.id)
    assert cancelled.status == AppointmentStatus.cancelled
    updated_at = cancelled.updated_at

    for _ in range(3):
        with pytest.raises(InvalidState):
            scheduler.cancel(actor, appt.id)

    after = scheduler.get(appt.id)
    assert after.status == AppointmentStatus.cancelled
    assert after.updated_at == updated_at


def test_complete_is_terminal(scheduler, actor, service, customer):
    appt = scheduler.book(actor, service.id, customer.id, at(10))

    assert scheduler.complete(actor, appt.id).status == AppointmentStatus.completed
    with pytest.raises(InvalidState):
        scheduler.cancel(actor, appt.id)
    with pytest.raises(InvalidState):
        scheduler.complete(actor, appt.id)


def test_cancel_unknown_appointment(scheduler, actor):
    with pytest.raises(NotFound):
        scheduler.cancel(actor, 12345)


def test_purge_removes_appointment_and_its_notifications(scheduler, session, actor, service, customer):
    appt = scheduler.book(actor, service.id, customer.id, at(10))

    scheduler.purge(appt.id)

    with pytest.raises(NotFound):
        scheduler.get(appt.id)
    assert session.exec(select(Notification).where(Notification.appointment_id == appt.id)).all() == []


# ============================================================================
# Queries
# ============================================================================


def test_listings_are_ordered_by_start(scheduler, make_user, actor, service, customer):
    late = scheduler.book(actor, service.id, customer.id, at(15))
    early = scheduler.book(actor, service.id, customer.id, at(9))
    middle = scheduler.book(actor, service.id, customer.id, at(12))

    expected = [early.id, middle.id, late.id]
    assert [a.id for a in scheduler.my_appointments(actor.user_id)] == expected
    assert [a.id for a in scheduler.by_service(service.id)] == expected
    assert [a.id for a in scheduler.by_client(actor, customer.id)] == expected

    other = make_user("other@example.com")
    assert scheduler.my_appointments(other.id) == []


def test_status_filter(scheduler, actor, service, customer):
    keep = scheduler.book(actor, service.id, customer.id, at(9))
    drop = scheduler.book(actor, service.id, customer.id, at(10))
    scheduler.cancel(actor, drop.id)

    scheduled = scheduler.my_appointments(actor.user_id, AppointmentStatus.scheduled)
    cancelled = scheduler.my_appointments(actor.user_id, AppointmentStatus.cancelled)

    assert [a.id for a in scheduled] == [keep.id]
    assert [a.id for a in cancelled] == [drop.id]


def test_by_service_and_client_unknown_ids(scheduler):
    with pytest.raises(NotFound):
        scheduler.by_service(404)
    with pytest.raises(NotFound):
        scheduler.by_client(Identity(1, Role.user), 404)


def test_date_range_returns_appointments_starting_inside(scheduler, actor, service, customer):
    scheduler.book(actor, service.id, customer.id, at(10, day=1))
    second = scheduler.book(actor, service.id, customer.id, at(10, day=2))
    third = scheduler.book(actor, service.id, customer.id, at(9, day=3))
    scheduler.book(actor, service.id, customer.id, at(10, day=4))

    found = scheduler.by_date_range(at(0, day=2), at(0, day=4))

    assert [a.id for a in found] == [second.id, third.id]


@pytest.mark.parametrize("start,end", [(at(12), at(12)), (at(12), at(11))])
def test_date_range_requires_start_before_end(scheduler, start, end):
    with pytest.raises(InvalidRange):
        scheduler.by_date_range(start, end)


# ============================================================================
# Notifications and failure isolation
# ============================================================================


def test_booking_notifies_owner_and_client_account(scheduler, session, make_user, make_customer, actor, user, service):
    account = make_user("client@example.com")
    customer = make_customer(user, account_id=account.id)

    appt = scheduler.book(actor, service.id, customer.id, at(10))

    notes = session.exec(select(Notification).where(Notification.appointment_id == appt.id)).all()
    assert sorted(n.user_id for n in notes) == sorted([user.id, account.id])
    assert {n.kind for n in notes} == {NotificationKind.new_booking}


def test_owner_is_notified_once_when_client_account_is_owner(scheduler, session, make_customer, actor, user, service):
    customer = make_customer(user, account_id=user.id)

    appt = scheduler.book(actor, service.id, customer.id, at(10))

    notes = session.exec(select(Notification).where(Notification.appointment_id == appt.id)).all()
    assert [n.user_id for n in notes] == [user.id]


def test_reschedule_and_cancel_emit_notifications(scheduler, session, actor, service, customer):
    appt = scheduler.book(actor, service.id, customer.id, at(10))
    scheduler.reschedule(actor, appt.id, at(11))
    scheduler.cancel(actor, appt.id)

    kinds = session.exec(
        select(Notification.kind).where(Notification.appointment_id == appt.id).order_by(Notification.id)
    ).all()
    assert kinds == [NotificationKind.new_booking, NotificationKind.rescheduled, NotificationKind.cancelled]


def test_notification_failure_does_not_fail_booking(session, actor, service, customer, caplog):
    # an engine without tables makes every notification write fail
    broken = build_engine("sqlite://")
    scheduler = SchedulingEngine(AppointmentStore(session), NotificationEmitter(broken), CalendarLocks())

    appt = scheduler.book(actor, service.id, customer.id, at(10))

    assert scheduler.get(appt.id).status == AppointmentStatus.scheduled
    assert "Failed to create NEW_BOOKING notification" in caplog.text
    broken.dispose()


def test_calendar_lock_timeout_is_unavailable(scheduler, actor, service, customer):
    scheduler.lock_timeout = 0.05
    lock = scheduler.locks._lock_for(service.calendar_key)
    lock.acquire()
    try:
        with pytest.raises(Unavailable):
            scheduler.book(actor, service.id, customer.id, at(10))
    finally:
        lock.release()


# ============================================================================
# Client ownership
# ============================================================================


def test_booking_someone_elses_client_is_forbidden(scheduler, session, make_user, make_customer, service):
    owner = make_user("owner@example.com")
    intruder = make_user("intruder@example.com")
    customer = make_customer(owner)

    with pytest.raises(Forbidden):
        scheduler.book(Identity(intruder.id, Role.user), service.id, customer.id, at(10))
    assert scheduled_in(session, service.id) == []


def test_admin_may_book_any_client(scheduler, make_user, service, customer):
    admin = make_user("admin@example.com", role=Role.admin)

    appt = scheduler.book(Identity(admin.id, Role.admin), service.id, customer.id, at(10))

    assert appt.client_id == customer.id


def test_client_listing_is_limited_to_owner_or_admin(scheduler, make_user, actor, service, customer):
    appt = scheduler.book(actor, service.id, customer.id, at(10))
    stranger = make_user("stranger@example.com")
    admin = make_user("admin@example.com", role=Role.admin)

    with pytest.raises(Forbidden):
        scheduler.by_client(Identity(stranger.id, Role.user), customer.id)
    assert [a.id for a in scheduler.by_client(Identity(admin.id, Role.admin), customer.id)] == [appt.id]


# ============================================================================
# Service calendar moves
# ============================================================================


def test_moving_service_onto_busy_resource_conflicts(scheduler, session, actor, make_service, customer):
    shared = make_service("Colour", resource="chair-1")
    solo = make_service("Cut")
    taken = scheduler.book(actor, shared.id, customer.id, at(10))
    scheduler.book(actor, solo.id, customer.id, at(10, 15))

    with pytest.raises(Conflict) as excinfo:
        scheduler.update_service(solo.id, {"resource": "chair-1"})

    assert excinfo.value.conflicts == [taken.id]
    session.refresh(solo)
    assert solo.resource is None


def test_cancelled_appointments_do_not_block_a_move(scheduler, actor, make_service, customer):
    shared = make_service("Colour", resource="chair-1")
    solo = make_service("Cut")
    scheduler.book(actor, shared.id, customer.id, at(10))
    clash = scheduler.book(actor, solo.id, customer.id, at(10, 15))
    scheduler.cancel(actor, clash.id)

    moved = scheduler.update_service(solo.id, {"resource": "chair-1"})

    assert moved.resource == "chair-1"


def test_moving_service_onto_free_resource_joins_its_calendar(scheduler, actor, make_service, customer):
    shared = make_service("Colour", resource="chair-1")
    solo = make_service("Cut")
    scheduler.book(actor, shared.id, customer.id, at(10))
    scheduler.book(actor, solo.id, customer.id, at(11))

    moved = scheduler.update_service(solo.id, {"resource": "chair-1", "price": 30.0})

    assert moved.calendar_key == "resource:chair-1"
    assert moved.price == 30.0
    with pytest.raises(Conflict):
        scheduler.book(actor, solo.id, customer.id, at(10, 15))


def test_clearing_resource_gives_service_its_own_calendar(scheduler, actor, make_service, customer):
    shared = make_service("Colour", resource="chair-1")
    scheduler.book(actor, shared.id, customer.id, at(10))

    moved = scheduler.update_service(shared.id, {"resource": ""})

    assert moved.resource is None
    assert moved.calendar_key == f"service:{shared.id}"


def test_service_move_waits_for_the_target_calendar(scheduler, make_service):
    solo = make_service("Cut")
    scheduler.lock_timeout = 0.05
    lock = scheduler.locks._lock_for("resource:chair-1")
    lock.acquire()
    try:
        with pytest.raises(Unavailable):
            scheduler.update_service(solo.id, {"resource": "chair-1"})
    finally:
        lock.release()
