"""
积分事件处理器测试：预订事件 → 积分累积 / 冲销
"""
import pytest
from datetime import date, datetime
from types import SimpleNamespace

from core.engine.event_bus import Event, EventBus
from app.domain.actor import Actor
from app.models.events import EventType
from app.models.ontology import LedgerCategory, LedgerEntry
from app.services.event_handlers import LoyaltyEventHandlers
from app.services.reservation_service import ReservationService


def _settings(accrual=True, reverse=True):
    return SimpleNamespace(BOOKING_ACCRUAL_ENABLED=accrual, REVERSE_ACCRUAL_ON_CANCEL=reverse)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def handlers(bus, session_factory, published):
    handlers = LoyaltyEventHandlers(
        db_session_factory=session_factory,
        app_settings=_settings(),
        event_publisher=published.publish,
    )
    handlers.register_handlers(bus)
    yield handlers
    handlers.unregister_handlers(bus)


@pytest.fixture
def reservations(db_session, bus, clock):
    return ReservationService(db_session, event_publisher=bus.publish, clock=clock)


class TestAccrual:

    def test_room_booking_accrues_flat_points(self, handlers, reservations, db_session, sample_room, sample_member):
        reservation = reservations.reserve(
            sample_room.id, datetime(2025, 1, 10, 10), datetime(2025, 1, 10, 12), sample_member.id
        ).value

        entry = db_session.query(LedgerEntry).one()
        assert entry.member_id == sample_member.id
        assert entry.amount == 10
        assert entry.category == LedgerCategory.BOOKING
        assert entry.reference_type == "reservation"
        assert entry.reference_id == str(reservation.id)

    def test_item_rental_accrues_by_price(self, handlers, reservations, db_session, sample_item, sample_member):
        reservations.reserve(sample_item.id, date(2025, 1, 1), date(2025, 1, 3), sample_member.id)

        entry = db_session.query(LedgerEntry).one()
        assert entry.category == LedgerCategory.RENTAL
        assert entry.amount == 22

    def test_rejected_reservation_accrues_nothing(self, handlers, reservations, db_session, sample_room, sample_member):
        reservations.reserve(sample_room.id, datetime(2025, 1, 10, 12), datetime(2025, 1, 10, 10), sample_member.id)
        assert db_session.query(LedgerEntry).count() == 0

    def test_accrual_disabled(self, bus, session_factory, reservations, db_session, sample_room, sample_member):
        LoyaltyEventHandlers(
            db_session_factory=session_factory, app_settings=_settings(accrual=False)
        ).register_handlers(bus)
        reservations.reserve(sample_room.id, datetime(2025, 1, 10, 10), datetime(2025, 1, 10, 12), sample_member.id)
        assert db_session.query(LedgerEntry).count() == 0


class TestReversal:

    def test_cancel_reverses_points(self, handlers, reservations, db_session, sample_room, sample_member):
        reservation = reservations.reserve(
            sample_room.id, datetime(2025, 1, 10, 10), datetime(2025, 1, 10, 12), sample_member.id
        ).value
        reservations.cancel(reservation.id, Actor(sample_member.id))

        amounts = sorted(e.amount for e in db_session.query(LedgerEntry).all())
        assert amounts == [-10, 10]
        db_session.refresh(sample_member)
        assert sample_member.points_total == 0

    def test_cancel_without_reversal(self, bus, session_factory, reservations, db_session,
                                     sample_room, sample_member):
        LoyaltyEventHandlers(
            db_session_factory=session_factory, app_settings=_settings(reverse=False)
        ).register_handlers(bus)
        reservation = reservations.reserve(
            sample_room.id, datetime(2025, 1, 10, 10), datetime(2025, 1, 10, 12), sample_member.id
        ).value
        reservations.cancel(reservation.id, Actor(sample_member.id))

        assert [e.amount for e in db_session.query(LedgerEntry).all()] == [10]


class TestEdgeCases:

    def test_missing_fields_ignored(self, handlers, db_session):
        event = Event(
            event_type=EventType.RESERVATION_CREATED,
            timestamp=datetime.now(),
            data={"resource_kind": "room"},
            source="test",
        )
        handlers.handle_reservation_created(event)
        handlers.handle_reservation_cancelled(event)
        assert db_session.query(LedgerEntry).count() == 0

    def test_register_and_unregister(self, bus, session_factory):
        handlers = LoyaltyEventHandlers(db_session_factory=session_factory, app_settings=_settings())
        handlers.register_handlers(bus)
        handlers.register_handlers(bus)
        created = Event(event_type=EventType.RESERVATION_CREATED, timestamp=datetime.now(), data={})
        cancelled = Event(event_type=EventType.RESERVATION_CANCELLED, timestamp=datetime.now(), data={})
        assert bus.publish(created).subscriber_count == 1
        assert bus.publish(cancelled).subscriber_count == 1

        handlers.unregister_handlers(bus)
        assert bus.publish(created).subscriber_count == 0
