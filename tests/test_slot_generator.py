from contextlib import contextmanager
from datetime import date, datetime, time, timedelta

import pytest
from sqlalchemy import create_engine, event, insert
from sqlalchemy.dialects import postgresql

from app import create_app
from conftest import FUTURE_DAY, TestConfig
from models import db
from models.booking_request import BookingRequest, RequestStatus
from models.slot import Slot
from models.technician import Technician
from services import slot_generator, slot_store
from services.errors import InvalidSchedule, NotFound, SlotInUse


def _no_overlap(slots):
    ordered = sorted(slots, key=lambda s: s.start_time)
    return all(a.end_time <= b.start_time for a, b in zip(ordered, ordered[1:]))


def _at(hour, minute=0):
    return datetime.combine(FUTURE_DAY, time(hour, minute))


@pytest.fixture
def file_app(tmp_path):
    """An app on a database file, so a second engine can commit independently."""

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'slots.db'}"

    app = create_app(FileConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def other_writer(file_app):
    engine = create_engine(file_app.config["SQLALCHEMY_DATABASE_URI"])
    yield engine
    engine.dispose()


@contextmanager
def _commit_between_read_and_insert(engine, technician_id, ranges):
    """After each read of existing Slot rows, commit the next of ``ranges`` from ``engine``."""
    pending = list(ranges)
    session = db.session()

    def _hook(state):
        if not pending or not state.is_select:
            return None
        if state.statement.column_descriptions[0]["type"] is not Slot:
            return None
        frozen = state.invoke_statement().freeze()
        start, end = pending.pop(0)
        with engine.begin() as conn:
            conn.execute(insert(Slot.__table__).values(technician_id=technician_id, start_time=start, end_time=end))
        return frozen()

    event.listen(session, "do_orm_execute", _hook)
    try:
        yield
    finally:
        event.remove(session, "do_orm_execute", _hook)


class TestGenerateSlots:

    def test_single_day_morning_window(self, technician):
        """08-12 at 60 minutes gives exactly four free consecutive slots"""
        day = date(2024, 3, 1)
        created = slot_generator.generate_slots(technician.id, day, day, time(8), time(12), 60)

        assert created == 4
        slots = slot_store.list_slots(technician_id=technician.id)
        assert [(s.start_time.hour, s.end_time.hour) for s in slots] == [(8, 9), (9, 10), (10, 11), (11, 12)]
        assert not any(s.is_reserved for s in slots)

    def test_rerun_is_idempotent(self, technician):
        args = (technician.id, FUTURE_DAY, FUTURE_DAY + timedelta(days=2), time(8), time(12), 60)
        assert slot_generator.generate_slots(*args) == 12
        assert slot_generator.generate_slots(*args) == 0
        assert Slot.query.filter_by(technician_id=technician.id).count() == 12

    def test_no_partial_trailing_slot(self, technician):
        created = slot_generator.generate_slots(technician.id, FUTURE_DAY, FUTURE_DAY, time(8), time(10, 30), 60)
        assert created == 2
        last = slot_store.list_slots(technician_id=technician.id)[-1]
        assert last.end_time == datetime.combine(FUTURE_DAY, time(10))

    def test_weekday_filter(self, technician):
        """only the requested weekday of a full week gets slots"""
        wanted = FUTURE_DAY.weekday()
        created = slot_generator.generate_slots(
            technician.id, FUTURE_DAY, FUTURE_DAY + timedelta(days=6), time(8), time(12), 60, weekdays=[wanted]
        )
        assert created == 4
        assert {s.start_time.date() for s in slot_store.list_slots(technician_id=technician.id)} == {FUTURE_DAY}

    def test_skips_candidates_overlapping_existing_slot(self, technician):
        slot_generator.create_slot(
            technician.id,
            datetime.combine(FUTURE_DAY, time(8, 30)),
            datetime.combine(FUTURE_DAY, time(9, 30)),
        )
        created = slot_generator.generate_slots(technician.id, FUTURE_DAY, FUTURE_DAY, time(8), time(12), 60)

        assert created == 2
        assert _no_overlap(slot_store.list_slots(technician_id=technician.id))

    def test_slots_of_other_technicians_do_not_block(self, technician, make_technician):
        other = make_technician("Other")
        slot_generator.generate_slots(other.id, FUTURE_DAY, FUTURE_DAY, time(8), time(12), 60)
        assert slot_generator.generate_slots(technician.id, FUTURE_DAY, FUTURE_DAY, time(8), time(12), 60) == 4


class TestGenerateSlotsValidation:

    @pytest.mark.parametrize("hour_start,hour_end,duration", [
        (time(12), time(8), 60),
        (time(8), time(8), 60),
        (time(8), time(12), 0),
        (time(8), time(12), -30),
    ])
    def test_invalid_window_or_duration(self, technician, hour_start, hour_end, duration):
        with pytest.raises(InvalidSchedule):
            slot_generator.generate_slots(technician.id, FUTURE_DAY, FUTURE_DAY, hour_start, hour_end, duration)
        assert Slot.query.count() == 0

    def test_end_before_start(self, technician):
        with pytest.raises(InvalidSchedule):
            slot_generator.generate_slots(
                technician.id, FUTURE_DAY, FUTURE_DAY - timedelta(days=1), time(8), time(12), 60
            )

    def test_window_too_long(self, app, technician):
        max_days = app.config["MAX_SLOT_GENERATION_DAYS"]
        with pytest.raises(InvalidSchedule):
            slot_generator.generate_slots(
                technician.id, FUTURE_DAY, FUTURE_DAY + timedelta(days=max_days), time(8), time(12), 60
            )

    def test_bad_weekday(self, technician):
        with pytest.raises(InvalidSchedule):
            slot_generator.generate_slots(technician.id, FUTURE_DAY, FUTURE_DAY, time(8), time(12), 60, weekdays=[7])

    def test_unknown_technician(self, app):
        with pytest.raises(NotFound):
            slot_generator.generate_slots(999, FUTURE_DAY, FUTURE_DAY, time(8), time(12), 60)


class TestSingleSlots:

    def test_create_overlapping_slot_rejected(self, technician, morning_slots):
        with pytest.raises(InvalidSchedule):
            slot_generator.create_slot(
                technician.id,
                datetime.combine(FUTURE_DAY, time(9, 30)),
                datetime.combine(FUTURE_DAY, time(10, 30)),
            )

    def test_create_requires_positive_duration(self, technician):
        start = datetime.combine(FUTURE_DAY, time(9))
        with pytest.raises(InvalidSchedule):
            slot_generator.create_slot(technician.id, start, start)

    def test_delete_free_slot(self, morning_slots):
        slot_id = morning_slots[0].id
        slot_generator.delete_slot(slot_id)
        assert db.session.get(Slot, slot_id) is None

    def test_delete_reserved_slot_rejected(self, morning_slots):
        slot = morning_slots[0]
        slot.is_reserved = True
        db.session.commit()
        with pytest.raises(SlotInUse):
            slot_generator.delete_slot(slot.id)

    def test_delete_slot_referenced_by_request_rejected(self, morning_slots, client_user):
        slot = morning_slots[1]
        db.session.add(BookingRequest(
            client_id=client_user.id, motive="Noise", desired_date=FUTURE_DAY,
            slot_id=slot.id, status=RequestStatus.PENDING,
        ))
        db.session.commit()
        with pytest.raises(SlotInUse):
            slot_generator.delete_slot(slot.id)


class TestConcurrentWriters:

    def test_generation_locks_the_technician_first(self, technician):
        selects = []

        def _record(state):
            if state.is_select:
                sql = str(state.statement.compile(dialect=postgresql.dialect()))
                selects.append((state.statement.column_descriptions[0]["type"], "FOR UPDATE" in sql))

        session = db.session()
        event.listen(session, "do_orm_execute", _record)
        try:
            slot_generator.generate_slots(technician.id, FUTURE_DAY, FUTURE_DAY, time(8), time(12), 60)
        finally:
            event.remove(session, "do_orm_execute", _record)

        assert selects[0] == (Technician, True)

    def test_slot_committed_mid_generation_is_not_overlapped(self, file_app, other_writer):
        tech = Technician(full_name="Racer")
        db.session.add(tech)
        db.session.commit()

        with _commit_between_read_and_insert(other_writer, tech.id, [(_at(8), _at(8, 30))]):
            created = slot_generator.generate_slots(tech.id, FUTURE_DAY, FUTURE_DAY, time(8), time(12), 60)

        slots = slot_store.list_slots(technician_id=tech.id)
        assert _no_overlap(slots)
        assert created == 3
        assert [(s.start_time, s.end_time) for s in slots] == [
            (_at(8), _at(8, 30)), (_at(9), _at(10)), (_at(10), _at(11)), (_at(11), _at(12)),
        ]

    def test_race_lost_twice_is_a_schedule_conflict(self, file_app, other_writer, caplog):
        tech = Technician(full_name="Racer")
        db.session.add(tech)
        db.session.commit()

        ranges = [(_at(8), _at(8, 30)), (_at(9), _at(9, 15))]
        with _commit_between_read_and_insert(other_writer, tech.id, ranges):
            with pytest.raises(InvalidSchedule) as exc_info:
                slot_generator.generate_slots(tech.id, FUTURE_DAY, FUTURE_DAY, time(8), time(12), 60)

        assert exc_info.value.code == "schedule_conflict"
        assert exc_info.value.status_code == 409
        assert not [r for r in caplog.records if r.levelname == "ERROR"]
        slots = slot_store.list_slots(technician_id=tech.id)
        assert [(s.start_time, s.end_time) for s in slots] == ranges

    def test_single_slot_committed_concurrently(self, file_app, other_writer):
        tech = Technician(full_name="Racer")
        db.session.add(tech)
        db.session.commit()

        with _commit_between_read_and_insert(other_writer, tech.id, [(_at(9, 30), _at(10, 30))]):
            with pytest.raises(InvalidSchedule):
                slot_generator.create_slot(tech.id, _at(9), _at(10))

        slots = slot_store.list_slots(technician_id=tech.id)
        assert [(s.start_time, s.end_time) for s in slots] == [(_at(9, 30), _at(10, 30))]
