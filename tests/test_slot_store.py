from datetime import datetime, time

import pytest

from conftest import FUTURE_DAY
from models import db
from models.slot import Slot
from services import interventions, slot_store
from services.errors import NotFound, SlotAlreadyReserved


@pytest.fixture
def intervention(technician, morning_slots, collaborators):
    return interventions.create_intervention(None, technician.id, morning_slots[0].start_time, collaborators)


class TestReserveRelease:

    def test_reserve_sets_flag_and_links_consumer(self, morning_slots, intervention):
        slot = slot_store.reserve_slot(morning_slots[0].id, intervention.id)
        db.session.commit()

        assert slot.is_reserved is True
        assert slot.intervention_id == intervention.id

    def test_second_reservation_loses(self, morning_slots, intervention, collaborators, make_technician):
        """the compare-and-set lets exactly one of two reservations through"""
        other = interventions.create_intervention(
            None, make_technician("Other").id, morning_slots[0].start_time, collaborators
        )
        slot_store.reserve_slot(morning_slots[0].id, intervention.id)
        db.session.commit()

        with pytest.raises(SlotAlreadyReserved):
            slot_store.reserve_slot(morning_slots[0].id, other.id)
        db.session.rollback()

        slot = db.session.get(Slot, morning_slots[0].id, populate_existing=True)
        assert slot.intervention_id == intervention.id

    def test_reserve_unknown_slot(self, app, intervention):
        with pytest.raises(NotFound):
            slot_store.reserve_slot(12345, intervention.id)

    def test_release_is_idempotent(self, morning_slots, intervention):
        slot_id = morning_slots[0].id
        slot_store.reserve_slot(slot_id, intervention.id)
        slot_store.release_slot(slot_id)
        slot = slot_store.release_slot(slot_id)
        db.session.commit()

        assert slot.is_reserved is False
        assert slot.intervention_id is None

    def test_release_unknown_slot(self, app):
        with pytest.raises(NotFound):
            slot_store.release_slot(12345)


class TestListSlots:

    def test_free_only(self, technician, morning_slots, intervention):
        slot_store.reserve_slot(morning_slots[1].id, intervention.id)
        db.session.commit()

        free = slot_store.list_slots(technician_id=technician.id, free_only=True)
        assert [s.id for s in free] == [morning_slots[0].id, morning_slots[2].id, morning_slots[3].id]

    def test_window_filter(self, technician, morning_slots):
        found = slot_store.list_slots(
            technician_id=technician.id,
            start=datetime.combine(FUTURE_DAY, time(9)),
            end=datetime.combine(FUTURE_DAY, time(11)),
        )
        assert [(s.start_time.hour, s.end_time.hour) for s in found] == [(9, 10), (10, 11)]

    def test_filters_by_technician(self, morning_slots, make_technician):
        other = make_technician("Other")
        assert slot_store.list_slots(technician_id=other.id) == []
