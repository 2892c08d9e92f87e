from datetime import timedelta

import pytest

from tovis.models import CalendarBlocks
from tovis.services.actor import Actor, Role
from tovis.services.calendar_blocks import CalendarBlockStore, default_window
from tovis.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidRangeError,
    NotFoundError,
)
from tovis.services.timerange import TimeRange, as_utc, overlaps

from .conftest import at


@pytest.fixture
def store(db):
    return CalendarBlockStore(db)


def rng(start, end):
    return TimeRange(start, end)


class TestCreate:
    def test_create(self, store, professional):
        block = store.create(professional.id, rng(at(12), at(13)), "Lunch")
        assert block.id is not None
        assert block.note == "Lunch"

    def test_overlap_is_rejected(self, store, professional):
        store.create(professional.id, rng(at(12), at(13)))
        with pytest.raises(ConflictError):
            store.create(professional.id, rng(at(12, 30), at(13, 30)))

    def test_adjacent_blocks_are_allowed(self, store, professional):
        store.create(professional.id, rng(at(12), at(13)))
        store.create(professional.id, rng(at(13), at(14)))
        assert len(store.list_in_window(professional.id, at(0), at(0, days=1))) == 2

    def test_blocks_of_other_professionals_do_not_conflict(self, store, professional, other_professional):
        store.create(professional.id, rng(at(12), at(13)))
        store.create(other_professional.id, rng(at(12), at(13)))

    @pytest.mark.parametrize("minutes", [10, 24 * 60 + 15])
    def test_duration_limits(self, store, professional, minutes):
        with pytest.raises(InvalidRangeError):
            store.create(professional.id, TimeRange.from_duration(at(12), minutes))

    def test_unknown_professional(self, store):
        with pytest.raises(NotFoundError):
            store.create(999, rng(at(12), at(13)))


class TestDelete:
    def test_delete(self, db, store, professional, pro_actor):
        block = store.create(professional.id, rng(at(12), at(13)))
        assert store.delete(block.id, pro_actor) is True
        assert db.query(CalendarBlocks).count() == 0

    def test_delete_missing_is_noop(self, store, pro_actor):
        assert store.delete(999, pro_actor) is False

    def test_delete_foreign_block(self, store, other_professional, pro_actor):
        block = store.create(other_professional.id, rng(at(12), at(13)))
        with pytest.raises(ForbiddenError):
            store.delete(block.id, pro_actor)


class TestReplace:
    def test_replace_moves_block(self, store, professional, pro_actor):
        block = store.create(professional.id, rng(at(12), at(13)))
        moved = store.replace(block.id, pro_actor, rng(at(12, 30), at(13, 30)), "Moved")

        blocks = store.list_in_window(professional.id, at(0), at(0, days=1))
        assert [b.id for b in blocks] == [moved.id]
        assert moved.note == "Moved"

    def test_replace_into_conflict_keeps_original(self, db, store, professional, pro_actor):
        block = store.create(professional.id, rng(at(12), at(13)))
        store.create(professional.id, rng(at(14), at(15)))

        with pytest.raises(ConflictError):
            store.replace(block.id, pro_actor, rng(at(14, 30), at(15, 30)))

        db.expire_all()
        assert db.get(CalendarBlocks, block.id) is not None
        assert db.query(CalendarBlocks).count() == 2

    def test_replace_foreign_block(self, store, other_professional, pro_actor):
        block = store.create(other_professional.id, rng(at(12), at(13)))
        with pytest.raises(NotFoundError):
            store.replace(block.id, pro_actor, rng(at(14), at(15)))


class TestList:
    def test_ordered_and_windowed(self, store, professional):
        later = store.create(professional.id, rng(at(15), at(16)))
        earlier = store.create(professional.id, rng(at(9), at(10)))
        store.create(professional.id, rng(at(9, days=3), at(10, days=3)))

        blocks = store.list_in_window(professional.id, at(0), at(0, days=1))
        assert [b.id for b in blocks] == [earlier.id, later.id]

    def test_committed_blocks_never_overlap(self, store, professional):
        for start in (at(9), at(9, 30), at(10), at(10, 15), at(11)):
            try:
                store.create(professional.id, TimeRange.from_duration(start, 60))
            except ConflictError:
                pass
        blocks = store.list_in_window(professional.id, at(0), at(0, days=1))
        ranges = [rng(as_utc(b.starts_at), as_utc(b.ends_at)) for b in blocks]
        for i, a in enumerate(ranges):
            for b in ranges[i + 1:]:
                assert not overlaps(a, b)

    def test_large_window_is_not_truncated(self, db, store, professional):
        # Inserted directly: 1200 quarter-hour blocks, more than any page size
        start = at(0)
        db.add_all(
            CalendarBlocks(
                professional_id=professional.id,
                starts_at=start + timedelta(minutes=15 * i),
                ends_at=start + timedelta(minutes=15 * i + 15),
            )
            for i in range(1200)
        )
        db.commit()

        blocks = store.list_in_window(professional.id, at(0), at(0, days=13))
        assert len(blocks) == 1200
        assert as_utc(blocks[-1].starts_at) == start + timedelta(minutes=15 * 1199)

    def test_inverted_window(self, store, professional):
        with pytest.raises(InvalidRangeError):
            store.list_in_window(professional.id, at(10), at(9))


def test_default_window():
    start, end = default_window(at(12))
    assert start == at(12) - timedelta(days=7)
    assert end == at(12) + timedelta(days=60)


def test_get_hides_foreign_blocks(store, other_professional, pro_actor):
    block = store.create(other_professional.id, rng(at(12), at(13)))
    with pytest.raises(NotFoundError):
        store.get(block.id, pro_actor)
    owner = Actor(user_id=other_professional.user_id, role=Role.PRO, professional_id=other_professional.id)
    assert store.get(block.id, owner).id == block.id
