# tovis/services/calendar_blocks.py
"""
Calendar blocks: professional-owned exclusion intervals (vacations, breaks).

Blocks are never updated in place; replace() deletes and recreates inside
one transaction. Overlap check + insert run under the professional's row
lock, so two concurrent requests cannot both insert overlapping blocks.
"""

import logging
from datetime import datetime, timedelta

from redis import Redis
from sqlalchemy.orm import Session

from ..database import run_in_transaction
from ..models import CalendarBlocks, Professionals
from .actor import Actor
from .errors import ConflictError, ForbiddenError, InvalidRangeError, NotFoundError
from .slots import get_affected_dates, invalidate_professional_cache
from .slots.availability import load_working_hours
from .timerange import TimeRange, as_utc

logger = logging.getLogger(__name__)

MIN_BLOCK_MINUTES = 15
MAX_BLOCK_MINUTES = 24 * 60


def validate_block_range(rng: TimeRange) -> None:
    if not MIN_BLOCK_MINUTES <= rng.minutes <= MAX_BLOCK_MINUTES:
        raise InvalidRangeError("Block must be between 15 minutes and 24 hours.")


class CalendarBlockStore:
    def __init__(self, db: Session, redis: Redis | None = None):
        self.db = db
        self.redis = redis

    def create(
        self,
        professional_id: int,
        rng: TimeRange,
        note: str | None = None,
    ) -> CalendarBlocks:
        """Insert a block; any overlap with an existing block is a ConflictError."""
        rng = TimeRange(as_utc(rng.start), as_utc(rng.end))
        validate_block_range(rng)

        def work():
            professional = self._lock_professional(professional_id)
            self._ensure_no_overlap(professional_id, rng)
            block = self._insert(professional_id, rng, note)
            return block, professional

        block, professional = run_in_transaction(self.db, work)

        logger.info(
            f"Calendar block {block.id} created: professional={professional_id} "
            f"{rng.start.isoformat()} - {rng.end.isoformat()}"
        )
        self._invalidate(professional, [rng])
        return block

    def get(self, block_id: int, actor: Actor) -> CalendarBlocks:
        block = self.db.get(CalendarBlocks, block_id)
        if not block or not actor.owns_professional(block.professional_id):
            raise NotFoundError("Block not found.")
        return block

    def delete(self, block_id: int, actor: Actor) -> bool:
        """
        Delete a block owned by the acting professional.

        Returns False when the block does not exist (already deleted).
        """
        block = self.db.get(CalendarBlocks, block_id)
        if not block:
            return False
        if not actor.owns_professional(block.professional_id):
            raise ForbiddenError("You can only delete your own blocks.")

        professional_id = block.professional_id

        def work():
            professional = self._lock_professional(professional_id)
            current = self.db.get(CalendarBlocks, block_id)
            if current is None:
                return None, professional
            rng = _block_range(current)
            self.db.delete(current)
            return rng, professional

        rng, professional = run_in_transaction(self.db, work)
        if rng is None:
            return False

        logger.info(f"Calendar block {block_id} deleted: professional={professional_id}")
        self._invalidate(professional, [rng])
        return True

    def replace(
        self,
        block_id: int,
        actor: Actor,
        rng: TimeRange,
        note: str | None = None,
    ) -> CalendarBlocks:
        """Delete a block and create its replacement in one transaction."""
        rng = TimeRange(as_utc(rng.start), as_utc(rng.end))
        validate_block_range(rng)

        existing = self.get(block_id, actor)
        professional_id = existing.professional_id

        def work():
            professional = self._lock_professional(professional_id)
            current = self.db.get(CalendarBlocks, block_id)
            if current is None:
                raise NotFoundError("Block not found.")
            old_range = _block_range(current)
            self.db.delete(current)
            self.db.flush()
            self._ensure_no_overlap(professional_id, rng)
            block = self._insert(professional_id, rng, note)
            return block, old_range, professional

        block, old_range, professional = run_in_transaction(self.db, work)

        logger.info(f"Calendar block {block_id} replaced by {block.id}: professional={professional_id}")
        self._invalidate(professional, [old_range, rng])
        return block

    def list_in_window(
        self,
        professional_id: int,
        start: datetime,
        end: datetime,
    ) -> list[CalendarBlocks]:
        """Blocks intersecting [start, end], ordered by start ascending."""
        start, end = as_utc(start), as_utc(end)
        if end < start:
            raise InvalidRangeError("'to' must not be before 'from'.")
        return (
            self.db.query(CalendarBlocks)
            .filter(
                CalendarBlocks.professional_id == professional_id,
                CalendarBlocks.starts_at <= end,
                CalendarBlocks.ends_at >= start,
            )
            .order_by(CalendarBlocks.starts_at.asc(), CalendarBlocks.id.asc())
            .all()
        )

    # ── Helpers ──────────────────────────────────────────────────────────

    def _ensure_no_overlap(self, professional_id: int, rng: TimeRange) -> None:
        conflict = (
            self.db.query(CalendarBlocks.id)
            .filter(
                CalendarBlocks.professional_id == professional_id,
                CalendarBlocks.starts_at < rng.end,
                CalendarBlocks.ends_at > rng.start,
            )
            .first()
        )
        if conflict:
            raise ConflictError("That time overlaps an existing block.")

    def _insert(self, professional_id: int, rng: TimeRange, note: str | None) -> CalendarBlocks:
        block = CalendarBlocks(
            professional_id=professional_id,
            starts_at=rng.start,
            ends_at=rng.end,
            note=note,
        )
        self.db.add(block)
        self.db.flush()
        return block

    def _lock_professional(self, professional_id: int) -> Professionals:
        professional = (
            self.db.query(Professionals)
            .filter(Professionals.id == professional_id)
            .with_for_update()
            .first()
        )
        if not professional:
            raise NotFoundError("Professional not found.")
        return professional

    def _invalidate(self, professional: Professionals, ranges: list[TimeRange]) -> None:
        working_hours = load_working_hours(professional)
        dates = sorted({d for rng in ranges for d in get_affected_dates(working_hours, rng)})
        invalidate_professional_cache(self.redis, professional.id, dates)


def _block_range(block: CalendarBlocks) -> TimeRange:
    return TimeRange(as_utc(block.starts_at), as_utc(block.ends_at))


def default_window(now: datetime) -> tuple[datetime, datetime]:
    """Default listing window: one week back, sixty days ahead."""
    return now - timedelta(days=7), now + timedelta(days=60)
