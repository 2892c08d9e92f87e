# tovis/services/slots/redis_store.py
"""
Redis storage for computed day slots using Sorted Sets.

Key format: slots:day:{professional_id}:{date}:{duration}
Value: Sorted Set where member = ISO-8601 UTC slot start,
       score = slot start unix timestamp.

Query: ZRANGEBYSCORE key {min_ts} {max_ts} → slots in a window.
Sentinel: "__empty__" with score=0 marks "calculated, zero slots".

Generation: slots:gen:{professional_id} is incremented on every
invalidation. A reader notes the generation before loading busy ranges and
only stores its result if the generation is unchanged (WATCH/MULTI), so a
day computed from data that a concurrent write has since replaced is never
cached.
"""

from datetime import date, datetime, timezone
from redis import Redis
from redis.exceptions import WatchError

from .config import BookingConfig, get_booking_config


EMPTY_SENTINEL = "__empty__"


class SlotsRedisStore:
    """Redis storage wrapper using Sorted Sets for slot data."""

    KEY_PREFIX = "slots:day"
    GEN_PREFIX = "slots:gen"

    def __init__(self, redis: Redis, config: BookingConfig | None = None):
        self.redis = redis
        self.config = config or get_booking_config()

    def _key(self, professional_id: int, dt: date, duration_minutes: int) -> str:
        return f"{self.KEY_PREFIX}:{professional_id}:{dt.isoformat()}:{duration_minutes}"

    def _gen_key(self, professional_id: int) -> str:
        return f"{self.GEN_PREFIX}:{professional_id}"

    # ── Generation ───────────────────────────────────────────────────────

    def get_generation(self, professional_id: int) -> int:
        value = self.redis.get(self._gen_key(professional_id))
        return int(value) if value else 0

    def bump_generation(self, professional_id: int) -> int:
        return self.redis.incr(self._gen_key(professional_id))

    # ── Write ────────────────────────────────────────────────────────────

    def store_day_slots(
        self,
        professional_id: int,
        dt: date,
        duration_minutes: int,
        slots: list[datetime],
        generation: int | None = None,
    ) -> bool:
        """
        Store calculated slots for a day.

        Empty list → sentinel is stored. With `generation`, nothing is
        stored unless the professional's generation still equals it.

        Returns:
            True if the day was stored.
        """
        key = self._key(professional_id, dt, duration_minutes)
        gen_key = self._gen_key(professional_id)

        with self.redis.pipeline() as pipe:
            try:
                if generation is not None:
                    pipe.watch(gen_key)
                    current = pipe.get(gen_key)
                    if (int(current) if current else 0) != generation:
                        return False
                    pipe.multi()

                # Remove old data
                pipe.delete(key)

                if slots:
                    mapping = {s.isoformat(): s.timestamp() for s in slots}
                    pipe.zadd(key, mapping)
                else:
                    # Empty day: sentinel so EXISTS returns True
                    pipe.zadd(key, {EMPTY_SENTINEL: 0})

                pipe.expire(key, self.config.cache_ttl_seconds)
                pipe.execute()
            except WatchError:
                # Invalidated between the check and EXEC
                return False

        return True

    # ── Read ─────────────────────────────────────────────────────────────

    def get_day_slots(
        self,
        professional_id: int,
        dt: date,
        duration_minutes: int,
        min_start: datetime,
        max_start: datetime,
    ) -> list[datetime] | None:
        """
        Get cached slots whose start lies in [min_start, max_start].

        Returns:
            Ascending list of UTC datetimes, or None on cache miss.
        """
        key = self._key(professional_id, dt, duration_minutes)
        if not self.redis.exists(key):
            return None

        members = self.redis.zrangebyscore(key, min_start.timestamp(), max_start.timestamp())
        result = []
        for m in members:
            m = m.decode() if isinstance(m, bytes) else m
            if m == EMPTY_SENTINEL:
                continue
            result.append(datetime.fromisoformat(m).astimezone(timezone.utc))
        return result

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_day_slots(
        self,
        professional_id: int,
        dates: list[date] | None = None,
    ) -> int:
        """
        Delete cached slots (all durations).

        Args:
            professional_id: Professional ID
            dates: Specific local dates, or None to delete every cached day.

        Returns:
            Number of deleted keys.
        """
        if dates:
            patterns = [
                f"{self.KEY_PREFIX}:{professional_id}:{dt.isoformat()}:*" for dt in dates
            ]
        else:
            patterns = [f"{self.KEY_PREFIX}:{professional_id}:*"]

        keys = []
        for pattern in patterns:
            keys.extend(self.redis.scan_iter(match=pattern))

        if not keys:
            return 0

        return self.redis.delete(*keys)
