"""
tovis/services/events.py

Event emitter: pushes booking events to a Redis queue for notification
consumers.

Queue:
- events:p2p: instant delivery (booking notifications to specific users)
"""

import json
import time
import logging

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def emit_event(redis: Redis | None, event_type: str, payload: dict) -> None:
    """
    Emit a p2p event (instant delivery).

    Pushed to Redis list `events:p2p` for the consumer loop. Without Redis
    the event is only logged. Delivery failures never fail the caller.
    """
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    if redis is None:
        logger.info(f"Event (no queue): {event_type} {payload}")
        return

    try:
        redis.rpush(P2P_QUEUE, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
    except RedisError as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
