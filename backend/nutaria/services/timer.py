"""Metal detector countdown timer, shared through Redis.

Keys:
    nutaria:metal-detector-timer:lot:{lot_id}   end time, unix ms
    nutaria:metal-detector-timer:active         lot id of the active timer

Clients poll `get_running_timer` every `timer_resync_seconds`.  When the
active pointer has expired or gone missing, the latest-ending unexpired
lot timer becomes active again.
"""

import logging
import time

import redis.asyncio as redis
from fastapi import status

from nutaria.config import settings
from nutaria.middleware.exceptions import NutariaException
from nutaria.schemas.timer import TimerOut
from nutaria.utils.redis_pool import get_redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "nutaria:metal-detector-timer"
ACTIVE_KEY = f"{KEY_PREFIX}:active"


def lot_key(lot_id: int) -> str:
    return f"{KEY_PREFIX}:lot:{lot_id}"


def format_hms(seconds: int) -> str:
    """`3725` → `01:02:05`."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def now_ms() -> int:
    return int(time.time() * 1000)


def to_out(lot_id: int, end_at_ms: int, at_ms: int | None = None) -> TimerOut:
    at_ms = now_ms() if at_ms is None else at_ms
    remaining = max(0, (end_at_ms - at_ms + 999) // 1000)
    return TimerOut(
        lot_id=lot_id,
        end_at_ms=end_at_ms,
        remaining_seconds=remaining,
        remaining_hms=format_hms(remaining),
        running=end_at_ms > at_ms,
        resync_seconds=settings.timer_resync_seconds,
    )


class TimerUnavailableError(NutariaException):
    def __init__(self):
        super().__init__(
            message="Timer store unavailable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="TIMER_UNAVAILABLE",
        )


async def start_timer(lot_id: int, duration_seconds: int) -> TimerOut:
    end_at = now_ms() + duration_seconds * 1000
    client = await get_redis()
    try:
        ttl = settings.timer_ttl_hours * 3600
        await client.set(lot_key(lot_id), str(end_at), ex=ttl)
        await client.set(ACTIVE_KEY, str(lot_id), ex=ttl)
    except redis.RedisError as e:
        logger.error("Failed to start timer for lot %s: %s", lot_id, e)
        raise TimerUnavailableError()
    logger.info("Metal detector timer started for lot %s (%ss)", lot_id, duration_seconds)
    return to_out(lot_id, end_at)


async def get_timer(lot_id: int) -> TimerOut | None:
    client = await get_redis()
    try:
        raw = await client.get(lot_key(lot_id))
    except redis.RedisError as e:
        logger.error("Failed to read timer for lot %s: %s", lot_id, e)
        raise TimerUnavailableError()
    return to_out(lot_id, int(raw)) if raw is not None else None


async def clear_timer(lot_id: int) -> None:
    client = await get_redis()
    try:
        await client.delete(lot_key(lot_id))
        if await client.get(ACTIVE_KEY) == str(lot_id):
            await client.delete(ACTIVE_KEY)
    except redis.RedisError as e:
        logger.error("Failed to clear timer for lot %s: %s", lot_id, e)
        raise TimerUnavailableError()


async def get_running_timer() -> TimerOut | None:
    """The active timer if still running, else the latest-ending running one."""
    client = await get_redis()
    current = now_ms()
    try:
        active = await client.get(ACTIVE_KEY)
        if active is not None:
            end_at = await client.get(lot_key(int(active)))
            if end_at is not None and int(end_at) > current:
                return to_out(int(active), int(end_at), current)

        best: tuple[int, int] | None = None
        async for key in client.scan_iter(match=f"{KEY_PREFIX}:lot:*"):
            end_at = await client.get(key)
            if end_at is None or int(end_at) <= current:
                continue
            lot_id = int(key.rsplit(":", 1)[1])
            if best is None or int(end_at) > best[1]:
                best = (lot_id, int(end_at))

        if best is None:
            await client.delete(ACTIVE_KEY)
            return None
        await client.set(ACTIVE_KEY, str(best[0]), ex=settings.timer_ttl_hours * 3600)
    except redis.RedisError as e:
        logger.error("Failed to look up running timer: %s", e)
        raise TimerUnavailableError()

    return to_out(best[0], best[1], current)
