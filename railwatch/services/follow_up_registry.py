"""Bookkeeping of pending follow-up checks in Redis.

Two sets per route:
- ``followups:{route_id}:tasks`` holds Celery task ids so a deleted route's
  pending checks can be revoked.
- ``followups:{route_id}:slots`` holds the planned run times, so the second
  morning sweep does not enqueue the same follow-up twice.

Both expire after FOLLOW_UP_REGISTRY_TTL; follow-ups never outlive the day.
"""

import uuid
from collections.abc import Callable
from datetime import datetime

import structlog

from railwatch.core.config import settings
from railwatch.core.redis import RedisClientProtocol

logger = structlog.get_logger(__name__)


def _tasks_key(route_id: uuid.UUID) -> str:
    return f"followups:{route_id}:tasks"


def _slots_key(route_id: uuid.UUID) -> str:
    return f"followups:{route_id}:slots"


def slot_key(run_at: datetime) -> str:
    """Canonical representation of a planned run time (minute precision)."""
    return run_at.replace(second=0, microsecond=0).isoformat()


class FollowUpRegistry:
    """Records, deduplicates and releases pending follow-ups per route."""

    def __init__(self, redis_client: RedisClientProtocol, ttl: int | None = None) -> None:
        self.redis = redis_client
        self.ttl = ttl or settings.FOLLOW_UP_REGISTRY_TTL

    async def scheduled_slots(self, route_id: uuid.UUID) -> set[str]:
        """Run times already planned for the route."""
        return set(await self.redis.smembers(_slots_key(route_id)))

    async def record(self, route_id: uuid.UUID, run_at: datetime, task_id: str) -> None:
        """Remember an enqueued follow-up."""
        tasks_key = _tasks_key(route_id)
        slots_key = _slots_key(route_id)
        await self.redis.sadd(tasks_key, task_id)
        await self.redis.sadd(slots_key, slot_key(run_at))
        await self.redis.expire(tasks_key, self.ttl)
        await self.redis.expire(slots_key, self.ttl)

    async def release(self, route_id: uuid.UUID) -> list[str]:
        """
        Forget every pending follow-up of a route.

        Returns:
            Task ids that were pending, for revocation
        """
        task_ids = sorted(await self.redis.smembers(_tasks_key(route_id)))
        await self.redis.delete(_tasks_key(route_id), _slots_key(route_id))
        logger.debug("follow_ups_released", route_id=str(route_id), count=len(task_ids))
        return task_ids


async def revoke_follow_ups(
    registry: FollowUpRegistry,
    route_id: uuid.UUID,
    revoke: Callable[[str], object],
) -> int:
    """
    Revoke every pending follow-up of a route.

    Args:
        registry: Follow-up registry holding the task ids
        route_id: Route whose follow-ups are revoked
        revoke: Revokes one task by id (``celery_app.control.revoke``)

    Returns:
        Number of revoked tasks
    """
    task_ids = await registry.release(route_id)
    for task_id in task_ids:
        revoke(task_id)
    logger.info("follow_ups_revoked", route_id=str(route_id), count=len(task_ids))
    return len(task_ids)
