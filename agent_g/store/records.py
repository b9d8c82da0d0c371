"""
Redis-backed record stores for tasks, calls, callbacks, call preferences
and channel links.

Every record is a JSON document under a namespaced key; these stores stand
in for the platform's relational tables and hold only what this service
reads back.
"""

import logging
import secrets
from datetime import datetime
from typing import List, Optional
from ..models.calls import CallbackRecord, CallPreferences, CallPreferencesUpdate, CallRecord
from ..models.channels import ChannelLink, ChannelType
from ..models.task import AggregatedResult, SubtaskStatus, TaskPlan, TaskRecord
from .redis_client import RedisClient

logger = logging.getLogger(__name__)

CONNECT_CODE_TTL = 600
CALL_HISTORY_LIMIT = 50


def _now() -> str:
    return datetime.isoformat(datetime.now())


class TaskStore:
    def __init__(self, redis: RedisClient):
        self.redis = redis

    def _key(self, task_id: str) -> str:
        return f"agent_g:task:{task_id}"

    async def create(self, task_id: str, goal: str, plan: TaskPlan, user_id: Optional[str] = None) -> TaskRecord:
        now = _now()
        record = TaskRecord(
            task_id=task_id,
            goal=goal,
            status=SubtaskStatus.PROCESSING,
            user_id=user_id,
            plan=plan,
            created_at=now,
            updated_at=now,
        )
        await self.save(record)
        return record

    async def save(self, record: TaskRecord):
        await self.redis.set_json(
            self._key(record.task_id),
            record.model_dump(mode="json"),
            ttl=self.redis.config.task_ttl,
        )

    async def complete(self, task_id: str, status: SubtaskStatus, results: AggregatedResult) -> Optional[TaskRecord]:
        record = await self.get(task_id)
        if record is None:
            return None
        record = record.model_copy(update={"status": status, "results": results, "updated_at": _now()})
        await self.save(record)
        return record

    async def fail(self, task_id: str, error: str) -> Optional[TaskRecord]:
        record = await self.get(task_id)
        if record is None:
            return None
        record = record.model_copy(update={"status": SubtaskStatus.FAILED, "error": error, "updated_at": _now()})
        await self.save(record)
        return record

    async def get(self, task_id: str) -> Optional[TaskRecord]:
        data = await self.redis.get_json(self._key(task_id))
        if data is None:
            return None
        return TaskRecord.model_validate(data)


class CallStore:
    """Call rows plus a per-user history list (newest first, capped at CALL_HISTORY_LIMIT)."""

    def __init__(self, redis: RedisClient):
        self.redis = redis

    def _key(self, call_id: str) -> str:
        return f"agent_g:call:{call_id}"

    def _history_key(self, user_id: str) -> str:
        return f"agent_g:user_calls:{user_id}"

    async def save(self, record: CallRecord):
        is_new = await self.get(record.call_id) is None
        await self.redis.set_json(self._key(record.call_id), record.model_dump(mode="json"))
        if is_new and record.user_id:
            key = self._history_key(record.user_id)
            await self.redis.redis.lpush(key, record.call_id)
            await self.redis.redis.ltrim(key, 0, CALL_HISTORY_LIMIT - 1)

    async def get(self, call_id: str) -> Optional[CallRecord]:
        data = await self.redis.get_json(self._key(call_id))
        if data is None:
            return None
        return CallRecord.model_validate(data)

    async def list_for_user(self, user_id: str) -> List[CallRecord]:
        call_ids = await self.redis.redis.lrange(self._history_key(user_id), 0, -1)
        records = [await self.get(call_id) for call_id in call_ids]
        return [record for record in records if record is not None]

    async def update_status(self, call_id: str, status: str, meta: Optional[dict] = None, ended: bool = False) -> Optional[CallRecord]:
        record = await self.get(call_id)
        if record is None:
            return None
        update = {"status": status, "meta": {**record.meta, **(meta or {})}}
        if ended:
            update["ended_at"] = _now()
        record = record.model_copy(update=update)
        await self.save(record)
        return record


class CallbackStore:
    """One callback record per task."""

    def __init__(self, redis: RedisClient):
        self.redis = redis

    async def get_for_task(self, task_id: str) -> Optional[CallbackRecord]:
        data = await self.redis.get_json(f"agent_g:callback:{task_id}")
        if data is None:
            return None
        return CallbackRecord.model_validate(data)

    async def save(self, record: CallbackRecord):
        await self.redis.set_json(f"agent_g:callback:{record.task_id}", record.model_dump(mode="json"))


class PreferencesStore:
    def __init__(self, redis: RedisClient):
        self.redis = redis

    def _key(self, user_id: str) -> str:
        return f"agent_g:call_prefs:{user_id}"

    async def get(self, user_id: str) -> Optional[CallPreferences]:
        data = await self.redis.get_json(self._key(user_id))
        if data is None:
            return None
        return CallPreferences.model_validate(data)

    async def upsert(self, user_id: str, update: CallPreferencesUpdate) -> CallPreferences:
        current = await self.get(user_id) or CallPreferences(user_id=user_id)
        changes = update.model_dump(exclude_unset=True)
        prefs = CallPreferences.model_validate({**current.model_dump(), **changes, "updated_at": _now()})
        await self.redis.set_json(self._key(user_id), prefs.model_dump(mode="json"))
        return prefs


class ChannelLinkStore:
    """Maps a channel's external chat id to a platform user, and a user back to their chat ids."""

    def __init__(self, redis: RedisClient):
        self.redis = redis

    def _link_key(self, channel: ChannelType, external_id: str) -> str:
        return f"agent_g:channel_link:{channel.value}:{external_id}"

    async def resolve(self, channel: ChannelType, external_id: str) -> Optional[ChannelLink]:
        data = await self.redis.get_json(self._link_key(channel, external_id))
        if data is None:
            return None
        return ChannelLink.model_validate(data)

    async def external_id_for(self, user_id: str, channel: ChannelType) -> Optional[str]:
        return await self.redis.redis.hget(f"agent_g:user_channels:{user_id}", channel.value)

    async def link(self, channel: ChannelType, external_id: str, user_id: str, locale: str = "en") -> ChannelLink:
        link = ChannelLink(channel=channel, external_id=external_id, user_id=user_id, locale=locale)
        await self.redis.set_json(self._link_key(channel, external_id), link.model_dump(mode="json"))
        await self.redis.redis.hset(f"agent_g:user_channels:{user_id}", channel.value, external_id)
        logger.info(f"Linked {channel.value}:{external_id} to user {user_id} ({locale})")
        return link

    async def issue_connect_code(self, user_id: str, locale: str = "en") -> str:
        code = secrets.token_hex(4).upper()
        await self.redis.set_json(
            f"agent_g:connect_code:{code}",
            {"user_id": user_id, "locale": locale},
            ttl=CONNECT_CODE_TTL,
        )
        return code

    async def redeem_connect_code(self, code: str) -> Optional[dict]:
        """Returns ``{"user_id", "locale"}`` once; the code is deleted on use."""
        key = f"agent_g:connect_code:{code.strip().upper()}"
        data = await self.redis.get_json(key)
        if data:
            await self.redis.redis.delete(key)
        return data
