import json
import logging
import redis.asyncio as redis
from typing import Any, Dict, List, Optional
from ..config import RedisConfig
from ..models.events import Event

logger = logging.getLogger(__name__)

class RedisClient:
    def __init__(self, config: RedisConfig):
        self.config = config
        self.use_fake = config.use_fake
        self.redis = None

        if self.use_fake:
            import fakeredis
            import fakeredis.aioredis
            logger.warning("⚠️ USING FAKE REDIS (IN-MEMORY) - FOR TESTING ONLY ⚠️")
            # one in-memory server per client
            self.redis = fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
        else:
            logger.info(f"🔌 Initializing Real Redis Client at {config.url}")
            try:
                self.redis = redis.from_url(
                    config.url,
                    encoding="utf-8",
                    decode_responses=True,
                    health_check_interval=30
                )
            except Exception as e:
                logger.critical(f"❌ Invalid REDIS_URL or configuration: {e}")
                raise

    async def check_connection(self) -> bool:
        """
        Verifies connection to Redis.
        Called on startup; the app still starts when Redis is down so that
        the inbound fallback path stays reachable.
        """
        if self.use_fake:
            return True

        try:
            await self.redis.ping()
            logger.info("✅ Redis Connection Verified.")
            return True
        except Exception as e:
            logger.critical(f"❌ FAILED to connect to Real Redis at {self.config.url}: {e}")
            return False

    async def publish_event(self, task_id: str, event: Event):
        """
        Publishes an event to the task's Redis Stream.
        The event is wrapped in a single 'payload' field.
        """
        stream_key = f"task_events:{task_id}"

        try:
            await self.redis.xadd(stream_key, {"payload": event.model_dump_json()})
            logger.info(f"📤 Published to {stream_key}: [{event.type.value}] {event.message[:50]}...")
        except Exception as e:
            logger.error(f"❌ Failed to publish event to {stream_key}: {e}")
            raise

    async def read_events(self, task_id: str, last_id: str = "0-0", block: Optional[int] = 5000) -> List[tuple]:
        """
        Reads new events from the stream.
        Returns a list of (stream_id, payload_dict); connectivity errors yield [].
        """
        stream_key = f"task_events:{task_id}"

        try:
            streams = await self.redis.xread({stream_key: last_id}, count=10, block=block)

            if not streams:
                return []

            _, messages = streams[0]
            return messages

        except redis.ConnectionError as e:
            logger.error(f"❌ Redis Connection Lost during read: {e}")
            return []
        except Exception as e:
            logger.error(f"❌ Unexpected error reading stream {stream_key}: {e}")
            return []

    async def append_stream(self, key: str, fields: Dict[str, str], maxlen: Optional[int] = None) -> str:
        return await self.redis.xadd(key, fields, maxlen=maxlen, approximate=False)

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None):
        await self.redis.set(key, json.dumps(value), ex=ttl)

    async def get_json(self, key: str) -> Optional[Any]:
        raw = await self.redis.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def close(self):
        if self.redis:
            await self.redis.aclose()
            logger.info("🔌 Redis Client Closed.")
