import asyncio
import logging
import json
from sse_starlette.sse import ServerSentEvent
from ..store.redis_client import RedisClient
from ..models.events import Event, EventType

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = (EventType.DONE, EventType.ERROR)

async def event_generator(redis: RedisClient, task_id: str, block: int = 2000):
    """
    Async generator for SSE.
    Replays the task's Redis Stream from the start, then follows it until a
    DONE or ERROR event.
    """
    last_id = "0-0"

    while True:
        messages = await redis.read_events(task_id, last_id=last_id, block=block)

        if not messages:
            await asyncio.sleep(0.1)
            continue

        for msg_id, data in messages:
            last_id = msg_id
            payload_json = data.get("payload")

            if payload_json:
                try:
                    event_data = Event.model_validate_json(payload_json)

                    yield ServerSentEvent(
                        data=event_data.model_dump_json(),
                        event="message"
                    )

                    if event_data.type in TERMINAL_EVENTS:
                        logger.info(f"Task {task_id} {event_data.type.value}. Closing stream.")
                        return

                except Exception as e:
                    logger.error(f"Error parsing event {msg_id}: {e}")
                    yield ServerSentEvent(
                        data=json.dumps({"error": "Failed to parse event"}),
                        event="error"
                    )
