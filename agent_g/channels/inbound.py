import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Deque, List, Optional, Tuple
from ..agents.planner import make_task_id
from ..config import AgentGConfig
from ..core.executor import ExecutionOptions
from ..core.orchestrator import Orchestrator
from ..models.calls import CallChannel, CallDirection, CallRecord
from ..models.channels import ChannelType, InboundEvent, InboundMessage, InboundReply, OutputLinks
from ..store.records import CallStore, ChannelLinkStore
from ..store.redis_client import RedisClient
from .voice import TelegramVoiceTranscriber

logger = logging.getLogger(__name__)

INBOUND_STREAM = "agent_g:inbound_events"
CONNECT_PROMPT = "Please connect your account first with /connect CODE from Agent G settings."
EMPTY_TEXT_REPLY = "Please send a task description."
FAILURE_REPLY = "Agent G could not process that request right now. Please retry in a moment."


class InboundEventStore:
    """
    Records every inbound channel event.

    Writes go to a Redis stream. When that write fails the event lands in a
    bounded in-memory list owned by this store (oldest dropped first), and
    the caller carries on.
    """

    def __init__(self, redis: RedisClient, capacity: int = 100, stream_maxlen: int = 10_000):
        self.redis = redis
        self.capacity = capacity
        self.stream_maxlen = stream_maxlen
        self._fallback: Deque[InboundEvent] = deque(maxlen=capacity)

    async def record(self, event: InboundEvent) -> bool:
        """Returns True when the event reached Redis, False when it was kept in memory."""
        try:
            await self.redis.append_stream(
                INBOUND_STREAM,
                {"payload": event.model_dump_json()},
                maxlen=self.stream_maxlen,
            )
            return True
        except Exception as e:
            logger.warning(f"Inbound event store unavailable ({e}); keeping {event.channel.value} event in memory")
            self._fallback.append(event)
            return False

    def fallback_events(self) -> List[InboundEvent]:
        return list(self._fallback)


class InboundHandler:
    """Turns a chat message from any channel into an orchestrated task and reply texts."""

    def __init__(
        self,
        config: AgentGConfig,
        orchestrator: Orchestrator,
        links: ChannelLinkStore,
        calls: CallStore,
        transcriber: Optional[TelegramVoiceTranscriber] = None,
    ):
        self.config = config
        self.orchestrator = orchestrator
        self.links = links
        self.calls = calls
        self.transcriber = transcriber

    async def handle(self, message: InboundMessage) -> InboundReply:
        try:
            text = message.text.strip()

            if text.lower().startswith("/connect"):
                return await self._connect(message, text)

            user_id, locale = await self._resolve_user(message)
            if not user_id:
                return InboundReply(reply_messages=[CONNECT_PROMPT])

            if not text and message.voice_url and self.transcriber:
                text = await self.transcriber.transcribe(message.voice_url) or ""

            if not text:
                return InboundReply(reply_messages=[EMPTY_TEXT_REPLY], user_id=user_id)

            task_id = make_task_id()
            record = await self.orchestrator.run(
                task_id,
                text,
                ExecutionOptions(origin=self.config.origin, internal_secret=self.config.internal_secret or None),
                user_id=user_id,
                follow_up=False,
            )
            summary = record.results.summary if record and record.results else ""
            first_line = summary.split("\n")[0]

            if message.channel == ChannelType.TELEGRAM and message.voice_url:
                await self._record_voice_call(message, user_id, task_id, text, summary)

            links = self._output_links(task_id, locale)
            return InboundReply(
                user_id=user_id,
                task_id=task_id,
                output_links=links,
                reply_messages=[
                    f"Done. {first_line}".strip(),
                    f"Dashboard: {links.dashboard}",
                    f"PDF: {links.pdf}",
                    f"ZIP: {links.zip}",
                ],
            )
        except Exception as e:
            logger.error(f"[Inbound] {message.channel.value}:{message.external_id} failed: {e}")
            return InboundReply(reply_messages=[FAILURE_REPLY])

    async def _resolve_user(self, message: InboundMessage) -> Tuple[Optional[str], str]:
        link = None
        if message.external_id:
            link = await self.links.resolve(message.channel, message.external_id)

        if message.user_hint:
            return message.user_hint, link.locale if link else "en"
        if link:
            return link.user_id, link.locale
        return None, "en"

    async def _record_voice_call(self, message: InboundMessage, user_id: str, task_id: str, transcript: str, summary: str):
        now = datetime.isoformat(datetime.now())
        await self.calls.save(CallRecord(
            call_id=f"telegram-voice-{uuid.uuid4().hex[:12]}",
            provider="telegram",
            direction=CallDirection.INBOUND,
            channel=CallChannel.TELEGRAM.value,
            status="ended",
            user_id=user_id,
            related_task_id=task_id,
            transcript=transcript,
            summary=summary,
            meta={"source": "telegram-voice", "voice_url": message.voice_url},
            started_at=now,
            ended_at=now,
        ))

    async def _connect(self, message: InboundMessage, text: str) -> InboundReply:
        parts = text.split(maxsplit=1)
        if len(parts) < 2:
            return InboundReply(reply_messages=[CONNECT_PROMPT])

        redeemed = await self.links.redeem_connect_code(parts[1])
        if not redeemed:
            return InboundReply(reply_messages=["That connect code is invalid or expired. Generate a new one in Agent G settings."])

        link = await self.links.link(
            message.channel,
            message.external_id,
            redeemed["user_id"],
            locale=redeemed.get("locale") or "en",
        )
        return InboundReply(
            user_id=link.user_id,
            reply_messages=["Connected. Send me a goal and I will get to work."],
        )

    def _output_links(self, task_id: str, locale: str) -> OutputLinks:
        base = f"{self.config.origin}/agent-g/tasks/{task_id}/output"
        return OutputLinks(
            dashboard=self.config.dashboard_url(locale, task_id),
            pdf=f"{base}?format=pdf",
            zip=f"{base}?format=zip",
        )
