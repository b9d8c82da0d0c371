import logging
from typing import Optional
import httpx
from .agents.planner import PlannerAgent
from .calls import get_calls_provider
from .channels.inbound import InboundEventStore, InboundHandler
from .channels.notify import TelegramCompletionNotifier
from .channels.telegram import TelegramClient
from .channels.voice import TelegramVoiceTranscriber
from .channels.whatsapp import WhatsAppClient
from .config import AgentGConfig
from .core.callback import CallbackService
from .core.executor import PlanExecutor
from .core.groq_client import get_groq_client
from .core.orchestrator import Orchestrator
from .core.rate_limit import FixedWindowRateLimiter
from .store.records import CallbackStore, CallStore, ChannelLinkStore, PreferencesStore, TaskStore
from .store.redis_client import RedisClient

logger = logging.getLogger(__name__)


class AgentGServices:
    """
    Everything one app instance owns, wired from a single config.
    Built inside the running event loop so the Redis client binds to it.
    """

    def __init__(self, config: AgentGConfig, http_transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.redis = RedisClient(config.redis)

        self.tasks = TaskStore(self.redis)
        self.calls = CallStore(self.redis)
        self.callbacks = CallbackStore(self.redis)
        self.links = ChannelLinkStore(self.redis)
        self.preferences = PreferencesStore(self.redis)
        self.telegram = TelegramClient(config.telegram, transport=http_transport)
        self.whatsapp = WhatsAppClient(config.whatsapp, transport=http_transport)
        groq = get_groq_client(config.groq)

        self.calls_provider = get_calls_provider(config)
        logger.info(f"Calls provider: {self.calls_provider.name}")

        self.callback_service = CallbackService(
            tasks=self.tasks,
            callbacks=self.callbacks,
            calls=self.calls,
            preferences=self.preferences,
            provider=self.calls_provider,
            dashboard_url=lambda task_id: config.dashboard_url(task_id=task_id),
        )
        self.orchestrator = Orchestrator(
            redis=self.redis,
            planner=PlannerAgent(self.redis, groq, config.groq.model),
            executor=PlanExecutor(config.delegate_timeout_seconds, transport=http_transport),
            tasks=self.tasks,
            callbacks=self.callback_service,
            notifier=TelegramCompletionNotifier(config, self.links, self.telegram),
        )

        self.inbound_events = InboundEventStore(self.redis, capacity=config.inbound_fallback_capacity)
        self.inbound = InboundHandler(
            config,
            self.orchestrator,
            self.links,
            self.calls,
            transcriber=TelegramVoiceTranscriber(self.telegram, groq, config.groq.transcription_model),
        )
        self.rate_limiter = FixedWindowRateLimiter()

    async def close(self):
        await self.redis.close()
