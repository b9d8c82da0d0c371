import asyncio
import json

import httpx
import pytest

from agent_g.config import (
    AgentGConfig,
    GroqConfig,
    RedisConfig,
    TelegramConfig,
    TwilioConfig,
    WhatsAppConfig,
)
from agent_g.models.task import Subtask, SubtaskStatus

INTERNAL_SECRET = "test-internal-secret"


def make_config(**overrides) -> AgentGConfig:
    """Config with every credential blank so the host environment never leaks in."""
    values = dict(
        app_url="https://platform.test",
        internal_secret=INTERNAL_SECRET,
        admin_key="",
        admin_id="",
        calls_provider="",
        telegram=TelegramConfig(bot_token="", webhook_secret="", setup_secret=""),
        whatsapp=WhatsAppConfig(access_token="", phone_number_id="", verify_token="", app_secret=""),
        twilio=TwilioConfig(account_sid="", auth_token=""),
        redis=RedisConfig(url="redis://localhost:6379", use_fake=True),
        groq=GroqConfig(enabled=False, api_key=None),
        inbound_fallback_capacity=100,
        delegate_timeout_seconds=5.0,
        log_level="WARNING",
    )
    values.update(overrides)
    return AgentGConfig(**values)


def make_subtask(agent: str, status: SubtaskStatus, index: int = 0, **extra) -> Subtask:
    return Subtask(
        id=f"sub-{index}",
        agent=agent,
        action=extra.pop("action", "do_work"),
        input=extra.pop("input", {"goal": "test goal"}),
        status=status,
        **extra,
    )


def run(coro):
    return asyncio.run(coro)


class DelegateRecorder:
    """httpx MockTransport handler that records every request it answers."""

    def __init__(self, failing_paths=()):
        self.requests = []
        self.failing_paths = set(failing_paths)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path in self.failing_paths:
            return httpx.Response(502, json={"error": "upstream down"})
        if request.url.host == "api.telegram.org" or request.url.host == "graph.facebook.com":
            return httpx.Response(200, json={"ok": True})
        body = json.loads(request.content) if request.content else None
        return httpx.Response(200, json={"data": {"path": request.url.path, "echo": body}})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def paths(self):
        return [request.url.path for request in self.requests]


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def recorder():
    return DelegateRecorder()


def auth_headers(user_id: str = "user-1"):
    return {"Authorization": f"Bearer {INTERNAL_SECRET}", "X-User-Id": user_id}
