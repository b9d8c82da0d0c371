"""
Calls provider variants.

All three are integration skeletons: they make no network calls and return
synthetic call ids namespaced by provider and direction. Real backends
replace the method bodies and keep the result shapes.
"""

import logging
from typing import Any, Dict, Optional

from ..config import TelegramConfig, TwilioConfig
from ..models.calls import (
    CallDirection,
    EndCallResult,
    OutboundCallInput,
    ProviderCallResult,
    StartSessionInput,
    WebhookResult,
)
from .base import BaseCallsProvider

logger = logging.getLogger(__name__)


def _status_from(payload: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if value:
            return str(value)
    return "unknown"


def _call_id_from(payload: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if value:
            return str(value)
    return None


class MockCallsProvider(BaseCallsProvider):
    name = "mock"
    channel = "web_voice"

    async def start_inbound_session(self, data: StartSessionInput) -> ProviderCallResult:
        return ProviderCallResult(
            provider_call_id=self.make_call_id(CallDirection.INBOUND),
            status="active",
            transcript=data.initial_text,
            meta={"simulated": True},
        )

    async def start_outbound_call(self, data: OutboundCallInput) -> ProviderCallResult:
        logger.info(f"[Calls] mock outbound call for user {data.user_id}")
        return ProviderCallResult(
            provider_call_id=self.make_call_id(CallDirection.OUTBOUND),
            status="queued",
            meta={"simulated": True},
        )

    async def on_webhook_event(self, payload: Dict[str, Any]) -> WebhookResult:
        return WebhookResult(
            ok=True,
            call_id=_call_id_from(payload, "call_id"),
            status=_status_from(payload, "status"),
            meta={"provider": self.name},
        )

    async def end_call(self, call_id: str) -> EndCallResult:
        return EndCallResult(ok=True, meta={"call_id": call_id})


class TwilioCallsProvider(BaseCallsProvider):
    name = "twilio"
    channel = "phone"

    def __init__(self, config: TwilioConfig):
        self.config = config

    async def start_inbound_session(self, data: StartSessionInput) -> ProviderCallResult:
        return ProviderCallResult(
            provider_call_id=self.make_call_id(CallDirection.INBOUND),
            status="active",
            transcript=data.initial_text,
            meta={"account_sid": self.config.account_sid, "phone_number": data.phone_number},
        )

    async def start_outbound_call(self, data: OutboundCallInput) -> ProviderCallResult:
        # TODO: place the call through the Twilio Calls API with a <Say> TwiML script
        return ProviderCallResult(
            provider_call_id=self.make_call_id(CallDirection.OUTBOUND),
            status="queued",
            meta={"account_sid": self.config.account_sid, "phone_number": data.phone_number},
        )

    async def on_webhook_event(self, payload: Dict[str, Any]) -> WebhookResult:
        return WebhookResult(
            ok=True,
            call_id=_call_id_from(payload, "CallSid", "call_id"),
            status=_status_from(payload, "CallStatus", "status"),
            meta={"provider": self.name, "from": payload.get("From"), "to": payload.get("To")},
        )

    async def end_call(self, call_id: str) -> EndCallResult:
        return EndCallResult(ok=True, meta={"call_id": call_id})


class TelegramCallsProvider(BaseCallsProvider):
    name = "telegram"
    channel = "telegram"

    def __init__(self, config: TelegramConfig):
        self.config = config

    async def start_inbound_session(self, data: StartSessionInput) -> ProviderCallResult:
        return ProviderCallResult(
            provider_call_id=self.make_call_id(CallDirection.INBOUND),
            status="active",
            transcript=data.initial_text,
            meta={"delivery": "telegram-voice"},
        )

    async def start_outbound_call(self, data: OutboundCallInput) -> ProviderCallResult:
        return ProviderCallResult(
            provider_call_id=self.make_call_id(CallDirection.OUTBOUND),
            status="queued",
            meta={"delivery": "telegram-voice"},
        )

    async def on_webhook_event(self, payload: Dict[str, Any]) -> WebhookResult:
        return WebhookResult(
            ok=True,
            call_id=_call_id_from(payload, "call_id"),
            status=_status_from(payload, "status"),
            meta={"provider": self.name},
        )

    async def end_call(self, call_id: str) -> EndCallResult:
        return EndCallResult(ok=True, meta={"call_id": call_id})
