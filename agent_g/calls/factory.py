"""
Calls provider factory
Picks the telephony backend from configured credentials
"""

import logging

from ..config import AgentGConfig
from .base import BaseCallsProvider
from .providers import MockCallsProvider, TelegramCallsProvider, TwilioCallsProvider

logger = logging.getLogger(__name__)


def _twilio_ready(config: AgentGConfig) -> bool:
    return bool(config.twilio.account_sid and config.twilio.auth_token)


def _telegram_ready(config: AgentGConfig) -> bool:
    return bool(config.telegram.bot_token)


def get_calls_provider(config: AgentGConfig) -> BaseCallsProvider:
    """
    Select the calls provider.

    Precedence: an explicit AGENT_G_CALLS_PROVIDER override whose credentials
    are present, then Twilio, then Telegram, then the mock provider.
    """
    override = config.calls_provider

    if override == "mock":
        return MockCallsProvider()
    if override == "twilio" and _twilio_ready(config):
        return TwilioCallsProvider(config.twilio)
    if override == "telegram" and _telegram_ready(config):
        return TelegramCallsProvider(config.telegram)
    if override and override not in ("mock", "twilio", "telegram"):
        logger.warning(f"[Calls] Unknown calls provider override '{override}', probing credentials")
    elif override:
        logger.warning(f"[Calls] Override '{override}' is missing credentials, probing credentials")

    if _twilio_ready(config):
        return TwilioCallsProvider(config.twilio)
    if _telegram_ready(config):
        return TelegramCallsProvider(config.telegram)
    return MockCallsProvider()
