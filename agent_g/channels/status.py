from typing import List, Optional, Tuple
from ..calls import get_calls_provider
from ..config import AgentGConfig
from ..models.channels import ChannelStatus, ChannelType


def _first_missing(*pairs: Tuple[str, str]) -> Optional[str]:
    for env_name, value in pairs:
        if not value:
            return env_name
    return None


def _telegram_status(config: AgentGConfig) -> ChannelStatus:
    telegram = config.telegram
    missing = _first_missing(
        ("TELEGRAM_BOT_TOKEN", telegram.bot_token),
        ("TELEGRAM_WEBHOOK_SECRET", telegram.webhook_secret),
        ("PUBLIC_APP_URL", config.app_url),
    )
    return ChannelStatus(
        type=ChannelType.TELEGRAM,
        connected=bool(telegram.bot_token),
        ready=missing is None,
        note=f"Missing {missing}" if missing else None,
    )


def _whatsapp_status(config: AgentGConfig) -> ChannelStatus:
    whatsapp = config.whatsapp
    connected = bool(whatsapp.access_token and whatsapp.phone_number_id)
    missing = _first_missing(
        ("WHATSAPP_ACCESS_TOKEN", whatsapp.access_token),
        ("WHATSAPP_PHONE_NUMBER_ID", whatsapp.phone_number_id),
        ("WHATSAPP_VERIFY_TOKEN", whatsapp.verify_token),
        ("WHATSAPP_APP_SECRET", whatsapp.app_secret),
    )
    return ChannelStatus(
        type=ChannelType.WHATSAPP,
        connected=connected,
        ready=missing is None,
        note=f"Missing {missing}" if missing else None,
    )


def _mobile_status(config: AgentGConfig) -> ChannelStatus:
    provider = get_calls_provider(config)
    return ChannelStatus(
        type=ChannelType.MOBILE,
        connected=provider.name != "mock",
        ready=True,
        note=f"Calls provider: {provider.name}",
    )


def get_channel_statuses(config: AgentGConfig) -> List[ChannelStatus]:
    """Readiness of every channel, recomputed from configuration on each call."""
    return [
        ChannelStatus(type=ChannelType.WEB, connected=True, ready=True),
        _telegram_status(config),
        _whatsapp_status(config),
        _mobile_status(config),
    ]
