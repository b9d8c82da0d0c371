"""Agent G configuration - Pydantic-based with environment variable support."""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_flag(name: str, default: str = "false") -> bool:
    return _env(name, default).lower() == "true"


class TelegramConfig(BaseModel):
    bot_token: str = Field(default_factory=lambda: _env("TELEGRAM_BOT_TOKEN"))
    webhook_secret: str = Field(default_factory=lambda: _env("TELEGRAM_WEBHOOK_SECRET"))
    setup_secret: str = Field(default_factory=lambda: _env("TELEGRAM_SETUP_SECRET"))
    api_base: str = "https://api.telegram.org"


class WhatsAppConfig(BaseModel):
    access_token: str = Field(default_factory=lambda: _env("WHATSAPP_ACCESS_TOKEN"))
    phone_number_id: str = Field(default_factory=lambda: _env("WHATSAPP_PHONE_NUMBER_ID"))
    verify_token: str = Field(default_factory=lambda: _env("WHATSAPP_VERIFY_TOKEN"))
    app_secret: str = Field(default_factory=lambda: _env("WHATSAPP_APP_SECRET"))
    api_base: str = "https://graph.facebook.com/v19.0"


class TwilioConfig(BaseModel):
    account_sid: str = Field(default_factory=lambda: _env("TWILIO_ACCOUNT_SID"))
    auth_token: str = Field(default_factory=lambda: _env("TWILIO_AUTH_TOKEN"))


class RedisConfig(BaseModel):
    url: str = Field(default_factory=lambda: _env("REDIS_URL", "redis://localhost:6379"))
    use_fake: bool = Field(default_factory=lambda: _env_flag("USE_FAKE_REDIS"))
    task_ttl: int = 7 * 86400  # 7 days


class GroqConfig(BaseModel):
    enabled: bool = Field(default_factory=lambda: _env_flag("USE_GROQ"))
    api_key: Optional[str] = Field(default_factory=lambda: os.getenv("GROQ_API_KEY"))
    model: str = "llama-3.3-70b-versatile"
    transcription_model: str = Field(default_factory=lambda: _env("GROQ_TRANSCRIPTION_MODEL", "whisper-large-v3"))


class AgentGConfig(BaseModel):
    app_url: str = Field(
        default_factory=lambda: _env("PUBLIC_APP_URL") or _env("APP_URL")
    )
    internal_secret: str = Field(default_factory=lambda: _env("AGENT_G_INTERNAL_SECRET"))
    admin_key: str = Field(default_factory=lambda: _env("ADMIN_KEY"))
    admin_id: str = Field(default_factory=lambda: _env("ADMIN_ID"))
    calls_provider: str = Field(
        default_factory=lambda: _env("AGENT_G_CALLS_PROVIDER").lower()
    )
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    whatsapp: WhatsAppConfig = Field(default_factory=WhatsAppConfig)
    twilio: TwilioConfig = Field(default_factory=TwilioConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    groq: GroqConfig = Field(default_factory=GroqConfig)
    inbound_fallback_capacity: int = Field(
        default_factory=lambda: int(_env("INBOUND_FALLBACK_CAPACITY", "100"))
    )
    delegate_timeout_seconds: float = Field(
        default_factory=lambda: float(_env("DELEGATE_TIMEOUT_SECONDS", "20"))
    )
    log_level: str = Field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    @property
    def origin(self) -> str:
        return (self.app_url or "http://localhost:3000").rstrip("/")

    def dashboard_url(self, locale: str = "en", task_id: Optional[str] = None) -> str:
        url = f"{self.origin}/{locale}/services/agent-g/dashboard"
        if task_id:
            url += f"?task={task_id}"
        return url

    @classmethod
    def from_env(cls) -> "AgentGConfig":
        return cls()
