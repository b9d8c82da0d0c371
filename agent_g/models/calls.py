from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import BaseModel, Field

class CallDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"

class CallChannel(str, Enum):
    PHONE = "phone"
    TELEGRAM = "telegram"
    WEB_VOICE = "web_voice"

class CallMode(str, Enum):
    TASK_INTAKE = "task_intake"
    QA = "qa"
    STATUS_UPDATE = "status_update"

class StartSessionInput(BaseModel):
    user_id: str
    channel: CallChannel
    mode: CallMode
    phone_number: Optional[str] = None
    related_task_id: Optional[str] = None
    initial_text: Optional[str] = None

class OutboundCallInput(BaseModel):
    user_id: str
    script: str
    phone_number: Optional[str] = None
    related_task_id: Optional[str] = None

class ProviderCallResult(BaseModel):
    ok: bool = True
    provider_call_id: str
    status: str
    transcript: Optional[str] = None
    summary: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)

class WebhookResult(BaseModel):
    ok: bool
    call_id: Optional[str] = None
    status: str
    meta: Dict[str, Any] = Field(default_factory=dict)

class EndCallResult(BaseModel):
    ok: bool
    meta: Dict[str, Any] = Field(default_factory=dict)

class CallRecord(BaseModel):
    call_id: str
    provider: str
    direction: CallDirection
    channel: str
    status: str
    user_id: Optional[str] = None
    related_task_id: Optional[str] = None
    transcript: Optional[str] = None
    summary: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
    started_at: str = Field(default_factory=lambda: datetime.isoformat(datetime.now()))
    ended_at: Optional[str] = None

class CallbackRequest(BaseModel):
    task_id: UUID
    summary: str = Field(min_length=1)
    force: bool = False

class CallbackRecord(BaseModel):
    id: str
    task_id: str
    user_id: str
    status: str
    script: str
    provider: Optional[str] = None
    provider_call_id: Optional[str] = None
    created_at: str = Field(default_factory=lambda: datetime.isoformat(datetime.now()))

_CLOCK_TIME = r"^([01]\d|2[0-3]):[0-5]\d$"

class CallPreferencesUpdate(BaseModel):
    phone_number: Optional[str] = Field(default=None, max_length=40)
    display_name: Optional[str] = Field(default=None, max_length=120)
    call_me_when_finished: Optional[bool] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = Field(default=None, pattern=_CLOCK_TIME)
    quiet_hours_end: Optional[str] = Field(default=None, pattern=_CLOCK_TIME)
    timezone_offset_minutes: Optional[int] = Field(default=None, ge=-840, le=840)
    voice_connected: Optional[bool] = None

class CallPreferences(BaseModel):
    user_id: str
    phone_number: Optional[str] = None
    display_name: Optional[str] = None
    call_me_when_finished: bool = True
    quiet_hours_enabled: bool = False
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None
    timezone_offset_minutes: int = 0
    voice_connected: bool = False
    updated_at: Optional[str] = None

    def in_quiet_hours(self, now: datetime) -> bool:
        """``now`` is UTC; quiet hours are HH:MM in the user's local time and may wrap midnight."""
        if not (self.quiet_hours_enabled and self.quiet_hours_start and self.quiet_hours_end):
            return False

        local = now + timedelta(minutes=self.timezone_offset_minutes)
        current = local.hour * 60 + local.minute
        start = _minutes(self.quiet_hours_start)
        end = _minutes(self.quiet_hours_end)

        if start == end:
            return False
        if start < end:
            return start <= current < end
        return current >= start or current < end


def _minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)
