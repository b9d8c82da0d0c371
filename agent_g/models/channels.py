from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

class ChannelType(str, Enum):
    WEB = "web"
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"
    MOBILE = "mobile"

class ChannelStatus(BaseModel):
    type: ChannelType
    connected: bool
    ready: bool
    note: Optional[str] = None

class InboundEvent(BaseModel):
    channel: ChannelType
    external_id: str
    text: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)
    received_at: str = Field(default_factory=lambda: datetime.isoformat(datetime.now()))

class InboundMessage(BaseModel):
    channel: ChannelType
    external_id: str
    text: str
    voice_url: Optional[str] = None
    user_hint: Optional[str] = None

class OutputLinks(BaseModel):
    dashboard: str
    pdf: Optional[str] = None
    zip: Optional[str] = None

class InboundReply(BaseModel):
    reply_messages: List[str]
    task_id: Optional[str] = None
    user_id: Optional[str] = None
    output_links: Optional[OutputLinks] = None

class ChannelLink(BaseModel):
    channel: ChannelType
    external_id: str
    user_id: str
    locale: str = "en"
    linked_at: str = Field(default_factory=lambda: datetime.isoformat(datetime.now()))
