from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

class EventType(str, Enum):
    STATUS = "status"
    SUBTASK = "subtask"
    ERROR = "error"
    DONE = "done"

class EventSource(str, Enum):
    SYSTEM = "system"
    PLANNER = "planner"
    EXECUTOR = "executor"
    AGGREGATOR = "aggregator"
    CALLS = "calls"

class Event(BaseModel):
    type: EventType
    source: EventSource
    message: str
    data: Optional[Dict[str, Any]] = None
    timestamp: str = Field(default_factory=lambda: datetime.isoformat(datetime.now()))
