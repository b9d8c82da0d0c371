from typing import Any, Dict, List, Literal, Optional, Set
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field

class TaskType(str, Enum):
    BUSINESS = "business"
    SOCIAL = "social"
    VOICE = "voice"
    AVATAR = "avatar"
    MARKETPLACE = "marketplace"
    HYBRID = "hybrid"

class AgentName(str, Enum):
    BUSINESS_AGENT = "business-agent"
    SOCIAL_MEDIA = "social-media"
    VOICE_LAB = "voice-lab"
    AVATAR_BUILDER = "avatar-builder"
    MARKETPLACE = "marketplace"

class SubtaskStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"

class SubTaskSpec(BaseModel):
    # agent stays a plain string so unknown names reach the router's default branch
    agent: str
    action: str
    input: Dict[str, Any] = Field(default_factory=dict)

class TaskPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    main_goal: str
    task_type: TaskType
    sub_tasks: List[SubTaskSpec]
    expected_outputs: Set[str]

class Subtask(SubTaskSpec):
    id: str
    status: SubtaskStatus = SubtaskStatus.QUEUED
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

class OutputManifest(BaseModel):
    text: bool = True
    pdf: bool = True
    zip: bool = True
    audio: bool = False
    video: bool = False

class AggregatedResult(BaseModel):
    summary: str
    markdown: str
    subtasks: List[Subtask]
    outputs: OutputManifest

class DelegationTarget(BaseModel):
    endpoint: str
    method: Literal["GET", "POST"]
    body: Optional[Dict[str, Any]] = None

class ExecutionOutcome(BaseModel):
    status: SubtaskStatus
    subtasks: List[Subtask]

class TaskRecord(BaseModel):
    task_id: str
    goal: str
    status: SubtaskStatus
    user_id: Optional[str] = None
    plan: Optional[TaskPlan] = None
    results: Optional[AggregatedResult] = None
    error: Optional[str] = None
    created_at: str
    updated_at: str
