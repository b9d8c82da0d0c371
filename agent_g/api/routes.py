import hmac
import logging
from typing import Literal, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse
from ..agents.planner import build_task_plan, make_task_id
from ..agents.router import map_subtask_to_delegate_target
from ..channels.status import get_channel_statuses
from ..core.executor import ExecutionOptions
from ..errors import TaskNotFoundError
from ..models.calls import CallbackRequest
from ..models.events import Event, EventType, EventSource
from ..models.task import SubTaskSpec, SubtaskStatus
from ..output.formatter import render_pdf, render_zip_package
from ..services import AgentGServices
from ..store.records import CONNECT_CODE_TTL
from ..streaming.sse import event_generator
from .deps import get_services, optional_caller, rate_limited, require_caller

router = APIRouter(prefix="/agent-g")
logger = logging.getLogger(__name__)

class GoalRequest(BaseModel):
    goal: str = Field(min_length=3, max_length=3000)

class ExecuteRequest(GoalRequest):
    demo_mode: Optional[bool] = None


def _execution_options(services: AgentGServices, user_id: Optional[str], authorization: Optional[str], demo_mode: Optional[bool]) -> ExecutionOptions:
    return ExecutionOptions(
        origin=services.config.origin,
        auth_header=authorization,
        internal_secret=services.config.internal_secret or None,
        demo_mode=True if user_id is None else bool(demo_mode),
    )


@router.post("/plan", dependencies=[Depends(rate_limited("plan", "write"))])
async def plan_goal(request: GoalRequest):
    """Returns the TaskPlan for a goal without executing it."""
    return build_task_plan(request.goal).model_dump(mode="json")


@router.post("/delegate")
async def delegate_target(
    spec: SubTaskSpec,
    services: AgentGServices = Depends(get_services),
    x_agent_g_secret: Optional[str] = Header(default=None),
):
    secret = services.config.internal_secret
    if secret and not hmac.compare_digest(x_agent_g_secret or "", secret):
        raise HTTPException(status_code=403, detail="Access denied")
    return map_subtask_to_delegate_target(spec).model_dump()


@router.post("/execute", dependencies=[Depends(rate_limited("execute", "expensive"))])
async def execute_goal(
    request: ExecuteRequest,
    services: AgentGServices = Depends(get_services),
    user_id: Optional[str] = Depends(optional_caller),
    authorization: Optional[str] = Header(default=None),
):
    """Runs plan, delegation and aggregation, and returns the aggregated result."""
    task_id = make_task_id()
    options = _execution_options(services, user_id, authorization, request.demo_mode)
    record = await services.orchestrator.run(task_id, request.goal, options, user_id=user_id)

    return {
        "task_id": task_id,
        "demo_mode": options.demo_mode,
        "status": record.status.value,
        "plan": record.plan.model_dump(mode="json"),
        "results": record.results.model_dump(mode="json"),
    }


@router.post("/tasks", dependencies=[Depends(rate_limited("tasks", "expensive"))])
async def submit_task(
    request: ExecuteRequest,
    background_tasks: BackgroundTasks,
    services: AgentGServices = Depends(get_services),
    user_id: Optional[str] = Depends(optional_caller),
    authorization: Optional[str] = Header(default=None),
):
    """
    Submits a new task.
    Triggers orchestration in the background.
    Returns the task_id; progress is on /agent-g/stream/{task_id}.
    """
    task_id = make_task_id()
    logger.info(f"Received new task request, generated ID: {task_id}")

    await services.redis.publish_event(task_id, Event(
        type=EventType.STATUS,
        source=EventSource.SYSTEM,
        message="Task received. Initializing planner..."
    ))

    options = _execution_options(services, user_id, authorization, request.demo_mode)
    background_tasks.add_task(services.orchestrator.process_task, task_id, request.goal, options, user_id)

    return {"task_id": task_id}


@router.get("/stream/{task_id}")
async def stream_task(task_id: str, services: AgentGServices = Depends(get_services)):
    """
    Streams updates for the given task_id using SSE.
    """
    logger.info(f"Client connected to stream for task: {task_id}")
    return EventSourceResponse(event_generator(services.redis, task_id))


@router.get("/tasks/{task_id}/output")
async def task_output(
    task_id: str,
    output_format: str = Query(default="json", alias="format"),
    services: AgentGServices = Depends(get_services),
    user_id: Optional[str] = Depends(optional_caller),
):
    task = await services.tasks.get(task_id)
    if task is None or (task.user_id and task.user_id != user_id):
        raise TaskNotFoundError(task_id)
    if task.status == SubtaskStatus.FAILED and task.results is None:
        raise HTTPException(status_code=409, detail=f"Task failed: {task.error or 'unknown error'}")
    if task.results is None:
        raise HTTPException(status_code=404, detail="Task output not ready")

    results = task.results
    fmt = output_format.lower()

    if fmt == "markdown":
        return Response(
            content=results.markdown,
            media_type="text/markdown; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="agent-g-{task_id}.md"'},
        )

    if fmt == "pdf":
        return Response(
            content=render_pdf(task.goal, results),
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="agent-g-{task_id}.pdf"'},
        )

    if fmt == "zip":
        return Response(
            content=render_zip_package(task.goal, results),
            media_type="application/zip",
            headers={"Content-Disposition": f'attachment; filename="agent-g-{task_id}.zip"'},
        )

    if fmt == "audio":
        return {
            "task_id": task_id,
            "available": results.outputs.audio,
            "note": "Audio output is generated via Voice Lab and linked in subtask output when available.",
        }

    if fmt == "video":
        return {
            "task_id": task_id,
            "available": results.outputs.video,
            "note": "Video output is not produced by the current pipeline.",
        }

    return {"task": task.model_dump(mode="json", exclude={"results"}), "output": results.model_dump(mode="json")}


@router.get("/channels")
async def channel_statuses(services: AgentGServices = Depends(get_services)):
    return {"channels": [status.model_dump(mode="json") for status in get_channel_statuses(services.config)]}


@router.post("/channels/connect-code")
async def issue_connect_code(
    locale: Literal["en", "ka", "ru"] = Query(default="en"),
    services: AgentGServices = Depends(get_services),
    user_id: str = Depends(require_caller),
):
    code = await services.links.issue_connect_code(user_id, locale=locale)
    return {"code": code, "command": f"/connect {code}", "expires_in": CONNECT_CODE_TTL}


@router.post("/callbacks", status_code=201, dependencies=[Depends(rate_limited("callbacks", "write"))])
async def queue_callback(
    request: CallbackRequest,
    services: AgentGServices = Depends(get_services),
    user_id: str = Depends(require_caller),
):
    record = await services.callback_service.queue_callback(request, user_id)
    return {"callback": record.model_dump(mode="json")}
