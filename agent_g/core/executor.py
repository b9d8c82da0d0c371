import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import httpx
from ..agents.router import map_subtask_to_delegate_target
from ..models.task import (
    AgentName,
    ExecutionOutcome,
    SubTaskSpec,
    Subtask,
    SubtaskStatus,
    TaskPlan,
)

logger = logging.getLogger(__name__)


@dataclass
class ExecutionOptions:
    origin: str
    auth_header: Optional[str] = None
    internal_secret: Optional[str] = None
    demo_mode: bool = False


def overall_status(subtasks: List[Subtask]) -> SubtaskStatus:
    completed = sum(1 for item in subtasks if item.status == SubtaskStatus.COMPLETED)
    if subtasks and completed == len(subtasks):
        return SubtaskStatus.COMPLETED
    if completed == 0:
        return SubtaskStatus.FAILED
    return SubtaskStatus.PARTIAL


class PlanExecutor:
    """
    Runs every sub-task of a plan against its delegate target.

    Delegation calls run concurrently; the returned list keeps plan order.
    A failing call marks its own sub-task failed and never aborts the plan.
    """

    def __init__(self, timeout: float = 20.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    async def execute(self, plan: TaskPlan, options: ExecutionOptions) -> ExecutionOutcome:
        async with httpx.AsyncClient(
            base_url=options.origin,
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            subtasks = await asyncio.gather(*[
                self._run_subtask(client, spec, options) for spec in plan.sub_tasks
            ])

        subtasks = list(subtasks)
        status = overall_status(subtasks)
        logger.info(f"[Executor] Plan for '{plan.main_goal[:40]}' finished as {status.value}")
        return ExecutionOutcome(status=status, subtasks=subtasks)

    async def _run_subtask(self, client: httpx.AsyncClient, spec: SubTaskSpec, options: ExecutionOptions) -> Subtask:
        subtask = Subtask(
            id=str(uuid.uuid4()),
            agent=spec.agent,
            action=spec.action,
            input=spec.input,
            status=SubtaskStatus.PROCESSING,
        )

        if options.demo_mode:
            return subtask.model_copy(update={
                "status": SubtaskStatus.COMPLETED,
                "output": {"source": spec.agent, "demo": True, "preview": f"{spec.action} for: {spec.input.get('goal', '')}"},
            })

        target = map_subtask_to_delegate_target(spec)
        logger.info(f"[Executor] {spec.agent} -> {target.method} {target.endpoint}")

        try:
            if spec.agent == AgentName.BUSINESS_AGENT.value:
                return await self._run_business(client, subtask, spec, options)
            response = await self._request(client, target.method, target.endpoint, options, target.body)
        except httpx.HTTPError as e:
            logger.error(f"[Executor] Delegation to {target.endpoint} failed: {e}")
            return subtask.model_copy(update={"status": SubtaskStatus.FAILED, "error": str(e) or type(e).__name__})

        if not response.is_success:
            logger.warning(f"[Executor] {target.endpoint} answered {response.status_code}")
            return subtask.model_copy(update={
                "status": SubtaskStatus.FAILED,
                "error": f"Delegation failed ({response.status_code})",
            })

        return subtask.model_copy(update={
            "status": SubtaskStatus.COMPLETED,
            "output": {"source": spec.agent, "data": self._data(response)},
        })

    async def _run_business(self, client: httpx.AsyncClient, subtask: Subtask, spec: SubTaskSpec, options: ExecutionOptions) -> Subtask:
        """
        Runs the user's first business project; without one, or when the run
        fails, asks the chat endpoint for a business plan instead.
        """
        projects = await self._request(client, "GET", "/api/business-agent/projects", options)
        project_id = self._first_project_id(projects) if projects.is_success else None

        if project_id:
            run = await self._request(client, "POST", "/api/business-agent/run", options, {"projectId": project_id})
            if run.is_success:
                return subtask.model_copy(update={
                    "status": SubtaskStatus.COMPLETED,
                    "output": {"source": spec.agent, "run": self._data(run)},
                })
            logger.warning(f"[Executor] Business run for project {project_id} answered {run.status_code}, using chat fallback")

        fallback = await self._request(client, "POST", "/api/chat", options, {
            "message": f"Create a business plan for: {spec.input.get('goal') or ''}",
            "context": "business",
        })
        if not fallback.is_success:
            return subtask.model_copy(update={"status": SubtaskStatus.FAILED, "error": "Business delegation failed"})

        return subtask.model_copy(update={
            "status": SubtaskStatus.COMPLETED,
            "output": {"source": "business-agent-fallback", "data": self._data(fallback)},
        })

    async def _request(self, client: httpx.AsyncClient, method: str, endpoint: str, options: ExecutionOptions, body: Optional[Dict[str, Any]] = None) -> httpx.Response:
        return await client.request(
            method,
            endpoint,
            headers=self._headers(options),
            json=(body or {}) if method == "POST" else None,
        )

    def _first_project_id(self, response: httpx.Response) -> Optional[str]:
        data = self._data(response)
        projects = data.get("projects") if isinstance(data, dict) else None
        if not isinstance(projects, list) or not projects or not isinstance(projects[0], dict):
            return None
        project_id = projects[0].get("id")
        return str(project_id) if project_id else None

    @staticmethod
    def _headers(options: ExecutionOptions) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if options.auth_header:
            headers["Authorization"] = options.auth_header
        if options.internal_secret:
            headers["x-agent-g-secret"] = options.internal_secret
        return headers

    @staticmethod
    def _data(response: httpx.Response) -> Any:
        try:
            payload = response.json()
        except ValueError:
            return {}
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"] or {}
        return payload
