import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union
from ..calls.base import BaseCallsProvider
from ..errors import TaskNotFoundError
from ..models.calls import (
    CallbackRecord,
    CallbackRequest,
    CallDirection,
    CallRecord,
    OutboundCallInput,
)
from ..models.task import AggregatedResult
from ..store.records import CallbackStore, CallStore, PreferencesStore, TaskStore

logger = logging.getLogger(__name__)

MAX_SPOKEN_SUBTASKS = 5
FALLBACK_SUMMARY = "Your request has been processed."
NO_ACTIONS = "No sub-agent actions were recorded."
NEXT_STEP = "Suggested next step: review the outputs and tell me what you would like to refine."


def build_callback_script(
    goal: str,
    results: Optional[Union[AggregatedResult, Mapping[str, Any]]],
    dashboard_url: str,
) -> str:
    """Renders a task outcome as one spoken-style message for a callback call."""
    if isinstance(results, AggregatedResult):
        results = results.model_dump(mode="json")
    results = results or {}

    entries = list(results.get("subtasks") or [])[:MAX_SPOKEN_SUBTASKS]
    actions = "; ".join(
        f"{item.get('agent', 'agent')}: {item.get('action', 'task')} ({item.get('status', 'unknown')})"
        for item in entries
        if isinstance(item, Mapping)
    )
    summary = results.get("summary") or FALLBACK_SUMMARY

    segments = [
        f"Hello, this is Agent G with an update on your request: {goal}.",
        summary,
        f"Sub-agent actions: {actions}." if actions else NO_ACTIONS,
        f"You can review the full results on your dashboard: {dashboard_url}",
        NEXT_STEP,
    ]
    return " ".join(segments)


class CallbackService:
    def __init__(
        self,
        tasks: TaskStore,
        callbacks: CallbackStore,
        calls: CallStore,
        preferences: PreferencesStore,
        provider: BaseCallsProvider,
        dashboard_url: Callable[[str], str],
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.tasks = tasks
        self.callbacks = callbacks
        self.calls = calls
        self.preferences = preferences
        self.provider = provider
        self.dashboard_url = dashboard_url
        self.clock = clock

    async def auto_callback(self, task_id: str, user_id: str, summary: str) -> Optional[CallbackRecord]:
        """
        Callback after a finished task, unless the user opted out or is in
        quiet hours. Returns None when no call was queued.
        """
        prefs = await self.preferences.get(user_id)
        if prefs and not prefs.call_me_when_finished:
            logger.info(f"[Callback] User {user_id} opted out of finish callbacks")
            return None
        if prefs and prefs.in_quiet_hours(self.clock()):
            logger.info(f"[Callback] User {user_id} is in quiet hours, skipping callback for task {task_id}")
            return None
        return await self.queue_callback(CallbackRequest(task_id=task_id, summary=summary), user_id)

    async def queue_callback(self, request: CallbackRequest, user_id: str) -> CallbackRecord:
        task_id = str(request.task_id)
        task = await self.tasks.get(task_id)
        if task is None or (task.user_id and task.user_id != user_id):
            raise TaskNotFoundError(task_id)

        existing = await self.callbacks.get_for_task(task_id)
        if existing and not request.force:
            logger.info(f"[Callback] Task {task_id} already has callback {existing.id}, skipping")
            return existing

        results = task.results.model_dump(mode="json") if task.results else {}
        results["summary"] = request.summary
        script = build_callback_script(task.goal, results, self.dashboard_url(task_id))

        record = CallbackRecord(
            id=str(uuid.uuid4()),
            task_id=task_id,
            user_id=user_id,
            status="queued",
            script=script,
        )
        await self.callbacks.save(record)
        logger.info(f"[Callback] Queued callback {record.id} for task {task_id}")

        return await self.dispatch(record)

    async def dispatch(self, record: CallbackRecord) -> CallbackRecord:
        prefs = await self.preferences.get(record.user_id)
        result = await self.provider.start_outbound_call(OutboundCallInput(
            user_id=record.user_id,
            script=record.script,
            phone_number=prefs.phone_number if prefs else None,
            related_task_id=record.task_id,
        ))

        if not result.ok:
            logger.warning(f"[Callback] Provider {self.provider.name} rejected callback {record.id}: {result.meta}")
            record = record.model_copy(update={"status": "failed", "provider": self.provider.name})
            await self.callbacks.save(record)
            return record

        await self.calls.save(CallRecord(
            call_id=result.provider_call_id,
            provider=self.provider.name,
            direction=CallDirection.OUTBOUND,
            channel=self.provider.channel,
            status=result.status,
            user_id=record.user_id,
            related_task_id=record.task_id,
            summary=record.script,
            meta={"callback_id": record.id, **result.meta},
        ))

        record = record.model_copy(update={
            "status": result.status,
            "provider": self.provider.name,
            "provider_call_id": result.provider_call_id,
        })
        await self.callbacks.save(record)
        return record
