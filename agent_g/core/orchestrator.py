import logging
from typing import Optional
from ..agents.planner import PlannerAgent
from ..channels.notify import TelegramCompletionNotifier
from ..models.events import Event, EventType, EventSource
from ..models.task import SubtaskStatus, TaskRecord
from ..store.records import TaskStore
from ..store.redis_client import RedisClient
from .aggregator import aggregate_results
from .callback import CallbackService
from .executor import ExecutionOptions, PlanExecutor

logger = logging.getLogger(__name__)

class Orchestrator:
    def __init__(
        self,
        redis: RedisClient,
        planner: PlannerAgent,
        executor: PlanExecutor,
        tasks: TaskStore,
        callbacks: Optional[CallbackService] = None,
        notifier: Optional[TelegramCompletionNotifier] = None,
    ):
        self.redis = redis
        self.planner = planner
        self.executor = executor
        self.tasks = tasks
        self.callbacks = callbacks
        self.notifier = notifier

    async def run(
        self,
        task_id: str,
        goal: str,
        options: ExecutionOptions,
        user_id: Optional[str] = None,
        follow_up: bool = True,
    ) -> TaskRecord:
        """
        Orchestrates the entire lifecycle of a task.

        1. Planner turns the goal into sub-tasks.
        2. Executor delegates every sub-task and collects the outcomes.
        3. Aggregator folds them into the result manifest.
        4. With ``follow_up``, a known user with a usable result gets a
           callback and a Telegram completion notice. Chat channels pass
           False because their reply already carries the result.

        Progress is published on the task's event stream; errors mark the
        stored task failed, are published as an ERROR event and re-raised.
        """
        logger.info(f"Orchestrator processing task {task_id}")

        try:
            plan = await self.planner.plan(task_id, goal)
            await self.tasks.create(task_id, goal, plan, user_id=user_id)

            await self.redis.publish_event(task_id, Event(
                type=EventType.STATUS,
                source=EventSource.SYSTEM,
                message=f"Dispatching {len(plan.sub_tasks)} sub-tasks..."
            ))

            outcome = await self.executor.execute(plan, options)

            for index, subtask in enumerate(outcome.subtasks, start=1):
                await self.redis.publish_event(task_id, Event(
                    type=EventType.SUBTASK,
                    source=EventSource.EXECUTOR,
                    message=f"Sub-task {index} ({subtask.agent}) {subtask.status.value}",
                    data={"subtask": subtask.model_dump(mode="json")}
                ))

            results = aggregate_results(goal, outcome.subtasks)
            record = await self.tasks.complete(task_id, outcome.status, results)

            await self.redis.publish_event(task_id, Event(
                type=EventType.DONE,
                source=EventSource.AGGREGATOR,
                message=results.summary.split("\n")[0],
                data={"status": outcome.status.value, "outputs": results.outputs.model_dump()}
            ))

        except Exception as e:
            logger.error(f"Orchestration failed for task {task_id}: {e}")
            await self._mark_failed(task_id, str(e))
            await self.redis.publish_event(task_id, Event(
                type=EventType.ERROR,
                source=EventSource.SYSTEM,
                message=f"System error: {str(e)}"
            ))
            raise

        if follow_up and user_id and outcome.status in (SubtaskStatus.COMPLETED, SubtaskStatus.PARTIAL):
            await self._follow_up(task_id, user_id, results.summary)

        return record

    async def process_task(self, task_id: str, goal: str, options: ExecutionOptions, user_id: Optional[str] = None):
        """Background entry point: failures are already on the event stream, so they stop here."""
        try:
            await self.run(task_id, goal, options, user_id=user_id)
        except Exception as e:
            logger.error(f"Background task {task_id} ended with error: {e}")

    async def _mark_failed(self, task_id: str, error: str):
        try:
            await self.tasks.fail(task_id, error)
        except Exception as e:
            logger.error(f"Could not mark task {task_id} failed: {e}")

    async def _follow_up(self, task_id: str, user_id: str, summary: str):
        if self.callbacks:
            try:
                await self.callbacks.auto_callback(task_id, user_id, summary)
            except Exception as e:
                logger.warning(f"[Callback] Could not queue callback for task {task_id}: {e}")

        if self.notifier:
            try:
                await self.notifier.notify(user_id, task_id, summary)
            except Exception as e:
                logger.warning(f"[Notify] Telegram notice for task {task_id} failed: {e}")
