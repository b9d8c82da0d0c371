import json

from agent_g.agents.planner import PlannerAgent
from agent_g.core.executor import ExecutionOptions, PlanExecutor
from agent_g.core.orchestrator import Orchestrator
from agent_g.models.events import EventType
from agent_g.models.task import SubtaskStatus
from agent_g.store.records import TaskStore
from agent_g.store.redis_client import RedisClient

from conftest import DelegateRecorder, make_config, run


class ExplodingRecorder(DelegateRecorder):
    def __call__(self, request):
        raise RuntimeError("executor crashed")


class ExplodingPlanner:
    async def plan(self, task_id, goal):
        raise RuntimeError("planner offline")


def orchestrate(goal, recorder, planner=None, task_id="task-1"):
    async def scenario():
        redis = RedisClient(make_config().redis)
        tasks = TaskStore(redis)
        orchestrator = Orchestrator(
            redis=redis,
            planner=planner or PlannerAgent(redis),
            executor=PlanExecutor(timeout=5, transport=recorder.transport),
            tasks=tasks,
        )
        try:
            try:
                record = await orchestrator.run(task_id, goal, ExecutionOptions(origin="https://platform.test"))
                error = None
            except RuntimeError as e:
                record, error = None, e
            events = [json.loads(fields["payload"]) for _, fields in await redis.read_events(task_id, block=None)]
            stored = await tasks.get(task_id)
            return record, error, events, stored
        finally:
            await redis.close()

    return run(scenario())


class TestOrchestrator:
    def test_full_lifecycle(self):
        recorder = DelegateRecorder()
        record, error, events, stored = orchestrate("Launch a podcast", recorder)

        assert error is None
        assert record.status == SubtaskStatus.COMPLETED
        assert record.results.outputs.audio is True
        assert stored.results.markdown.startswith("# Agent G Result")
        assert [event["type"] for event in events] == [
            EventType.STATUS.value,
            EventType.STATUS.value,
            EventType.STATUS.value,
            EventType.SUBTASK.value,
            EventType.SUBTASK.value,
            EventType.DONE.value,
        ]
        assert events[-1]["data"]["status"] == "completed"
        assert events[-1]["message"] == record.results.summary.split("\n")[0]

    def test_partial_result_is_stored(self):
        recorder = DelegateRecorder(failing_paths={"/api/voice-lab/generate"})
        record, _, events, stored = orchestrate("Launch a podcast", recorder)

        assert record.status == SubtaskStatus.PARTIAL
        assert stored.status == SubtaskStatus.PARTIAL
        subtask_events = [event for event in events if event["type"] == EventType.SUBTASK.value]
        assert subtask_events[1]["data"]["subtask"]["status"] == "failed"

    def test_failure_publishes_error_and_raises(self):
        record, error, events, stored = orchestrate("Launch a podcast", DelegateRecorder(), planner=ExplodingPlanner())

        assert isinstance(error, RuntimeError)
        assert events[-1]["type"] == EventType.ERROR.value
        assert "planner offline" in events[-1]["message"]
        assert stored is None

    def test_failure_after_planning_marks_task_failed(self):
        record, error, events, stored = orchestrate("Launch a podcast", ExplodingRecorder())

        assert isinstance(error, RuntimeError)
        assert events[-1]["type"] == EventType.ERROR.value
        assert stored.status == SubtaskStatus.FAILED
        assert stored.error == "executor crashed"
        assert stored.results is None

    def test_process_task_swallows_errors(self):
        async def scenario():
            redis = RedisClient(make_config().redis)
            orchestrator = Orchestrator(
                redis=redis,
                planner=ExplodingPlanner(),
                executor=PlanExecutor(transport=DelegateRecorder().transport),
                tasks=TaskStore(redis),
            )
            await orchestrator.process_task("task-2", "anything", ExecutionOptions(origin="https://platform.test"))
            events = await redis.read_events("task-2", block=None)
            await redis.close()
            return events

        events = run(scenario())
        assert len(events) == 1


class RecordingCallbacks:
    def __init__(self):
        self.calls = []

    async def auto_callback(self, task_id, user_id, summary):
        self.calls.append((task_id, user_id))


class RecordingNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.notices = []

    async def notify(self, user_id, task_id, summary):
        if self.fail:
            raise ConnectionError("telegram unreachable")
        self.notices.append((user_id, task_id, summary))
        return True


class TestFollowUp:
    def _run(self, user_id="user-1", follow_up=True, recorder=None, notifier=None):
        callbacks = RecordingCallbacks()
        notifier = notifier or RecordingNotifier()

        async def scenario():
            redis = RedisClient(make_config().redis)
            orchestrator = Orchestrator(
                redis=redis,
                planner=PlannerAgent(redis),
                executor=PlanExecutor(timeout=5, transport=(recorder or DelegateRecorder()).transport),
                tasks=TaskStore(redis),
                callbacks=callbacks,
                notifier=notifier,
            )
            try:
                return await orchestrator.run(
                    "task-9",
                    "Launch a podcast",
                    ExecutionOptions(origin="https://platform.test"),
                    user_id=user_id,
                    follow_up=follow_up,
                )
            finally:
                await redis.close()

        record = run(scenario())
        return record, callbacks, notifier

    def test_known_user_gets_callback_and_notice(self):
        record, callbacks, notifier = self._run()
        assert callbacks.calls == [("task-9", "user-1")]
        assert notifier.notices == [("user-1", "task-9", record.results.summary)]

    def test_anonymous_task_has_no_follow_up(self):
        _, callbacks, notifier = self._run(user_id=None)
        assert callbacks.calls == []
        assert notifier.notices == []

    def test_follow_up_can_be_turned_off(self):
        _, callbacks, notifier = self._run(follow_up=False)
        assert callbacks.calls == []
        assert notifier.notices == []

    def test_failed_plan_has_no_follow_up(self):
        failing = DelegateRecorder(failing_paths={"/api/business-agent/projects", "/api/chat", "/api/voice-lab/generate"})
        record, callbacks, notifier = self._run(recorder=failing)
        assert record.status == SubtaskStatus.FAILED
        assert callbacks.calls == []

    def test_notifier_error_does_not_fail_the_task(self):
        record, callbacks, _ = self._run(notifier=RecordingNotifier(fail=True))
        assert record.status == SubtaskStatus.COMPLETED
        assert callbacks.calls == [("task-9", "user-1")]
