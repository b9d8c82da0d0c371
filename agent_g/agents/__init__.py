from .planner import PlannerAgent, build_task_plan, make_task_id
from .router import map_subtask_to_delegate_target

__all__ = ["PlannerAgent", "build_task_plan", "make_task_id", "map_subtask_to_delegate_target"]
