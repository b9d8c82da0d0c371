class AgentGError(Exception):
    """Base exception for Agent G service errors."""

    status_code = 500


class TaskNotFoundError(AgentGError):
    status_code = 404

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class ChannelNotConfiguredError(AgentGError):
    status_code = 503


class UnauthorizedError(AgentGError):
    status_code = 401
