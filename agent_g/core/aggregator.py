import json
import logging
from typing import Sequence
from ..models.task import (
    AgentName,
    AggregatedResult,
    OutputManifest,
    Subtask,
    SubtaskStatus,
)

logger = logging.getLogger(__name__)


def _detail_block(index: int, subtask: Subtask) -> str:
    lines = [
        f"### {index}. {subtask.agent} / {subtask.action}",
        f"Status: {subtask.status.value}",
    ]
    if subtask.error:
        lines.append(f"Error: {subtask.error}")
    if subtask.output:
        lines.append("```json\n" + json.dumps(subtask.output, indent=2, ensure_ascii=False, default=str) + "\n```")
    else:
        lines.append("No output")
    return "\n".join(lines)


def aggregate_results(goal: str, subtasks: Sequence[Subtask]) -> AggregatedResult:
    """
    Folds executed sub-tasks into one summary, markdown report and output
    manifest. Input order is kept; failed or partial entries never raise.
    """
    total = len(subtasks)
    completed = sum(1 for item in subtasks if item.status == SubtaskStatus.COMPLETED)
    failed = sum(1 for item in subtasks if item.status == SubtaskStatus.FAILED)

    summary_lines = [
        f"Main goal: {goal}",
        f"Completed subtasks: {completed}/{total}",
        f"Failed subtasks: {failed}" if failed else "No failed subtasks",
    ]
    summary = "\n".join(summary_lines)

    details = "\n\n".join(_detail_block(index, item) for index, item in enumerate(subtasks, start=1))
    markdown = f"# Agent G Result\n\n## Summary\n\n{summary}\n\n## Subtasks\n\n{details}\n"

    audio = any(
        item.agent == AgentName.VOICE_LAB.value and item.status == SubtaskStatus.COMPLETED
        for item in subtasks
    )

    logger.info(f"[Aggregator] {completed}/{total} completed, {failed} failed")

    # video stays false until a video pipeline reports outputs
    return AggregatedResult(
        summary=summary,
        markdown=markdown,
        subtasks=list(subtasks),
        outputs=OutputManifest(audio=audio, video=False),
    )
