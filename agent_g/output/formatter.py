"""
Downloadable renditions of an aggregated task result (PDF and ZIP).
"""

import io
import json
import zipfile
from datetime import datetime, timezone
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, Preformatted, SimpleDocTemplate, Spacer

from ..models.task import AggregatedResult


def _paragraph(text: str, style) -> Paragraph:
    return Paragraph(escape(text).replace("\n", "<br/>"), style)


def render_pdf(goal: str, result: AggregatedResult) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=42,
        rightMargin=42,
        topMargin=42,
        bottomMargin=42,
        title="Agent G Unified Output",
        author="Agent G",
    )

    styles = getSampleStyleSheet()
    story = [
        Paragraph("Agent G Unified Output", styles["Title"]),
        _paragraph(f"Goal: {goal}", styles["Heading3"]),
        Spacer(1, 8),
        _paragraph(result.summary, styles["Normal"]),
        Spacer(1, 12),
    ]

    for index, subtask in enumerate(result.subtasks, start=1):
        story.append(_paragraph(f"{index}. {subtask.agent} / {subtask.action}", styles["Heading4"]))
        story.append(_paragraph(f"Status: {subtask.status.value}", styles["Normal"]))
        if subtask.error:
            story.append(_paragraph(f"Error: {subtask.error}", styles["Normal"]))
        story.append(Preformatted(json.dumps(subtask.output or {}, indent=2, default=str), styles["Code"]))
        story.append(Spacer(1, 10))

    doc.build(story)
    return buffer.getvalue()


def render_zip_package(goal: str, result: AggregatedResult) -> bytes:
    """
    Bundle layout:
        summary.txt, report.md, meta.json, subtasks/<n>-<agent>.json
    """
    meta = {
        "goal": goal,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "outputs": result.outputs.model_dump(),
    }

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("summary.txt", result.summary)
        archive.writestr("report.md", result.markdown)
        archive.writestr("meta.json", json.dumps(meta, indent=2))
        for index, subtask in enumerate(result.subtasks, start=1):
            archive.writestr(
                f"subtasks/{index}-{subtask.agent}.json",
                subtask.model_dump_json(indent=2),
            )
    return buffer.getvalue()
