"""Plain-text progress view: stage lines, live stats and the error recovery panel.

Everything here is a pure function of a snapshot or a content item, so the CLI
can re-render after every state change without holding view state.
"""

from __future__ import annotations

from datetime import datetime

from pipewatch.errors import ERROR_TITLES, SUGGESTED_ACTIONS
from pipewatch.models import ContentItem, ProcessingError, RunSnapshot, Stage
from pipewatch.reducer import LONG_RUNNING_SECONDS
from pipewatch.stages import DETAIL_STEPS, DetailStep, STAGE_CONFIGS
from pipewatch.statuses import ContentStatus, ContentType, StageStatus

STATUS_GLYPHS = {
    StageStatus.PENDING: "○",
    StageStatus.IN_PROGRESS: "◐",
    StageStatus.COMPLETED: "●",
    StageStatus.ERROR: "✗",
}

RECOVERY_OPTIONS = (
    ("retry", "Retry"),
    ("retry-from-point", "Retry from Failure Point"),
    ("restart-all", "Restart All Steps"),
    ("cancel", "Cancel"),
)

LONG_RUNNING_NOTICE = "This is taking longer than expected. Large files can take several minutes."


def format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "--"
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    mins, secs = divmod(seconds, 60)
    return f"{mins}m {secs}s"


def format_timestamp(timestamp: str | None) -> str | None:
    if not timestamp:
        return None
    try:
        return datetime.fromisoformat(timestamp).strftime("%b %d, %H:%M:%S")
    except ValueError:
        return timestamp


def render_stage(stage: Stage) -> str:
    line = f"{STATUS_GLYPHS.get(stage.status, '?')} {stage.label}"
    if stage.status == StageStatus.IN_PROGRESS:
        line += f" ({stage.progress}%)"
    elif stage.status == StageStatus.ERROR:
        line += " (failed)"

    extra = stage.sublabel if stage.status == StageStatus.IN_PROGRESS and stage.sublabel else stage.benefit
    if extra and stage.status != StageStatus.COMPLETED:
        line += f" - {extra}"
    return line


def render_stages(stages: list[Stage]) -> str:
    return "\n".join(render_stage(s) for s in stages)


def render_stats(snapshot: RunSnapshot) -> str:
    parts = [
        f"{snapshot.overall_progress}%",
        f"elapsed {format_duration(snapshot.elapsed_seconds)}",
    ]
    if snapshot.estimated_time_remaining is not None:
        parts.append(f"~{format_duration(snapshot.estimated_time_remaining)} left")
    if snapshot.char_count:
        parts.append(f"{snapshot.char_count:,} chars")
    if snapshot.processing_speed > 0:
        parts.append(f"{snapshot.processing_speed:.0f} chars/s")
    return " | ".join(parts)


def is_long_running(snapshot: RunSnapshot) -> bool:
    terminal = snapshot.completed or snapshot.error is not None
    return not terminal and snapshot.elapsed_seconds > LONG_RUNNING_SECONDS


def render_recovery(error: ProcessingError, *, options: bool = True) -> str:
    """The recovery panel: category title, message, details, and what to try next."""
    lines = [ERROR_TITLES[error.type], f"  {error.message}"]
    if error.code:
        lines.append(f"  Code: {error.code}")
    if error.details:
        lines.append(f"  Details: {error.details}")
    when = format_timestamp(error.timestamp)
    if when:
        lines.append(f"  Occurred: {when}")

    lines.append("Suggested actions:")
    lines.extend(f"  - {action}" for action in SUGGESTED_ACTIONS[error.type])

    if options:
        lines.append("Options: " + ", ".join(label for _, label in RECOVERY_OPTIONS))
    return "\n".join(lines)


def render_snapshot(snapshot: RunSnapshot, *, title: str | None = None) -> str:
    blocks = []
    if title:
        blocks.append(title)
    blocks.append(render_stages(snapshot.stages))
    blocks.append(render_stats(snapshot))
    if is_long_running(snapshot):
        blocks.append(LONG_RUNNING_NOTICE)
    if snapshot.error is not None:
        blocks.append(render_recovery(snapshot.error))
    elif snapshot.completed:
        complete = STAGE_CONFIGS["complete"]
        blocks.append(f"{complete.label} {complete.benefit}.")
    return "\n\n".join(blocks)


# -- static pipeline of the content detail page ---------------------------------


def _pending_label(step: DetailStep) -> str:
    return step.in_progress_label.replace("...", "", 1)


def stages_from_content(item: ContentItem, has_transcript: bool, has_document: bool) -> list[Stage]:
    """Derive the non-streaming stage list from a content item's server status.

    Later steps only appear once the step before them has produced something.
    """
    steps = DETAIL_STEPS[item.content_type or ContentType.RECORDING]
    status = item.status
    done = status == ContentStatus.COMPLETED
    failed = status == ContentStatus.ERROR

    stages = [Stage(id="upload", label="Upload Complete", status=StageStatus.COMPLETED, progress=100, timestamp=item.created_at)]

    first = steps[0]
    if failed:
        stages.append(Stage(id=first.id, label=first.failed_label, status=StageStatus.ERROR))
    elif has_transcript or done:
        stages.append(
            Stage(id=first.id, label=first.label, status=StageStatus.COMPLETED, progress=100, timestamp=item.updated_at)
        )
    elif status == ContentStatus.TRANSCRIBING:
        stages.append(Stage(id=first.id, label=first.in_progress_label, status=StageStatus.IN_PROGRESS))
    else:
        stages.append(Stage(id=first.id, label=_pending_label(first)))

    if len(steps) > 1 and (has_transcript or done or failed):
        second = steps[1]
        if failed and has_transcript:
            stages.append(Stage(id=second.id, label=second.failed_label, status=StageStatus.ERROR))
        elif has_document or done:
            stages.append(
                Stage(id=second.id, label=second.label, status=StageStatus.COMPLETED, progress=100, timestamp=item.updated_at)
            )
        elif status == ContentStatus.DOC_GENERATING:
            stages.append(Stage(id=second.id, label=second.in_progress_label, status=StageStatus.IN_PROGRESS))
        elif has_transcript:
            stages.append(Stage(id=second.id, label=_pending_label(second)))

    if has_document or done:
        for step in steps[2:]:
            if done:
                stages.append(
                    Stage(
                        id=step.id,
                        label=step.label,
                        status=StageStatus.COMPLETED,
                        progress=100,
                        timestamp=item.completed_at or item.updated_at,
                    )
                )
            else:
                stages.append(Stage(id=step.id, label=step.in_progress_label, status=StageStatus.IN_PROGRESS))
    return stages
