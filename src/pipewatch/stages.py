"""Stage registry: static lookup tables from backend job types to user-facing stages.

Lookups are lenient: an unknown job type has no config and maps to itself, so a
new server-side job shows up under its raw identifier instead of breaking the view.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict

from pipewatch.models import Stage
from pipewatch.statuses import ContentType, RunMode, StageStatus


class StageConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    benefit: str | None = None
    sublabel: str | None = None
    icon: str | None = None


def _configs(*configs: StageConfig) -> Mapping[str, StageConfig]:
    return MappingProxyType({c.id: c for c in configs})


STAGE_CONFIGS: Mapping[str, StageConfig] = _configs(
    StageConfig(id="upload", label="Uploading your file", benefit="Securely transferring your content", icon="📤"),
    StageConfig(id="extract_audio", label="Preparing your audio", benefit="Getting ready to convert speech", icon="🎵"),
    StageConfig(id="transcribe", label="Converting to text", benefit="Making your content readable and searchable", icon="📝"),
    StageConfig(id="extract_text", label="Extracting text", benefit="Reading content from your document", icon="📄"),
    StageConfig(id="process_text", label="Organizing your text", benefit="Preparing your content for analysis", icon="📋"),
    StageConfig(
        id="document",
        label="Creating structured content",
        benefit="Generating AI-powered summary and insights",
        sublabel="This may take 15-30 seconds",
        icon="✨",
    ),
    StageConfig(id="embeddings", label="Indexing for search", benefit="Making your content instantly searchable", icon="🔍"),
    StageConfig(
        id="summary",
        label="Finalizing summary",
        benefit="Creating quick overview for easy reference",
        sublabel="Almost done!",
        icon="📝",
    ),
    StageConfig(id="complete", label="Ready to explore!", benefit="Your content is live in your library", icon="🎉"),
)

JOB_TYPE_TO_STAGE: Mapping[str, str] = MappingProxyType({
    "extract_audio": "extract_audio",
    "transcribe": "transcribe",
    "doc_generate": "document",
    "generate_embeddings": "embeddings",
    "generate_summary": "summary",
    "extract_text_pdf": "extract_text",
    "extract_text_docx": "extract_text",
    "process_text_note": "process_text",
})

# Short labels used for lazily created stages in the upload view
STAGE_LABELS: Mapping[str, str] = MappingProxyType({
    "upload": "Uploading file",
    "extract_audio": "Extracting audio",
    "transcribe": "Transcribing content",
    "extract_text": "Extracting text",
    "process_text": "Processing text",
    "document": "Generating document",
    "embeddings": "Creating embeddings",
    "summary": "Finalizing summary",
    "complete": "Complete",
})

# Human-readable names the server uses in its own progress messages
JOB_LABELS: Mapping[str, str] = MappingProxyType({
    "transcribe": "Transcription",
    "extract_audio": "Audio extraction",
    "extract_frames": "Frame extraction",
    "doc_generate": "Document generation",
    "generate_embeddings": "Search indexing",
    "extract_text_pdf": "PDF text extraction",
    "extract_text_docx": "Document text extraction",
    "process_text_note": "Text processing",
    "generate_summary": "Summary generation",
})

PIPELINES: Mapping[ContentType, tuple[str, ...]] = MappingProxyType({
    ContentType.RECORDING: ("transcribe", "document", "embeddings"),
    ContentType.AUDIO: ("transcribe", "document", "embeddings"),
    ContentType.VIDEO: ("extract_audio", "transcribe", "document", "embeddings"),
    ContentType.DOCUMENT: ("extract_text", "document", "embeddings"),
    ContentType.TEXT: ("process_text", "document", "embeddings"),
})

# Labels of the reprocess dialog's eager placeholder list
REPROCESS_LABELS: Mapping[str, str] = MappingProxyType({
    "transcribe": "Transcribing Audio",
    "document": "Generating Document",
    "embeddings": "Creating Embeddings",
})


def stage_config_for(job_type: str) -> StageConfig | None:
    """Display config for a job type or stage id; None when unknown."""
    config = STAGE_CONFIGS.get(job_type)
    if config is None:
        config = STAGE_CONFIGS.get(JOB_TYPE_TO_STAGE.get(job_type, ""))
    return config


def map_job_type_to_stage_id(job_type: str) -> str:
    """Stage id for a job type, falling back to the job type itself."""
    return JOB_TYPE_TO_STAGE.get(job_type, job_type)


def stage_label(stage_id: str) -> str:
    label = STAGE_LABELS.get(stage_id)
    if label is None:
        config = stage_config_for(stage_id)
        label = config.label if config else stage_id
    return label


def job_label(job_type: str) -> str:
    return JOB_LABELS.get(job_type, job_type)


def pipeline_for(
    content_type: ContentType | str | None,
    overrides: Mapping[ContentType, list[str]] | None = None,
) -> tuple[str, ...]:
    """Ordered stage ids a content type passes through after upload."""
    try:
        ct = ContentType(content_type or ContentType.RECORDING)
    except ValueError:
        ct = ContentType.RECORDING
    if overrides and ct in overrides:
        return tuple(overrides[ct])
    return PIPELINES[ct]


def processing_jobs_for(content_type: ContentType | str, file_type: str | None = None) -> list[str]:
    """Backend jobs the server enqueues when processing starts."""
    match content_type:
        case ContentType.RECORDING | ContentType.AUDIO:
            return ["transcribe"]
        case ContentType.VIDEO:
            return ["extract_audio", "transcribe"]
        case ContentType.DOCUMENT:
            if file_type in ("docx", "doc"):
                return ["extract_text_docx"]
            return ["extract_text_pdf"]
        case ContentType.TEXT:
            return ["process_text_note"]
    return []


def _stage(stage_id: str, label: str, status: StageStatus = StageStatus.PENDING, progress: int = 0) -> Stage:
    config = stage_config_for(stage_id)
    return Stage(
        id=stage_id,
        label=label,
        status=status,
        progress=progress,
        benefit=config.benefit if config else None,
        sublabel=config.sublabel if config else None,
    )


def placeholder_stages(
    mode: RunMode,
    content_type: ContentType | str | None = None,
    overrides: Mapping[ContentType, list[str]] | None = None,
) -> list[Stage]:
    """Eager stage list a run starts with, before any event arrives.

    Upload runs start with the already finished upload stage and grow lazily.
    Reprocess and finalize runs show the whole pipeline, first stage running;
    without a content type this is the transcribe/document/embeddings trio.
    """
    if mode is RunMode.UPLOAD:
        return [_stage("upload", STAGE_LABELS["upload"], StageStatus.COMPLETED, 100)]

    if content_type is None:
        ids: tuple[str, ...] = tuple(REPROCESS_LABELS)
    else:
        ids = pipeline_for(content_type, overrides)

    stages = [_stage(sid, REPROCESS_LABELS.get(sid) or stage_label(sid)) for sid in ids]
    if stages:
        stages[0].status = StageStatus.IN_PROGRESS
    return stages


class DetailStep(BaseModel):
    """Copy of one step on the content detail page, per content type."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    in_progress_label: str
    failed_label: str


_EMBED = DetailStep(id="embeddings", label="Ready to search", in_progress_label="Creating embeddings...", failed_label="Embedding Failed")
_DOC = DetailStep(
    id="document",
    label="Document Generated",
    in_progress_label="Generating document...",
    failed_label="Document Generation Failed",
)
_SUMMARY = DetailStep(
    id="document",
    label="Summary Generated",
    in_progress_label="Generating summary...",
    failed_label="Summary Generation Failed",
)

DETAIL_STEPS: Mapping[ContentType, tuple[DetailStep, ...]] = MappingProxyType({
    ContentType.RECORDING: (
        DetailStep(id="transcribe", label="Transcribed", in_progress_label="Transcribing...", failed_label="Transcription Failed"),
        _DOC,
        _EMBED,
    ),
    ContentType.VIDEO: (
        DetailStep(
            id="extract",
            label="Extract Audio",
            in_progress_label="Extracting audio...",
            failed_label="Audio Extraction Failed",
        ),
        DetailStep(id="transcribe", label="Transcribed", in_progress_label="Transcribing...", failed_label="Transcription Failed"),
        _DOC,
        _EMBED,
    ),
    ContentType.AUDIO: (
        DetailStep(id="transcribe", label="Transcribed", in_progress_label="Transcribing audio...", failed_label="Transcription Failed"),
        _DOC,
        _EMBED,
    ),
    ContentType.DOCUMENT: (
        DetailStep(
            id="extract_text",
            label="Text Extracted",
            in_progress_label="Extracting text...",
            failed_label="Text Extraction Failed",
        ),
        _SUMMARY,
        _EMBED,
    ),
    ContentType.TEXT: (
        DetailStep(id="process", label="Note Processed", in_progress_label="Processing note...", failed_label="Processing Failed"),
        _SUMMARY,
        _EMBED,
    ),
})
