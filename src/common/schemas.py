"""Shared Pydantic schemas for the subtitle pipeline."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from common.config import settings
from common.utils import DateTimeUtils, JobIdUtils

# Provider id meaning "do not translate"
NO_TRANSLATION_PROVIDER = "-1"


class TaskType(str, Enum):
    """What a job does with each file."""

    GENERATE_ONLY = "generateOnly"
    TRANSLATE_ONLY = "translateOnly"
    GENERATE_AND_TRANSLATE = "generateAndTranslate"


class SaveOption(str, Enum):
    """Naming policy for generated and translated subtitle files."""

    NO_SAVE = "noSave"
    FILE_NAME = "fileName"
    FILE_NAME_WITH_LANG = "fileNameWithLang"
    CUSTOM = "custom"


class ContentTemplate(str, Enum):
    """Layout of each block in the translated subtitle file."""

    ONLY_TRANSLATE = "onlyTranslate"
    SOURCE_AND_TRANSLATE = "sourceAndTranslate"
    TRANSLATE_AND_SOURCE = "translateAndSource"


class StageName(str, Enum):
    """Named steps of a file's pipeline."""

    EXTRACT_AUDIO = "extractAudio"
    EXTRACT_SUBTITLE = "extractSubtitle"
    PREPARE_SUBTITLE = "prepareSubtitle"
    TRANSLATE_SUBTITLE = "translateSubtitle"
    PROCESS_FILE = "processFile"


class StageStatus(str, Enum):
    """Status of one stage of a file's pipeline."""

    IDLE = "idle"
    LOADING = "loading"
    DONE = "done"
    ERROR = "error"


class SchedulerStatus(str, Enum):
    """Overall scheduler state, reported by priority in this order."""

    CANCELLED = "cancelled"
    PAUSED = "paused"
    RUNNING = "running"
    IDLE = "idle"


class QueueOutcome(str, Enum):
    """How a scheduler run ended."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProviderConfig(BaseModel):
    """Translation provider configuration passed to translator capabilities."""

    id: str = Field(..., description="Provider identifier referenced by job configs")
    name: str = Field(..., description="Display name, used in file-name templates")
    type: str = Field(..., description="Translator implementation key")
    is_ai: bool = Field(default=True, description="Prompt-driven (LLM) provider")
    use_batch_translation: bool = Field(
        default=True,
        description="Send batches as an id->text JSON blob instead of single lines",
    )
    batch_size: Optional[int] = Field(default=None, ge=1)
    system_prompt: Optional[str] = Field(default=None)
    prompt: Optional[str] = Field(default=None, description="User prompt template")
    model_name: Optional[str] = Field(default=None)
    api_key: Optional[str] = Field(default=None)
    base_url: Optional[str] = Field(default=None)
    temperature: Optional[float] = Field(default=None)
    extra_parameters: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True
        alias_generator = to_camel
        populate_by_name = True


class JobConfig(BaseModel):
    """Shared configuration for every file of one submission."""

    source_language: str = Field(default="en")
    target_language: str = Field(default="zh")
    task_type: TaskType = Field(default=TaskType.GENERATE_AND_TRANSLATE)
    model: str = Field(default="tiny", description="Whisper model name")
    translate_provider: str = Field(
        default=NO_TRANSLATION_PROVIDER,
        description="Provider id, or '-1' to skip translation",
    )
    source_srt_save_option: SaveOption = Field(default=SaveOption.NO_SAVE)
    custom_source_srt_file_name: str = Field(default="${fileName}.${sourceLanguage}")
    target_srt_save_option: SaveOption = Field(default=SaveOption.FILE_NAME_WITH_LANG)
    custom_target_srt_file_name: str = Field(default="${fileName}.${targetLanguage}")
    translate_content: ContentTemplate = Field(default=ContentTemplate.ONLY_TRANSLATE)
    save_audio: bool = Field(default=False)
    translate_retry_times: Optional[int] = Field(default=None, ge=0)
    batch_size: Optional[int] = Field(default=None, ge=1)
    max_concurrent_tasks: Optional[int] = Field(default=None, ge=1)
    prompt: Optional[str] = Field(default=None, description="Transcription prompt")
    max_context: int = Field(default=-1)

    class Config:
        frozen = True
        alias_generator = to_camel
        populate_by_name = True

    @property
    def should_generate(self) -> bool:
        return self.task_type in (
            TaskType.GENERATE_AND_TRANSLATE,
            TaskType.GENERATE_ONLY,
        )

    @property
    def should_translate(self) -> bool:
        return self.task_type in (
            TaskType.GENERATE_AND_TRANSLATE,
            TaskType.TRANSLATE_ONLY,
        )

    @property
    def max_retries(self) -> int:
        """Batch retries, falling back to the configured default."""
        if self.translate_retry_times is not None:
            return self.translate_retry_times
        return settings.translation_max_retries


class FileRef(BaseModel):
    """A file submitted for processing."""

    uuid: str = Field(default_factory=JobIdUtils.generate_job_id_string)
    path: str = Field(..., description="Absolute or relative path to the input file")

    class Config:
        frozen = True

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("File path cannot be empty")
        return v.strip()

    @property
    def directory(self) -> str:
        return str(Path(self.path).parent)

    @property
    def file_name(self) -> str:
        """Base name without extension."""
        return Path(self.path).stem

    @property
    def extension(self) -> str:
        return Path(self.path).suffix.lower()

    @property
    def is_subtitle_input(self) -> bool:
        return self.extension in settings.subtitle_extensions


class Task(BaseModel):
    """One (file, shared configuration) pair submitted to the scheduler."""

    file: FileRef
    config: JobConfig

    class Config:
        frozen = True


class FileJobResult(BaseModel):
    """
    Immutable accumulator threaded through the stages of one file job.

    Each stage returns a new record via ``model_copy(update=...)`` that merges
    its outputs, so artifact paths are only visible once a stage committed them.
    """

    file: FileRef
    audio_path: Optional[str] = None
    saved_audio_path: Optional[str] = None
    srt_path: Optional[str] = None
    generated: bool = False
    translated_srt_path: Optional[str] = None
    temp_translated_srt_path: Optional[str] = None
    cached_srt_path: Optional[str] = None
    statuses: Dict[StageName, StageStatus] = Field(default_factory=dict)
    error: Optional[str] = None

    class Config:
        frozen = True

    def with_status(self, stage: StageName, status: StageStatus) -> "FileJobResult":
        statuses = dict(self.statuses)
        statuses[stage] = status
        return self.model_copy(update={"statuses": statuses})

    @property
    def succeeded(self) -> bool:
        return self.error is None


class TranslationResult(BaseModel):
    """One translated subtitle line, in input order."""

    id: str
    start_end_time: str
    source_content: str
    target_content: str


class QueueState(BaseModel):
    """Snapshot of the scheduler queue."""

    pending: List[Task] = Field(default_factory=list)
    active_count: int = 0
    paused: bool = False
    cancelled: bool = False
    running: bool = False
    concurrency_limit: int = Field(default=1, ge=1)


class PipelineEventType(str, Enum):
    """Types of notifications emitted by the pipeline."""

    STAGE_CHANGED = "pipeline.stage"
    PROGRESS = "pipeline.progress"
    ERROR = "pipeline.error"
    MESSAGE = "pipeline.message"
    QUEUE_COMPLETED = "pipeline.queue"
    FILE_COMPLETED = "pipeline.file"


class PipelineEvent(BaseModel):
    """Notification sent to the host UI."""

    event_type: PipelineEventType = Field(..., description="Type of event")
    timestamp: datetime = Field(
        default_factory=DateTimeUtils.get_current_utc_datetime,
        description="When the event occurred",
    )
    file_uuid: Optional[str] = Field(None, description="File the event refers to")
    file_path: Optional[str] = Field(None)
    stage: Optional[StageName] = Field(None)
    payload: Dict[str, Any] = Field(default_factory=dict, description="Event data")

    class Config:
        json_schema_extra = {
            "example": {
                "event_type": "pipeline.stage",
                "timestamp": "2024-01-01T00:00:00Z",
                "file_uuid": "123e4567-e89b-12d3-a456-426614174000",
                "file_path": "/media/movie.mp4",
                "stage": "extractAudio",
                "payload": {"status": "loading"},
            }
        }
