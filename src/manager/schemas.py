"""Request and response models for the host API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from common.schemas import JobConfig, PipelineEvent, SchedulerStatus


class TaskSubmitRequest(BaseModel):
    """Files to process with one shared job configuration."""

    files: List[str] = Field(..., min_length=1, description="Paths of files to process")
    config: JobConfig = Field(default_factory=JobConfig)

    @field_validator("files")
    @classmethod
    def validate_files_non_empty(cls, v: List[str]) -> List[str]:
        """
        Validate every file path is non-empty.

        Raises:
            ValueError: If any path is empty
        """
        cleaned = [path.strip() for path in v]
        if any(not path for path in cleaned):
            raise ValueError("file paths must be non-empty strings")
        return cleaned


class TaskSubmitResponse(BaseModel):
    queued: int
    file_ids: List[str]
    status: SchedulerStatus


class SchedulerStatusResponse(BaseModel):
    status: SchedulerStatus
    pending: int
    active_count: int
    concurrency_limit: int


class EventListResponse(BaseModel):
    events: List[PipelineEvent]
    count: int


class ProviderSummary(BaseModel):
    """Provider details safe to expose (no credentials)."""

    id: str
    name: str
    type: str
    is_ai: bool
    use_batch_translation: bool
    model_name: Optional[str] = None


class ProviderTestRequest(BaseModel):
    source_language: str = Field(default="en")
    target_language: str = Field(default="zh")


class ProviderTestResponse(BaseModel):
    translation: str
    response_time_ms: int
    provider_name: str
    model_name: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    scheduler: SchedulerStatus
    event_publishing: Dict[str, Any] = Field(default_factory=dict)
