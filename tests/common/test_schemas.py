"""Tests for shared pipeline schemas."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from common.schemas import (
    ContentTemplate,
    FileJobResult,
    FileRef,
    JobConfig,
    PipelineEvent,
    PipelineEventType,
    ProviderConfig,
    StageName,
    StageStatus,
    TaskType,
)


class TestJobConfig:
    """Test job configuration parsing and derived flags."""

    @pytest.mark.parametrize(
        "task_type,should_generate,should_translate",
        [
            (TaskType.GENERATE_ONLY, True, False),
            (TaskType.TRANSLATE_ONLY, False, True),
            (TaskType.GENERATE_AND_TRANSLATE, True, True),
        ],
    )
    def test_task_type_flags(self, task_type, should_generate, should_translate):
        config = JobConfig(task_type=task_type)

        assert config.should_generate is should_generate
        assert config.should_translate is should_translate

    def test_accepts_camel_case(self):
        config = JobConfig.model_validate(
            {
                "sourceLanguage": "ja",
                "translateContent": "sourceAndTranslate",
                "translateRetryTimes": 2,
            }
        )

        assert config.source_language == "ja"
        assert config.translate_content == ContentTemplate.SOURCE_AND_TRANSLATE
        assert config.max_retries == 2

    def test_max_retries_defaults_to_settings(self):
        with patch("common.schemas.settings") as mock_settings:
            mock_settings.translation_max_retries = 3

            assert JobConfig().max_retries == 3

    def test_is_frozen(self):
        config = JobConfig()

        with pytest.raises(ValidationError):
            config.model = "large"

    def test_rejects_invalid_batch_size(self):
        with pytest.raises(ValidationError):
            JobConfig(batch_size=0)


class TestFileRef:
    @pytest.mark.parametrize(
        "path,is_subtitle",
        [("/media/Movie.MKV", False), ("/media/show.SRT", True), ("/media/a.ass", True)],
    )
    def test_subtitle_detection(self, path, is_subtitle):
        assert FileRef(path=path).is_subtitle_input is is_subtitle

    def test_derived_names(self):
        file = FileRef(path=" /media/shows/Episode 1.mp4 ")

        assert file.path == "/media/shows/Episode 1.mp4"
        assert file.directory == "/media/shows"
        assert file.file_name == "Episode 1"
        assert file.extension == ".mp4"

    def test_empty_path_rejected(self):
        with pytest.raises(ValidationError):
            FileRef(path="  ")

    def test_unique_ids(self):
        assert FileRef(path="/a.mp4").uuid != FileRef(path="/a.mp4").uuid


class TestFileJobResult:
    def test_with_status_returns_new_record(self):
        result = FileJobResult(file=FileRef(path="/a.mp4"))

        updated = result.with_status(StageName.EXTRACT_AUDIO, StageStatus.LOADING)

        assert result.statuses == {}
        assert updated.statuses == {StageName.EXTRACT_AUDIO: StageStatus.LOADING}
        assert updated.succeeded is True

    def test_error_marks_failure(self):
        result = FileJobResult(file=FileRef(path="/a.mp4"), error="boom")

        assert result.succeeded is False


class TestProviderConfig:
    def test_defaults_to_prompt_driven_batch_mode(self):
        provider = ProviderConfig(id="p", name="P", type="openai")

        assert provider.is_ai is True
        assert provider.use_batch_translation is True
        assert provider.extra_parameters == {}

    def test_camel_case_input(self):
        provider = ProviderConfig.model_validate(
            {"id": "p", "name": "P", "type": "openai", "systemPrompt": "Be brief", "batchSize": 5}
        )

        assert provider.system_prompt == "Be brief"
        assert provider.batch_size == 5


class TestPipelineEvent:
    def test_serializes_enum_values(self):
        event = PipelineEvent(
            event_type=PipelineEventType.ERROR,
            stage=StageName.TRANSLATE_SUBTITLE,
            payload={"message": "boom"},
        )

        data = event.model_dump(mode="json")

        assert data["event_type"] == "pipeline.error"
        assert data["stage"] == "translateSubtitle"
        assert data["timestamp"]
