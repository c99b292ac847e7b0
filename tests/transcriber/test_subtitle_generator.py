"""Tests for subtitle generation."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from common.schemas import JobConfig
from transcriber.embedded import EmbeddedTranscriber, TranscriptionParams
from transcriber.local_whisper import LocalWhisperCommand
from transcriber.subtitle_generator import SubtitleGenerator


class FakeTranscriber(EmbeddedTranscriber):
    def __init__(self, segments):
        self.segments = segments
        self.params = None

    async def transcribe(self, params, on_progress=None):
        self.params = params
        if on_progress is not None:
            on_progress(50.0)
            on_progress(100.0)
        return self.segments


@pytest.fixture
def generate_config():
    return JobConfig(source_language="en", model="Small", prompt="Names: Ada", max_context=0)


@pytest.mark.asyncio
class TestSubtitleGenerator:
    """Test engine selection and SRT output."""

    async def test_embedded_transcription_writes_srt(self, tmp_path, generate_config):
        # Arrange
        transcriber = FakeTranscriber([(0.0, 1.5, "Hello"), (2.0, 3.0, "World")])
        local = LocalWhisperCommand("")
        generator = SubtitleGenerator(local_command=local, embedded=transcriber)
        srt_path = tmp_path / "movie_temp.srt"
        progress = []

        # Act
        result = await generator.generate(
            "/tmp/a.wav", str(srt_path), generate_config, on_progress=progress.append
        )

        # Assert
        assert result == str(srt_path)
        assert srt_path.read_text(encoding="utf-8") == (
            "1\n00:00:00,000 --> 00:00:01,500\nHello\n\n"
            "2\n00:00:02,000 --> 00:00:03,000\nWorld\n\n"
        )
        assert progress == [0.0, 50.0, 100.0]
        assert isinstance(transcriber.params, TranscriptionParams)
        assert transcriber.params.model == "small"
        assert transcriber.params.language == "en"
        assert transcriber.params.prompt == "Names: Ada"
        assert transcriber.params.max_context == 0

    async def test_local_command_used_when_enabled(self, tmp_path, generate_config):
        local = MagicMock(spec=LocalWhisperCommand)
        local.command_template = "whisper ${audioFile}"
        local.is_available.return_value = True
        local.run = AsyncMock(return_value=str(tmp_path / "movie.srt"))
        transcriber = FakeTranscriber([])
        generator = SubtitleGenerator(local_command=local, embedded=transcriber)

        with patch("transcriber.subtitle_generator.settings") as mock_settings:
            mock_settings.use_local_whisper = True
            result = await generator.generate(
                "/tmp/a.wav", str(tmp_path / "movie.srt"), generate_config
            )

        assert result == str(tmp_path / "movie.srt")
        assert local.run.await_args.kwargs == {
            "audio_file": "/tmp/a.wav",
            "srt_file": str(tmp_path / "movie.srt"),
            "model": "Small",
            "source_language": "en",
            "output_dir": str(tmp_path),
        }
        assert transcriber.params is None

    async def test_unavailable_local_command_falls_back(self, tmp_path, generate_config):
        local = MagicMock(spec=LocalWhisperCommand)
        local.command_template = "whisper ${audioFile}"
        local.is_available.return_value = False
        transcriber = FakeTranscriber([(0.0, 1.0, "Hi")])
        generator = SubtitleGenerator(local_command=local, embedded=transcriber)

        with patch("transcriber.subtitle_generator.settings") as mock_settings:
            mock_settings.use_local_whisper = True
            mock_settings.whisper_models_path = "./models"
            mock_settings.use_cuda = False
            await generator.generate("/tmp/a.wav", str(tmp_path / "a.srt"), generate_config)

        local.run.assert_not_called()
        assert transcriber.params is not None
