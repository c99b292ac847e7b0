"""Tests for ffmpeg audio extraction."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from common.errors import AudioExtractionError
from common.utils import FileHashUtils
from transcriber.audio_extractor import AudioExtractor


def make_process(returncode=0, stderr=b""):
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(b"", stderr))
    return process


@pytest.mark.asyncio
class TestAudioExtractor:
    """Test the ffmpeg invocation."""

    async def test_extract_builds_ffmpeg_command(self, tmp_path):
        # Arrange
        extractor = AudioExtractor(ffmpeg_binary="ffmpeg", temp_dir=str(tmp_path))
        create = AsyncMock(return_value=make_process())

        # Act
        with patch("transcriber.audio_extractor.asyncio.create_subprocess_exec", create):
            audio_path = await extractor.extract("/media/movie.mp4")

        # Assert
        expected = tmp_path / f"{FileHashUtils.md5_of_string('/media/movie.mp4')}.wav"
        assert audio_path == str(expected)
        assert list(create.await_args.args) == [
            "ffmpeg",
            "-y",
            "-i",
            "/media/movie.mp4",
            "-vn",
            "-ar",
            "16000",
            "-ac",
            "1",
            "-c:a",
            "pcm_s16le",
            str(expected),
        ]

    async def test_nonzero_exit_raises(self, tmp_path):
        extractor = AudioExtractor(temp_dir=str(tmp_path))
        create = AsyncMock(return_value=make_process(1, b"Invalid data found"))

        with patch("transcriber.audio_extractor.asyncio.create_subprocess_exec", create):
            with pytest.raises(AudioExtractionError, match="Invalid data found"):
                await extractor.extract("/media/broken.mp4")

    async def test_missing_binary_raises(self, tmp_path):
        extractor = AudioExtractor(ffmpeg_binary="no-such-ffmpeg", temp_dir=str(tmp_path))
        create = AsyncMock(side_effect=FileNotFoundError("no-such-ffmpeg"))

        with patch("transcriber.audio_extractor.asyncio.create_subprocess_exec", create):
            with pytest.raises(AudioExtractionError, match="Cannot run no-such-ffmpeg"):
                await extractor.extract("/media/movie.mp4")

    async def test_same_media_maps_to_same_output(self, tmp_path):
        extractor = AudioExtractor(temp_dir=str(tmp_path))

        assert extractor.output_path_for("/a.mp4") == extractor.output_path_for("/a.mp4")
        assert extractor.output_path_for("/a.mp4") != extractor.output_path_for("/b.mp4")
