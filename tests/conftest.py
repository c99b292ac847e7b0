"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path
from typing import List

import pytest

# Add src directory (and the project root, for tests.utils) to Python path for imports
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
for import_path in (project_root, src_path):
    if str(import_path) not in sys.path:
        sys.path.insert(0, str(import_path))

from common.observer import RecordingObserver
from common.schemas import FileRef, JobConfig, ProviderConfig, TaskType
from common.subtitle_parser import SubtitleLine
from tests.utils import FakeJsonTranslator, make_lines


@pytest.fixture
def sample_srt_content() -> str:
    """Sample SRT content for testing."""
    return """1
00:00:01,000 --> 00:00:04,000
Hello, world!

2
00:00:05,500 --> 00:00:08,200
This is a test subtitle.

3
00:00:10,000 --> 00:00:15,000
Multiple lines
can appear here.

"""


@pytest.fixture
def subtitle_lines() -> List[SubtitleLine]:
    return make_lines(10)


@pytest.fixture
def ai_provider() -> ProviderConfig:
    """Prompt-driven provider in JSON batch mode."""
    return ProviderConfig(id="test-ai", name="TestAI", type="mock", batch_size=4)


@pytest.fixture
def job_config() -> JobConfig:
    return JobConfig(
        source_language="en",
        target_language="fr",
        task_type=TaskType.GENERATE_AND_TRANSLATE,
        translate_provider="test-ai",
    )


@pytest.fixture
def recording_observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def media_file(tmp_path) -> FileRef:
    path = tmp_path / "movie.mp4"
    path.write_bytes(b"\x00\x00")
    return FileRef(path=str(path))


@pytest.fixture
def subtitle_file(tmp_path, sample_srt_content) -> FileRef:
    path = tmp_path / "episode.srt"
    path.write_text(sample_srt_content, encoding="utf-8")
    return FileRef(path=str(path))


@pytest.fixture
def fake_json_translator() -> FakeJsonTranslator:
    return FakeJsonTranslator()
