"""File I/O for subtitle translation: reading sources and writing translated output."""

import logging
from pathlib import Path
from typing import List, Optional, Union

from common.schemas import ContentTemplate, TranslationResult
from common.subtitle_parser import SRTParser, SubtitleLine, render_line
from common.utils import JobIdUtils, PathUtils

logger = logging.getLogger(__name__)


async def read_and_parse_subtitle_file(subtitle_file_path: str) -> List[SubtitleLine]:
    """
    Read and parse subtitle file from disk.

    Args:
        subtitle_file_path: Path to subtitle file

    Returns:
        List of SubtitleLine objects

    Raises:
        FileNotFoundError: If subtitle file doesn't exist
        ValueError: If file contains no subtitle lines
    """
    logger.info(f"Reading subtitle file: {subtitle_file_path}")

    subtitle_path = Path(subtitle_file_path)
    if not subtitle_path.exists():
        raise FileNotFoundError(f"Subtitle file not found: {subtitle_file_path}")

    srt_content = subtitle_path.read_text(encoding="utf-8")
    lines = SRTParser.parse(srt_content)

    if not lines:
        raise ValueError(f"No subtitle lines found in file: {subtitle_file_path}")

    return lines


class TranslationOutputWriter:
    """
    Writes translated subtitles incrementally, one batch at a time.

    Two files are kept in sync: the user-facing target file rendered with the
    selected content template, and a pure-translation copy in the temp
    directory named ``<uuid>.srt``.
    """

    def __init__(
        self,
        target_path: Union[str, Path],
        content_template: ContentTemplate = ContentTemplate.ONLY_TRANSLATE,
        temp_dir: Optional[Union[str, Path]] = None,
    ):
        self.target_path = Path(target_path)
        self.content_template = ContentTemplate(content_template)
        temp_root = Path(temp_dir) if temp_dir else PathUtils.ensure_temp_dir()
        self.temp_path = temp_root / f"{JobIdUtils.generate_job_id_string()}.srt"

    def create(self) -> None:
        """Create (or truncate) both output files."""
        for path in (self.target_path, self.temp_path):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("", encoding="utf-8")
        logger.info(
            f"Writing translation to {self.target_path} "
            f"(pure translation copy: {self.temp_path})"
        )

    async def append(self, results: List[TranslationResult]) -> None:
        """Append one batch of results to both files."""
        target_content = "".join(
            render_line(result, self.content_template) for result in results
        )
        pure_content = "".join(
            render_line(result, ContentTemplate.ONLY_TRANSLATE) for result in results
        )

        with self.target_path.open("a", encoding="utf-8") as target_file:
            target_file.write(target_content)
        with self.temp_path.open("a", encoding="utf-8") as temp_file:
            temp_file.write(pure_content)

        logger.debug(f"Appended {len(results)} translated lines to {self.target_path}")
