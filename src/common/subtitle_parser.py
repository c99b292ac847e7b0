"""SRT subtitle parser and formatter for transcription and translation workflows."""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from common.schemas import ContentTemplate, TranslationResult
from common.utils import StringUtils

logger = logging.getLogger(__name__)

# Default number of subtitle lines sent to a translator in one call
DEFAULT_BATCH_SIZE = 10

TimeValue = Union[str, float, int]


@dataclass
class SubtitleLine:
    """A single timed subtitle entry."""

    id: str
    start_seconds: float
    end_seconds: float
    source_content: str
    target_content: str = ""
    start_end_time: str = ""

    def __post_init__(self) -> None:
        if not self.start_end_time:
            self.start_end_time = (
                f"{format_timestamp(self.start_seconds)} --> "
                f"{format_timestamp(self.end_seconds)}"
            )

    def to_srt_block(self, use_target: bool = False) -> str:
        """Format line as an SRT block, including the trailing blank line."""
        content = self.target_content if use_target else self.source_content
        return f"{self.id}\n{self.start_end_time}\n{content}\n\n"


def parse_timestamp(value: str) -> float:
    """
    Convert an SRT timestamp to seconds.

    Accepts both ``,`` and ``.`` as millisecond separator.

    Example:
        >>> parse_timestamp("01:02:03,500")
        3723.5
    """
    match = re.fullmatch(r"\s*(\d{1,2}):(\d{2}):(\d{2})[,.](\d{1,3})\s*", value)
    if not match:
        raise ValueError(f"Invalid SRT timestamp: {value!r}")
    hours, minutes, seconds, millis = match.groups()
    return (
        int(hours) * 3600
        + int(minutes) * 60
        + int(seconds)
        + int(millis.ljust(3, "0")) / 1000
    )


def format_timestamp(seconds: float) -> str:
    """
    Convert seconds to an SRT timestamp.

    Example:
        >>> format_timestamp(3723.5)
        '01:02:03,500'
    """
    total_millis = max(0, int(round(seconds * 1000)))
    hours, remainder = divmod(total_millis, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


class SRTParser:
    """Parser for SRT subtitle files."""

    TIMESTAMP_PATTERN = re.compile(
        r"(\d{1,2}:\d{2}:\d{2}[,.]\d{1,3})\s*-->\s*(\d{1,2}:\d{2}:\d{2}[,.]\d{1,3})"
    )
    INDEX_PATTERN = re.compile(r"^\d+$")

    @staticmethod
    def _is_index_line(lines: Sequence[str], i: int) -> bool:
        """
        Check whether line ``i`` starts a new block.

        An index is a bare integer followed by a timecode line, or by one blank
        line and then a timecode line.
        """
        if not SRTParser.INDEX_PATTERN.match(lines[i].strip()):
            return False
        if i + 1 < len(lines) and "-->" in lines[i + 1]:
            return True
        return (
            i + 2 < len(lines)
            and not lines[i + 1].strip()
            and "-->" in lines[i + 2]
        )

    @staticmethod
    def _build_line(
        index: str, timecode: Optional[str], content_lines: List[str]
    ) -> Optional[SubtitleLine]:
        if timecode is None:
            logger.warning(f"Skipping subtitle {index}: missing timecode")
            return None

        match = SRTParser.TIMESTAMP_PATTERN.search(timecode)
        if not match:
            logger.warning(f"Invalid timestamp format in subtitle {index}: {timecode}")
            return None

        return SubtitleLine(
            id=index,
            start_seconds=parse_timestamp(match.group(1)),
            end_seconds=parse_timestamp(match.group(2)),
            source_content="\n".join(content_lines),
            start_end_time=timecode,
        )

    @staticmethod
    def parse(content: str) -> List[SubtitleLine]:
        """
        Parse SRT content into subtitle lines.

        Args:
            content: Raw SRT file content

        Returns:
            List of SubtitleLine objects in file order
        """
        # Remove BOM (Byte Order Mark) if present (common in UTF-8 files)
        if content.startswith("\ufeff"):
            content = content[1:]

        raw_lines = content.replace("\r\n", "\n").replace("\r", "\n").split("\n")

        subtitles: List[SubtitleLine] = []
        index: Optional[str] = None
        timecode: Optional[str] = None
        content_lines: List[str] = []

        for i, raw_line in enumerate(raw_lines):
            line = raw_line.strip()
            if not line:
                continue

            if SRTParser._is_index_line(raw_lines, i):
                if index is not None:
                    subtitle = SRTParser._build_line(index, timecode, content_lines)
                    if subtitle:
                        subtitles.append(subtitle)
                index, timecode, content_lines = line, None, []
            elif "-->" in line and index is not None and timecode is None:
                timecode = line
            elif index is not None:
                content_lines.append(line)

        if index is not None:
            subtitle = SRTParser._build_line(index, timecode, content_lines)
            if subtitle:
                subtitles.append(subtitle)

        logger.info(f"Parsed {len(subtitles)} subtitle lines")
        return subtitles

    @staticmethod
    def format(lines: Iterable[SubtitleLine], use_target: bool = False) -> str:
        """
        Format subtitle lines back to SRT.

        Each block is ``id\\ntimecode\\ncontent\\n\\n``. Timecode lines are
        written exactly as parsed, so unmodified lines round-trip unchanged.

        Args:
            lines: Subtitle lines to serialize
            use_target: Write target_content instead of source_content

        Returns:
            Formatted SRT content string
        """
        return "".join(line.to_srt_block(use_target) for line in lines)


def _to_srt_time(value: TimeValue) -> str:
    if isinstance(value, (int, float)):
        return format_timestamp(float(value))
    return value.strip().replace(".", ",")


def format_transcript(segments: Iterable[Tuple[TimeValue, TimeValue, str]]) -> str:
    """
    Convert transcript segments into SRT content.

    Accepts ``(start, end, text)`` triples where times are either seconds or
    whisper-style ``HH:MM:SS.mmm`` strings. Blocks are numbered from 1.

    Args:
        segments: Transcript segments in time order

    Returns:
        SRT content string
    """
    blocks = []
    for number, (start, end, text) in enumerate(segments, start=1):
        blocks.append(
            f"{number}\n{_to_srt_time(start)} --> {_to_srt_time(end)}\n{text.strip()}\n\n"
        )
    return "".join(blocks)


def chunk_lines(
    lines: List[SubtitleLine], batch_size: int = DEFAULT_BATCH_SIZE
) -> List[List[SubtitleLine]]:
    """
    Split lines into contiguous batches for translation.

    Args:
        lines: List of all subtitle lines
        batch_size: Maximum lines per batch (must be positive)

    Returns:
        List of batches, preserving input order

    Raises:
        ValueError: If batch_size is less than 1 or lines is None
    """
    if lines is None:
        raise ValueError("Lines list cannot be None")

    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    batches = [lines[i : i + batch_size] for i in range(0, len(lines), batch_size)]
    logger.debug(f"Split {len(lines)} lines into {len(batches)} batches")
    return batches


# Block body layouts for translated files; each ends with the blank separator line
CONTENT_TEMPLATES = {
    ContentTemplate.ONLY_TRANSLATE: "${targetContent}\n\n",
    ContentTemplate.SOURCE_AND_TRANSLATE: "${sourceContent}\n${targetContent}\n\n",
    ContentTemplate.TRANSLATE_AND_SOURCE: "${targetContent}\n${sourceContent}\n\n",
}


def render_line(
    result: TranslationResult,
    content_template: Union[ContentTemplate, str] = ContentTemplate.ONLY_TRANSLATE,
) -> str:
    """
    Render one translated SRT block with a content template.

    Example:
        >>> render_line(result, ContentTemplate.SOURCE_AND_TRANSLATE)
        '1\\n00:00:01,000 --> 00:00:02,000\\nHello\\nBonjour\\n\\n'
    """
    template = CONTENT_TEMPLATES[ContentTemplate(content_template)]
    body = StringUtils.render_template(
        template,
        {
            "sourceContent": result.source_content,
            "targetContent": result.target_content,
        },
    )
    return f"{result.id}\n{result.start_end_time}\n{body}"
