"""Utility functions for common operations across the pipeline."""

import hashlib
import logging
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)

# Placeholder syntax shared by prompts, file-name templates and whisper commands
TEMPLATE_PLACEHOLDER_PATTERN = r"\$\{{{key}\}}"


class MathUtils:
    """Mathematical utility functions."""

    @staticmethod
    def calculate_percentage(completed: int, total: int) -> float:
        """
        Calculate the percentage of completed items out of total items.

        The result is capped at 100 so callers that count whole batches past
        the end of the input never report more than complete.

        Args:
            completed: Number of completed items
            total: Total number of items

        Returns:
            Percentage as a float between 0 and 100

        Example:
            >>> MathUtils.calculate_percentage(5, 10)
            50.0
        """
        if total <= 0:
            return 100.0
        return min(100.0, (completed / total) * 100)


class StringUtils:
    """String manipulation utility functions."""

    @staticmethod
    def render_template(template: str, data: Dict[str, Any]) -> str:
        """
        Substitute ``${key}`` placeholders in a template.

        Every occurrence of each key is replaced; ``None`` values render as an
        empty string. Placeholders without a matching key are left untouched.

        Example:
            >>> StringUtils.render_template("${fileName}.${lang}", {"fileName": "a", "lang": "en"})
            'a.en'
        """
        result = template
        for key, value in data.items():
            pattern = re.compile(TEMPLATE_PLACEHOLDER_PATTERN.format(key=re.escape(key)))
            replacement = "" if value is None else str(value)
            result = pattern.sub(lambda _match: replacement, result)
        return result

    @staticmethod
    def truncate_for_logging(
        text: str, max_length: int = 1000, edge_length: int = 500
    ) -> str:
        """
        Truncate text for logging, showing beginning and end.

        Args:
            text: Text to truncate
            max_length: Maximum length before truncation is applied
            edge_length: Number of characters to show from start and end

        Returns:
            Truncated text with ellipsis if needed, or original text if short enough
        """
        if len(text) <= max_length:
            return text
        return f"{text[:edge_length]}...\n...{text[-edge_length:]}"


class JobIdUtils:
    """Identifier generation helpers."""

    @staticmethod
    def generate_job_id_string() -> str:
        return str(uuid4())


class DateTimeUtils:
    """Date and time utility functions."""

    @staticmethod
    def get_current_utc_datetime() -> datetime:
        """Get the current UTC datetime."""
        return datetime.now(timezone.utc)

    @staticmethod
    def get_date_string_for_log_file() -> str:
        """
        Get a date string suitable for log file names.

        Example:
            >>> DateTimeUtils.get_date_string_for_log_file()
            '20240101'
        """
        return datetime.now().strftime("%Y%m%d")


class FileHashUtils:
    """Hashing helpers for cache and temp file names."""

    @staticmethod
    def md5_of_string(value: str) -> str:
        """
        Calculate the hex MD5 digest of a string.

        Used to derive stable temp names from a media path, so the same media
        file always maps to the same cached artifacts.
        """
        return hashlib.md5(value.encode("utf-8")).hexdigest()


class PathUtils:
    """Path helpers for temp storage and subtitle naming."""

    DEFAULT_TEMP_DIR_NAME = "whisper-subtitles"

    @staticmethod
    def get_temp_dir(custom_temp_dir: Optional[str] = None) -> Path:
        """
        Get the pipeline temp directory.

        Args:
            custom_temp_dir: Optional override (settings.temp_dir)

        Returns:
            Path to the temp directory (not created)
        """
        if custom_temp_dir:
            return Path(custom_temp_dir)
        return Path(tempfile.gettempdir()) / PathUtils.DEFAULT_TEMP_DIR_NAME

    @staticmethod
    def ensure_temp_dir(custom_temp_dir: Optional[str] = None) -> Path:
        """
        Return the temp directory, creating it if needed.

        A custom directory that cannot be created falls back to the default
        temp directory with an error log.
        """
        temp_dir = PathUtils.get_temp_dir(custom_temp_dir)
        try:
            temp_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            if not custom_temp_dir:
                raise
            logger.error(
                f"❌ Cannot create custom temp dir {temp_dir}: {e}. "
                f"Falling back to default temp dir"
            )
            temp_dir = PathUtils.get_temp_dir()
            temp_dir.mkdir(parents=True, exist_ok=True)
        return temp_dir

    @staticmethod
    def resolve_srt_file_name(
        option: str,
        file_name: str,
        language: str,
        custom_file_name: Optional[str],
        template_data: Dict[str, Any],
    ) -> str:
        """
        Resolve a subtitle base name (without extension) from a naming policy.

        Args:
            option: One of noSave, fileName, fileNameWithLang, custom
            file_name: Media/subtitle base name without extension
            language: Language code appended by fileNameWithLang
            custom_file_name: Template used by the custom policy
            template_data: Values for fileName, sourceLanguage, targetLanguage,
                model and translateProvider placeholders

        Returns:
            Subtitle base name

        Example:
            >>> PathUtils.resolve_srt_file_name("fileNameWithLang", "movie", "en", None, {})
            'movie.en'
        """
        if option == "fileName":
            return file_name
        if option == "fileNameWithLang":
            return f"{file_name}.{language}"
        if option == "custom" and custom_file_name:
            return StringUtils.render_template(custom_file_name, template_data)
        # noSave and unknown policies write to a temporary working name
        return f"{file_name}_temp"
