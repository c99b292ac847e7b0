"""Audio extraction from media files via ffmpeg."""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from common.config import settings
from common.errors import AudioExtractionError
from common.utils import FileHashUtils, PathUtils

logger = logging.getLogger(__name__)


class AudioExtractor:
    """
    Extracts a 16 kHz mono PCM wav track for transcription.

    The output is named after the MD5 of the media path, so repeated runs on
    the same file reuse one temp name.
    """

    def __init__(
        self, ffmpeg_binary: Optional[str] = None, temp_dir: Optional[str] = None
    ):
        self.ffmpeg_binary = ffmpeg_binary or settings.ffmpeg_binary
        self.temp_dir = temp_dir if temp_dir is not None else settings.temp_dir

    def output_path_for(self, video_path: str) -> Path:
        temp_dir = PathUtils.ensure_temp_dir(self.temp_dir)
        return temp_dir / f"{FileHashUtils.md5_of_string(video_path)}.wav"

    async def run_command(self, cmd: List[str]) -> Tuple[bytes, bytes]:
        """
        Run an ffmpeg command and return (stdout, stderr).

        Raises:
            AudioExtractionError: If ffmpeg cannot be started or exits nonzero
        """
        logger.debug(f"Running command: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AudioExtractionError(f"Cannot run {cmd[0]}: {e}") from e

        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            error_msg = stderr.decode(errors="replace").strip() or "Unknown error"
            logger.error(f"❌ ffmpeg exited with code {process.returncode}: {error_msg}")
            raise AudioExtractionError(
                f"ffmpeg failed with exit code {process.returncode}: {error_msg}"
            )

        return stdout, stderr

    async def extract(self, video_path: str) -> str:
        """
        Extract the audio track of a media file.

        Args:
            video_path: Media file path

        Returns:
            Path of the temp wav file
        """
        output_path = self.output_path_for(video_path)
        logger.info(f"Extracting audio from {video_path} to {output_path}")

        await self.run_command(
            [
                self.ffmpeg_binary,
                "-y",
                "-i",
                video_path,
                "-vn",
                "-ar",
                "16000",
                "-ac",
                "1",
                "-c:a",
                "pcm_s16le",
                str(output_path),
            ]
        )

        logger.info(f"✅ Audio extracted: {output_path}")
        return str(output_path)
