"""Transcription through a user-configured local whisper command."""

import asyncio
import logging
import re
import shlex
import shutil
from pathlib import Path
from typing import Optional

from common.config import settings
from common.errors import TranscriptionError
from common.utils import StringUtils

logger = logging.getLogger(__name__)

# Quoted strings are kept whole; everything else is split on whitespace
_TOKEN_PATTERN = re.compile(r'("[^"]*")|(\S+)')


def quote_path_tokens(command: str) -> str:
    """
    Wrap unquoted tokens that look like paths in double quotes.

    Example:
        >>> quote_path_tokens('whisper /tmp/a.wav --model tiny')
        'whisper "/tmp/a.wav" --model tiny'
    """

    def _quote(match: "re.Match[str]") -> str:
        quoted, unquoted = match.group(1), match.group(2)
        if quoted:
            return quoted
        if "/" in unquoted or "\\" in unquoted:
            return f'"{unquoted}"'
        return unquoted

    return _TOKEN_PATTERN.sub(_quote, command)


class LocalWhisperCommand:
    """
    Runs a whisper command line such as
    ``whisper ${audioFile} --model ${whisperModel} --output_dir ${outputDir}``.
    """

    def __init__(self, command_template: Optional[str] = None):
        self.command_template = (
            command_template
            if command_template is not None
            else settings.whisper_command
        )

    @property
    def executable(self) -> Optional[str]:
        if not self.command_template or not self.command_template.strip():
            return None
        try:
            return shlex.split(self.command_template)[0]
        except ValueError:
            return self.command_template.split()[0]

    def is_available(self) -> bool:
        """Check that a command is configured and its executable is on PATH."""
        executable = self.executable
        return bool(executable) and shutil.which(executable) is not None

    def build_command(
        self,
        audio_file: str,
        model: str,
        srt_file: str,
        source_language: Optional[str],
        output_dir: str,
    ) -> str:
        """Render the command template and quote path arguments."""
        if not self.command_template:
            raise TranscriptionError("No local whisper command configured")

        command = StringUtils.render_template(
            self.command_template,
            {
                "audioFile": audio_file,
                "whisperModel": (model or "").lower(),
                "srtFile": srt_file,
                "sourceLanguage": source_language or "auto",
                "outputDir": output_dir,
            },
        )
        return quote_path_tokens(command)

    async def run(
        self,
        audio_file: str,
        srt_file: str,
        model: str,
        source_language: Optional[str],
        output_dir: str,
    ) -> str:
        """
        Run the command and make sure its output ends up at ``srt_file``.

        Whisper names its output after the audio file, so ``<outputDir>/<audio
        stem>.srt`` is renamed to ``srt_file`` when present.

        Raises:
            TranscriptionError: If the command exits nonzero
        """
        command = self.build_command(
            audio_file, model, srt_file, source_language, output_dir
        )
        logger.info(f"Running local whisper: {command}")

        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            error_msg = stderr.decode(errors="replace").strip() or "Unknown error"
            raise TranscriptionError(
                f"Local whisper exited with code {process.returncode}: {error_msg}"
            )
        if stderr:
            logger.debug(f"whisper stderr: {stderr.decode(errors='replace')}")

        produced = Path(output_dir) / f"{Path(audio_file).stem}.srt"
        if produced.exists() and produced != Path(srt_file):
            produced.replace(srt_file)

        logger.info(f"✅ Local whisper finished: {srt_file}")
        return srt_file
