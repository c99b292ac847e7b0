"""Subtitle generation: picks the local command or the embedded transcriber."""

import logging
from pathlib import Path
from typing import Optional

from common.config import settings
from common.schemas import JobConfig
from common.subtitle_parser import format_transcript
from transcriber.embedded import (
    EmbeddedTranscriber,
    FasterWhisperTranscriber,
    ProgressFn,
    TranscriptionParams,
    VadParameters,
)
from transcriber.local_whisper import LocalWhisperCommand

logger = logging.getLogger(__name__)


class SubtitleGenerator:
    """Turns an extracted audio file into an SRT file."""

    def __init__(
        self,
        local_command: Optional[LocalWhisperCommand] = None,
        embedded: Optional[EmbeddedTranscriber] = None,
    ):
        self.local_command = local_command or LocalWhisperCommand()
        self.embedded = embedded or FasterWhisperTranscriber()

    def uses_local_command(self) -> bool:
        """Local command wins when enabled, configured and installed."""
        return (
            settings.use_local_whisper
            and bool(self.local_command.command_template)
            and self.local_command.is_available()
        )

    async def generate(
        self,
        audio_path: str,
        srt_path: str,
        config: JobConfig,
        on_progress: Optional[ProgressFn] = None,
    ) -> str:
        """
        Transcribe ``audio_path`` into ``srt_path``.

        Args:
            audio_path: Extracted audio file
            srt_path: Where the subtitle must be written
            config: Job configuration (model, language, prompt, context)
            on_progress: Receives 0-100 transcription progress

        Returns:
            Path of the written subtitle
        """
        if self.uses_local_command():
            return await self.local_command.run(
                audio_file=audio_path,
                srt_file=srt_path,
                model=config.model,
                source_language=config.source_language,
                output_dir=str(Path(srt_path).parent),
            )

        params = TranscriptionParams(
            audio_path=audio_path,
            model=config.model.lower(),
            language=config.source_language or "auto",
            model_path=settings.whisper_models_path,
            gpu_enabled=settings.use_cuda,
            prompt=config.prompt,
            max_context=config.max_context,
            vad=VadParameters.from_settings(),
        )
        if on_progress is not None:
            on_progress(0.0)

        segments = await self.embedded.transcribe(params, on_progress)

        Path(srt_path).write_text(format_transcript(segments), encoding="utf-8")
        logger.info(f"✅ Generated subtitle with {len(segments)} segments: {srt_path}")
        return srt_path
