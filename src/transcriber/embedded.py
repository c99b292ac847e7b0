"""Embedded (in-process) speech-to-text transcription."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from common.config import settings
from common.errors import TranscriptionError
from common.utils import MathUtils

logger = logging.getLogger(__name__)

Segment = Tuple[float, float, str]
ProgressFn = Callable[[float], Any]


@dataclass(frozen=True)
class VadParameters:
    """Voice activity detection settings."""

    enabled: bool = True
    threshold: float = 0.5
    min_speech_duration_ms: int = 250
    min_silence_duration_ms: int = 100
    max_speech_duration_s: Optional[float] = None
    speech_pad_ms: int = 30

    @classmethod
    def from_settings(cls) -> "VadParameters":
        return cls(
            enabled=settings.use_vad,
            threshold=settings.vad_threshold,
            min_speech_duration_ms=settings.vad_min_speech_duration_ms,
            min_silence_duration_ms=settings.vad_min_silence_duration_ms,
            max_speech_duration_s=settings.vad_max_speech_duration_s,
            speech_pad_ms=settings.vad_speech_pad_ms,
        )

    def as_kwargs(self) -> Dict[str, Any]:
        return {
            "threshold": self.threshold,
            "min_speech_duration_ms": self.min_speech_duration_ms,
            "min_silence_duration_ms": self.min_silence_duration_ms,
            "max_speech_duration_s": (
                self.max_speech_duration_s
                if self.max_speech_duration_s
                else float("inf")
            ),
            "speech_pad_ms": self.speech_pad_ms,
        }


@dataclass(frozen=True)
class TranscriptionParams:
    audio_path: str
    model: str = "tiny"
    language: Optional[str] = None
    model_path: Optional[str] = None
    gpu_enabled: bool = False
    prompt: Optional[str] = None
    max_context: int = -1
    vad: VadParameters = field(default_factory=VadParameters)


class EmbeddedTranscriber:
    """Interface for in-process transcription engines."""

    async def transcribe(
        self, params: TranscriptionParams, on_progress: Optional[ProgressFn] = None
    ) -> List[Segment]:
        """Return ``(start_seconds, end_seconds, text)`` segments in time order."""
        raise NotImplementedError


class FasterWhisperTranscriber(EmbeddedTranscriber):
    """
    Transcriber backed by faster-whisper.

    faster-whisper is an optional dependency (the ``whisper`` extra) and is
    imported on first use. Decoding runs in a worker thread; progress is
    posted back to the event loop as segment end time over audio duration.
    """

    def __init__(self):
        self._models: Dict[Tuple[str, str], Any] = {}

    def _load_model(self, params: TranscriptionParams) -> Any:
        device = "cuda" if params.gpu_enabled else settings.whisper_device
        key = (params.model, device)
        if key not in self._models:
            try:
                from faster_whisper import WhisperModel
            except ImportError as e:
                raise TranscriptionError(
                    "faster-whisper is not installed; install the 'whisper' extra "
                    "or configure a local whisper command"
                ) from e

            logger.info(f"Loading whisper model {params.model} on {device}")
            self._models[key] = WhisperModel(
                params.model,
                device=device,
                compute_type=settings.whisper_compute_type,
                download_root=params.model_path or settings.whisper_models_path,
            )
        return self._models[key]

    def _transcribe_sync(
        self,
        params: TranscriptionParams,
        report: Callable[[float], None],
    ) -> List[Segment]:
        model = self._load_model(params)
        language = None if params.language in (None, "", "auto") else params.language

        segments_iter, info = model.transcribe(
            params.audio_path,
            language=language,
            initial_prompt=params.prompt or None,
            condition_on_previous_text=params.max_context != 0,
            vad_filter=params.vad.enabled,
            vad_parameters=params.vad.as_kwargs() if params.vad.enabled else None,
        )

        duration = getattr(info, "duration", 0) or 0
        segments: List[Segment] = []
        for segment in segments_iter:
            segments.append((segment.start, segment.end, segment.text))
            if duration > 0:
                report(MathUtils.calculate_percentage(segment.end, duration))

        report(100.0)
        return segments

    async def transcribe(
        self, params: TranscriptionParams, on_progress: Optional[ProgressFn] = None
    ) -> List[Segment]:
        loop = asyncio.get_running_loop()

        def report(percent: float) -> None:
            if on_progress is not None:
                loop.call_soon_threadsafe(on_progress, percent)

        try:
            return await loop.run_in_executor(
                None, self._transcribe_sync, params, report
            )
        except TranscriptionError:
            raise
        except Exception as e:
            raise TranscriptionError(f"Transcription failed: {e}") from e
