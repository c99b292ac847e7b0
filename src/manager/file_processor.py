"""Per-file processing: extract audio, generate, translate and clean up subtitles."""

import logging
import os
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from common.config import settings
from common.errors import ConfigurationError
from common.observer import PipelineObserver
from common.schemas import (
    NO_TRANSLATION_PROVIDER,
    FileJobResult,
    FileRef,
    JobConfig,
    ProviderConfig,
    SaveOption,
    StageName,
    StageStatus,
    Task,
)
from common.utils import FileHashUtils, PathUtils
from transcriber.audio_extractor import AudioExtractor
from transcriber.subtitle_generator import SubtitleGenerator
from translator.batch_engine import TranslationRequest, TranslatorFn, translate_all
from translator.output_writer import TranslationOutputWriter, read_and_parse_subtitle_file
from translator.providers import get_translator

logger = logging.getLogger(__name__)


class FileJobStateMachine:
    """
    Drives one file through its stages.

    Media files run extractAudio -> extractSubtitle -> translateSubtitle ->
    cleanup; subtitle files run prepareSubtitle -> translateSubtitle. Every
    stage returns a new FileJobResult, so a stage only sees artifacts its
    predecessors committed. A failing stage reports an error event plus a
    message and stops the remaining stages of this file only.
    """

    def __init__(
        self,
        observer: Optional[PipelineObserver] = None,
        audio_extractor: Optional[AudioExtractor] = None,
        subtitle_generator: Optional[SubtitleGenerator] = None,
        providers: Optional[Mapping[str, ProviderConfig]] = None,
        translator_factory: Callable[[ProviderConfig], TranslatorFn] = get_translator,
        temp_dir: Optional[str] = None,
    ):
        self.observer = observer or PipelineObserver()
        self.audio_extractor = audio_extractor or AudioExtractor(temp_dir=temp_dir)
        self.subtitle_generator = subtitle_generator or SubtitleGenerator()
        self.providers: Dict[str, ProviderConfig] = dict(providers or {})
        self.translator_factory = translator_factory
        self.temp_dir = temp_dir if temp_dir is not None else settings.temp_dir

    async def run(self, task: Task) -> FileJobResult:
        """Scheduler entry point."""
        return await self.process(task.file, task.config)

    async def process(self, file: FileRef, config: JobConfig) -> FileJobResult:
        """
        Process one file according to the job configuration.

        Args:
            file: File to process
            config: Shared job configuration

        Returns:
            Final FileJobResult; ``error`` is set when a stage aborted
        """
        logger.info(f"Processing {file.path} with task type {config.task_type.value}")
        result = FileJobResult(file=file)
        stage = StageName.PROCESS_FILE

        try:
            if file.is_subtitle_input:
                stage = StageName.PREPARE_SUBTITLE
                result = self._prepare(result)
            elif config.should_generate:
                stage = StageName.EXTRACT_AUDIO
                result = await self._extract_audio(result, config)
                stage = StageName.EXTRACT_SUBTITLE
                result = await self._generate(result, config)
            else:
                raise ConfigurationError(
                    "Translate-only mode cannot process media files, "
                    "please provide a subtitle file"
                )

            if (
                config.should_translate
                and config.translate_provider != NO_TRANSLATION_PROVIDER
            ):
                stage = StageName.TRANSLATE_SUBTITLE
                result = await self._translate(result, config)
        except Exception as e:
            result = self._fail(result, stage, e)
            self.observer.on_file_result(result)
            return result

        result = self._cleanup(result, config)
        logger.info(f"✅ Finished processing {file.path}")
        self.observer.on_file_result(result)
        return result

    def _set_status(
        self, result: FileJobResult, stage: StageName, status: StageStatus
    ) -> FileJobResult:
        self.observer.on_stage_change(result.file, stage, status)
        return result.with_status(stage, status)

    def _fail(
        self, result: FileJobResult, stage: StageName, error: Exception
    ) -> FileJobResult:
        message = str(error) or type(error).__name__
        logger.error(f"❌ {stage.value} failed for {result.file.path}: {message}")
        self.observer.on_stage_change(result.file, stage, StageStatus.ERROR)
        self.observer.on_error(result.file, stage, message)
        self.observer.on_message("error", message)
        return result.with_status(stage, StageStatus.ERROR).model_copy(
            update={"error": message}
        )

    def _resolve_provider(self, config: JobConfig) -> Optional[ProviderConfig]:
        if config.translate_provider == NO_TRANSLATION_PROVIDER:
            return None
        provider = self.providers.get(config.translate_provider)
        if provider is None:
            raise ConfigurationError(
                f"Unknown translation provider: {config.translate_provider}"
            )
        return provider

    def _template_data(
        self, file: FileRef, config: JobConfig, model: str
    ) -> Dict[str, Any]:
        provider = self.providers.get(config.translate_provider)
        return {
            "fileName": file.file_name,
            "sourceLanguage": config.source_language,
            "targetLanguage": config.target_language,
            "model": model,
            "translateProvider": provider.name if provider else "",
        }

    def source_srt_path(self, file: FileRef, config: JobConfig) -> Path:
        name = PathUtils.resolve_srt_file_name(
            config.source_srt_save_option.value,
            file.file_name,
            config.source_language,
            config.custom_source_srt_file_name,
            self._template_data(file, config, config.model),
        )
        return Path(file.directory) / f"{name}.srt"

    def target_srt_path(self, file: FileRef, config: JobConfig) -> Path:
        name = PathUtils.resolve_srt_file_name(
            config.target_srt_save_option.value,
            file.file_name,
            config.target_language,
            config.custom_target_srt_file_name,
            self._template_data(file, config, ""),
        )
        return Path(file.directory) / f"{name}.srt"

    def _prepare(self, result: FileJobResult) -> FileJobResult:
        result = self._set_status(result, StageName.PREPARE_SUBTITLE, StageStatus.LOADING)
        result = result.model_copy(update={"srt_path": result.file.path})
        return self._set_status(result, StageName.PREPARE_SUBTITLE, StageStatus.DONE)

    async def _extract_audio(
        self, result: FileJobResult, config: JobConfig
    ) -> FileJobResult:
        file = result.file
        result = self._set_status(result, StageName.EXTRACT_AUDIO, StageStatus.LOADING)

        audio_path = await self.audio_extractor.extract(file.path)
        update: Dict[str, Any] = {"audio_path": audio_path}

        if config.save_audio:
            saved_audio_path = Path(file.directory) / f"{file.file_name}.wav"
            logger.info(f"Saving audio file to: {saved_audio_path}")
            shutil.copyfile(audio_path, saved_audio_path)
            update["saved_audio_path"] = str(saved_audio_path)

        result = result.model_copy(update=update)
        self.observer.on_progress(file, StageName.EXTRACT_AUDIO, 100.0)
        return self._set_status(result, StageName.EXTRACT_AUDIO, StageStatus.DONE)

    async def _generate(self, result: FileJobResult, config: JobConfig) -> FileJobResult:
        file = result.file
        result = self._set_status(
            result, StageName.EXTRACT_SUBTITLE, StageStatus.LOADING
        )

        srt_path = await self.subtitle_generator.generate(
            result.audio_path,
            str(self.source_srt_path(file, config)),
            config,
            on_progress=lambda percent: self.observer.on_progress(
                file, StageName.EXTRACT_SUBTITLE, percent
            ),
        )

        result = result.model_copy(update={"srt_path": srt_path, "generated": True})
        return self._set_status(result, StageName.EXTRACT_SUBTITLE, StageStatus.DONE)

    async def _translate(self, result: FileJobResult, config: JobConfig) -> FileJobResult:
        file = result.file
        result = self._set_status(
            result, StageName.TRANSLATE_SUBTITLE, StageStatus.LOADING
        )

        provider = self._resolve_provider(config)
        translate = self.translator_factory(provider)
        lines = await read_and_parse_subtitle_file(result.srt_path)

        writer = TranslationOutputWriter(
            self.target_srt_path(file, config),
            config.translate_content,
            temp_dir=PathUtils.ensure_temp_dir(self.temp_dir),
        )
        writer.create()

        request = TranslationRequest(
            provider=provider,
            source_language=config.source_language,
            target_language=config.target_language,
            batch_size=config.batch_size,
            max_retries=config.max_retries,
        )
        await translate_all(
            lines,
            request,
            translate,
            on_progress=lambda percent: self.observer.on_progress(
                file, StageName.TRANSLATE_SUBTITLE, min(percent, 100.0)
            ),
            on_batch_result=writer.append,
        )

        result = result.model_copy(
            update={
                "translated_srt_path": str(writer.target_path),
                "temp_translated_srt_path": str(writer.temp_path),
            }
        )
        return self._set_status(
            result, StageName.TRANSLATE_SUBTITLE, StageStatus.DONE
        )

    def _cleanup(self, result: FileJobResult, config: JobConfig) -> FileJobResult:
        """Move a generated subtitle the user did not ask to keep into the temp cache."""
        if not (
            result.generated
            and config.source_srt_save_option == SaveOption.NO_SAVE
            and result.srt_path
        ):
            return result

        srt_path = Path(result.srt_path)
        if not srt_path.exists():
            return result

        cache_path = (
            PathUtils.ensure_temp_dir(self.temp_dir)
            / f"{FileHashUtils.md5_of_string(result.file.path)}.srt"
        )
        try:
            shutil.copyfile(srt_path, cache_path)
            os.remove(srt_path)
        except OSError as e:
            logger.warning(f"⚠️ Failed to clean up temp subtitle {srt_path}: {e}")
            return result

        logger.info(f"Cached temp subtitle {srt_path} as {cache_path}")
        return result.model_copy(update={"cached_srt_path": str(cache_path)})
