"""Batch translation engine: chunking, prompting, response recovery and retries."""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from common.config import settings
from common.errors import (
    ResultCountMismatchError,
    TranslationConfigurationError,
    is_configuration_error,
)
from common.gpt_utils import parse_translation_response, strip_reasoning
from common.schemas import ProviderConfig, TranslationResult
from common.subtitle_parser import SubtitleLine, chunk_lines
from common.utils import MathUtils, StringUtils
from translator.prompts import (
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_USER_PROMPT,
    build_batch_content,
    render_prompt,
)

logger = logging.getLogger(__name__)

MISSING_TRANSLATION_MARKER = "[translation result missing]"

TranslatorInput = Union[str, List[str]]
TranslatorFn = Callable[
    [TranslatorInput, ProviderConfig, str, str], Awaitable[TranslatorInput]
]
ProgressCallback = Callable[[float], Any]
BatchResultCallback = Callable[[List[TranslationResult]], Any]


def failure_marker(reason: str) -> str:
    return f"[translation failed: {reason}]"


@dataclass(frozen=True)
class TranslationRequest:
    """Per-file settings for one translate_all run."""

    provider: ProviderConfig
    source_language: str
    target_language: str
    batch_size: Optional[int] = None
    max_retries: int = 0

    @property
    def effective_batch_size(self) -> int:
        """Provider batch size, then request batch size, then the configured default."""
        return (
            self.provider.batch_size
            or self.batch_size
            or settings.translation_batch_size
        )


def _to_result(line: SubtitleLine, target_content: str) -> TranslationResult:
    return TranslationResult(
        id=line.id,
        start_end_time=line.start_end_time,
        source_content=line.source_content,
        target_content=target_content,
    )


def map_batch_translations(
    batch: List[SubtitleLine], parsed: Dict[str, Any]
) -> List[TranslationResult]:
    """
    Match parsed translations to batch lines.

    Lines are matched by id first, then by position in the payload's value
    order; anything still unmatched gets the missing-result marker.
    """
    values = list(parsed.values())
    results = []
    for index, line in enumerate(batch):
        value = parsed.get(line.id)
        if value is None and index < len(values):
            value = values[index]
        if value is None or value == "":
            target = MISSING_TRANSLATION_MARKER
        else:
            target = value if isinstance(value, str) else str(value)
        results.append(_to_result(line, target))
    return results


async def _translate_json_batch(
    batch: List[SubtitleLine], request: TranslationRequest, translate: TranslatorFn
) -> List[TranslationResult]:
    provider = request.provider
    content = build_batch_content(batch)
    user_prompt = render_prompt(
        provider.prompt or DEFAULT_USER_PROMPT,
        request.source_language,
        request.target_language,
        content,
    )
    system_prompt = render_prompt(
        provider.system_prompt or DEFAULT_SYSTEM_PROMPT,
        request.source_language,
        request.target_language,
        content,
    )
    rendered_provider = provider.model_copy(update={"system_prompt": system_prompt})

    response = await translate(
        user_prompt, rendered_provider, request.source_language, request.target_language
    )
    logger.debug(f"Translator response: {StringUtils.truncate_for_logging(str(response))}")

    parsed = parse_translation_response(str(response))
    return map_batch_translations(batch, parsed)


async def _translate_single_lines(
    batch: List[SubtitleLine], request: TranslationRequest, translate: TranslatorFn
) -> List[TranslationResult]:
    provider = request.provider
    results = []
    for line in batch:
        content = (
            render_prompt(
                provider.prompt,
                request.source_language,
                request.target_language,
                line.source_content,
            )
            if provider.prompt
            else line.source_content
        )
        response = await translate(
            content, provider, request.source_language, request.target_language
        )
        results.append(_to_result(line, strip_reasoning(str(response))))
    return results


async def _translate_line_list(
    batch: List[SubtitleLine], request: TranslationRequest, translate: TranslatorFn
) -> List[TranslationResult]:
    response = await translate(
        [line.source_content for line in batch],
        request.provider,
        request.source_language,
        request.target_language,
    )
    translated = response if isinstance(response, list) else str(response).split("\n")

    if len(translated) != len(batch):
        raise ResultCountMismatchError(
            f"Translation result count does not match source count "
            f"({len(translated)} != {len(batch)})"
        )

    return [_to_result(line, str(text)) for line, text in zip(batch, translated)]


def _select_batch_handler(provider: ProviderConfig):
    if not provider.is_ai:
        return _translate_line_list
    if provider.use_batch_translation:
        return _translate_json_batch
    return _translate_single_lines


async def _notify(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    outcome = callback(*args)
    if inspect.isawaitable(outcome):
        await outcome


async def translate_batch_with_retry(
    batch: List[SubtitleLine],
    request: TranslationRequest,
    translate: TranslatorFn,
    batch_label: str = "1/1",
) -> List[TranslationResult]:
    """
    Translate one batch, retrying failed attempts.

    Makes at most ``max_retries + 1`` attempts, sleeping
    ``translation_retry_base_delay * attempt`` seconds before each retry.
    When every attempt fails the batch degrades to failure markers instead
    of raising.

    Raises:
        TranslationConfigurationError: If the translator reports a
            configuration problem; such errors are never retried
    """
    handler = _select_batch_handler(request.provider)
    max_retries = max(0, request.max_retries)

    last_error: Optional[Exception] = None
    for attempt in range(max_retries + 1):
        try:
            logger.info(
                f"Translating batch {batch_label} "
                f"(attempt {attempt + 1}/{max_retries + 1}, {len(batch)} lines)"
            )
            return await handler(batch, request, translate)
        except TranslationConfigurationError:
            raise
        except Exception as e:
            if is_configuration_error(e):
                raise TranslationConfigurationError(
                    f"Translation service configuration incomplete: {e}"
                ) from e

            last_error = e
            if attempt < max_retries:
                delay = settings.translation_retry_base_delay * (attempt + 1)
                logger.warning(
                    f"🔄 Batch {batch_label} failed, retry {attempt + 1}/{max_retries} "
                    f"in {delay}s: {e}"
                )
                await asyncio.sleep(delay)

    logger.error(
        f"❌ Batch {batch_label} failed after {max_retries + 1} attempts, "
        f"skipping: {last_error}"
    )
    return [_to_result(line, failure_marker(str(last_error))) for line in batch]


async def translate_all(
    lines: List[SubtitleLine],
    request: TranslationRequest,
    translate: TranslatorFn,
    on_progress: Optional[ProgressCallback] = None,
    on_batch_result: Optional[BatchResultCallback] = None,
) -> List[TranslationResult]:
    """
    Translate subtitle lines batch by batch.

    Batches run strictly in order. Each batch's results are written into the
    lines' ``target_content`` and handed to ``on_batch_result`` (which may be
    a coroutine function) before the next batch starts. A batch that exhausts
    its retries yields failure markers and never stops the remaining batches.

    Args:
        lines: Parsed subtitle lines
        request: Provider, languages, batch size and retry count
        translate: Translator capability
        on_progress: Receives cumulative progress 0-100 after each batch
        on_batch_result: Receives each batch's results for incremental saving

    Returns:
        Translation results in input order

    Raises:
        TranslationConfigurationError: If the translator is misconfigured
    """
    await _notify(on_progress, 0.0)

    total = len(lines)
    if total == 0:
        await _notify(on_progress, 100.0)
        return []

    batch_size = request.effective_batch_size
    batches = chunk_lines(lines, batch_size)
    logger.info(
        f"Translating {total} lines in {len(batches)} batches using "
        f"provider {request.provider.name} ({request.source_language} -> "
        f"{request.target_language})"
    )

    results: List[TranslationResult] = []
    processed = 0
    for index, batch in enumerate(batches, start=1):
        batch_results = await translate_batch_with_retry(
            batch, request, translate, batch_label=f"{index}/{len(batches)}"
        )

        for line, result in zip(batch, batch_results):
            line.target_content = result.target_content

        await _notify(on_batch_result, batch_results)
        results.extend(batch_results)

        processed += len(batch)
        await _notify(on_progress, MathUtils.calculate_percentage(processed, total))

    logger.info(f"✅ Translation finished: {len(results)} lines")
    return results


async def probe_translator(
    provider: ProviderConfig,
    translate: TranslatorFn,
    source_language: str,
    target_language: str,
    sample: str = "Hello world",
) -> Dict[str, Any]:
    """
    Send one sample line through a provider to check that it works.

    Unlike translate_all, failures are not converted to markers: a probe
    that fails raises so the caller can show the error.

    Returns:
        Dict with the translation and response time
    """
    line = SubtitleLine(id="1", start_seconds=1.0, end_seconds=4.0, source_content=sample)
    request = TranslationRequest(
        provider=provider,
        source_language=source_language,
        target_language=target_language,
    )
    handler = _select_batch_handler(provider)

    start = time.monotonic()
    try:
        results = await handler([line], request, translate)
    except Exception as e:
        if is_configuration_error(e):
            raise TranslationConfigurationError(str(e)) from e
        raise

    return {
        "translation": results[0].target_content,
        "response_time_ms": int((time.monotonic() - start) * 1000),
        "provider_name": provider.name,
        "model_name": provider.model_name,
    }
