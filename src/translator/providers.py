"""Translator capabilities: one callable per provider type."""

import json
import logging
from typing import Dict, List, Optional, Tuple, Union

from openai import AsyncOpenAI

from common.config import settings
from common.errors import ConfigurationError, ResponseParsingError
from common.gpt_utils import extract_json_payload, parse_structured_response
from common.schemas import ProviderConfig
from translator.batch_engine import TranslatorFn, TranslatorInput

logger = logging.getLogger(__name__)


class MockTranslator:
    """
    Offline translator that tags text with the target language.

    Understands the three request shapes the engine sends: a list of lines,
    an id -> text JSON prompt, or a single line.
    """

    async def __call__(
        self,
        text: TranslatorInput,
        provider: ProviderConfig,
        source_language: str,
        target_language: str,
    ) -> TranslatorInput:
        if isinstance(text, list):
            return [self._tag(line, target_language) for line in text]

        if "{" in text:
            try:
                payload, _tier = parse_structured_response(extract_json_payload(text))
            except ResponseParsingError:
                payload = None
            if payload is not None:
                translated = {
                    key: self._tag(str(value), target_language)
                    for key, value in payload.items()
                }
                return f"```json\n{json.dumps(translated, ensure_ascii=False, indent=2)}\n```"

        return self._tag(text, target_language)

    @staticmethod
    def _tag(text: str, target_language: str) -> str:
        return f"[{target_language}] {text}"


class OpenAITranslator:
    """
    Translator for OpenAI-compatible chat completion APIs.

    Retries are owned by the batch engine, so the client is created with
    ``max_retries=0``. Without an API key the translator runs in mock mode.
    """

    def __init__(self):
        self._clients: Dict[Tuple[str, Optional[str]], AsyncOpenAI] = {}
        self._mock = MockTranslator()

    def _get_client(self, provider: ProviderConfig) -> Optional[AsyncOpenAI]:
        api_key = provider.api_key or settings.openai_api_key
        if not api_key:
            return None

        base_url = provider.base_url or settings.openai_base_url
        key = (api_key, base_url)
        if key not in self._clients:
            self._clients[key] = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=settings.openai_timeout,
                max_retries=0,
            )
            logger.info(
                f"Initialized OpenAI async client for provider {provider.name} "
                f"(base_url: {base_url or 'default'})"
            )
        return self._clients[key]

    async def __call__(
        self,
        text: TranslatorInput,
        provider: ProviderConfig,
        source_language: str,
        target_language: str,
    ) -> str:
        client = self._get_client(provider)
        if client is None:
            logger.warning(
                f"⚠️ No API key for provider {provider.name} - translator running in mock mode"
            )
            return await self._mock(text, provider, source_language, target_language)

        content = "\n".join(text) if isinstance(text, list) else text
        messages: List[Dict[str, str]] = []
        if provider.system_prompt:
            messages.append({"role": "system", "content": provider.system_prompt})
        messages.append({"role": "user", "content": content})

        api_params = {
            "model": provider.model_name or settings.openai_model,
            "messages": messages,
            "temperature": (
                provider.temperature
                if provider.temperature is not None
                else settings.openai_temperature
            ),
        }
        if provider.extra_parameters:
            api_params["extra_body"] = dict(provider.extra_parameters)

        response = await client.chat.completions.create(**api_params)

        if not response.choices:
            raise ValueError("OpenAI API returned no choices in response")

        choice = response.choices[0]
        message_content = choice.message.content
        if not message_content:
            raise ValueError(
                f"OpenAI API returned empty content. "
                f"Response finish_reason: {choice.finish_reason}"
            )
        if choice.finish_reason == "length":
            logger.warning(
                f"⚠️ Response was truncated (finish_reason=length). "
                f"Received {len(message_content)} characters; consider a smaller batch size."
            )

        return message_content


_openai_translator = OpenAITranslator()

TRANSLATOR_MAP: Dict[str, TranslatorFn] = {
    "openai": _openai_translator,
    "deepseek": _openai_translator,
    "ollama": _openai_translator,
    "mock": MockTranslator(),
}


def get_translator(provider: Union[ProviderConfig, str]) -> TranslatorFn:
    """
    Look up the translator capability for a provider.

    Raises:
        ConfigurationError: If no translator is registered for the provider type
    """
    provider_type = provider if isinstance(provider, str) else provider.type
    translator = TRANSLATOR_MAP.get(provider_type)
    if translator is None:
        raise ConfigurationError(f"Unknown translation provider: {provider_type}")
    return translator


def default_providers() -> Dict[str, ProviderConfig]:
    """Providers available out of the box, keyed by provider id."""
    providers = [
        ProviderConfig(
            id="openai",
            name="OpenAI",
            type="openai",
            model_name=settings.openai_model,
            base_url=settings.openai_base_url,
            temperature=settings.openai_temperature,
        ),
        ProviderConfig(id="mock", name="Mock", type="mock"),
    ]
    return {provider.id: provider for provider in providers}
