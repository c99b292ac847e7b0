"""Tests for the batch translation engine."""

from unittest.mock import AsyncMock, patch

import pytest

from common.errors import TranslationConfigurationError
from common.schemas import ProviderConfig
from translator.batch_engine import (
    MISSING_TRANSLATION_MARKER,
    TranslationRequest,
    failure_marker,
    map_batch_translations,
    probe_translator,
    translate_all,
    translate_batch_with_retry,
)
from tests.utils import FakeJsonTranslator, ScriptedTranslator, make_lines


@pytest.fixture(autouse=True)
def no_retry_sleep():
    with patch(
        "translator.batch_engine.asyncio.sleep", new_callable=AsyncMock
    ) as sleep:
        yield sleep


def make_request(provider, max_retries=0, batch_size=None):
    return TranslationRequest(
        provider=provider,
        source_language="en",
        target_language="fr",
        batch_size=batch_size,
        max_retries=max_retries,
    )


class TestTranslationRequest:
    @pytest.mark.parametrize(
        "provider_batch,request_batch,expected",
        [(4, 7, 4), (None, 7, 7), (None, None, 10)],
    )
    def test_effective_batch_size(self, provider_batch, request_batch, expected):
        provider = ProviderConfig(id="p", name="P", type="mock", batch_size=provider_batch)

        request = make_request(provider, batch_size=request_batch)

        assert request.effective_batch_size == expected


class TestMapBatchTranslations:
    """Test matching parsed payloads back to lines."""

    def test_matches_by_id(self):
        lines = make_lines(2)

        results = map_batch_translations(lines, {"2": "deux", "1": "un"})

        assert [r.target_content for r in results] == ["un", "deux"]

    def test_falls_back_to_position(self):
        lines = make_lines(2)

        results = map_batch_translations(lines, {"a": "un", "b": "deux"})

        assert [r.target_content for r in results] == ["un", "deux"]

    def test_missing_entries_get_marker(self):
        lines = make_lines(3)

        results = map_batch_translations(lines, {"1": "un", "2": ""})

        assert [r.target_content for r in results] == [
            "un",
            MISSING_TRANSLATION_MARKER,
            MISSING_TRANSLATION_MARKER,
        ]

    def test_keeps_timecodes(self):
        lines = make_lines(1)

        result = map_batch_translations(lines, {"1": "un"})[0]

        assert result.start_end_time == lines[0].start_end_time
        assert result.source_content == "Line 1"


@pytest.mark.asyncio
class TestTranslateBatchWithRetry:
    """Test retry behaviour for a single batch."""

    async def test_retry_exhaustion_produces_markers(self, ai_provider, no_retry_sleep):
        # Arrange
        translate = FakeJsonTranslator(fail_when=lambda ids: RuntimeError("timeout"))
        batch = make_lines(3)

        # Act
        results = await translate_batch_with_retry(
            batch, make_request(ai_provider, max_retries=2), translate
        )

        # Assert
        assert len(translate.calls) == 3
        assert [r.target_content for r in results] == [failure_marker("timeout")] * 3
        assert [call.args[0] for call in no_retry_sleep.await_args_list] == [1.0, 2.0]

    async def test_parse_failure_is_retried(self, ai_provider):
        translate = ScriptedTranslator(
            ["I am unable to produce JSON", '```json\n{"1": "un"}\n```']
        )

        results = await translate_batch_with_retry(
            make_lines(1), make_request(ai_provider, max_retries=1), translate
        )

        assert len(translate.calls) == 2
        assert results[0].target_content == "un"

    async def test_non_object_payload_is_retried(self, ai_provider):
        translate = ScriptedTranslator(['{"1": "un"}, {"2": "deux"}', '{"1": "un"}'])

        # json-repair turns two concatenated objects into an array
        with patch(
            "common.gpt_utils.repair_json",
            return_value='[{"1": "un"}, {"2": "deux"}]',
        ) as repair:
            results = await translate_batch_with_retry(
                make_lines(1), make_request(ai_provider, max_retries=1), translate
            )

        repair.assert_called_once_with('{"1": "un"}, {"2": "deux"}')
        assert len(translate.calls) == 2
        assert results[0].target_content == "un"

    async def test_non_object_payload_exhausts_to_markers(self, ai_provider):
        translate = ScriptedTranslator(['{"1": "un"}, {"2": "deux"}'] * 2)

        with patch("common.gpt_utils.repair_json", return_value='["un", "deux"]'):
            results = await translate_batch_with_retry(
                make_lines(2), make_request(ai_provider, max_retries=1), translate
            )

        assert len(translate.calls) == 2
        assert all(
            r.target_content.startswith("[translation failed: Failed to parse JSON")
            for r in results
        )

    async def test_configuration_error_is_not_retried(self, ai_provider):
        translate = FakeJsonTranslator(
            fail_when=lambda ids: RuntimeError("Invalid API key provided")
        )

        with pytest.raises(TranslationConfigurationError):
            await translate_batch_with_retry(
                make_lines(2), make_request(ai_provider, max_retries=3), translate
            )

        assert len(translate.calls) == 1

    async def test_reasoning_response_is_parsed(self, ai_provider):
        translate = ScriptedTranslator(
            ['<think>"1" means the first line</think>\n{"1": "un", "2": "deux",}']
        )

        results = await translate_batch_with_retry(
            make_lines(2), make_request(ai_provider), translate
        )

        assert [r.target_content for r in results] == ["un", "deux"]

    async def test_prompts_are_rendered(self):
        provider = ProviderConfig(
            id="p",
            name="P",
            type="mock",
            prompt="Translate to ${targetLanguage}:\n${content}",
            system_prompt="You translate ${sourceLanguage} to ${targetLanguage}.",
        )
        translate = ScriptedTranslator(['{"1": "un"}'])

        await translate_batch_with_retry(make_lines(1), make_request(provider), translate)

        text, sent_provider = translate.calls[0]
        assert text.startswith("Translate to fr:\n```json\n")
        assert '"1": "Line 1"' in text
        assert sent_provider.system_prompt == "You translate en to fr."
        assert provider.system_prompt == "You translate ${sourceLanguage} to ${targetLanguage}."

    async def test_single_line_mode(self):
        provider = ProviderConfig(
            id="p", name="P", type="mock", use_batch_translation=False
        )
        translate = ScriptedTranslator(["<think>x</think>un", "deux"])

        results = await translate_batch_with_retry(
            make_lines(2), make_request(provider), translate
        )

        assert [call[0] for call in translate.calls] == ["Line 1", "Line 2"]
        assert [r.target_content for r in results] == ["un", "deux"]

    async def test_line_list_mode(self):
        provider = ProviderConfig(id="p", name="P", type="mock", is_ai=False)
        translate = ScriptedTranslator([["un", "deux"]])

        results = await translate_batch_with_retry(
            make_lines(2), make_request(provider), translate
        )

        assert translate.calls[0][0] == ["Line 1", "Line 2"]
        assert [r.target_content for r in results] == ["un", "deux"]

    async def test_line_list_count_mismatch_is_retried(self):
        provider = ProviderConfig(id="p", name="P", type="mock", is_ai=False)
        translate = ScriptedTranslator([["x"] * 401, ["un", "deux"]])

        results = await translate_batch_with_retry(
            make_lines(2), make_request(provider, max_retries=1), translate
        )

        assert len(translate.calls) == 2
        assert [r.target_content for r in results] == ["un", "deux"]

    async def test_line_list_count_mismatch_degrades(self):
        provider = ProviderConfig(id="p", name="P", type="mock", is_ai=False)
        translate = ScriptedTranslator(["un"])

        results = await translate_batch_with_retry(
            make_lines(2), make_request(provider), translate
        )

        assert all(r.target_content.startswith("[translation failed:") for r in results)


@pytest.mark.asyncio
class TestTranslateAll:
    """Test translating a whole file."""

    async def test_preserves_order_across_batches(self, ai_provider, subtitle_lines):
        translate = FakeJsonTranslator()

        results = await translate_all(subtitle_lines, make_request(ai_provider), translate)

        assert translate.calls == [
            ["1", "2", "3", "4"],
            ["5", "6", "7", "8"],
            ["9", "10"],
        ]
        assert [r.id for r in results] == [str(i) for i in range(1, 11)]
        assert [line.target_content for line in subtitle_lines] == [
            f"fr:Line {i}" for i in range(1, 11)
        ]

    async def test_failed_batch_does_not_stop_file(self):
        """20 lines, batch size 5, one retry, batch 2 always fails."""
        # Arrange
        provider = ProviderConfig(id="p", name="P", type="mock", batch_size=5)
        lines = make_lines(20)
        translate = FakeJsonTranslator(
            fail_when=lambda ids: RuntimeError("upstream 500") if "6" in ids else None
        )
        progress = []
        emitted = []

        # Act
        results = await translate_all(
            lines,
            make_request(provider, max_retries=1),
            translate,
            on_progress=progress.append,
            on_batch_result=emitted.append,
        )

        # Assert
        assert len(translate.calls) == 5
        assert len(emitted) == 4
        targets = [r.target_content for r in results]
        assert targets[:5] == [f"fr:Line {i}" for i in range(1, 6)]
        assert targets[5:10] == [failure_marker("upstream 500")] * 5
        assert targets[10:] == [f"fr:Line {i}" for i in range(11, 21)]
        assert progress == [0.0, 25.0, 50.0, 75.0, 100.0]

    async def test_async_batch_callback_is_awaited(self, ai_provider):
        received = []

        async def on_batch_result(batch_results):
            received.append([r.id for r in batch_results])

        await translate_all(
            make_lines(5),
            make_request(ai_provider),
            FakeJsonTranslator(),
            on_batch_result=on_batch_result,
        )

        assert received == [["1", "2", "3", "4"], ["5"]]

    async def test_empty_input_reports_complete(self, ai_provider):
        translate = FakeJsonTranslator()
        progress = []

        results = await translate_all(
            [], make_request(ai_provider), translate, on_progress=progress.append
        )

        assert results == []
        assert progress == [0.0, 100.0]
        assert translate.calls == []

    async def test_configuration_error_propagates(self, ai_provider):
        translate = FakeJsonTranslator(
            fail_when=lambda ids: RuntimeError("401 Unauthorized")
        )

        with pytest.raises(TranslationConfigurationError):
            await translate_all(make_lines(6), make_request(ai_provider), translate)

        assert len(translate.calls) == 1

    async def test_server_error_with_auth_like_digits_degrades(self):
        provider = ProviderConfig(id="p", name="P", type="mock", batch_size=2)
        message = "upstream error 500, request id req_4013ab"
        translate = FakeJsonTranslator(fail_when=lambda ids: RuntimeError(message))

        results = await translate_all(
            make_lines(4),
            make_request(provider, max_retries=2),
            translate,
        )

        assert len(translate.calls) == 6
        assert [r.target_content for r in results] == [failure_marker(message)] * 4


@pytest.mark.asyncio
class TestProbeTranslator:
    async def test_returns_translation(self, ai_provider):
        result = await probe_translator(ai_provider, FakeJsonTranslator(), "en", "de")

        assert result["translation"] == "de:Hello world"
        assert result["provider_name"] == "TestAI"
        assert result["response_time_ms"] >= 0

    async def test_failure_raises(self, ai_provider):
        translate = FakeJsonTranslator(fail_when=lambda ids: RuntimeError("boom"))

        with pytest.raises(RuntimeError, match="boom"):
            await probe_translator(ai_provider, translate, "en", "de")
