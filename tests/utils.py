"""Shared test helpers."""

import json
import re
from typing import List, Optional

from common.subtitle_parser import SubtitleLine

FENCED_PAYLOAD = re.compile(r"```json\n(.*?)\n```", re.DOTALL)


def make_srt(count: int) -> str:
    """Build SRT content with ``count`` numbered one-second blocks."""
    blocks = []
    for i in range(1, count + 1):
        blocks.append(f"{i}\n00:00:{i:02d},000 --> 00:00:{i:02d},900\nLine {i}\n\n")
    return "".join(blocks)


def make_lines(count: int) -> List[SubtitleLine]:
    return [
        SubtitleLine(
            id=str(i),
            start_seconds=float(i),
            end_seconds=i + 0.9,
            source_content=f"Line {i}",
        )
        for i in range(1, count + 1)
    ]


class FakeJsonTranslator:
    """
    Translator double that answers JSON batch prompts.

    ``fail_when`` receives the batch ids and returns an exception to raise,
    or None to answer normally.
    """

    def __init__(self, fail_when=None):
        self.fail_when = fail_when
        self.calls = []

    async def __call__(self, text, provider, source_language, target_language):
        payload = json.loads(FENCED_PAYLOAD.search(text).group(1))
        ids = list(payload.keys())
        self.calls.append(ids)

        if self.fail_when is not None:
            error = self.fail_when(ids)
            if error is not None:
                raise error

        translated = {key: f"{target_language}:{value}" for key, value in payload.items()}
        return f"```json\n{json.dumps(translated, ensure_ascii=False)}\n```"


class ScriptedTranslator:
    """Returns queued raw responses (or raises queued exceptions) in order."""

    def __init__(self, responses: List[object]):
        self.responses = list(responses)
        self.calls = []

    async def __call__(self, text, provider, source_language, target_language):
        self.calls.append((text, provider))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response
