"""Prompt templates for prompt-driven translators."""

import json
from typing import Dict, List

from common.subtitle_parser import SubtitleLine
from common.utils import StringUtils

DEFAULT_USER_PROMPT = "${content}"

DEFAULT_SYSTEM_PROMPT = """# Role: Senior subtitle translator
You are an experienced subtitle translator, fluent in ${targetLanguage}, who turns video subtitles into natural, easy to follow ${targetLanguage}.

# Attention:
1. Keep every subtitle independent and complete. Never merge or split entries.
2. Use conversational ${targetLanguage} that suits subtitles rather than formal written style.
3. Use punctuation to carry tone and rhythm.
4. Keep terminology accurate and consistent with the context.

# Output format:
1. Follow the input JSON format strictly. Keep the original keys (IDs) and translate only the values.
2. Return the result as a JSON object inside a ```json code block.
3. Do not add explanations before or after the JSON.

# Example input:
```json
{
  "1": "<line to translate>",
  "2": "<line to translate>"
}
```

# Example output:
```json
{
  "1": "<translated line>",
  "2": "<translated line>"
}
```
"""


def build_batch_content(lines: List[SubtitleLine]) -> str:
    """
    Serialize a batch as a fenced id -> text JSON block.

    Example:
        >>> build_batch_content([SubtitleLine("1", 0, 1, "Hi")])
        '```json\\n{\\n  "1": "Hi"\\n}\\n```'
    """
    mapping: Dict[str, str] = {line.id: line.source_content for line in lines}
    return f"```json\n{json.dumps(mapping, ensure_ascii=False, indent=2)}\n```"


def render_prompt(
    template: str, source_language: str, target_language: str, content: str
) -> str:
    """Render a system or user prompt template."""
    return StringUtils.render_template(
        template,
        {
            "sourceLanguage": source_language,
            "targetLanguage": target_language,
            "content": content,
        },
    )
