"""
Fenced code block scanner.

Finds triple-backtick segments in a completion reply and returns them in
the order they appear. Only fenced syntax is recognized; nested fences are
not supported, so the first closing fence ends the block.

The info string after the opening fence may be anything up to the end of
the line (``c++``, ``js title=app.js``); its first token is the language.
Both ``\\n`` and ``\\r\\n`` line endings are accepted.
"""

import re
from dataclasses import dataclass
from typing import List


DEFAULT_LANGUAGE = "text"

_FENCE_PATTERN = re.compile(
    r"```([^\s`]*)[^\n]*\n(.*?)\r?\n[ \t]*```",
    re.DOTALL,
)


@dataclass
class CodeBlock:
    """A single fenced segment."""

    language: str
    content: str
    start: int = 0  # offset of the opening fence in the source text


def _strip_blank_lines(content: str) -> str:
    lines = [line.rstrip("\r") for line in content.split("\n")]
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines)


def extract_code_blocks(text: str) -> List[CodeBlock]:
    """Return every fenced block in ``text``, left to right."""
    blocks = []
    for match in _FENCE_PATTERN.finditer(text or ""):
        blocks.append(CodeBlock(
            language=match.group(1) or DEFAULT_LANGUAGE,
            content=_strip_blank_lines(match.group(2)),
            start=match.start(),
        ))
    return blocks
