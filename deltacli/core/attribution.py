"""
File attribution - decide which code blocks are files and where they go.

Every block runs through an ordered cascade of rules. Each rule is a plain
function ``(text, block, index) -> Optional[Tuple[path, content]]`` so it can
be tested on its own; the first rule that returns a value wins:

1. ``comment_filename``          - filename comment on the block's first line
2. ``surrounding_text_filename`` - a filename mentioned just above the fence
3. ``inferred_filename``         - a default name derived from language/content

This is heuristic. A reply that mentions the wrong file, or a block that is
only an illustration, can produce a wrong guess or no file at all.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from deltacli.core.blocks import CodeBlock, extract_code_blocks

logger = logging.getLogger(__name__)

Attribution = Optional[Tuple[str, str]]
AttributionRule = Callable[[str, CodeBlock, int], Attribution]


@dataclass
class InferredFile:
    """A file the reply asks us to create."""

    path: str
    content: str
    source_language: str


# ---------------------------------------------------------------------------
# Language table
# ---------------------------------------------------------------------------

LANGUAGE_EXTENSIONS = {
    "javascript": ".js",
    "js": ".js",
    "typescript": ".ts",
    "ts": ".ts",
    "python": ".py",
    "py": ".py",
    "java": ".java",
    "cpp": ".cpp",
    "c": ".c",
    "html": ".html",
    "css": ".css",
    "json": ".json",
    "yaml": ".yml",
    "yml": ".yml",
    "xml": ".xml",
    "shell": ".sh",
    "bash": ".sh",
    "sh": ".sh",
}

_ILLEGAL_PATH_CHARS = re.compile(r'[<>:"|?*]')


def extension_for_language(language: str) -> Optional[str]:
    """Map a fence language tag to a file extension, or None."""
    return LANGUAGE_EXTENSIONS.get((language or "").lower())


def sanitize_filename(name: str) -> str:
    """Drop characters that are not allowed in file paths."""
    return _ILLEGAL_PATH_CHARS.sub("", name).strip()


# ---------------------------------------------------------------------------
# Rule 1: filename comment on the first line
# ---------------------------------------------------------------------------

_COMMENT_PATTERNS = [
    re.compile(r"^//\s*(.+)$"),
    re.compile(r"^#(?!!)\s*(.+)$"),
    re.compile(r"^/\*\s*(.+?)\s*(?:\*/)?$"),
]

_FILENAME_LABEL = re.compile(r"^(?:file(?:name)?|path)\s*:\s*", re.IGNORECASE)


def comment_filename(text: str, block: CodeBlock, index: int) -> Attribution:
    """``// app.js``, ``# app.py`` or ``/* styles.css */`` on the first line."""
    lines = block.content.split("\n")
    first_line = lines[0].strip()

    for pattern in _COMMENT_PATTERNS:
        match = pattern.match(first_line)
        if not match:
            continue
        candidate = _FILENAME_LABEL.sub("", match.group(1).strip())
        if "." in candidate and not re.search(r"\s", candidate):
            content = "\n".join(lines[1:]).strip("\n")
            return candidate, content
        return None

    return None


# ---------------------------------------------------------------------------
# Rule 2: filename mentioned in the lines above the fence
# ---------------------------------------------------------------------------

HINT_LINES = 3

HINT_PATTERNS = [
    re.compile(
        r"(?:create|save|write|update)\s+(?:file\s+)?[`\"']?([^`\"'\s]+\.[a-zA-Z]+)[`\"']?",
        re.IGNORECASE,
    ),
    re.compile(r"(?:file\s*:)\s*[`\"']?([^`\"'\s]+\.[a-zA-Z]+)[`\"']?", re.IGNORECASE),
    re.compile(r"([a-zA-Z0-9_-]+\.[a-zA-Z]+)(?:\s*:|\s*-|\s*file)", re.IGNORECASE),
]


def _preceding_lines(text: str, block: CodeBlock) -> List[str]:
    """Up to HINT_LINES lines directly above the fence, nearest first."""
    before = text[:block.start]
    lines = before.split("\n")
    if lines and not lines[-1].strip():
        lines.pop()  # the fence's own line
    return list(reversed(lines[-HINT_LINES:]))


def surrounding_text_filename(text: str, block: CodeBlock, index: int) -> Attribution:
    """``Create `src/app.js`:`` or ``File: main.py`` just before the block."""
    lines = _preceding_lines(text, block)
    for pattern in HINT_PATTERNS:
        for line in lines:
            match = pattern.search(line)
            if match and match.group(1):
                return match.group(1).strip(), block.content
    return None


# ---------------------------------------------------------------------------
# Rule 3: default name from language and content
# ---------------------------------------------------------------------------

SERVER_MARKERS = ("app.listen", "express()")
MODULE_MARKERS = ("module.exports", "export")


def inferred_filename(text: str, block: CodeBlock, index: int) -> Attribution:
    """Fall back to a generic name when the language has an extension."""
    content = block.content
    if not content.strip():
        return None

    ext = extension_for_language(block.language)
    if not ext:
        return None

    if block.language.lower() == "json" and '"name"' in content:
        return "package.json", content
    if any(marker in content for marker in SERVER_MARKERS):
        return f"server{ext}", content
    if any(marker in content for marker in MODULE_MARKERS):
        return f"index{ext}", content
    return f"file{index}{ext}", content


ATTRIBUTION_RULES: Sequence[AttributionRule] = (
    comment_filename,
    surrounding_text_filename,
    inferred_filename,
)


def attribute_block(
    text: str,
    block: CodeBlock,
    index: int,
    rules: Sequence[AttributionRule] = ATTRIBUTION_RULES,
) -> Optional[InferredFile]:
    """Run the rule cascade for a single block."""
    for rule in rules:
        found = rule(text, block, index)
        if not found:
            continue

        name, content = found
        path = sanitize_filename(name)
        if not path or not content.strip():
            logger.debug("Block %d: %s matched but left nothing to write", index, rule.__name__)
            return None

        logger.debug("Block %d attributed to %s by %s", index, path, rule.__name__)
        return InferredFile(path=path, content=content, source_language=block.language)

    return None


def extract_files(text: str, blocks: Optional[List[CodeBlock]] = None) -> List[InferredFile]:
    """Infer files from every block of ``text``, keeping source order."""
    if blocks is None:
        blocks = extract_code_blocks(text)

    files = []
    for index, block in enumerate(blocks):
        inferred = attribute_block(text, block, index)
        if inferred:
            files.append(inferred)
    return files
