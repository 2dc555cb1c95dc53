"""Shell command extraction from fenced blocks."""

from typing import List

from deltacli.core.blocks import CodeBlock

SHELL_LANGUAGES = frozenset({"bash", "shell", "sh", "zsh"})

_COMMENT_PREFIXES = ("#", "//")
_HEREDOC_TOKEN = "EOF"


def is_shell_block(block: CodeBlock) -> bool:
    return block.language.lower() in SHELL_LANGUAGES


def extract_commands(blocks: List[CodeBlock]) -> List[str]:
    """
    Collect runnable lines from shell-tagged blocks.

    Blank lines, comment lines and heredoc lines are dropped. Order is
    preserved within each block and across blocks.
    """
    commands = []
    for block in blocks:
        if not is_shell_block(block):
            continue
        for line in block.content.split("\n"):
            line = line.strip()
            if not line:
                continue
            if line.startswith(_COMMENT_PREFIXES):
                continue
            if _HEREDOC_TOKEN in line:
                continue
            commands.append(line)
    return commands
