"""
Advisory command denylist.

``check_command`` compares a command line against a fixed, ordered table of
known-destructive shapes. It is a speed bump for obviously dangerous
commands in a model reply. It does NOT isolate execution, drop privileges,
or recognize every dangerous form; anything not listed here is allowed.
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence, Tuple


@dataclass(frozen=True)
class SafetyVerdict:
    """Result of a denylist check. ``reason`` is set only when blocked."""

    allowed: bool
    reason: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return not self.allowed

    @classmethod
    def allow(cls) -> "SafetyVerdict":
        return cls(allowed=True)

    @classmethod
    def block(cls, reason: str) -> "SafetyVerdict":
        return cls(allowed=False, reason=reason)


DenyRule = Tuple[Pattern[str], str]

DENYLIST: Sequence[DenyRule] = (
    (re.compile(r"\brm\s+-rf?\s+/"), "recursive deletion from the filesystem root"),
    (re.compile(r"\bsudo\s+rm\b"), "privileged deletion"),
    (re.compile(r">\s*/dev/sd[a-z]"), "raw write to a block device"),
    (re.compile(r"\bdd\s+if="), "raw disk copy"),
    (re.compile(r"\bmkfs"), "filesystem format"),
    (re.compile(r"\bfdisk\b"), "disk partitioning"),
    (re.compile(r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}"), "shell fork bomb"),
    (re.compile(r"\bcat\b.*(?:EOF.*<<|<<.*EOF)"), "heredoc output trick"),
    (re.compile(r"\bcurl\b.*\|\s*(?:sudo\s+)?(?:ba|z)?sh\b"), "remote script piped to a shell"),
    (re.compile(r"\bwget\b.*\|\s*(?:sudo\s+)?(?:ba|z)?sh\b"), "remote script piped to a shell"),
)


def check_command(command: str, rules: Sequence[DenyRule] = DENYLIST) -> SafetyVerdict:
    """Return the verdict of the first matching rule, or allow."""
    for pattern, reason in rules:
        if pattern.search(command):
            return SafetyVerdict.block(reason)
    return SafetyVerdict.allow()
