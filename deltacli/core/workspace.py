"""
Workspace views - directory tree rendering and project context for prompts.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Sequence

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATTERNS = (".git", "node_modules", ".env", "*.log", "dist", "build")

CONTEXT_FILES = (
    "package.json",
    "requirements.txt",
    "Cargo.toml",
    "pom.xml",
    "build.gradle",
    "Makefile",
    "README.md",
)

CONTEXT_FILE_LIMIT = 1000


def should_ignore(path: Path, root: Path, patterns: Sequence[str] = DEFAULT_IGNORE_PATTERNS) -> bool:
    """Match a path against simple ``*suffix``, ``prefix*`` or exact patterns."""
    name = path.name
    try:
        relative = str(path.relative_to(root))
    except ValueError:
        relative = str(path)

    for pattern in patterns:
        if pattern.startswith("*"):
            if name.endswith(pattern[1:]):
                return True
        elif pattern.endswith("*"):
            if name.startswith(pattern[:-1]):
                return True
        elif name == pattern or pattern in relative:
            return True
    return False


def _format_size(size: int) -> str:
    if size > 1024:
        return f"{round(size / 1024)}KB"
    return f"{size}B"


def directory_tree(
    root: Path,
    max_depth: int = 3,
    show_files: bool = True,
    show_hidden: bool = False,
    ignore_patterns: Sequence[str] = DEFAULT_IGNORE_PATTERNS,
) -> str:
    """Render ``root`` as an ASCII tree, directories suffixed with ``/``."""
    root = Path(root)

    def build(directory: Path, depth: int, prefix: str) -> List[str]:
        if depth > max_depth:
            return []
        try:
            items = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            return [f"{prefix}Error reading directory: {e}"]

        if not show_hidden:
            items = [p for p in items if not p.name.startswith(".")]
        items = [p for p in items if not should_ignore(p, root, ignore_patterns)]
        if not show_files:
            items = [p for p in items if p.is_dir()]

        lines = []
        for i, item in enumerate(items):
            last = i == len(items) - 1
            branch = prefix + ("└── " if last else "├── ")
            if item.is_dir():
                lines.append(f"{branch}{item.name}/")
                if depth < max_depth:
                    lines.extend(build(item, depth + 1, prefix + ("    " if last else "│   ")))
            else:
                try:
                    size = _format_size(item.stat().st_size)
                except OSError:
                    size = "?"
                lines.append(f"{branch}{item.name} ({size})")
        return lines

    return "\n".join(build(root, 0, ""))


def _git_status(root: Path) -> str:
    try:
        result = subprocess.run(
            ["git", "status", "--porcelain"],
            cwd=str(root),
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("git status unavailable: %s", e)
        return ""
    return result.stdout.strip() if result.returncode == 0 else ""


def project_context(
    root: Path,
    max_depth: int = 3,
    ignore_patterns: Sequence[str] = DEFAULT_IGNORE_PATTERNS,
) -> str:
    """Describe the workspace for the system prompt."""
    root = Path(root)
    parts = [
        f"Current directory: {root}",
        f"Directory structure:\n{directory_tree(root, max_depth=max_depth, ignore_patterns=ignore_patterns)}",
    ]

    for name in CONTEXT_FILES:
        path = root / name
        if not path.is_file():
            continue
        try:
            content = path.read_text(errors="ignore")
        except OSError:
            continue
        suffix = "..." if len(content) > CONTEXT_FILE_LIMIT else ""
        parts.append(f"\n{name}:\n{content[:CONTEXT_FILE_LIMIT]}{suffix}")

    status = _git_status(root)
    if status:
        parts.append(f"\nGit status:\n{status}")

    return "\n\n".join(parts)
