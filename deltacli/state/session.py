"""
Delta CLI Session Store - Conversation history persisted between runs.

The session file holds the most recent user/assistant turns so that a new
invocation can continue the same conversation.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

import yaml

logger = logging.getLogger(__name__)

MAX_MESSAGES = 20


class SessionStore:
    """
    Conversation history backed by a YAML file.

    Example:
        >>> session = SessionStore(Path("~/.delta-cli/session.yaml").expanduser())
        >>> session.append("user", "Create a todo app")
        >>> session.save()
    """

    def __init__(self, path: Path, max_messages: int = MAX_MESSAGES):
        self.path = Path(path)
        self.max_messages = max_messages
        self.history: List[Dict[str, str]] = []

    def load(self) -> List[Dict[str, str]]:
        """Read history from disk. Unreadable files yield an empty history."""
        self.history = []
        if not self.path.exists():
            return self.history

        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not load session file %s: %s", self.path, e)
            return self.history

        messages = data.get("history") if isinstance(data, dict) else None
        if not isinstance(messages, list):
            if messages is not None or not isinstance(data, dict):
                logger.warning("Ignoring malformed session file %s", self.path)
            return self.history

        for message in messages:
            if isinstance(message, dict) and message.get("role") in ("user", "assistant"):
                self.history.append({"role": message["role"], "content": str(message.get("content", ""))})
        return self.history

    def append(self, role: str, content: str) -> None:
        if role not in ("user", "assistant"):
            raise ValueError(f"Unknown role: {role}")
        self.history.append({"role": role, "content": content})

    def clear(self) -> None:
        self.history = []

    def save(self) -> Path:
        """Write the last ``max_messages`` turns to disk."""
        self.history = self.history[-self.max_messages:]
        data = {
            "history": self.history,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            logger.warning("Could not save session file %s: %s", self.path, e)
        return self.path
