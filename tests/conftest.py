"""Shared fixtures."""

from typing import Dict, List, Optional

import pytest

from deltacli.providers.base import Provider, ProviderResponse


class ScriptedProvider(Provider):
    """Provider that replays canned replies (or raises a canned failure)."""

    def __init__(self, model, config, replies=None, failure=None):
        super().__init__(model, config)
        self.replies = list(replies or [])
        self.failure = failure
        self.calls: List[Dict] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    def complete(
        self,
        prompt: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        system_prompt: Optional[str] = None,
        **kwargs,
    ) -> ProviderResponse:
        self.calls.append({
            "prompt": prompt,
            "history": list(conversation_history or []),
            "system_prompt": system_prompt,
        })
        if self.failure:
            raise self.failure
        return ProviderResponse(
            content=self.replies.pop(0),
            model=self.model,
            provider=self.provider_name,
            token_usage=42,
        )

    def validate_connection(self) -> bool:
        return True


@pytest.fixture
def scripted_provider():
    """Build a ScriptedProvider: ``scripted_provider(config, replies=[...])``."""

    def build(config, replies=None, failure=None, model="scripted-model"):
        return ScriptedProvider(model, config, replies=replies, failure=failure)

    return build
