"""
Delta CLI Assistant - one request, one reply, optionally applied.

Every request:
1. Build the system instruction (and project context, if asked)
2. Send history + request to the completion provider
3. Record both turns in the session and save it
4. If auto-execution is on, run the reply through the ActionPipeline
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from deltacli.core.orchestrator import ActionPipeline, PipelineOutcome
from deltacli.core.workspace import project_context
from deltacli.providers.base import Provider, ProviderFactory, ProviderFailure
from deltacli.state.session import SessionStore
from deltacli.validation.config import Config

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are Delta CLI, a coding assistant that gives complete, actionable answers.

When asked to create or change code:
1. Explain the steps briefly
2. Give complete, working code in fenced blocks with a language tag
3. Put the filename as a comment on the first line of every code block (e.g. // app.js or # main.py)
4. Put terminal commands in ```bash blocks, one command per line
5. Use ```json blocks for JSON files and the matching tag for configuration files

Current working directory: {cwd}
Auto-execution is {auto}."""

AUTO_EXECUTE_NOTE = """
Your files will be written and your commands run automatically, so:
- always start code blocks with a filename comment
- use safe, non-interactive commands"""


@dataclass
class AssistantResult:
    """Result of one request."""

    response: Optional[str]
    model: str
    tokens_used: int = 0
    outcome: Optional[PipelineOutcome] = None
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.error is None


class Assistant:
    """
    Glue between the provider, the session and the action pipeline.

    ``cwd`` is the tracked working directory; after an applied reply it is
    whatever directory the pipeline finished in.
    """

    def __init__(
        self,
        config: Config,
        session: SessionStore,
        provider: Optional[Provider] = None,
        pipeline: Optional[ActionPipeline] = None,
        cwd: Optional[Path] = None,
    ):
        self.config = config
        self.session = session
        self._provider = provider
        self._provider_model = config.model if provider else None
        self.pipeline = pipeline or ActionPipeline(config.execution_policy())
        self.cwd = Path(cwd) if cwd else Path.cwd()

    @property
    def provider(self) -> Provider:
        if self._provider is None or self._provider_model != self.config.model:
            self._provider = ProviderFactory.create(self.config.model, self.config)
            self._provider_model = self.config.model
        return self._provider

    def system_prompt(self, auto_execute: bool) -> str:
        prompt = SYSTEM_PROMPT.format(cwd=self.cwd, auto="enabled" if auto_execute else "disabled")
        if auto_execute:
            prompt += AUTO_EXECUTE_NOTE
        return prompt

    def handle_request(
        self,
        request: str,
        include_context: bool = True,
        auto_execute: Optional[bool] = None,
    ) -> AssistantResult:
        """
        Ask the provider and, when enabled, apply the reply.

        Args:
            request: The user's request.
            include_context: Prepend the directory tree and key manifests.
            auto_execute: Override the configured auto-execution flag.

        Returns:
            AssistantResult; provider failures are reported in ``error``.
        """
        if auto_execute is None:
            auto_execute = self.config.auto_execute

        prompt = request
        if include_context:
            workspace = self.config.merged.workspace
            context = project_context(
                self.cwd,
                max_depth=workspace.tree_depth,
                ignore_patterns=workspace.ignore_patterns,
            )
            prompt = f"{context}\n\n{request}"

        try:
            response = self.provider.complete(
                prompt,
                conversation_history=list(self.session.history),
                system_prompt=self.system_prompt(auto_execute),
            )
        except (ProviderFailure, ValueError, ImportError) as e:
            logger.warning("Completion failed: %s", e)
            return AssistantResult(response=None, model=self.config.model, error=str(e))

        self.session.append("user", request)
        self.session.append("assistant", response.content)
        self.session.save()

        outcome = None
        if auto_execute:
            outcome = self.pipeline.run(response.content, self.cwd)
            self.cwd = outcome.cwd

        return AssistantResult(
            response=response.content,
            model=response.model,
            tokens_used=response.token_usage,
            outcome=outcome,
        )
