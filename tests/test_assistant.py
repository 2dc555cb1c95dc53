"""Tests for the assistant request flow."""

from unittest.mock import patch

import pytest

from deltacli.core.assistant import Assistant
from deltacli.core.orchestrator import ActionPipeline, ExecutionPolicy
from deltacli.providers.base import NetworkFailure
from deltacli.state.session import SessionStore
from deltacli.validation.config import Config

REPLY = "Create the app:\n```python\n# app.py\nprint('hi')\n```"


@pytest.fixture
def config(tmp_path):
    return Config(global_dir=tmp_path / "home")


@pytest.fixture
def session(tmp_path):
    return SessionStore(tmp_path / "home" / "session.yaml")


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


def make_assistant(config, session, provider, workdir):
    pipeline = ActionPipeline(ExecutionPolicy(command_delay=0, change_process_dir=False))
    return Assistant(config, session, provider=provider, pipeline=pipeline, cwd=workdir)


class TestAssistant:
    def test_applies_reply(self, config, session, workdir, scripted_provider):
        provider = scripted_provider(config, replies=[REPLY])
        assistant = make_assistant(config, session, provider, workdir)

        result = assistant.handle_request("make an app", include_context=False)

        assert result.completed
        assert result.response == REPLY
        assert result.tokens_used == 42
        assert (workdir / "app.py").read_text() == "print('hi')"
        assert result.outcome.files_written[0].target == "app.py"

    def test_auto_execute_off(self, config, session, workdir, scripted_provider):
        config.set_auto_execute(False)
        provider = scripted_provider(config, replies=[REPLY])
        assistant = make_assistant(config, session, provider, workdir)

        result = assistant.handle_request("make an app", include_context=False)

        assert result.outcome is None
        assert not (workdir / "app.py").exists()
        assert "Auto-execution is disabled." in provider.calls[0]["system_prompt"]

    def test_per_request_override(self, config, session, workdir, scripted_provider):
        provider = scripted_provider(config, replies=[REPLY])
        assistant = make_assistant(config, session, provider, workdir)

        result = assistant.handle_request("make an app", include_context=False, auto_execute=False)

        assert result.outcome is None

    def test_history_is_sent_and_saved(self, config, session, workdir, scripted_provider):
        provider = scripted_provider(config, replies=["first", "second"])
        assistant = make_assistant(config, session, provider, workdir)

        assistant.handle_request("one", include_context=False)
        assistant.handle_request("two", include_context=False)

        assert provider.calls[0]["history"] == []
        assert provider.calls[1]["history"] == [
            {"role": "user", "content": "one"},
            {"role": "assistant", "content": "first"},
        ]
        assert len(SessionStore(session.path).load()) == 4

    def test_context_prepended(self, config, session, workdir, scripted_provider):
        (workdir / "package.json").write_text('{"name": "demo"}')
        provider = scripted_provider(config, replies=["ok"])
        assistant = make_assistant(config, session, provider, workdir)

        with patch("deltacli.core.workspace._git_status", return_value=""):
            assistant.handle_request("add a route")

        prompt = provider.calls[0]["prompt"]
        assert prompt.startswith(f"Current directory: {workdir}")
        assert prompt.endswith("\n\nadd a route")
        assert session.history[0]["content"] == "add a route"

    def test_system_prompt_mentions_cwd(self, config, session, workdir, scripted_provider):
        assistant = make_assistant(config, session, scripted_provider(config), workdir)
        prompt = assistant.system_prompt(True)
        assert f"Current working directory: {workdir}" in prompt
        assert "always start code blocks with a filename comment" in prompt

    def test_provider_failure(self, config, session, workdir, scripted_provider):
        provider = scripted_provider(config, failure=NetworkFailure("Request failed: refused"))
        assistant = make_assistant(config, session, provider, workdir)

        result = assistant.handle_request("hi", include_context=False)

        assert not result.completed
        assert result.error == "Request failed: refused"
        assert session.history == []

    def test_cwd_follows_pipeline(self, config, session, workdir, scripted_provider):
        (workdir / "api").mkdir()
        provider = scripted_provider(config, replies=["```bash\ncd api\n```"])
        assistant = make_assistant(config, session, provider, workdir)

        assistant.handle_request("go", include_context=False)

        assert assistant.cwd == (workdir / "api").resolve()

    def test_provider_rebuilt_when_model_changes(self, config, session, workdir, scripted_provider):
        first = scripted_provider(config)
        second = scripted_provider(config)
        assistant = make_assistant(config, session, first, workdir)
        assert assistant.provider is first

        config.set_model("gpt-4o")
        with patch("deltacli.core.assistant.ProviderFactory.create", return_value=second) as create:
            assert assistant.provider is second
            assert assistant.provider is second
        create.assert_called_once_with("gpt-4o", config)

    def test_unknown_provider_reported(self, config, session, workdir):
        config.set_model("nowhere/model")
        assistant = Assistant(config, session, cwd=workdir)

        result = assistant.handle_request("hi", include_context=False)

        assert result.error == "Unknown provider: nowhere"
