"""Tests for the execution orchestrator and the action pipeline."""

import sys
import textwrap
from pathlib import Path

import pytest

from deltacli.core.attribution import InferredFile
from deltacli.core.executor import ExecutionResult
from deltacli.core.orchestrator import (
    NOTHING_ACTIONABLE,
    ActionKind,
    ActionPipeline,
    ActionStatus,
    ExecutionPolicy,
    Orchestrator,
    PipelineState,
    backup_path_for,
    parse_cd,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX shell commands")


class FakeRunner:
    """Records calls and returns canned results."""

    def __init__(self, results=None):
        self.calls = []
        self.results = results or {}

    def __call__(self, command, cwd, timeout, capture):
        self.calls.append({"command": command, "cwd": cwd, "timeout": timeout, "capture": capture})
        if command in self.results:
            return self.results[command]
        return ExecutionResult(command=command, success=True, exit_code=0)


@pytest.fixture
def policy():
    return ExecutionPolicy(command_delay=0, change_process_dir=False)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def orchestrator(policy, runner):
    return Orchestrator(policy, runner=runner)


class TestParseCd:
    def test_target(self):
        assert parse_cd("cd foo") == "foo"
        assert parse_cd("  cd ../bar  ") == "../bar"

    def test_quoted_target(self):
        assert parse_cd('cd "my app"') == "my app"

    def test_bare_cd_goes_home(self):
        assert parse_cd("cd") == "~"

    def test_not_a_cd(self):
        assert parse_cd("cdk deploy") is None
        assert parse_cd("echo cd foo") is None

    def test_compound_line_is_left_to_the_shell(self):
        assert parse_cd("cd app && npm test") is None
        assert parse_cd("cd app; ls") is None


class TestBackupPath:
    def test_name(self, tmp_path):
        path = tmp_path / "app.js"
        backup = backup_path_for(path)
        assert backup.parent == tmp_path
        assert backup.name.startswith("app.js.backup.")
        assert backup.name.rsplit(".", 1)[1].isdigit()

    def test_unique(self, tmp_path):
        path = tmp_path / "app.js"
        first = backup_path_for(path)
        first.write_text("taken")
        assert backup_path_for(path) != first


class TestWriteFiles:
    def test_creates_file_and_parents(self, tmp_path, orchestrator):
        files = [InferredFile("src/app.js", "console.log(1)", "javascript")]
        outcome = orchestrator.execute(files, [], tmp_path)

        assert (tmp_path / "src" / "app.js").read_text() == "console.log(1)"
        [entry] = outcome.entries
        assert entry.kind == ActionKind.WRITE_FILE
        assert entry.status == ActionStatus.SUCCEEDED
        assert entry.message == "Created file: src/app.js"
        assert entry.backup_path is None

    def test_backup_on_overwrite(self, tmp_path, orchestrator):
        (tmp_path / "app.js").write_text("old")
        outcome = orchestrator.execute([InferredFile("app.js", "new", "js")], [], tmp_path)

        backups = list(tmp_path.glob("app.js.backup.*"))
        assert len(backups) == 1
        assert backups[0].read_text() == "old"
        assert (tmp_path / "app.js").read_text() == "new"
        assert outcome.entries[0].message == "Updated file: app.js"
        assert outcome.entries[0].backup_path == str(backups[0])

    def test_backup_disabled(self, tmp_path, orchestrator):
        (tmp_path / "app.js").write_text("old")
        orchestrator.execute([InferredFile("app.js", "new", "js")], [], tmp_path, backup=False)
        assert list(tmp_path.glob("app.js.backup.*")) == []
        assert (tmp_path / "app.js").read_text() == "new"

    def test_write_failure_does_not_stop_batch(self, tmp_path, orchestrator):
        (tmp_path / "blocker").write_text("a file, not a directory")
        files = [
            InferredFile("blocker/inner.js", "x", "js"),
            InferredFile("ok.js", "y", "js"),
        ]
        outcome = orchestrator.execute(files, ["echo done"], tmp_path)

        failed, written, ran = outcome.entries
        assert failed.status == ActionStatus.FAILED
        assert failed.message.startswith("Error writing to blocker/inner.js")
        assert written.ok
        assert (tmp_path / "ok.js").read_text() == "y"
        assert ran.ok
        assert outcome.state == PipelineState.DONE


class TestCommands:
    def test_commands_run_in_order_in_cwd(self, tmp_path, orchestrator, runner):
        orchestrator.execute([], ["mkdir foo", "echo hi"], tmp_path)
        assert [c["command"] for c in runner.calls] == ["mkdir foo", "echo hi"]
        assert all(c["cwd"] == tmp_path.resolve() for c in runner.calls)

    def test_cd_updates_tracked_directory(self, tmp_path, orchestrator, runner):
        (tmp_path / "foo").mkdir()
        outcome = orchestrator.execute([], ["cd foo", "touch bar.txt"], tmp_path)

        cd_entry = outcome.entries[0]
        assert cd_entry.kind == ActionKind.CHANGE_DIRECTORY
        assert cd_entry.ok
        assert runner.calls[0]["cwd"] == (tmp_path / "foo").resolve()
        assert outcome.cwd == (tmp_path / "foo").resolve()

    def test_cd_to_missing_directory(self, tmp_path, orchestrator, runner):
        outcome = orchestrator.execute([], ["cd nowhere", "ls"], tmp_path)

        missing, listed = outcome.entries
        assert missing.status == ActionStatus.NOT_FOUND
        assert missing.message == "Directory not found: nowhere"
        assert runner.calls[0]["cwd"] == tmp_path.resolve()
        assert listed.ok
        assert outcome.cwd == tmp_path.resolve()

    def test_cd_changes_process_directory_when_enabled(self, tmp_path, monkeypatch, runner):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "foo").mkdir()
        orchestrator = Orchestrator(ExecutionPolicy(command_delay=0), runner=runner)
        orchestrator.execute([], ["cd foo"], tmp_path)
        assert Path.cwd() == (tmp_path / "foo").resolve()

    def test_blocked_command_is_skipped(self, tmp_path, orchestrator, runner):
        outcome = orchestrator.execute([], ["rm -rf /", "echo safe"], tmp_path)

        blocked, safe = outcome.entries
        assert blocked.status == ActionStatus.BLOCKED
        assert blocked.message == "Skipped: recursive deletion from the filesystem root"
        assert [c["command"] for c in runner.calls] == ["echo safe"]
        assert safe.ok
        assert outcome.blocked == [blocked]
        assert outcome.commands_run == [safe]

    def test_failed_command_recorded(self, tmp_path, policy):
        failing = ExecutionResult("npm test", success=False, exit_code=1, error_message="Command failed with exit code: 1")
        orchestrator = Orchestrator(policy, runner=FakeRunner({"npm test": failing}))
        outcome = orchestrator.execute([], ["npm test", "echo after"], tmp_path)

        assert outcome.entries[0].status == ActionStatus.FAILED
        assert outcome.entries[0].message == "Command failed with exit code: 1"
        assert outcome.entries[0].result is failing
        assert outcome.entries[1].ok
        assert outcome.failures == [outcome.entries[0]]

    def test_timed_out_command_recorded(self, tmp_path, policy):
        slow = ExecutionResult("sleep 99", success=False, error_message="Command timed out after 30s", timed_out=True)
        orchestrator = Orchestrator(policy, runner=FakeRunner({"sleep 99": slow}))
        outcome = orchestrator.execute([], ["sleep 99"], tmp_path)
        assert outcome.entries[0].status == ActionStatus.TIMED_OUT

    def test_long_running_gets_longer_timeout_and_terminal(self, tmp_path, orchestrator, runner):
        orchestrator.execute([], ["npm install express", "npm test"], tmp_path)

        install, test = runner.calls
        assert install["timeout"] == 120
        assert install["capture"] is False
        assert test["timeout"] == 30
        assert test["capture"] is True

    def test_configured_long_running_table(self, tmp_path, runner):
        policy = ExecutionPolicy(command_delay=0, change_process_dir=False, long_running_patterns=("make",))
        Orchestrator(policy, runner=runner).execute([], ["make all", "npm install"], tmp_path)
        assert [c["timeout"] for c in runner.calls] == [120, 30]

    def test_delay_between_commands_only(self, tmp_path, runner):
        delays = []
        policy = ExecutionPolicy(command_delay=0.5, change_process_dir=False)
        orchestrator = Orchestrator(policy, runner=runner, sleep=delays.append)
        orchestrator.execute([], ["echo 1", "rm -rf /", "echo 2", "echo 3"], tmp_path)
        assert delays == [0.5, 0.5]


class TestOutcome:
    def test_nothing_actionable(self, tmp_path, orchestrator):
        outcome = orchestrator.execute([], [], tmp_path)
        assert outcome.entries == []
        assert outcome.tree is None
        assert outcome.message == NOTHING_ACTIONABLE
        assert not outcome.has_changes

    def test_only_blocked_is_nothing_actionable(self, tmp_path, orchestrator):
        outcome = orchestrator.execute([], ["sudo rm -rf /"], tmp_path)
        assert outcome.message == NOTHING_ACTIONABLE

    def test_tree_after_changes(self, tmp_path, orchestrator):
        outcome = orchestrator.execute([InferredFile("a.txt", "hello", "text")], [], tmp_path)
        assert outcome.tree == "└── a.txt (5B)"
        assert outcome.files_written == outcome.entries

    def test_state_machine_only_moves_forward(self, tmp_path, orchestrator):
        orchestrator.execute([], [], tmp_path)
        assert orchestrator.state == PipelineState.DONE
        with pytest.raises(RuntimeError):
            orchestrator._advance(PipelineState.WRITING_FILES)

    def test_orchestrator_is_reusable(self, tmp_path, orchestrator):
        orchestrator.execute([], [], tmp_path)
        outcome = orchestrator.execute([InferredFile("b.txt", "x", "text")], [], tmp_path)
        assert outcome.state == PipelineState.DONE


class TestActionPipeline:
    REPLY = textwrap.dedent("""\
        Here is a tiny server.

        ```bash
        mkdir api
        cd api
        ```

        ```javascript
        // server.js
        const http = require('http');
        ```

        ```python
        import os
        ```
    """)

    def test_plan(self):
        files, commands = ActionPipeline().plan(self.REPLY)
        assert [f.path for f in files] == ["file0.sh", "server.js", "file2.py"]
        assert commands == ["mkdir api", "cd api"]

    def test_files_written_before_commands(self, tmp_path, runner, policy):
        seen = []

        def recording_runner(command, cwd, timeout, capture):
            seen.append(sorted(p.name for p in Path(cwd).iterdir()))
            return runner(command, cwd=cwd, timeout=timeout, capture=capture)

        orchestrator = Orchestrator(policy, runner=recording_runner)
        ActionPipeline(orchestrator=orchestrator).run(self.REPLY, tmp_path)
        assert "server.js" in seen[0]

    @posix_only
    def test_real_commands_track_directory(self, tmp_path):
        reply = "```bash\nmkdir foo\ncd foo\ntouch bar.txt\n```"
        pipeline = ActionPipeline(ExecutionPolicy(command_delay=0, change_process_dir=False))
        outcome = pipeline.run(reply, tmp_path)

        assert outcome.cwd == (tmp_path / "foo").resolve()
        assert (tmp_path / "foo" / "bar.txt").exists()
        assert all(entry.ok for entry in outcome.entries)

    @posix_only
    def test_timeout_does_not_stop_next_command(self, tmp_path):
        policy = ExecutionPolicy(command_delay=0, command_timeout=0.5, change_process_dir=False)
        outcome = ActionPipeline(policy).run("```sh\nsleep 5\necho after > after.txt\n```", tmp_path)

        commands = [e for e in outcome.entries if e.kind == ActionKind.RUN_COMMAND]
        assert [e.status for e in commands] == [ActionStatus.TIMED_OUT, ActionStatus.SUCCEEDED]
        assert (tmp_path / "after.txt").read_text().strip() == "after"

    @posix_only
    def test_undecodable_output_does_not_stop_run(self, tmp_path):
        policy = ExecutionPolicy(command_delay=0, change_process_dir=False)
        reply = "```bash\nprintf '\\377\\376'\necho after > after.txt\n```"
        outcome = ActionPipeline(policy).run(reply, tmp_path)

        commands = [e for e in outcome.entries if e.kind == ActionKind.RUN_COMMAND]
        assert [e.status for e in commands] == [ActionStatus.SUCCEEDED, ActionStatus.SUCCEEDED]
        assert outcome.state == PipelineState.DONE
        assert (tmp_path / "after.txt").exists()
