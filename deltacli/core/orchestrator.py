"""
Execution orchestrator - turn an assistant reply into filesystem changes.

A run moves through a fixed sequence of states:

    IDLE -> WRITING_FILES -> EXECUTING_COMMANDS -> DONE

All inferred files are written first, in source order, then every command
line runs one at a time. Nothing in a run is fatal: each failure is recorded
as an ``OutcomeEntry`` and the run carries on to DONE.

The working directory is passed in explicitly and handed back in the
``PipelineOutcome``. ``cd`` lines update it (and, unless disabled by the
policy, the process cwd) before the next relative path is resolved.

Runs are not reentrant. Callers must not start a second run while one is in
progress.
"""

import logging
import os
import re
import shutil
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from deltacli.core.attribution import InferredFile, extract_files
from deltacli.core.blocks import extract_code_blocks
from deltacli.core.commands import extract_commands
from deltacli.core.errors import DirectoryNotFound, WriteFailure
from deltacli.core.executor import (
    DEFAULT_LONG_RUNNING_PATTERNS,
    ExecutionResult,
    is_long_running,
    run_command,
)
from deltacli.core.safety import DENYLIST, DenyRule, check_command
from deltacli.core.workspace import DEFAULT_IGNORE_PATTERNS, directory_tree

logger = logging.getLogger(__name__)

NOTHING_ACTIONABLE = "No executable commands or files found in response."

_CD_PATTERN = re.compile(r"^cd(?:\s+(.+))?$")
_SHELL_OPERATORS = re.compile(r"[;&|]")


class PipelineState(Enum):
    """Lifecycle of a single run."""

    IDLE = "idle"
    WRITING_FILES = "writing_files"
    EXECUTING_COMMANDS = "executing_commands"
    DONE = "done"


_STATE_ORDER = list(PipelineState)


class ActionKind(Enum):
    WRITE_FILE = "write_file"
    CHANGE_DIRECTORY = "change_directory"
    RUN_COMMAND = "run_command"


class ActionStatus(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    BLOCKED = "blocked"
    TIMED_OUT = "timed_out"
    NOT_FOUND = "not_found"


@dataclass
class OutcomeEntry:
    """What happened to one file or one command line."""

    kind: ActionKind
    target: str
    status: ActionStatus
    message: str = ""
    backup_path: Optional[str] = None
    result: Optional[ExecutionResult] = None

    @property
    def ok(self) -> bool:
        return self.status == ActionStatus.SUCCEEDED


@dataclass
class PipelineOutcome:
    """Ordered log of a run plus the directory it finished in."""

    entries: List[OutcomeEntry]
    cwd: Path
    state: PipelineState = PipelineState.DONE
    tree: Optional[str] = None
    message: str = ""

    @property
    def files_written(self) -> List[OutcomeEntry]:
        return [e for e in self.entries if e.kind == ActionKind.WRITE_FILE and e.ok]

    @property
    def commands_run(self) -> List[OutcomeEntry]:
        return [e for e in self.entries if e.kind == ActionKind.RUN_COMMAND and e.status != ActionStatus.BLOCKED]

    @property
    def blocked(self) -> List[OutcomeEntry]:
        return [e for e in self.entries if e.status == ActionStatus.BLOCKED]

    @property
    def failures(self) -> List[OutcomeEntry]:
        return [e for e in self.entries if e.status not in (ActionStatus.SUCCEEDED, ActionStatus.BLOCKED)]

    @property
    def has_changes(self) -> bool:
        return any(e.status != ActionStatus.BLOCKED for e in self.entries)


@dataclass
class ExecutionPolicy:
    """Tunables for a run. Defaults match interactive use."""

    backup: bool = True
    command_timeout: float = 30
    long_running_timeout: float = 120
    command_delay: float = 0.5
    long_running_patterns: Sequence[str] = DEFAULT_LONG_RUNNING_PATTERNS
    deny_rules: Sequence[DenyRule] = DENYLIST
    change_process_dir: bool = True
    tree_depth: int = 3
    ignore_patterns: Sequence[str] = DEFAULT_IGNORE_PATTERNS


def backup_path_for(path: Path) -> Path:
    """``<path>.backup.<millis>``, bumped until unused."""
    stamp = int(time.time() * 1000)
    candidate = path.with_name(f"{path.name}.backup.{stamp}")
    while candidate.exists():
        stamp += 1
        candidate = path.with_name(f"{path.name}.backup.{stamp}")
    return candidate


def parse_cd(command: str) -> Optional[str]:
    """
    Return the target of a ``cd`` line, ``~`` for a bare ``cd``, else None.

    Compound lines such as ``cd app && npm test`` are not directory changes;
    the shell runs them as a whole.
    """
    match = _CD_PATTERN.match(command.strip())
    if not match or _SHELL_OPERATORS.search(command):
        return None
    target = (match.group(1) or "~").strip()
    return target.strip("'\"")


class Orchestrator:
    """
    Sequences file writes and command execution for one reply.

    ``runner`` and ``sleep`` are injectable so the command loop can be driven
    without real processes or delays.
    """

    def __init__(
        self,
        policy: Optional[ExecutionPolicy] = None,
        runner: Callable[..., ExecutionResult] = run_command,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.policy = policy or ExecutionPolicy()
        self.runner = runner
        self.sleep = sleep
        self.state = PipelineState.IDLE

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def execute(
        self,
        files: List[InferredFile],
        commands: List[str],
        cwd: Union[str, Path],
        backup: Optional[bool] = None,
    ) -> PipelineOutcome:
        """
        Write ``files`` then run ``commands`` starting from ``cwd``.

        Args:
            files: Inferred files, in source order.
            commands: Command lines, in source order.
            cwd: Working directory at the start of the run.
            backup: Override the policy's backup-on-overwrite flag.

        Returns:
            PipelineOutcome with one entry per file and per command.
        """
        self.state = PipelineState.IDLE
        backup = self.policy.backup if backup is None else backup
        cwd = Path(cwd).resolve()
        entries: List[OutcomeEntry] = []

        self._advance(PipelineState.WRITING_FILES)
        for inferred in files:
            entries.append(self.write_file(inferred, cwd, backup=backup))

        self._advance(PipelineState.EXECUTING_COMMANDS)
        for position, command in enumerate(commands):
            entry, cwd = self.process_command(command, cwd)
            entries.append(entry)
            more = position < len(commands) - 1
            if more and entry.status != ActionStatus.BLOCKED and self.policy.command_delay > 0:
                self.sleep(self.policy.command_delay)

        self._advance(PipelineState.DONE)
        outcome = PipelineOutcome(entries=entries, cwd=cwd, state=self.state)
        if outcome.has_changes:
            outcome.tree = directory_tree(
                cwd,
                max_depth=self.policy.tree_depth,
                ignore_patterns=self.policy.ignore_patterns,
            )
        else:
            outcome.message = NOTHING_ACTIONABLE
        return outcome

    def write_file(self, inferred: InferredFile, cwd: Path, backup: bool = True) -> OutcomeEntry:
        """Write one inferred file; failures become a FAILED entry."""
        try:
            path, backup_path, existed = self._write(inferred, cwd, backup)
        except WriteFailure as e:
            logger.warning(str(e))
            return OutcomeEntry(
                kind=ActionKind.WRITE_FILE,
                target=inferred.path,
                status=ActionStatus.FAILED,
                message=str(e),
            )

        verb = "Updated" if existed else "Created"
        logger.info("%s file: %s", verb, path)
        return OutcomeEntry(
            kind=ActionKind.WRITE_FILE,
            target=inferred.path,
            status=ActionStatus.SUCCEEDED,
            message=f"{verb} file: {inferred.path}",
            backup_path=str(backup_path) if backup_path else None,
        )

    def change_directory(self, target: str, cwd: Path) -> Path:
        """Resolve a ``cd`` target against ``cwd``; raise if it is not a directory."""
        candidate = (cwd / Path(target).expanduser()).resolve()
        if not candidate.is_dir():
            raise DirectoryNotFound(target)
        if self.policy.change_process_dir:
            os.chdir(candidate)
        return candidate

    def process_command(self, command: str, cwd: Path) -> Tuple[OutcomeEntry, Path]:
        """Handle one command line. Returns the entry and the new cwd."""
        target = parse_cd(command)
        if target is not None:
            try:
                cwd = self.change_directory(target, cwd)
            except DirectoryNotFound as e:
                logger.warning(str(e))
                return OutcomeEntry(
                    kind=ActionKind.CHANGE_DIRECTORY,
                    target=command,
                    status=ActionStatus.NOT_FOUND,
                    message=str(e),
                ), cwd
            logger.info("Changed directory to: %s", cwd)
            return OutcomeEntry(
                kind=ActionKind.CHANGE_DIRECTORY,
                target=command,
                status=ActionStatus.SUCCEEDED,
                message=f"Changed directory to: {cwd}",
            ), cwd

        verdict = check_command(command, self.policy.deny_rules)
        if verdict.blocked:
            logger.warning("Skipping potentially problematic command (%s): %s", verdict.reason, command)
            return OutcomeEntry(
                kind=ActionKind.RUN_COMMAND,
                target=command,
                status=ActionStatus.BLOCKED,
                message=f"Skipped: {verdict.reason}",
            ), cwd

        return self._run(command, cwd), cwd

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _advance(self, state: PipelineState) -> None:
        if _STATE_ORDER.index(state) <= _STATE_ORDER.index(self.state):
            raise RuntimeError(f"Cannot move from {self.state.value} to {state.value}")
        self.state = state

    def _write(self, inferred: InferredFile, cwd: Path, backup: bool) -> Tuple[Path, Optional[Path], bool]:
        path = cwd / inferred.path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            existed = path.exists()
            backup_path = None
            if backup and existed:
                backup_path = backup_path_for(path)
                shutil.copyfile(path, backup_path)
                logger.info("Created backup: %s", backup_path)
            path.write_text(inferred.content)
        except OSError as e:
            raise WriteFailure(inferred.path, e.strerror or str(e))
        return path, backup_path, existed

    def _run(self, command: str, cwd: Path) -> OutcomeEntry:
        long_running = is_long_running(command, self.policy.long_running_patterns)
        if long_running:
            logger.debug("Treating as long-running: %s", command)
        timeout = self.policy.long_running_timeout if long_running else self.policy.command_timeout

        result = self.runner(command, cwd=cwd, timeout=timeout, capture=not long_running)

        if result.timed_out:
            status = ActionStatus.TIMED_OUT
        elif result.success:
            status = ActionStatus.SUCCEEDED
        else:
            status = ActionStatus.FAILED

        return OutcomeEntry(
            kind=ActionKind.RUN_COMMAND,
            target=command,
            status=status,
            message=result.error_message or "Command completed successfully",
            result=result,
        )


class ActionPipeline:
    """Raw reply text in, ``PipelineOutcome`` out."""

    def __init__(self, policy: Optional[ExecutionPolicy] = None, orchestrator: Optional[Orchestrator] = None):
        self.orchestrator = orchestrator or Orchestrator(policy)

    @property
    def policy(self) -> ExecutionPolicy:
        return self.orchestrator.policy

    def plan(self, text: str) -> Tuple[List[InferredFile], List[str]]:
        """Extract files and commands without touching the filesystem."""
        blocks = extract_code_blocks(text)
        return extract_files(text, blocks), extract_commands(blocks)

    def run(self, text: str, cwd: Union[str, Path], backup: Optional[bool] = None) -> PipelineOutcome:
        files, commands = self.plan(text)
        logger.debug("Planned %d file(s) and %d command(s)", len(files), len(commands))
        return self.orchestrator.execute(files, commands, cwd, backup=backup)
