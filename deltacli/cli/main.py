"""
Delta CLI - Interactive chat interface.

Run `delta` to start the assistant in the current directory, or
`delta "your request"` to run a single request.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table

from deltacli import __version__
from deltacli.core.assistant import Assistant, AssistantResult
from deltacli.core.errors import DirectoryNotFound
from deltacli.core.executor import run_command
from deltacli.core.orchestrator import ActionKind, ActionStatus, PipelineOutcome, parse_cd
from deltacli.core.workspace import directory_tree
from deltacli.state.session import SessionStore
from deltacli.validation.config import Config, ConfigError

console = Console()

READ_LIMIT = 2000

STATUS_MARKERS = {
    ActionStatus.SUCCEEDED: "[green]✓[/green]",
    ActionStatus.FAILED: "[red]✗[/red]",
    ActionStatus.BLOCKED: "[yellow]⚠[/yellow]",
    ActionStatus.TIMED_OUT: "[red]⏱[/red]",
    ActionStatus.NOT_FOUND: "[red]✗[/red]",
}


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, show_time=False)],
        force=True,
    )


def render_outcome(outcome: PipelineOutcome) -> None:
    """Print one line per action, then the directory view."""
    for entry in outcome.entries:
        marker = STATUS_MARKERS[entry.status]
        if entry.kind == ActionKind.WRITE_FILE:
            console.print(f"{marker} {escape(entry.message)}")
            if entry.backup_path:
                console.print(f"  [dim]backup: {entry.backup_path}[/dim]")
            continue

        console.print(f"{marker} [cyan]{escape(entry.target)}[/cyan]")
        if entry.status != ActionStatus.SUCCEEDED or entry.kind == ActionKind.CHANGE_DIRECTORY:
            console.print(f"  [dim]{escape(entry.message)}[/dim]")
        if entry.result:
            if entry.result.stdout.strip():
                console.print(entry.result.stdout.rstrip(), markup=False, highlight=False)
            if entry.result.stderr.strip():
                console.print(entry.result.stderr.rstrip(), style="red", markup=False, highlight=False)

    console.print()
    if outcome.tree is not None:
        console.print("[bold]Updated directory structure:[/bold]")
        console.print(outcome.tree or "(empty)", markup=False, highlight=False)
    else:
        console.print(f"[dim]{outcome.message}[/dim]")


def render_result(result: AssistantResult) -> None:
    if not result.completed:
        console.print(f"[red]Error: {escape(result.error)}[/red]")
        return

    console.print(Rule(f"[bold]{result.model}[/bold]"))
    console.print(Markdown(result.response))
    console.print(Rule())

    if result.outcome is not None:
        console.print()
        console.print("[bold blue]Applying response...[/bold blue]")
        render_outcome(result.outcome)


class DeltaREPL:
    """
    Interactive chat interface for Delta CLI.

    Slash commands are handled here; anything else is sent to the
    assistant as a request.
    """

    SLASH_COMMANDS = [
        "/help", "/pwd", "/cd", "/tree", "/read", "/run", "/toggle",
        "/clear", "/status", "/config", "/model", "/exit", "/quit",
    ]

    def __init__(self, assistant: Assistant):
        self.assistant = assistant
        self.config = assistant.config
        self.running = True
        self._readline = None
        self._history_file = self.config.global_dir / "input_history"

    def _setup_readline(self):
        """Enable input history and tab-completion for slash commands."""
        try:
            import readline
        except ImportError:
            return
        self._readline = readline
        readline.set_history_length(500)
        if self._history_file.exists():
            try:
                readline.read_history_file(str(self._history_file))
            except OSError:
                pass

        def completer(text, state):
            matches = [c for c in self.SLASH_COMMANDS if c.startswith(text)] if text.startswith("/") else []
            return matches[state] if state < len(matches) else None

        readline.set_completer(completer)
        readline.set_completer_delims("")
        readline.parse_and_bind("tab: complete")

    def _save_history(self):
        if self._readline is not None:
            try:
                self._readline.write_history_file(str(self._history_file))
            except OSError:
                pass

    def _print_banner(self):
        console.print("[bold blue]Delta CLI[/bold blue] - AI coding assistant")
        auto = "ON" if self.config.auto_execute else "OFF"
        console.print(f"[dim]v{__version__} | Model: {self.config.model} | Auto-execute: {auto}[/dim]")
        console.print("[dim]Type your coding requests or /help for commands.[/dim]")
        console.print()

    def _print_help(self):
        help_text = """
[bold]Navigation & Files:[/bold]
  /pwd              Show current directory
  /cd <dir>         Change directory
  /tree             Show directory structure
  /read <file>      Display file contents

[bold]Execution:[/bold]
  /run <cmd>        Execute a shell command
  /toggle           Toggle auto-execution on/off

[bold]Conversation:[/bold]
  /clear            Clear conversation history
  /status           Show current status
  /config           Show configuration

[bold]Model:[/bold]
  /model <name>     Change model (e.g., /model gemini-1.5-pro)

[bold]General:[/bold]
  /help             Show this help
  /exit, /quit      Exit Delta CLI

[bold]Examples:[/bold]
  > Create a React todo app with TypeScript
  > Set up a Python FastAPI project
  > /cd myproject
  > /run npm test
"""
        console.print(Panel(help_text.strip(), title="Delta CLI Help", border_style="blue"))

    def _print_status(self):
        agent = self.config.merged.agent
        table = Table(show_header=False, box=None)
        table.add_column(style="cyan")
        table.add_column()
        table.add_row("Current directory", str(self.assistant.cwd))
        table.add_row("Model", self.config.model)
        table.add_row("Auto-execution", "ON" if self.config.auto_execute else "OFF")
        table.add_row("Max tokens", str(agent.max_tokens))
        table.add_row("Temperature", str(agent.temperature))
        table.add_row("Conversation", f"{len(self.assistant.session.history)} messages")
        console.print(table)

    def _print_config(self):
        execution = self.config.merged.execution
        workspace = self.config.merged.workspace
        console.print(f"[cyan]Config directory:[/cyan] {self.config.global_dir}")
        console.print(f"[cyan]Local config:[/cyan] {self.config.local_path or 'none'}")
        console.print(f"[cyan]Session file:[/cyan] {self.assistant.session.path}")
        console.print(f"[cyan]Ignored patterns:[/cyan] {', '.join(workspace.ignore_patterns)}")
        console.print(f"[cyan]Backups:[/cyan] {'on' if execution.backup else 'off'}")
        console.print(
            f"[cyan]Timeouts:[/cyan] {execution.command_timeout}s "
            f"({execution.long_running_timeout}s for: {', '.join(execution.long_running_patterns)})"
        )

    def _change_directory(self, target: str):
        orchestrator = self.assistant.pipeline.orchestrator
        try:
            self.assistant.cwd = orchestrator.change_directory(target, self.assistant.cwd)
        except DirectoryNotFound as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            return
        console.print(f"[green]Changed directory to: {self.assistant.cwd}[/green]")

    def _read_file(self, name: str):
        path = self.assistant.cwd / name
        if not path.is_file():
            console.print(f"[red]File not found: {name}[/red]")
            return
        try:
            content = path.read_text(errors="replace")
        except OSError as e:
            console.print(f"[red]Error reading {name}: {escape(str(e))}[/red]")
            return
        console.print(Rule(name))
        console.print(content[:READ_LIMIT], markup=False, highlight=False)
        if len(content) > READ_LIMIT:
            console.print("[dim]...(truncated)[/dim]")
        console.print(Rule())

    def _run(self, command: str):
        target = parse_cd(command)
        if target is not None:
            self._change_directory(target)
            return
        timeout = self.config.merged.execution.command_timeout
        result = run_command(command, cwd=self.assistant.cwd, timeout=timeout)
        if result.stdout.strip():
            console.print(result.stdout.rstrip(), markup=False, highlight=False)
        if result.stderr.strip():
            console.print(result.stderr.rstrip(), style="red", markup=False, highlight=False)
        if result.success:
            console.print("[green]✓ Command completed successfully[/green]")
        else:
            console.print(f"[red]✗ {result.error_message}[/red]")

    def _toggle(self):
        self.config.set_auto_execute(not self.config.auto_execute)
        self._save_config()
        console.print(f"Auto-execution {'enabled' if self.config.auto_execute else 'disabled'}")

    def _switch_model(self, model_name: str):
        self.config.set_model(model_name)
        self._save_config()
        console.print(f"[green]Model changed to: {model_name}[/green]")

    def _save_config(self):
        try:
            self.config.save()
        except OSError as e:
            console.print(f"[yellow]Warning: could not save config: {e}[/yellow]")

    def handle_command(self, cmd: str) -> bool:
        """Handle a slash command. Returns True if should continue."""
        parts = cmd.split(maxsplit=1)
        command = parts[0].lower()
        args = parts[1].strip() if len(parts) > 1 else ""
        unquoted = args.strip("'\"")

        if command in ("/exit", "/quit"):
            self.running = False
            return False

        elif command == "/help":
            self._print_help()

        elif command == "/pwd":
            console.print(f"Current directory: {self.assistant.cwd}")

        elif command == "/cd" and args:
            self._change_directory(unquoted)

        elif command == "/tree":
            workspace = self.config.merged.workspace
            console.print(
                directory_tree(
                    self.assistant.cwd,
                    max_depth=workspace.tree_depth,
                    ignore_patterns=workspace.ignore_patterns,
                ),
                markup=False,
                highlight=False,
            )

        elif command == "/read" and args:
            self._read_file(unquoted)

        elif command == "/run" and args:
            self._run(args)

        elif command == "/toggle":
            self._toggle()

        elif command == "/clear":
            self.assistant.session.clear()
            self.assistant.session.save()
            console.print("[green]Conversation history cleared.[/green]")

        elif command == "/status":
            self._print_status()

        elif command == "/config":
            self._print_config()

        elif command == "/model" and args:
            self._switch_model(args)

        else:
            console.print(f"[yellow]Unknown command: {escape(cmd)}[/yellow]")
            console.print("[dim]Type /help for available commands[/dim]")

        return True

    def execute_request(self, request: str):
        with console.status("[bold blue]Thinking...[/bold blue]", spinner="dots"):
            result = self.assistant.handle_request(request)
        render_result(result)

    def run(self):
        """Run the interactive REPL."""
        self._setup_readline()
        self._print_banner()

        while self.running:
            try:
                console.print("[bold green]δ > [/bold green]", end="")
                user_input = input().strip()

                if not user_input:
                    continue

                if user_input.startswith("/"):
                    if not self.handle_command(user_input):
                        break
                    continue

                self.execute_request(user_input)
                console.print()

            except EOFError:
                break
            except KeyboardInterrupt:
                console.print("\n[dim]Interrupted. Type /exit to quit.[/dim]")
                continue

        self._save_history()
        console.print("Goodbye!")


def build_assistant(config: Config, cwd: Optional[Path] = None) -> Assistant:
    session = SessionStore(config.session_path)
    session.load()
    return Assistant(config, session, cwd=cwd)


@click.command()
@click.option("--version", is_flag=True, help="Show version")
@click.option("--model", "-m", help="Model to use for this run")
@click.option("--temperature", "-t", type=click.FloatRange(0.0, 2.0), help="Sampling temperature")
@click.option("--no-auto", "-n", is_flag=True, help="Do not apply files or commands from the reply")
@click.option("--context/--no-context", default=True, help="Include project context")
@click.option("--interactive", "-i", is_flag=True, help="Start interactive mode")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.argument("request", required=False, nargs=-1)
def cli(
    version: bool,
    model: Optional[str],
    temperature: Optional[float],
    no_auto: bool,
    context: bool,
    interactive: bool,
    verbose: bool,
    request: tuple,
) -> None:
    """
    Delta CLI - AI coding assistant.

    Run without arguments to start interactive mode.

    \b
    Examples:
        delta                                   # Start interactive chat
        delta "Create a todo backend with Express"
        delta -m gemini-1.5-pro "Optimize this Python code"
    """
    if version:
        console.print(f"Delta CLI v{__version__}")
        return

    configure_logging(verbose)

    try:
        config = Config.load()
        if model:
            config.override("agent", "model", model)
        if temperature is not None:
            config.override("agent", "temperature", temperature)
        if no_auto:
            config.override("execution", "auto_execute", False)
        assistant = build_assistant(config)
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    if request and not interactive:
        with console.status("[bold blue]Thinking...[/bold blue]", spinner="dots"):
            result = assistant.handle_request(" ".join(request), include_context=context)
        render_result(result)
        if not result.completed:
            sys.exit(1)
        return

    DeltaREPL(assistant).run()


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
