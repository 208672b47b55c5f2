"""Command-line interface for brewstrap."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Iterable

import tomli_w
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import DEFAULT_CONFIG_FILENAME, Config, ConfigError, load_config
from .errors import BrewstrapError, PrerequisiteUnmet
from .filesystem import backup_candidates
from .logging_utils import resolve_level, setup_logging
from .models import ItemKind, OutcomeEntry, OutcomeKind, PlanEntry, RunSummary, Stage
from .reconciler import Reconciler

app = typer.Typer(help="Declarative macOS workstation bootstrapper")
console = Console()

EXIT_STRICT_FAILURES = 3
EXIT_CONFIG_ERROR = 4

_STAGE_TITLES = {
    Stage.BOOTSTRAP: "Prerequisites",
    Stage.TOOL_PROVISION: "Homebrew",
    Stage.PACKAGE_PROVISION: "Packages and runtimes",
    Stage.CONFIG_PROVISION: "Editor extensions and config files",
    Stage.SYSTEM_PREFERENCES: "macOS preferences",
    Stage.CLEANUP: "Cleanup",
    Stage.SUMMARY: "Summary",
}

_OUTCOME_STYLES = {
    OutcomeKind.INSTALLED: ("green", "✓"),
    OutcomeKind.ALREADY_PRESENT: ("green", "✓"),
    OutcomeKind.SKIPPED: ("yellow", "⚠"),
    OutcomeKind.FAILED: ("red", "✗"),
}

_OUTCOME_LABELS = {
    OutcomeKind.INSTALLED: "Installed",
    OutcomeKind.ALREADY_PRESENT: "Already installed",
    OutcomeKind.SKIPPED: "Skipped",
    OutcomeKind.FAILED: "Failed",
}


def _load(config: Path | None) -> Config:
    return load_config(config)


def _configure_logging(config_obj: Config | None, log_level: str | None) -> None:
    config_level = config_obj.settings.log_level if config_obj is not None else None
    log_file = config_obj.settings.log_file if config_obj is not None else None
    setup_logging(resolve_level(log_level, config_level), log_file)


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PrerequisiteUnmet):
        console.print(f"[yellow]{escape(str(exc))}[/yellow]")
        raise typer.Exit(code=exc.exit_code)
    if isinstance(exc, PermissionError):
        console.print(f"[red]Permission denied.[/red] {escape(str(exc))}")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{escape(message)}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'brewstrap init --config <path>' to create a manifest.[/yellow]")
        elif "Expected to find" in message:
            console.print(
                "[yellow]Make sure you pointed to the directory containing the manifest, or to the file itself.[/yellow]"
            )
        raise typer.Exit(code=EXIT_CONFIG_ERROR)
    if isinstance(exc, BrewstrapError):
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _print_section(stage: Stage) -> None:
    console.rule(f"[blue]{_STAGE_TITLES[stage]}[/blue]", style="blue")


def _print_outcome(entry: OutcomeEntry) -> None:
    outcome = entry.outcome
    style, mark = _OUTCOME_STYLES[outcome.kind]
    line = f"[{style}]{mark} {_OUTCOME_LABELS[outcome.kind]}: {escape(entry.item.id)}[/{style}]"
    if outcome.reason and outcome.kind is not OutcomeKind.ALREADY_PRESENT:
        line += f" ({escape(outcome.reason)})"
    console.print(line)
    if outcome.backup is not None:
        console.print(f"  [blue]ℹ Backed up existing file to {outcome.backup.backup_path.name}[/blue]")
    for warning in outcome.warnings:
        console.print(f"  [yellow]⚠ {escape(warning)}[/yellow]")


def _format_summary(summary: RunSummary) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Stage")
    for kind in OutcomeKind:
        table.add_column(kind.value, justify="right")

    for stage, counts in summary.stage_counts.items():
        table.add_row(stage.value, *(str(counts[kind]) for kind in OutcomeKind))
    table.add_row("[bold]total[/bold]", *(f"[bold]{summary.count(kind)}[/bold]" for kind in OutcomeKind))

    console.print(table)

    if summary.has_failures:
        console.print("[yellow]Some items failed. Check the output above for details.[/yellow]")
        failed = Table(show_header=True, header_style="bold magenta")
        failed.add_column("Kind")
        failed.add_column("Item")
        failed.add_column("Reason", overflow="fold")
        for entry in summary.entries:
            if entry.outcome.kind is OutcomeKind.FAILED:
                failed.add_row(entry.item.kind.value, escape(entry.item.id), escape(entry.outcome.reason or ""))
        console.print(failed)


def _format_versions(versions: Iterable[tuple[str, str]]) -> None:
    rows = list(versions)
    if not rows:
        return
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Tool")
    table.add_column("Version", overflow="fold")
    for label, version in rows:
        table.add_row(label, version)
    console.print(table)


def _format_plan(entries: Iterable[PlanEntry]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Stage")
    table.add_column("Kind")
    table.add_column("Item")
    table.add_column("State")
    table.add_column("Details", overflow="fold")

    for entry in entries:
        if entry.blocked is not None:
            state = "[yellow]blocked[/yellow]"
        elif entry.probe.satisfied:
            state = "[green]in_sync[/green]"
        elif entry.probe.present:
            state = "[red]differs[/red]"
        else:
            state = "[red]missing[/red]"
        table.add_row(
            entry.stage.value,
            entry.item.kind.value,
            escape(entry.item.id),
            state,
            escape(entry.blocked or entry.probe.details or ""),
        )

    console.print(table)


def _render_init_config() -> str:
    data = {
        "settings": {
            "backup_suffix": "backup",
            "require_command_line_tools": True,
            "update_homebrew": True,
            "cleanup": True,
        },
        "packages": {
            "taps": [],
            "formulae": ["git", "nvm", "uv", "wget", "yarn"],
            "casks": [
                "caffeine",
                "cursor",
                "discord",
                "docker",
                "flux",
                "ghostty",
                "google-chrome",
                "insomnia",
                "notion",
                "postgres-unofficial",
                "rectangle",
                "tableplus",
                "tor-browser",
                "visual-studio-code",
            ],
        },
        "runtimes": [
            {
                "id": "python",
                "check": ["uv", "python", "list", "--only-installed"],
                "install": ["uv", "python", "install"],
                "expect": "cpython",
            },
            {
                "id": "node",
                "check": ["bash", "-c", '. "$(brew --prefix nvm)/nvm.sh" && nvm version "lts/*"'],
                "install": ["bash", "-c", 'mkdir -p "$HOME/.nvm" && . "$(brew --prefix nvm)/nvm.sh" && nvm install --lts'],
                "expect": "v",
            },
        ],
        "extensions": {
            "hosts": ["code", "cursor"],
            "items": ["ms-python.python", "esbenp.prettier-vscode"],
        },
        "files": [
            {
                "id": "vscode-settings",
                "source": "vscode-global-settings.json",
                "target": "~/Library/Application Support/Code/User/settings.json",
                "requires": "/Applications/Visual Studio Code.app",
            },
            {
                "id": "cursor-settings",
                "source": "vscode-global-settings.json",
                "target": "~/Library/Application Support/Cursor/User/settings.json",
                "requires": "/Applications/Cursor.app",
            },
            {
                "id": "ghostty-config",
                "source": "ghostty-config",
                "target": "~/.config/ghostty/config",
                "requires": "/Applications/Ghostty.app",
            },
        ],
        "preferences": [
            {"domain": "com.apple.finder", "key": "AppleShowAllFiles", "type": "bool", "value": True},
            {"domain": "com.apple.finder", "key": "ShowPathbar", "type": "bool", "value": True},
            {"domain": "com.apple.finder", "key": "ShowStatusBar", "type": "bool", "value": True},
            {"domain": "com.apple.LaunchServices", "key": "LSQuarantine", "type": "bool", "value": False},
            {"domain": "NSGlobalDomain", "key": "AppleKeyboardUIMode", "type": "int", "value": 3},
            {"domain": "NSGlobalDomain", "key": "KeyRepeat", "type": "int", "value": 2},
            {"domain": "NSGlobalDomain", "key": "InitialKeyRepeat", "type": "int", "value": 15},
            {
                "domain": "NSGlobalDomain",
                "key": "NSAutomaticSpellingCorrectionEnabled",
                "type": "bool",
                "value": False,
            },
            {"domain": "com.apple.screencapture", "key": "location", "type": "string", "value": "${HOME}/Downloads"},
            {"domain": "com.apple.screencapture", "key": "type", "type": "string", "value": "png"},
        ],
        "summary": {
            "versions": {
                "Homebrew": ["brew", "--version"],
                "Git": ["git", "--version"],
                "uv": ["uv", "--version"],
                "Node.js": ["node", "--version"],
                "Zsh": ["zsh", "--version"],
            },
        },
    }

    buffer = io.StringIO()
    buffer.write("# brewstrap manifest\n")
    buffer.write("# Template paths under [[files]] are relative to this file.\n\n")
    buffer.write(tomli_w.dumps(data))
    return buffer.getvalue()


@app.command()
def init(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILENAME),
        "--config",
        "-c",
        help="Path to write the manifest",
        dir_okay=False,
        writable=True,
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing manifest if present"),
) -> None:
    """Create a starter brewstrap manifest."""

    if config.exists() and not force:
        console.print(f"[red]Manifest '{config}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    config.parent.mkdir(parents=True, exist_ok=True)
    config.write_text(_render_init_config())
    console.print(f"[green]Created '{config}'.[/green]")


@app.command()
def apply(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to brewstrap.toml"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level (DEBUG, INFO, WARNING, ...)"),
    strict: bool = typer.Option(
        False,
        "--strict",
        help=f"Exit with status {EXIT_STRICT_FAILURES} when any item failed",
    ),
) -> None:
    """Install and configure everything the manifest declares.

    Exit status: 0 when the run completed (failures are listed in the
    summary), 1 when run as root, 2 when the Command Line Tools installer was
    started, 3 for failures under --strict, 4 for an invalid manifest.
    """

    try:
        config_obj = _load(config)
        _configure_logging(config_obj, log_level)
        reconciler = Reconciler(config_obj, on_stage=_print_section, on_outcome=_print_outcome)
        summary = reconciler.run()
        _format_summary(summary)
        _format_versions(reconciler.tool_versions())
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if strict and summary.has_failures:
        raise typer.Exit(code=EXIT_STRICT_FAILURES)


@app.command()
def plan(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to brewstrap.toml"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level (DEBUG, INFO, WARNING, ...)"),
) -> None:
    """Show what apply would change without changing anything."""

    try:
        config_obj = _load(config)
        _configure_logging(config_obj, log_level)
        entries = Reconciler(config_obj).plan()
        _format_plan(entries)
        pending = [entry for entry in entries if entry.blocked is None and not entry.probe.satisfied]
        if pending:
            console.print(f"[yellow]{len(pending)} item(s) would change. Run 'brewstrap apply' to converge.[/yellow]")
        else:
            console.print("[green]Everything declared is already in place.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def backups(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to brewstrap.toml"),
) -> None:
    """List backups taken of declared config files."""

    try:
        config_obj = _load(config)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Item")
    table.add_column("Backup", no_wrap=True)
    table.add_column("Directory", overflow="fold")

    found = 0
    for item in config_obj.items(Stage.CONFIG_PROVISION):
        if item.kind is not ItemKind.CONFIG_FILE or item.target is None:
            continue
        for path in backup_candidates(item.target, config_obj.settings.backup_suffix):
            table.add_row(escape(item.id), escape(path.name), escape(str(path.parent)))
            found += 1

    if found:
        console.print(table)
    else:
        console.print("[green]No backups found.[/green]")


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
