"""
Tower - Main Entry Point

CLI for judging agent artefacts from JSON files.
Each command prints a verdict summary; --json prints the raw result.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tower.config import load_tower_config
from tower.exceptions import InvalidArtefactError, TowerConfigError, TowerError
from tower.observability.logging_config import configure_logging
from tower.service import TowerService

root_env = Path(__file__).parent / ".env"
if root_env.exists():
    load_dotenv(root_env, override=True)
else:
    load_dotenv()

app = typer.Typer(
    name="tower",
    help="Tower - verdict evaluation harness for autonomous agents",
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger("tower")

EXIT_INVALID_INPUT = 2

VERDICT_STYLES = {
    "ACCEPT": "green",
    "CONTINUE": "green",
    "CHANGE_PLAN": "yellow",
    "STOP": "red",
}


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING", "--log-level", help="Root log level (DEBUG, INFO, WARNING, ...)"
    ),
):
    """Judge leads lists, mission snapshots and factory steps."""
    configure_logging(level=getattr(logging, log_level.upper(), logging.WARNING))


def _fail(title: str, message: str) -> None:
    console.print(Panel(
        f"[red]{message}[/]",
        title=f"⚠ {title}",
        border_style="red",
    ))
    raise typer.Exit(code=EXIT_INVALID_INPUT)


def _load_artefact(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        _fail("Input Error", f"File not found: {path}")
    except (OSError, UnicodeDecodeError) as e:
        _fail("Input Error", f"Could not read {path}: {e}")
    except json.JSONDecodeError as e:
        _fail("Input Error", f"{path} is not valid JSON: {e}")


def _service(config_path: Optional[Path]) -> TowerService:
    try:
        return TowerService(config=load_tower_config(config_path))
    except TowerConfigError as e:
        _fail("Configuration Error", str(e))


def _render(result: dict[str, Any], title: str) -> None:
    verdict = str(result.get("verdict", "?"))
    style = VERDICT_STYLES.get(verdict, "white")

    lines = [f"[bold {style}]{verdict}[/]"]
    for key in ("action", "reason_code", "confidence", "score", "label"):
        if result.get(key) is not None:
            lines.append(f"{key}: {result[key]}")
    if "delivered" in result:
        lines.append(f"delivered: {result['delivered']} / requested: {result['requested']}")
    if result.get("gaps"):
        lines.append(f"gaps: {', '.join(result['gaps'])}")
    for key in ("rationale", "explanation", "reason", "detail"):
        if result.get(key):
            lines.append(f"\n{escape(str(result[key]))}")
            break
    stop_reason = result.get("stop_reason")
    if stop_reason:
        lines.append(f"\n[red]stop_reason:[/] {escape(stop_reason['code'])}: {escape(stop_reason['message'])}")

    console.print(Panel("\n".join(lines), title=title, border_style=style))

    changes = result.get("suggested_changes") or []
    if changes and isinstance(changes[0], dict):
        table = Table(title="Suggested changes")
        table.add_column("Type", style="cyan")
        table.add_column("Field", style="white")
        table.add_column("From", style="yellow")
        table.add_column("To", style="green")
        table.add_column("Reason", style="dim")
        for change in changes:
            table.add_row(
                change["type"],
                change["field"],
                str(change.get("from")),
                str(change.get("to")),
                change.get("reason", ""),
            )
        console.print(table)
    elif changes:
        for change in changes:
            console.print(f"  • {change}")


def _judge(
    path: Path,
    as_json: bool,
    config_path: Optional[Path],
    title: str,
    pick: Callable[[TowerService], Callable[[Any], dict[str, Any]]],
) -> None:
    payload = _load_artefact(path)
    service = _service(config_path)
    try:
        result = pick(service)(payload)
    except InvalidArtefactError as e:
        issues = "\n".join(
            f"  {'.'.join(str(p) for p in issue.get('loc', ()))}: {issue.get('msg')}"
            for issue in e.issues
        )
        _fail("Invalid Artefact", escape(f"{e}\n{issues}" if issues else str(e)))
    except TowerError as e:
        _fail("Invalid Artefact", escape(str(e)))

    if as_json:
        typer.echo(json.dumps(result, indent=2))
    else:
        _render(result, title)


FILE_ARG = typer.Argument(..., help="Path to a JSON artefact")
JSON_OPT = typer.Option(False, "--json", help="Print the raw result as JSON")
CONFIG_OPT = typer.Option(None, "--config", "-c", help="Path to a tower.yaml")


# =========================================================================
# Commands
# =========================================================================


@app.command()
def verdict(
    file: Path = FILE_ARG,
    as_json: bool = JSON_OPT,
    config: Optional[Path] = CONFIG_OPT,
):
    """Judge a leads_list artefact."""
    _judge(file, as_json, config, "Leads List Verdict", lambda s: s.tower_verdict)


@app.command()
def mission(
    file: Path = FILE_ARG,
    as_json: bool = JSON_OPT,
    config: Optional[Path] = CONFIG_OPT,
):
    """Judge a mission snapshot ({success, snapshot})."""
    _judge(file, as_json, config, "Mission Judgement", lambda s: s.judge_mission)


@app.command()
def factory(
    file: Path = FILE_ARG,
    as_json: bool = JSON_OPT,
    config: Optional[Path] = CONFIG_OPT,
):
    """Judge a factory step against the scrap-rate rubric."""
    _judge(file, as_json, config, "Factory Rubric", lambda s: s.judge_factory)


@app.command()
def evidence(
    file: Path = FILE_ARG,
    as_json: bool = JSON_OPT,
    config: Optional[Path] = CONFIG_OPT,
):
    """Check evidence quality for a set of verified leads."""
    _judge(file, as_json, config, "Evidence Quality", lambda s: s.judge_evidence)


@app.command()
def evaluate(
    file: Path = FILE_ARG,
    as_json: bool = JSON_OPT,
    config: Optional[Path] = CONFIG_OPT,
):
    """Judge any artefact, dispatching on its artefact_type."""
    _judge(file, as_json, config, "Evaluation", lambda s: s.evaluate)


@app.command()
def info(config: Optional[Path] = CONFIG_OPT):
    """Show the effective configuration."""
    try:
        cfg = load_tower_config(config)
    except TowerConfigError as e:
        _fail("Configuration Error", str(e))
        return

    table = Table(title="Tower - Effective Configuration")
    table.add_column("Section", style="cyan")
    table.add_column("Setting", style="white")
    table.add_column("Value", style="green")
    for section, values in cfg.model_dump().items():
        for key, value in values.items():
            table.add_row(section, key, str(value))
    console.print(table)


if __name__ == "__main__":
    app()
