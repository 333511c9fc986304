"""SkillGate command-line interface."""

from __future__ import annotations

import json
import logging
import re
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

import regex
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .activator import SkillActivator
from .augmenter import SkillContentStore
from .config import CLAUDE_DIR, SkillGateConfig, discover_project_root, load_config
from .context import ContextGatherer
from .exceptions import ContentLookupError, SkillGateError
from .matcher import CONTENT_FLAGS, INTENT_FLAGS
from .models import Action, ActivationResult, Enforcement
from .registry import RuleStore

app = typer.Typer(
    name="skillgate",
    help="SkillGate: prompt-time skill activation and guardrails for AI coding agents",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

HOOK_EVENT_NAME = "UserPromptSubmit"
BLOCKED_EXIT_CODE = 2

ENFORCEMENT_STYLES = {
    Enforcement.BLOCK: "red",
    Enforcement.WARN: "yellow",
    Enforcement.SUGGEST: "green",
}


def _get_version_string() -> str:
    """Get version string from package metadata or pyproject.toml."""
    try:
        return get_version("skillgate")
    except PackageNotFoundError:
        pass

    pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
    if pyproject_path.exists():
        content = pyproject_path.read_text()
        match = re.search(r'version\s*=\s*["\']([^"\']+)["\']', content)
        if match:
            return f"{match.group(1)} (development)"

    return "unknown"


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"SkillGate version {_get_version_string()}")
        raise typer.Exit


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False, show_time=False)],
        force=True,
    )


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log debug output to stderr",
    ),
) -> None:
    """SkillGate: prompt-time skill activation and guardrails for AI coding agents."""
    _configure_logging(verbose)


def _resolve_config(
    project: Path | None,
    config_path: Path | None,
    rules: Path | None,
    skills_dir: Path | None,
) -> tuple[Path, SkillGateConfig]:
    """Load configuration and apply command-line overrides."""
    root = project or discover_project_root()
    config = load_config(root, config_path)
    overrides = {}
    if rules is not None:
        overrides["rules_file"] = rules
    if skills_dir is not None:
        overrides["skills_dir"] = skills_dir
    if overrides:
        config = config.model_copy(update=overrides).resolve_paths(Path.cwd())
    return root, config


def _hook_output(result: ActivationResult) -> dict:
    """Translate an activation result into UserPromptSubmit hook JSON."""
    if result.blocked:
        return {"decision": "block", "reason": result.message}
    if result.action == Action.NONE:
        return {}
    additional = "\n\n".join(part for part in (result.message, result.context) if part)
    if not additional:
        return {}
    return {
        "hookSpecificOutput": {
            "hookEventName": HOOK_EVENT_NAME,
            "additionalContext": additional,
        },
    }


@app.command()
def hook(
    project: Path | None = typer.Option(
        None,
        "--project",
        "-p",
        help="Project root (defaults to CLAUDE_PROJECT_DIR or the nearest .claude parent)",
    ),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path"),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Block the prompt when rules cannot be loaded",
    ),
) -> None:
    """Run as a UserPromptSubmit hook: read hook JSON on stdin, write hook JSON."""
    try:
        payload = json.loads(sys.stdin.read() or "{}")
    except json.JSONDecodeError as e:
        err_console.print(f"[red]Error:[/red] Invalid hook payload: {e}")
        typer.echo("{}")
        return
    if not isinstance(payload, dict):
        payload = {}

    try:
        cwd = Path(str(payload["cwd"])) if payload.get("cwd") else None
        root = project or discover_project_root(cwd)
        root, config = _resolve_config(root, config_path, None, None)
        activator = SkillActivator.from_config(config)
    except SkillGateError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        if strict:
            raise typer.Exit(BLOCKED_EXIT_CODE) from e
        typer.echo("{}")
        return

    gatherer = ContextGatherer.from_hook_payload(
        payload,
        project_root=root,
        include_prompt_references=config.include_prompt_references,
        max_file_size_bytes=config.max_file_size_bytes,
        max_files=config.max_visible_files,
        read_workers=config.read_workers,
    )
    result = activator.activate(gatherer.gather())
    typer.echo(json.dumps(_hook_output(result)))


@app.command()
def activate(
    prompt: str = typer.Argument(..., help="Prompt text to evaluate"),
    files: list[Path] = typer.Option(
        [],
        "--file",
        "-f",
        help="File in view (can be repeated)",
    ),
    project: Path | None = typer.Option(None, "--project", "-p", help="Project root"),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path"),
    rules: Path | None = typer.Option(None, "--rules", "-r", help="Rules file override"),
    skills_dir: Path | None = typer.Option(None, "--skills-dir", help="Skills directory override"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Evaluate a prompt and show matched skills and the resulting output."""
    try:
        root, config = _resolve_config(project, config_path, rules, skills_dir)
        activator = SkillActivator.from_config(config)
    except SkillGateError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    gatherer = ContextGatherer(
        prompt,
        file_paths=[f.resolve() for f in files],
        project_root=root,
        include_prompt_references=config.include_prompt_references,
        max_file_size_bytes=config.max_file_size_bytes,
        max_files=config.max_visible_files,
        read_workers=config.read_workers,
    )
    result = activator.activate(gatherer.gather())

    if as_json:
        typer.echo(result.model_dump_json(indent=2))
    else:
        _print_result(result)

    if result.blocked:
        raise typer.Exit(BLOCKED_EXIT_CODE)


def _print_result(result: ActivationResult) -> None:
    if result.matches:
        table = Table(title="Matched Skills")
        table.add_column("Skill", style="cyan")
        table.add_column("Priority")
        table.add_column("Enforcement")
        table.add_column("Matched Via")
        by_name = {m.skill_name: m for m in result.matches}
        for name in result.ordered_skills:
            match = by_name[name]
            style = ENFORCEMENT_STYLES[match.rule.enforcement]
            table.add_row(
                name,
                match.rule.priority.value,
                f"[{style}]{match.rule.enforcement.value}[/{style}]",
                ", ".join(sorted(v.value for v in match.matched_via)),
            )
        console.print(table)

    console.print(f"[bold]Action:[/bold] {result.action.value}")
    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")

    if result.message:
        color = "red" if result.blocked else "yellow"
        console.print(f"\n[{color}]{escape(result.message)}[/{color}]")

    if result.prompt is not None and result.action != Action.NONE:
        console.print("\n[bold]Augmented prompt:[/bold]")
        console.print(result.prompt, markup=False, highlight=False)


@app.command()
def check(
    project: Path | None = typer.Option(None, "--project", "-p", help="Project root"),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path"),
    rules: Path | None = typer.Option(None, "--rules", "-r", help="Rules file override"),
    skills_dir: Path | None = typer.Option(None, "--skills-dir", help="Skills directory override"),
) -> None:
    """Validate the rules file, its patterns and skill content files."""
    try:
        _root, config = _resolve_config(project, config_path, rules, skills_dir)
        store = RuleStore.load(Path(config.rules_file))
    except SkillGateError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] {config.rules_file} is valid ({len(store)} rules)")

    content = SkillContentStore(config.skills_dir)
    problems = 0
    for rule in store.rules():
        try:
            content.load(rule.name)
        except ContentLookupError as e:
            problems += 1
            console.print(f"[red]✗[/red] {escape(str(e))}")

        patterns = []
        if rule.prompt_triggers:
            patterns += [(p, INTENT_FLAGS) for p in rule.prompt_triggers.intent_patterns]
        if rule.file_triggers:
            patterns += [(p, CONTENT_FLAGS) for p in rule.file_triggers.content_patterns]
        for pattern, flags in patterns:
            try:
                regex.compile(pattern, flags)
            except regex.error as e:
                problems += 1
                console.print(f"[red]✗[/red] {rule.name}: invalid pattern {escape(repr(pattern))}: {e}")

    if problems:
        console.print(f"\n[red]{problems} problem(s) found[/red]")
        raise typer.Exit(1)

    console.print("[green]✓[/green] All skills have content and valid patterns")


@app.command(name="rules")
def list_rules(
    project: Path | None = typer.Option(None, "--project", "-p", help="Project root"),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path"),
    rules: Path | None = typer.Option(None, "--rules", "-r", help="Rules file override"),
) -> None:
    """List rules in declaration order."""
    try:
        _root, config = _resolve_config(project, config_path, rules, None)
        store = RuleStore.load(Path(config.rules_file))
    except SkillGateError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    table = Table(title="Skill Rules")
    table.add_column("Skill", style="cyan")
    table.add_column("Type")
    table.add_column("Enforcement")
    table.add_column("Priority")
    table.add_column("Triggers")

    for rule in store.rules():
        triggers = []
        if rule.prompt_triggers:
            triggers.append(f"{len(rule.prompt_triggers.keywords)} keywords")
            triggers.append(f"{len(rule.prompt_triggers.intent_patterns)} intents")
        if rule.file_triggers:
            triggers.append(f"{len(rule.file_triggers.path_patterns)} paths")
            triggers.append(f"{len(rule.file_triggers.content_patterns)} contents")
        style = ENFORCEMENT_STYLES[rule.enforcement]
        table.add_row(
            rule.name,
            rule.kind.value,
            f"[{style}]{rule.enforcement.value}[/{style}]",
            rule.priority.value,
            ", ".join(triggers),
        )

    console.print(table)


STARTER_RULES = {
    "version": "1.0",
    "skills": {
        "database-guard": {
            "type": "guardrail",
            "enforcement": "block",
            "priority": "critical",
            "description": "Destructive schema changes need a migration and review",
            "promptTriggers": {
                "keywords": ["drop table", "truncate table"],
                "intentPatterns": [r"(delete|remove|wipe).*(all|every).*(rows|records|data)"],
            },
        },
        "backend-guidelines": {
            "type": "domain",
            "enforcement": "suggest",
            "priority": "high",
            "description": "Conventions for API endpoints and services",
            "promptTriggers": {
                "keywords": ["endpoint", "route", "controller"],
                "intentPatterns": [r"(create|add|implement).*(endpoint|route|api)"],
            },
            "fileTriggers": {
                "pathPatterns": ["src/api/**/*.py", "backend/**/*.py"],
                "contentPatterns": [r"@(app|router)\.(get|post|put|delete)\("],
                "pathExclusions": ["**/test_*.py", "**/tests/**"],
            },
        },
    },
}

STARTER_SKILLS = {
    "database-guard": """\
---
name: database-guard
description: Guardrail for destructive database operations
---

# Database Guard

Destructive operations on shared databases are not performed from a prompt.

- Write a reversible migration instead of dropping or truncating tables.
- Take a backup and get a review before running it against shared data.
""",
    "backend-guidelines": """\
---
name: backend-guidelines
description: Conventions for API endpoints and services
---

# Backend Guidelines

- Keep route handlers thin; put business logic in services.
- Validate request bodies with explicit schemas.
- Return consistent error payloads and status codes.
- Add a test for every new endpoint.
""",
}


@app.command()
def init(
    path: Path = typer.Option(
        Path.cwd(),
        "--path",
        "-p",
        help="Project directory to initialize",
    ),
) -> None:
    """Create a starter skill-rules.json and example skills."""
    skills_path = path / CLAUDE_DIR / "skills"
    rules_path = skills_path / "skill-rules.json"

    if rules_path.exists():
        console.print(f"[yellow]Warning:[/yellow] Rules file exists at {rules_path}")
        if not typer.confirm("Overwrite existing files?"):
            console.print("Initialization cancelled")
            return

    try:
        skills_path.mkdir(parents=True, exist_ok=True)
        rules_path.write_text(json.dumps(STARTER_RULES, indent=2) + "\n", encoding="utf-8")
        for name, body in STARTER_SKILLS.items():
            skill_dir = skills_path / name
            skill_dir.mkdir(exist_ok=True)
            (skill_dir / "SKILL.md").write_text(body, encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error:[/red] Failed to create skills directory: {e}")
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] Skills initialized at {skills_path}")
    console.print("Created files:")
    console.print("  • skill-rules.json (activation rules)")
    for name in STARTER_SKILLS:
        console.print(f"  • {name}/SKILL.md")
    console.print("\nNext steps:")
    console.print(f"  1. Edit triggers in {rules_path}")
    console.print("  2. Run 'skillgate check' to validate")
    console.print("  3. Register 'skillgate hook' as a UserPromptSubmit hook")


def main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
