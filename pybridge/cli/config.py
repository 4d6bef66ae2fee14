"""PyBridge config command - Configuration management."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax

from pybridge.cli.error_handler import ConfigurationError, InvalidArgumentError, handle_errors
from pybridge.cli.exit_codes import ExitCode
from pybridge.cli.output import print_result, print_table

app = typer.Typer(help="Manage PyBridge configuration.")
console = Console()

SECTIONS = ("interpreter", "bridge", "logging")


@app.command("show")
@handle_errors
def show_config(
    section: Optional[str] = typer.Argument(
        None,
        help="Configuration section to show (interpreter, bridge, logging).",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, yaml, json).",
    ),
) -> None:
    """Show current configuration.

    Example:
        pybridge config show
        pybridge config show bridge
        pybridge config show --format yaml
    """
    from pybridge.config import _config_to_dict, export_config_json, export_config_yaml, get_config

    config = get_config()

    if format == "yaml":
        console.print(Syntax(export_config_yaml(config), "yaml", theme="monokai"))
        return
    elif format == "json":
        console.print(Syntax(export_config_json(config), "json", theme="monokai"))
        return
    elif format != "table":
        raise InvalidArgumentError(f"Unknown format: {format}")

    if section is not None and section not in SECTIONS:
        raise InvalidArgumentError(
            f"Unknown section: {section}",
            details={"sections": ", ".join(SECTIONS)},
        )

    data = _config_to_dict(config)
    console.print(f"[dim]Config directory: {data['config_dir']}[/dim]")

    for sec in [section] if section else SECTIONS:
        rows = [
            {"key": key, "value": "" if value is None else value}
            for key, value in data[sec].items()
        ]
        print_table(
            rows,
            ["key", "value"],
            title=sec.capitalize(),
            column_styles={"key": "cyan", "value": "green"},
            console_instance=console,
        )
        console.print()


@app.command("set")
@handle_errors
def set_config(
    key: str = typer.Argument(
        ...,
        help="Configuration key (format: section.key, e.g., interpreter.python).",
    ),
    value: str = typer.Argument(
        ...,
        help="Value to set ('none' clears optional values).",
    ),
) -> None:
    """Set a configuration value.

    Example:
        pybridge config set interpreter.python /usr/bin/python3.12
        pybridge config set bridge.request_timeout 30
        pybridge config set bridge.wait_for_ready true
    """
    from pybridge.config import clear_config_cache, default_config_path, set_config_value

    if "." not in key:
        raise InvalidArgumentError("Key must be in format: section.key")

    section, config_key = key.split(".", 1)
    config_path = default_config_path()

    try:
        set_config_value(section, config_key, value, config_path)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    clear_config_cache()
    console.print(f"[green]✓[/green] Set {section}.{config_key} = {value}")


@app.command("init")
@handle_errors
def init_config(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration.",
    ),
    interactive: bool = typer.Option(
        False,
        "--interactive/--no-interactive",
        "-i/-I",
        help="Prompt for the most common settings.",
    ),
) -> None:
    """Initialize PyBridge configuration.

    Example:
        pybridge config init
        pybridge config init --interactive
        pybridge config init --force
    """
    from pybridge.config import PyBridgeConfig, default_config_path, save_config

    config_path = default_config_path()

    if config_path.exists() and not force:
        console.print(f"[yellow]Configuration already exists at {config_path}[/yellow]")
        console.print("Use --force to overwrite")
        raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    config = PyBridgeConfig(config_dir=config_path.parent)

    if interactive:
        console.print("[bold cyan]Interpreter[/bold cyan]")
        config.interpreter.python = typer.prompt("  Python executable", default=config.interpreter.python)
        cwd = typer.prompt("  Working directory (empty for current)", default="", show_default=False)
        config.interpreter.cwd = Path(cwd) if cwd else None
        config.interpreter.use_venv = typer.confirm(
            "  Prefer a venv found above the working directory?",
            default=config.interpreter.use_venv,
        )

        console.print()
        console.print("[bold cyan]Logging[/bold cyan]")
        config.logging.level = typer.prompt("  Log level", default=config.logging.level).upper()

    save_config(config, config_path)
    config_path.chmod(0o600)

    console.print()
    print_result(True, "Configuration initialized", {"path": config_path}, console)


@app.command("path")
def config_path() -> None:
    """Show configuration file path.

    Example:
        pybridge config path
    """
    from pybridge.config import default_config_path

    config_file_path = default_config_path()
    console.print(f"[bold]Config directory:[/bold] {config_file_path.parent}")
    console.print(f"[bold]Config file:[/bold] {config_file_path}")
    console.print(f"[bold]Exists:[/bold] {config_file_path.exists()}")


@app.command("validate")
def validate_config() -> None:
    """Validate current configuration.

    Example:
        pybridge config validate
    """
    from pybridge.config import get_config, validate_config as do_validate

    console.print("[bold]Validating configuration...[/bold]")
    console.print()

    issues = do_validate(get_config())

    all_passed = True
    for issue in issues:
        if issue.severity == "error":
            status = "[red]✗[/red]"
            all_passed = False
        else:
            status = "[yellow]![/yellow]"
        console.print(f"  {status} [{issue.severity.upper()}] {issue.field}: {issue.message}")

    console.print()
    if all_passed:
        console.print("[green]Configuration is valid[/green]")
    else:
        console.print("[red]Configuration has errors[/red]")
        raise typer.Exit(code=ExitCode.CONFIGURATION_ERROR)
