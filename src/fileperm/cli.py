"""
CLI entry point for FilePerm.

This module provides the Typer-based command-line interface for operators.

Commands:
    validate-config  Validate a configuration file
    levels           Show levels, the groups granting them and defaults
    add-resource     Register a resource, optionally with a level
    get-level        Show the explicit level of a resource
    set-level        Set the explicit level of a resource
    remove-level     Remove the explicit level of a resource
    check-access     Check whether groups may access a resource
    reconcile        Find and repair orphaned levels

Architecture Note:
    The CLI is thin: it parses arguments and delegates to FilePermService
    and the reconcile module, so the same logic is usable from a host.
"""

import json
import logging
import traceback
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from fileperm import __version__
from fileperm.config import ConfigHolder, load_config
from fileperm.errors import FilePermError
from fileperm.reconcile import apply_fix, find_orphans, parse_fix
from fileperm.schema import AccessSurface
from fileperm.service import FilePermService
from fileperm.store import FilePermDB

app = typer.Typer(
    name="fileperm",
    help="Manage and check permission levels on classified files.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output; logs go to stderr
console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = Path("fileperm.yaml")
DEFAULT_DB = Path("fileperm.db")

ConfigOption = Annotated[
    Path,
    typer.Option(
        "--config",
        "-c",
        help="Path to the configuration YAML file.",
        resolve_path=True,
    ),
]
DbOption = Annotated[
    Path,
    typer.Option(
        "--db",
        help="Path to the SQLite database.",
        resolve_path=True,
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]fileperm[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Enable debug logging.",
        ),
    ] = False,
) -> None:
    """
    FilePerm - Level-based access control for classified files.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _open_service(config_path: Path, db_path: Path) -> FilePermService:
    """Load configuration and open the database, exiting on failure."""
    if not config_path.exists():
        console.print(f"[red]Configuration not found: {config_path}[/red]")
        raise typer.Exit(code=1)
    try:
        holder = ConfigHolder.from_file(config_path)
        return FilePermService(holder, FilePermDB(db_path))
    except FilePermError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)


@app.command("validate-config")
def validate_config_command(
    config_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the configuration YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output results in JSON format.",
        ),
    ] = False,
) -> None:
    """
    Validate a configuration file.

    Exits with code 1 when any check fails. Structural errors mean every
    access check is denied until they are fixed.

    Example:
        $ fileperm validate-config fileperm.yaml
    """
    config = load_config(config_path)
    valid = not config.errors

    if json_output:
        print(json.dumps({
            "valid": valid,
            "fail_closed": config.invalid,
            "errors": config.errors,
        }, indent=2))
    elif valid:
        console.print(f"[green]✓[/green] Configuration is valid: {config_path}")
    else:
        if config.invalid:
            console.print("[red]✗ Configuration is invalid; all access will be denied[/red]")
        else:
            console.print("[yellow]! Configuration has unusable defaults[/yellow]")
        for error in config.errors:
            console.print(f"  [red]• {error}[/red]")

    raise typer.Exit(code=0 if valid else 1)


@app.command()
def levels(config_path: ConfigOption = DEFAULT_CONFIG) -> None:
    """
    Show configured levels with the groups that grant them.

    Example:
        $ fileperm levels --config fileperm.yaml
    """
    if not config_path.exists():
        console.print(f"[red]Configuration not found: {config_path}[/red]")
        raise typer.Exit(code=1)

    holder = ConfigHolder.from_file(config_path)
    config = holder.config
    level_groups = holder.policy.grants.level_group_map()

    table = Table(show_header=True, header_style="bold")
    table.add_column("Level", style="cyan")
    table.add_column("Granted to")
    table.add_column("Default for")

    for level in holder.policy.catalog.levels():
        defaults = [f"ns {ns}" for ns, value in config.namespace_defaults.items() if value == level]
        if config.default_level == level:
            defaults.insert(0, "global")
        table.add_row(
            level,
            ", ".join(level_groups.get(level, [])) or "[dim]-[/dim]",
            ", ".join(defaults) or "[dim]-[/dim]",
        )

    console.print(table)
    if config.invalid:
        console.print("[red]Configuration is invalid; all access is denied[/red]")


@app.command("add-resource")
def add_resource(
    namespace: Annotated[int, typer.Argument(help="Namespace id.")],
    key: Annotated[str, typer.Argument(help="Resource key within the namespace.")],
    level: Annotated[
        Optional[str],
        typer.Option("--level", "-l", help="Level to assign (defaults apply if omitted)."),
    ] = None,
    config_path: ConfigOption = DEFAULT_CONFIG,
    db_path: DbOption = DEFAULT_DB,
) -> None:
    """
    Register a resource, assigning a level once it is committed.

    Example:
        $ fileperm add-resource 6 Report.pdf --level internal
    """
    service = _open_service(config_path, db_path)
    try:
        resolved = service.resolve_upload_level(level, namespace, interactive=False)
        with service.db.transaction():
            resource_id = service.db.create_resource(namespace, key)
            service.assign_on_create(namespace, key, resolved)
        console.print(f"Registered resource [bold]{resource_id}[/bold] ({namespace}:{key})")
        stored = service.get_level(resource_id)
        console.print(f"  Level: {stored or '[dim](none)[/dim]'}")
    except FilePermError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    finally:
        service.db.close()


@app.command("get-level")
def get_level(
    resource_id: Annotated[int, typer.Argument(help="The resource id.")],
    config_path: ConfigOption = DEFAULT_CONFIG,
    db_path: DbOption = DEFAULT_DB,
) -> None:
    """
    Show the explicit level of a resource.

    Example:
        $ fileperm get-level 42
    """
    service = _open_service(config_path, db_path)
    try:
        level = service.get_level(resource_id)
        console.print(level if level is not None else "[dim](none)[/dim]")
    finally:
        service.db.close()


@app.command("set-level")
def set_level(
    resource_id: Annotated[int, typer.Argument(help="The resource id.")],
    level: Annotated[str, typer.Argument(help="The level to assign.")],
    actor: Annotated[
        str,
        typer.Option("--actor", help="Who is making the change."),
    ] = "cli",
    config_path: ConfigOption = DEFAULT_CONFIG,
    db_path: DbOption = DEFAULT_DB,
) -> None:
    """
    Set the explicit level of a resource.

    Example:
        $ fileperm set-level 42 confidential --actor alice
    """
    service = _open_service(config_path, db_path)
    try:
        change = service.set_level(actor, resource_id, level)
        old = change.old_level or "(none)"
        console.print(f"[green]✓[/green] Resource {resource_id}: {old} → {change.new_level}")
    except FilePermError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    finally:
        service.db.close()


@app.command("remove-level")
def remove_level(
    resource_id: Annotated[int, typer.Argument(help="The resource id.")],
    config_path: ConfigOption = DEFAULT_CONFIG,
    db_path: DbOption = DEFAULT_DB,
) -> None:
    """
    Remove the explicit level of a resource.

    Example:
        $ fileperm remove-level 42
    """
    service = _open_service(config_path, db_path)
    try:
        service.remove_level(resource_id)
        console.print(f"[green]✓[/green] Resource {resource_id}: level removed")
    except FilePermError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    finally:
        service.db.close()


@app.command("check-access")
def check_access(
    resource_id: Annotated[int, typer.Argument(help="The resource id.")],
    namespace: Annotated[
        int,
        typer.Option("--namespace", "-n", help="Namespace of the resource."),
    ] = 6,
    groups: Annotated[
        Optional[list[str]],
        typer.Option("--group", "-g", help="A group of the user (repeatable)."),
    ] = None,
    surface: Annotated[
        AccessSurface,
        typer.Option("--surface", help="Access surface being checked."),
    ] = AccessSurface.PAGE_VIEW,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
    config_path: ConfigOption = DEFAULT_CONFIG,
    db_path: DbOption = DEFAULT_DB,
) -> None:
    """
    Check whether a user with the given groups may access a resource.

    Exits with code 1 on denial. The matched rule is logged with --verbose.

    Example:
        $ fileperm check-access 42 --group staff --surface raw_download
    """
    service = _open_service(config_path, db_path)
    user_groups = list(groups or [])
    service.group_lookup = lambda user: user_groups
    try:
        decision = service.check_access(None, resource_id, namespace, surface=surface)
    except FilePermError as e:
        if json_output:
            print(json.dumps({"error": True, **e.to_dict()}, indent=2, default=str))
        else:
            console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    finally:
        service.db.close()

    logger.debug("Resource %s matched %s", resource_id, decision.rule_matched)

    if json_output:
        print(json.dumps({
            "resource_id": resource_id,
            "allowed": decision.allowed,
            "reason": decision.reason,
            "surface": surface.value,
        }, indent=2))
    elif decision.allowed:
        console.print(f"[green]ALLOWED[/green] ({decision.reason})")
    else:
        console.print(f"[red]DENIED[/red] ({decision.reason})")

    raise typer.Exit(code=0 if decision.allowed else 1)


@app.command()
def reconcile(
    fix: Annotated[
        Optional[str],
        typer.Option("--fix", help="Replace an orphaned level. Format: old_level:new_level"),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Show full error tracebacks."),
    ] = False,
    config_path: ConfigOption = DEFAULT_CONFIG,
    db_path: DbOption = DEFAULT_DB,
) -> None:
    """
    Detect and optionally repair orphaned permission levels.

    A level is orphaned when it is stored on a resource but no longer
    configured.

    Example:
        $ fileperm reconcile
        $ fileperm reconcile --fix secret:confidential
    """
    service = _open_service(config_path, db_path)
    catalog = service.holder.policy.catalog
    try:
        console.print(f"Valid permission levels: {', '.join(catalog.levels())}")
        console.print()

        orphans = find_orphans(service.db, catalog)
        if not orphans:
            console.print("[green]No orphaned permission levels found.[/green]")
            raise typer.Exit(code=0)

        table = Table(show_header=True, header_style="bold")
        table.add_column("Resource", style="cyan", justify="right")
        table.add_column("Namespace", justify="right")
        table.add_column("Key")
        table.add_column("Level", style="red")
        for orphan in orphans:
            table.add_row(str(orphan.resource_id), str(orphan.namespace), orphan.key, orphan.level)
        console.print(f"Found {len(orphans)} orphaned permission level(s):")
        console.print(table)

        if fix is None:
            console.print()
            console.print("[dim]To repair, re-run with --fix old_level:new_level[/dim]")
            raise typer.Exit(code=0)

        old_level, new_level = parse_fix(fix)
        result = apply_fix(service.db, catalog, old_level, new_level)
        if not result.updated:
            console.print(f'No orphaned entries found with level "{old_level}". Nothing to fix.')
        else:
            console.print(
                f'[green]✓[/green] Updated {len(result.updated)} resource(s) '
                f'from "{old_level}" to "{new_level}"'
            )
    except typer.Exit:
        raise
    except (FilePermError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        if debug:
            console.print(f"[dim]{traceback.format_exc()}[/dim]")
        raise typer.Exit(code=1)
    finally:
        service.db.close()


if __name__ == "__main__":
    app()
