"""berthのコマンドラインインターフェース。"""

import time
from importlib.metadata import version as package_version
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from berth.config import BerthConfig
from berth.logging_config import setup_logging
from berth.models.app import ApplicationRecord
from berth.models.errors import BerthError, ExternalCommandError
from berth.services.lifecycle import LifecycleOrchestrator

app = typer.Typer(
    name="berth",
    help="Install, upgrade and delete docker-compose applications rendered from Jinja2 templates.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

_STATE_STYLES = {"STARTING": "magenta", "RUNNING": "cyan", "ERROR": "bold red"}

ValueFilesOption = Annotated[
    list[str] | None,
    typer.Option(
        "--value-files",
        "-v",
        help="Values file or x.y.z=value override. Can be repeated; later values win.",
    ),
]


def format_uptime(seconds: int) -> str:
    """経過秒数を `2d 3h` や `5m 10s` のような表記に変換する。"""
    seconds = max(seconds, 0)
    units = (("d", 86400), ("h", 3600), ("m", 60), ("s", 1))
    parts: list[str] = []
    for suffix, size in units:
        amount, seconds = divmod(seconds, size)
        if amount or (suffix == "s" and not parts):
            parts.append(f"{amount}{suffix}")
        if len(parts) == 2:
            break
    return " ".join(parts)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"berth {package_version('berth')}")
        raise typer.Exit()


def _orchestrator(ctx: typer.Context) -> LifecycleOrchestrator:
    config: BerthConfig = ctx.obj
    return LifecycleOrchestrator(config)


def _require_compose(orchestrator: LifecycleOrchestrator) -> None:
    if not orchestrator.is_compose_installed():
        err_console.print("[red]docker-compose is not installed. Please install it before using berth.[/red]")
        raise typer.Exit(1)


def _fail(error: BerthError) -> typer.Exit:
    err_console.print(str(error), style="red", markup=False, highlight=False)
    exit_code = error.exit_code if isinstance(error, ExternalCommandError) else 1
    return typer.Exit(exit_code or 1)


@app.callback()
def main(
    ctx: typer.Context,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Verbosity: TRACE, DEBUG, INFO, WARN or ERROR."),
    ] = None,
    always_pull: Annotated[
        bool,
        typer.Option("--always-pull", "-a", help="Pull images of every compose file before bringing it up."),
    ] = False,
    no_run: Annotated[
        bool,
        typer.Option("--no-run", help="Stage and render only; do not run docker-compose."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show the version and exit."),
    ] = False,
) -> None:
    """Manage docker-compose applications."""
    # 環境変数での指定をフラグ未指定時に潰さない
    overrides: dict[str, object] = {}
    if log_level is not None:
        overrides["log_level"] = log_level
    if always_pull:
        overrides["always_pull"] = True
    if no_run:
        overrides["no_run"] = True
    config = BerthConfig(**overrides)  # type: ignore[arg-type]
    try:
        setup_logging(config.log_level)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level") from e
    ctx.obj = config


@app.command("install")
def install(
    ctx: typer.Context,
    directory: Annotated[Path, typer.Argument(help="Template source directory.")],
    value_files: ValueFilesOption = None,
    app_id: Annotated[str | None, typer.Option("--id", "-i", help="Application id (generated when omitted).")] = None,
) -> None:
    """Install a docker-compose application from a template directory."""
    orchestrator = _orchestrator(ctx)
    _require_compose(orchestrator)
    try:
        record = orchestrator.install(directory, value_files or [], app_id=app_id)
    except BerthError as e:
        raise _fail(e) from e
    console.print(f"Installed [bold]{record.id}[/bold] ({record.app_name} {record.version})")


@app.command("upgrade")
def upgrade(
    ctx: typer.Context,
    app_id: Annotated[str, typer.Argument(help="Id of the application to upgrade.")],
    directory: Annotated[Path, typer.Argument(help="Template source directory.")],
    value_files: ValueFilesOption = None,
) -> None:
    """Rebuild an installed application; reuses the stored values when none are given."""
    orchestrator = _orchestrator(ctx)
    _require_compose(orchestrator)
    try:
        record = orchestrator.upgrade(app_id, directory, value_files or [])
    except BerthError as e:
        raise _fail(e) from e
    console.print(f"Upgraded [bold]{record.id}[/bold] ({record.app_name} {record.version})")


def _render_table(records: list[ApplicationRecord]) -> Table:
    table = Table(box=None, header_style="bold")
    for column in ("ID", "NAME", "VERSION", "STATE", "UPTIME"):
        table.add_column(column)
    now = int(time.time())
    for record in records:
        style = _STATE_STYLES.get(record.state, "")
        table.add_row(
            record.id,
            record.app_name,
            record.version,
            f"[{style}]{record.state}[/{style}]" if style else record.state,
            format_uptime(now - record.timestamp),
        )
    return table


@app.command("list")
def list_applications(
    ctx: typer.Context,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Print only application ids.")] = False,
) -> None:
    """List installed applications."""
    try:
        records = _orchestrator(ctx).list_applications()
    except BerthError as e:
        raise _fail(e) from e

    if quiet:
        for record in records:
            console.print(record.id, highlight=False)
        return
    console.print(_render_table(records))


@app.command("template")
def template(
    ctx: typer.Context,
    template_path: Annotated[Path, typer.Option("--template", "-t", help="Template file to render.")] = Path(),
    value_files: ValueFilesOption = None,
    output_file: Annotated[
        Path | None,
        typer.Option("--output-file", "-o", help="Write the result here instead of stdout."),
    ] = None,
) -> None:
    """Render a single template with the given values."""
    try:
        rendered = _orchestrator(ctx).template(template_path, value_files or [], output_file)
    except BerthError as e:
        raise _fail(e) from e
    if output_file is None:
        typer.echo(rendered, nl=not rendered.endswith("\n"))


@app.command("delete")
def delete(
    ctx: typer.Context,
    app_ids: Annotated[list[str] | None, typer.Option("--ids", "-i", help="Application ids to delete.")] = None,
    delete_all: Annotated[bool, typer.Option("--all", help="Delete every installed application.")] = False,
) -> None:
    """Bring down and remove applications (by id, or every one with --all)."""
    if app_ids and delete_all:
        raise typer.BadParameter("--ids cannot be combined with --all")
    orchestrator = _orchestrator(ctx)
    _require_compose(orchestrator)
    try:
        deleted = orchestrator.delete(app_ids, delete_all=delete_all)
    except BerthError as e:
        raise _fail(e) from e
    for app_id in deleted:
        console.print(f"Deleted [bold]{app_id}[/bold]")


# 短縮エイリアス
app.command("i", hidden=True)(install)
app.command("add", hidden=True)(install)
app.command("u", hidden=True)(upgrade)
app.command("update", hidden=True)(upgrade)
app.command("ls", hidden=True)(list_applications)
app.command("ps", hidden=True)(list_applications)
app.command("t", hidden=True)(template)
app.command("d", hidden=True)(delete)
app.command("uninstall", hidden=True)(delete)
