"""Thin CLI wrapper for spark_imagegen.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
import tempfile
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from spark_imagegen import __version__
from spark_imagegen.batch.service import (
    build_targets,
    clean_targets,
    list_owned_resources,
    use_tag,
)
from spark_imagegen.builds.context import BuildInputError, resolve_build_input
from spark_imagegen.config import Settings, get_settings, print_settings_json
from spark_imagegen.openshift.client import (
    NotLoggedInError,
    PlatformClient,
    PlatformUnavailableError,
    get_client,
)
from spark_imagegen.targets.catalog import TargetName
from spark_imagegen.types import BatchResult, BuildMode, CleanScope, RunOptions

app = typer.Typer(
    name="spark-imagegen",
    help="Spark Image Generator - complete radanalytics images on OpenShift",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"spark-imagegen version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Spark Image Generator - complete radanalytics images on OpenShift."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _configure_logging(settings: Settings, verbose: bool) -> None:
    package_logger = logging.getLogger("spark_imagegen")
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        package_logger.addHandler(
            RichHandler(console=err_console, show_path=False, show_time=False)
        )
    package_logger.setLevel(logging.DEBUG if verbose else settings.log_level)


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]Error: {escape(message)}[/red]")
    return typer.Exit(code=1)


def _connect(settings: Settings) -> PlatformClient:
    """Create a platform client and check the login once, up front."""
    client = get_client(settings)
    try:
        user = client.whoami()
    except NotLoggedInError as e:
        raise _fail(e.message) from None
    logger.debug("Logged in as %s", user)
    return client


def _print_summary(batch: BatchResult, verbose: bool = False) -> None:
    for result in batch.results:
        if result.log:
            console.print()
            console.print(f"[bold]Logs for {result.target}:[/bold]")
            console.print(result.log, markup=False, highlight=False)

    sections = [
        ("Succeeded", "green", batch.succeeded),
        ("Failed", "red", batch.failed),
        ("Ignored (unknown targets)", "yellow", batch.ignored),
    ]
    for title, color, names in sections:
        if not names:
            continue
        console.print()
        console.print(f"[bold {color}]{title}:[/bold {color}]")
        for name in names:
            result = batch.get(name)
            line = f"  {name}"
            if result is not None and result.message:
                line += f": {result.message}"
            elif result is not None and verbose and result.details:
                pairs = ", ".join(f"{k}={v}" for k, v in result.details.items())
                line += f" ({pairs})"
            console.print(escape(line))


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
        return

    namespace_display = settings.namespace or "(current project)"
    work_dir_display = str(settings.work_dir) if settings.work_dir else "(system default)"
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Platform:[/bold]")
    console.print(f"  oc binary:           {settings.oc_binary}")
    console.print(f"  Namespace:           {namespace_display}")
    console.print(f"  Ownership label:     {settings.owner_label}")
    console.print()
    console.print("[bold]Builds:[/bold]")
    console.print(f"  s2i binary:          {settings.s2i_binary}")
    console.print(f"  Default tag:         {settings.default_tag}")
    console.print(f"  Features:            {', '.join(settings.features) or '(none)'}")
    console.print(f"  Work directory:      {work_dir_display}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Log level:           {settings.log_level}")
    console.print(f"  Download timeout:    {settings.download_timeout}")


@app.command()
def build(
    spark: Annotated[
        str | None,
        typer.Argument(
            help="Spark archive: file, directory or URL", show_default=False
        ),
    ] = None,
    targets: Annotated[
        list[str] | None,
        typer.Argument(help="Targets to build (default: all)", show_default=False),
    ] = None,
    local: Annotated[
        bool,
        typer.Option("--local", "-l", help="Build locally with s2i"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show build logs and debug output"),
    ] = False,
    tag: Annotated[
        str | None,
        typer.Option("--tag", "-t", help="Destination tag (default: complete)"),
    ] = None,
) -> None:
    """Complete images from a Spark distribution.

    Reconciles each target's binary build configuration and runs a build
    with the Spark archive. With --local, builds images with s2i instead.
    """
    settings = get_settings()
    _configure_logging(settings, verbose)

    if spark is None:
        raise _fail("build requires a SPARK archive, directory or URL")

    mode = BuildMode.LOCAL if local else BuildMode.REMOTE
    client = None if local else _connect(settings)

    if settings.work_dir is not None:
        settings.work_dir.mkdir(parents=True, exist_ok=True)

    with tempfile.TemporaryDirectory(
        prefix="spark_imagegen_", dir=settings.work_dir
    ) as tmp:
        try:
            context = resolve_build_input(
                spark, Path(tmp), timeout=settings.download_timeout
            )
        except BuildInputError as e:
            raise _fail(str(e)) from None

        options = RunOptions(
            tag=tag or settings.default_tag,
            verbose=verbose,
            mode=mode,
            context_dir=context.directory,
        )
        try:
            batch = build_targets(client, targets, options, settings)
        except PlatformUnavailableError as e:
            raise _fail(e.message) from None

    _print_summary(batch, verbose)


@app.command()
def clean(
    scope: Annotated[
        str | None,
        typer.Argument(
            help="What to clean: build, imagestream or all", show_default=False
        ),
    ] = None,
    targets: Annotated[
        list[str] | None,
        typer.Argument(help="Targets to clean (default: all)", show_default=False),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug output"),
    ] = False,
) -> None:
    """Delete objects created by this tool.

    'build' removes build configurations and builds, 'imagestream' resets
    image streams to the published complete image, 'all' does both.
    """
    settings = get_settings()
    _configure_logging(settings, verbose)

    valid = ", ".join(s.value for s in CleanScope)
    if scope is None:
        raise _fail(f"clean requires one of: {valid}")
    try:
        clean_scope = CleanScope(scope)
    except ValueError:
        raise _fail(f"Invalid clean target: {scope} (valid: {valid})") from None

    client = _connect(settings)
    try:
        batch = clean_targets(client, clean_scope, targets, settings)
    except PlatformUnavailableError as e:
        raise _fail(e.message) from None

    _print_summary(batch, verbose)


@app.command("list")
def list_resources() -> None:
    """List all objects labeled as created by this tool."""
    settings = get_settings()
    _configure_logging(settings, verbose=False)

    client = _connect(settings)
    try:
        resources = list_owned_resources(client, settings)
    except PlatformUnavailableError as e:
        raise _fail(e.message) from None

    if not resources:
        console.print(f"[yellow]No resources labeled {settings.owner_label}[/yellow]")
        return

    table = Table(show_edge=False, box=None)
    table.add_column("KIND")
    table.add_column("NAME")
    table.add_column("TARGET")
    for r in resources:
        table.add_row(r.kind, r.name, r.owner)
    console.print(table)


@app.command()
def use(
    args: Annotated[
        list[str] | None,
        typer.Argument(
            metavar="[TAG] [TARGETS]...",
            help="Tag to use, followed by targets (default: all)",
            show_default=False,
        ),
    ] = None,
    defaults: Annotated[
        bool,
        typer.Option("--defaults", "-d", help="Use each target's default tag"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show written references"),
    ] = False,
) -> None:
    """Point templates and config maps at an image stream tag.

    Either give a TAG or -d for the default tags (2.3-latest for
    openshift-spark images, stable for templates), not both.
    """
    settings = get_settings()
    _configure_logging(settings, verbose)

    args = list(args or [])
    tag: str | None
    if defaults:
        known = {name.value for name in TargetName}
        if args and args[0] not in known:
            raise _fail(f"-d and a TAG ({args[0]}) are mutually exclusive")
        tag, names = None, args
    else:
        if not args:
            raise _fail("use requires a TAG or -d")
        tag, names = args[0], args[1:]

    client = _connect(settings)
    try:
        batch = use_tag(client, names, tag, settings)
    except PlatformUnavailableError as e:
        raise _fail(e.message) from None

    _print_summary(batch, verbose)


__all__ = ["app"]
