"""Entry-point for the Course Music Manager."""

from __future__ import annotations

import inspect
import logging
import threading
import time
import webbrowser
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich import box
from rich.console import Console
from rich.table import Table

from course_music.allocation import InvalidStrategyError, RegistryError, parse_strategy
from course_music.bootstrap import initialize_app
from course_music.logging_utils import DEFAULT_LOG_FORMAT, configure_logging, get_log_file_path
from course_music.services.library import CourseLibrary
from course_music.services.settings import SettingsStore
from course_music.services.store import RegistryStore
from course_music.ui.console import ConsoleUI
from course_music.ui.modern import ModernUI
from course_music.web import create_app
from course_music.web.server import _normalize_root_path, get_max_upload_bytes


LOGGER = logging.getLogger("course_music.cli")


cli = typer.Typer(add_completion=False, help="Course Music Manager commands")


def _prepare_logging(library_root: Path) -> None:
    log_file = get_log_file_path(library_root)
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    configure_logging(handlers=[file_handler, stream_handler])


class UIStyle(str, Enum):
    MODERN = "modern"
    CONSOLE = "console"

style_option = typer.Option(
    UIStyle.MODERN,
    "--style",
    "-s",
    help="Select the overview presentation style.",
    show_default=True,
)


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None)


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000


def _accepts_keyword(callable_obj: object, name: str) -> bool:
    parameters = inspect.signature(callable_obj).parameters
    if name in parameters:
        return True
    return any(parameter.kind is inspect.Parameter.VAR_KEYWORD for parameter in parameters.values())


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="COURSE_MUSIC_ROOT_PATH",
    ),
) -> None:
    """Run the web interface and JSON API."""

    app_config = initialize_app()
    _prepare_logging(app_config.library_root)

    store = RegistryStore(app_config)
    normalized_root = _normalize_root_path(root_path)
    app = create_app(store, config=app_config, root_path=normalized_root)

    config_kwargs = {}
    max_upload_bytes = get_max_upload_bytes()
    if max_upload_bytes > 0:
        if _accepts_keyword(uvicorn.Config.__init__, "limit_max_request_size"):
            config_kwargs["limit_max_request_size"] = max_upload_bytes
        else:
            LOGGER.warning(
                "Ignoring max upload size limit; uvicorn.Config does not support "
                "'limit_max_request_size'.",
            )

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
        **config_kwargs,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server

    browser_host = host
    if not browser_host or browser_host in {"0.0.0.0", "::"}:
        browser_host = "127.0.0.1"
    url = f"http://{browser_host}:{port}{normalized_root}/"

    def _open_browser_later() -> None:
        time.sleep(1.0)
        if not webbrowser.open(url, new=2, autoraise=True):
            LOGGER.info("Open %s in a browser to manage the library", url)

    threading.Thread(target=_open_browser_later, daemon=True).start()

    server.run()


@cli.command()
def overview(style: UIStyle = style_option) -> None:
    """Render every course and its slots using the chosen UI style."""

    config = initialize_app(clear_staging=False)
    _prepare_logging(config.library_root)

    library = CourseLibrary(config, RegistryStore(config))
    if style is UIStyle.MODERN:
        ui = ModernUI(library)
    else:
        ui = ConsoleUI(library)
    ui.run()


@cli.command()
def preview(
    count: int = typer.Option(..., "--count", "-n", min=0, help="Number of songs to place"),
    strategy: Optional[str] = typer.Option(
        None,
        "--strategy",
        help="round_robin, least_songs_first, random or original (default: saved setting)",
    ),
) -> None:
    """Show where COUNT new songs would go without touching the library."""

    config = initialize_app(clear_staging=False)
    default = SettingsStore(config).load().default_strategy
    try:
        resolved = parse_strategy(strategy, default=default)
    except InvalidStrategyError as error:
        raise typer.BadParameter(str(error), param_hint="--strategy") from error

    plan = CourseLibrary(config, RegistryStore(config)).preview(count, resolved)

    table = Table(title=f"Allocation preview ({plan.strategy.value})", box=box.ROUNDED)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Course", style="bold")
    table.add_column("Slot", justify="center")
    for index, placement in enumerate(plan, start=1):
        table.add_row(str(index), placement.course, "AB"[placement.slot])

    console = Console()
    console.print(table)
    console.print(f"Planned {len(plan)} of {plan.requested} song(s).")
    if plan.is_partial:
        console.print(f"[yellow]{plan.shortfall} song(s) exceed the remaining capacity.[/yellow]")


@cli.command()
def analyze(
    count: int = typer.Option(..., "--count", "-n", min=0, help="Number of songs to simulate"),
) -> None:
    """Compare the fairness of the allocation strategies for COUNT songs."""

    config = initialize_app(clear_staging=False)
    analysis = CourseLibrary(config, RegistryStore(config)).analyze(count)

    table = Table(title=f"Strategy comparison for {count} song(s)", box=box.ROUNDED)
    table.add_column("Strategy", style="bold")
    table.add_column("Courses used", justify="right")
    table.add_column("Avg / course", justify="right")
    table.add_column("Std dev", justify="right")
    table.add_column("Fairness", justify="right")
    for report in analysis.reports:
        summary = report.summary
        marker = " *" if report.strategy is analysis.recommended else ""
        table.add_row(
            report.strategy.value + marker,
            str(summary.courses_used),
            f"{summary.avg_per_course:.2f}",
            f"{summary.std_dev:.2f}",
            f"{summary.fairness_score:.3f}",
        )

    console = Console()
    console.print(table)
    if analysis.recommended is not None:
        console.print(f"Recommended strategy: [bold green]{analysis.recommended.value}[/bold green]")


@cli.command("add-course")
def add_course(name: str = typer.Argument(..., help="Course key, usually the recording's file name")) -> None:
    """Register a course with two empty song slots."""

    config = initialize_app(clear_staging=False)
    try:
        created = CourseLibrary(config, RegistryStore(config)).add_course(name)
    except RegistryError as error:
        raise typer.BadParameter(str(error), param_hint="NAME") from error
    if created:
        typer.echo(f"Course added: {name.strip()}")
    else:
        typer.echo(f"Course already exists: {name.strip()}")


if __name__ == "__main__":
    cli()
