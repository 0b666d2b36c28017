"""Typer-based command line for callvis.

Two modes share one command:

- batch mode (``--file NAME``): run the pipeline once, write ``NAME.gv`` and
  ``NAME.<format>``, exit.  Any stage failure exits with status 1.
- server mode (no ``--file``): run the pipeline once at startup, then serve
  the control API so options can be changed and re-rendered live.
"""

from __future__ import annotations

import pathlib
import threading
import webbrowser
from typing import Optional

import structlog
import typer
import uvicorn

from callvis import __version__
from callvis.config import settings
from callvis.core.analysis import JsonCallGraphSource, load_graph
from callvis.core.cache import ArtifactCache
from callvis.core.options_store import OptionsStore, merge
from callvis.core.pipeline import run_pipeline, write_artifact
from callvis.core.service import ControlService, JobState
from callvis.errors import AnalysisUnavailable, CallvisError, FocusNotFound, OptionsError
from callvis.logging import setup_logging
from callvis.models.options import Options
from callvis.render.converter import PASSTHROUGH_FORMATS, DotConverter

logger = structlog.get_logger(__name__)

app = typer.Typer(
    help="callvis: visualize the call graph of a program.",
    add_completion=False,
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"callvis v{__version__}")
        raise typer.Exit()


def parse_http_addr(addr: str) -> tuple[str, int, str]:
    """Split ``host:port`` into a bind host, a port and a browsable URL.

    An empty host binds every interface and is browsed as ``localhost``;
    an empty port means 80.
    """
    host, sep, port = addr.rpartition(":")
    if not sep:
        host, port = addr, ""
    try:
        port_number = int(port) if port else 80
    except ValueError:
        raise typer.BadParameter(f"invalid port in --http address: {addr}")
    url_host = host or "localhost"
    return host or "0.0.0.0", port_number, f"http://{url_host}:{port_number}"


def open_browser(url: str) -> None:
    if not webbrowser.open(url):
        logger.warning("browser_open_failed", url=url)


@app.command()
def main(
    package: str = typer.Argument(..., help="Entry package; must be a main package unless --tests is set."),
    graph: pathlib.Path = typer.Option(
        pathlib.Path(settings.graph_file), "--graph", "-g", help="Raw call graph JSON written by the analysis tool."
    ),
    focus: str = typer.Option("main", help="Focus specific package using name or import path."),
    focus_depth: int = typer.Option(
        1, "--focus-depth", help="Call hops below the focus kept despite --nointer (negative: unlimited)."
    ),
    group: str = typer.Option("pkg", help="Grouping functions by packages and/or types [pkg, type] (separated by comma)."),
    limit: str = typer.Option("", help="Limit package paths to given prefixes (separated by comma)."),
    ignore: str = typer.Option("", help="Ignore package paths starting with given prefixes (separated by comma)."),
    include: str = typer.Option("", help="Include package paths with given prefixes (separated by comma)."),
    nostd: bool = typer.Option(True, "--nostd/--no-nostd", help="Omit calls to/from packages in standard library."),
    nointer: bool = typer.Option(True, "--nointer/--no-nointer", help="Omit calls to unexported functions."),
    tests: bool = typer.Option(False, "--tests", help="Include test code."),
    file: str = typer.Option("", "--file", help="Output file name without extension; omit to use server mode."),
    fmt: str = typer.Option("svg", "--format", help="Output file format [svg | png | jpg | dot | ...]."),
    cache_dir: str = typer.Option(
        settings.cache_dir, "--cache-dir", help="Cache rendered artifacts here to avoid re-rendering."
    ),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore cached artifacts for this run."),
    clear_cache: bool = typer.Option(False, "--clear-cache", help="Empty the cache directory before running."),
    minlen: int = typer.Option(2, help="Minimum edge length (for wider output)."),
    nodesep: float = typer.Option(0.35, help="Minimum space between two adjacent nodes in the same rank (for taller output)."),
    nodeshape: str = typer.Option("box", help="Graph node shape (see the Graphviz manual for valid values)."),
    nodestyle: str = typer.Option("filled,rounded", help="Graph node style (see the Graphviz manual for valid values)."),
    rankdir: str = typer.Option("LR", help="Direction of graph layout [LR | RL | TB | BT]."),
    http: str = typer.Option(settings.http_addr, "--http", help="HTTP service address."),
    skip_browser: bool = typer.Option(settings.skip_browser, "--skip-browser", help="Skip opening browser."),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose log."),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
):
    """Render the call graph of PACKAGE from a raw call graph document."""
    if not package.strip():
        raise typer.BadParameter("package must not be empty", param_hint="PACKAGE")

    if debug:
        settings.log_level = "DEBUG"
    setup_logging(settings.log_level, settings.log_json)

    try:
        options = merge(
            Options(),
            {
                "focus": focus,
                "focus_depth": focus_depth,
                "group": group,
                "limit": limit,
                "ignore": ignore,
                "include": include,
                "nostd": nostd,
                "nointer": nointer,
                "include_tests": tests,
                "minlen": minlen,
                "nodesep": nodesep,
                "nodeshape": nodeshape,
                "nodestyle": nodestyle,
                "rankdir": rankdir,
                "format": fmt,
            },
        )
    except OptionsError as exc:
        raise typer.BadParameter(str(exc))

    try:
        model = load_graph(JsonCallGraphSource(graph), package.strip(), tests=tests)
    except AnalysisUnavailable as exc:
        logger.error("analysis_unavailable", error=str(exc))
        raise typer.Exit(code=1)

    cache = ArtifactCache(cache_dir or None)
    if clear_cache:
        cache.clear()
    converter = DotConverter(settings.dot_binary, settings.dot_timeout)
    if options.format not in PASSTHROUGH_FORMATS and not converter.available():
        logger.warning("dot_unavailable", binary=settings.dot_binary, format=options.format)

    if file:
        try:
            artifact = run_pipeline(model, options, cache, converter, force_refresh=refresh)
            paths = write_artifact(artifact, file)
        except CallvisError as exc:
            logger.error("render_failed", error=str(exc), error_type=type(exc).__name__)
            raise typer.Exit(code=1)
        except OSError as exc:
            logger.error("write_failed", error=str(exc))
            raise typer.Exit(code=1)
        for path in paths:
            typer.echo(f"Wrote {path}")
        return

    service = ControlService(
        model,
        OptionsStore(options),
        cache,
        converter,
        output=pathlib.Path(settings.output_dir) / settings.output_name,
    )
    try:
        job = service.render_now(refresh=refresh)
        if job.state is JobState.FAILED:
            logger.warning("startup_render_failed", error=job.error)
    except FocusNotFound as exc:
        logger.warning("startup_focus_not_found", error=str(exc))

    serve(service, http, skip_browser)


def serve(service: ControlService, http: str, skip_browser: bool = False) -> None:
    """Run the control API until interrupted."""
    from callvis.api.app import create_app

    host, port, url = parse_http_addr(http)
    if not skip_browser:
        threading.Timer(0.1, open_browser, args=(url + settings.viewer_url,)).start()

    logger.info("http_serving", url=url)
    uvicorn.run(create_app(service), host=host, port=port, log_level=settings.log_level.lower())
