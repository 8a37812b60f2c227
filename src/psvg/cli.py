"""Command-line interface for psvg."""

from __future__ import annotations

import json
import socket
import threading
import webbrowser
from pathlib import Path

import click

from psvg import __version__
from psvg.logging.events import EventLevel, EventType


@click.group()
@click.version_option(version=__version__, prog_name="psvg")
def main() -> None:
    """psvg -- parametric SVG descriptions with embedded equations."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _parse_vars(items: tuple[str, ...]) -> dict[str, dict[str, str]]:
    variables: dict[str, dict[str, str]] = {}
    for item in items:
        if "=" not in item:
            raise click.ClickException(f"Invalid --var format: {item!r}. Use name=value.")
        k, v = item.split("=", 1)
        variables[k.strip()] = {"value": v}
    return variables


# ---------------------------------------------------------------------------
# Eval
# ---------------------------------------------------------------------------


@main.command("eval")
@click.argument("equation")
@click.option("--var", "var_items", multiple=True, help="Define a variable as name=value.")
@click.option(
    "--equations",
    "equations_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Take variables from a description's equations section.",
)
@click.option("--max-depth", type=int, default=None, help="Nesting limit for substitutions and parentheses.")
@click.option("--trace", is_flag=True, help="Print each evaluation stage to stderr.")
def eval_cmd(
    equation: str,
    var_items: tuple[str, ...],
    equations_file: str | None,
    max_depth: int | None,
    trace: bool,
) -> None:
    """Evaluate EQUATION and print the result."""
    from psvg.description import DescriptionError, load_description, viewbox_variables
    from psvg.equations import DEFAULT_MAX_DEPTH, EquationError, evaluate, format_number
    from psvg.logging.events import emit_error, set_project_dir
    from psvg.project import project_dir_for

    variables: dict[str, object] = {}
    if equations_file:
        set_project_dir(project_dir_for(Path(equations_file)))
        try:
            variables.update(viewbox_variables(load_description(Path(equations_file))))
        except DescriptionError as e:
            raise click.ClickException(str(e))
    variables.update(_parse_vars(var_items))

    def _trace(depth: int, stage: str, text: str) -> None:
        click.echo(f"{'  ' * depth}{stage}: {text}", err=True)

    try:
        result = evaluate(
            equation,
            variables,
            max_depth=max_depth or DEFAULT_MAX_DEPTH,
            trace=_trace if trace else None,
        )
    except EquationError as e:
        emit_error(EventType.equation_error, str(e), {"equation": equation}, error_code=e.code)
        raise click.ClickException(f"{e} [{e.code}]")
    click.echo(format_number(result))


# ---------------------------------------------------------------------------
# Render
# ---------------------------------------------------------------------------


@main.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None, help="Write the SVG here instead of stdout.")
def render(source: str, output: str | None) -> None:
    """Render the description SOURCE to SVG."""
    from psvg.ui.service import RENDER_ERRORS, PreviewService

    try:
        svc = PreviewService(Path(source))
        svg, warnings = svc.render()
    except (ValueError, *RENDER_ERRORS) as e:
        raise click.ClickException(str(e))

    for w in warnings:
        click.echo(f"warning: {w}", err=True)
    if output:
        written = svc.save(Path(output))
        click.echo(f"Wrote {written}")
    else:
        click.echo(svg)


# ---------------------------------------------------------------------------
# Check
# ---------------------------------------------------------------------------


@main.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def check(source: str, as_json: bool) -> None:
    """Check the equations of SOURCE without rendering."""
    from psvg.description import DescriptionError, check_description, load_description
    from psvg.equations import EquationError, format_number
    from psvg.logging.events import emit_error, emit_info, set_project_dir
    from psvg.project import load_project_config, project_dir_for

    path = Path(source)
    project_dir = project_dir_for(path)
    set_project_dir(project_dir)
    try:
        cfg = load_project_config(project_dir)
        report = check_description(load_description(path), max_depth=cfg["max_depth"])
    except (ValueError, DescriptionError, EquationError) as e:
        emit_error(
            EventType.check_failed,
            str(e),
            {"source": str(path)},
            error_code=getattr(e, "code", None),
        )
        raise click.ClickException(str(e))

    emit_info(
        EventType.check_completed,
        f"{len(report['values'])} resolved, {len(report['errors'])} failed",
        {"source": str(path), "errors": report["errors"]},
    )

    if as_json:
        click.echo(json.dumps(report, indent=2))
    else:
        for name in report["order"]:
            if name in report["values"]:
                click.echo(f"  {name:20s} = {format_number(report['values'][name])}")
            elif name in report["errors"]:
                click.echo(f"  {name:20s} ! {report['errors'][name]}")
            else:
                click.echo(f"  {name:20s}   (disabled)")
    if report["errors"]:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------


def _free_port(host: str) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        probe.bind((host, 0))
        return probe.getsockname()[1]


@main.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--host", default=None, help="Interface to serve on (psvg.yaml preview_host by default).")
@click.option("--port", type=int, default=None, help="Port to serve on (a free one if omitted).")
@click.option("--no-open", is_flag=True, help="Do not open a browser tab.")
def preview(source: str, host: str | None, port: int | None, no_open: bool) -> None:
    """Serve a live browser preview of SOURCE, re-rendered on every poll."""
    import uvicorn

    from psvg.project import load_project_config, project_dir_for
    from psvg.ui.server import create_app

    try:
        config = load_project_config(project_dir_for(Path(source)))
    except ValueError as e:
        raise click.ClickException(str(e))

    host = host or config["preview_host"]
    port = port or _free_port(host)
    url = f"http://{host}:{port}"
    click.echo(f"Previewing {source} at {url} (Ctrl+C to stop)")
    if not no_open:
        threading.Timer(0.8, webbrowser.open, args=(url,)).start()

    try:
        uvicorn.run(create_app(Path(source), config=config), host=host, port=port, log_level="warning")
    except KeyboardInterrupt:
        click.echo("Preview stopped.")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--level", type=click.Choice([lvl.value for lvl in EventLevel]), default=None,
              help="Only events of this level.")
@click.option("--type", "event_type", type=click.Choice([t.value for t in EventType]), default=None,
              help="Only events of this type.")
@click.option("--source", default=None, help="Only events about this description path.")
@click.option("--limit", type=int, default=100, show_default=True, help="Number of events to list.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    source: str | None,
    limit: int,
) -> None:
    """List recent render and check events logged in DIRECTORY, newest first."""
    from psvg.logging.sink import EventSink

    found = EventSink(Path(directory)).read_global(
        level=level, event_type=event_type, source=source, limit=limit
    )
    if not found:
        click.echo("No events found.")
        return
    for evt in found:
        code = f" [{evt['error_code']}]" if evt.get("error_code") else ""
        click.echo(
            f"{evt.get('ts', '')}  {evt.get('level', '?'):<7} "
            f"{evt.get('event_type', '?')}: {evt.get('message', '')}{code}"
        )
