"""CLI entry point — command definitions using Click.

Commands:
    init          Generate a template workspace file
    modules       List the modules declared in the workspace
    resolve       Show which modules are merged into a module's report
    report        Write the cross-module coverage XML report of a module
"""

import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any

import click

from reactor_coverage import __version__


# ---------------------------------------------------------------------------
# Helpers shared by all data commands
# ---------------------------------------------------------------------------

def _load_config(ctx: click.Context):
    """Load the workspace file. Exits on error."""
    from reactor_coverage.config import ConfigError, load

    obj = ctx.obj
    try:
        config = load(obj["config_path"])
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)

    if obj["verbose"]:
        click.echo(
            f"[verbose] Loaded {len(config.graph)} modules from '{obj['config_path']}'", err=True
        )
    return config


def _emit_json(data: Any, ctx: click.Context) -> None:
    """Write JSON to stdout or to the file specified by --output."""
    obj = ctx.obj
    indent = 2 if obj["pretty"] else None
    text = json.dumps(data, indent=indent, ensure_ascii=False)

    output_path: str | None = obj["output_path"]
    if output_path:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(text)
        click.echo(f"Summary written to '{output_path}'", err=True)
    else:
        click.echo(text)


def _parse_scopes(values: tuple[str, ...]):
    from reactor_coverage.models import Scope

    try:
        return Scope.parse_all(values)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="'--scope'") from exc


def _handle_errors(func):
    """Decorator that catches module graph and report exceptions and exits cleanly."""
    import functools

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        from reactor_coverage.models import ModuleGraphError
        from reactor_coverage.reports.errors import ReformatError, ReportError

        try:
            return func(*args, **kwargs)
        except ModuleGraphError as exc:
            click.echo(f"Module error: {exc}", err=True)
            sys.exit(1)
        except ReformatError as exc:
            click.echo(f"Reformat error: {exc}", err=True)
            sys.exit(1)
        except ReportError as exc:
            click.echo(f"Report error: {exc}", err=True)
            if exc.__cause__ is not None:
                click.echo(f"  caused by: {exc.__cause__!r}", err=True)
            sys.exit(1)

    return wrapper


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--workspace", "config_path", default="workspace.yaml", show_default=True,
              help="Path to the workspace file.")
@click.option("--output", "output_path", default=None,
              help="Write JSON output to a file instead of stdout.")
@click.option("--pretty", is_flag=True, default=False,
              help="Pretty-print the JSON output.")
@click.option("--verbose", is_flag=True, default=False,
              help="Enable verbose logging.")
@click.version_option(__version__, prog_name="reactor-coverage")
@click.pass_context
def cli(ctx: click.Context, config_path: str, output_path: str | None,
        pretty: bool, verbose: bool) -> None:
    """Cross-module coverage reports for multi-module Python workspaces."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["output_path"] = output_path
    ctx.obj["pretty"] = pretty
    ctx.obj["verbose"] = verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@cli.command("init")
@click.option("--output", "output_path", default="workspace.yaml", show_default=True,
              help="Path where the template workspace file will be written.")
def init_command(output_path: str) -> None:
    """Generate a template workspace.yaml file."""
    from reactor_coverage.config import ConfigError, generate_template
    try:
        generate_template(output_path)
        click.echo(f"Template written to '{output_path}'.")
        click.echo("Edit it with your modules, their source roots and dependencies.")
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# modules
# ---------------------------------------------------------------------------

@cli.command("modules")
@click.pass_context
def modules_command(ctx: click.Context) -> None:
    """List the modules declared in the workspace."""
    config = _load_config(ctx)
    _emit_json({"modules": [m.to_dict() for m in config.graph]}, ctx)


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------

@cli.command("resolve")
@click.argument("module")
@click.option("--scope", "scopes", multiple=True,
              help="Dependency scope to follow (repeatable). Defaults to the workspace setting.")
@click.option("--transitive/--direct", default=None,
              help="Follow dependencies of dependencies.")
@click.pass_context
@_handle_errors
def resolve_command(ctx: click.Context, module: str, scopes: tuple[str, ...],
                    transitive: bool | None) -> None:
    """Show the modules merged into the report of MODULE, root first."""
    from reactor_coverage.reports.coverage import get_closure

    config = _load_config(ctx)
    root = config.resolve_module(module)
    selected = _parse_scopes(scopes) if scopes else config.report.scopes
    if transitive is None:
        transitive = config.report.transitive

    _emit_json(get_closure(config.graph, root, selected, transitive), ctx)


# ---------------------------------------------------------------------------
# report
# ---------------------------------------------------------------------------

@cli.command("report")
@click.argument("module")
@click.option("--exec-file", default=None, type=click.Path(dir_okay=False),
              help="coverage.py data file. The report is skipped if it does not exist.")
@click.option("--xml-file", default=None, type=click.Path(dir_okay=False),
              help="Destination of the XML report.")
@click.option("--encoding", "source_encoding", default=None,
              help="Encoding of the source files and of the formatted report.")
@click.option("--scope", "scopes", multiple=True,
              help="Dependency scope to follow (repeatable).")
@click.option("--include", "includes", multiple=True,
              help="Ant-style pattern of source files to include (repeatable).")
@click.option("--exclude", "excludes", multiple=True,
              help="Ant-style pattern of source files to exclude (repeatable).")
@click.option("--transitive/--direct", default=None,
              help="Follow dependencies of dependencies.")
@click.option("--format-xml/--raw-xml", "pretty", default=None,
              help="Pretty-print the XML report after writing it.")
@click.option("--keep-raw", is_flag=True, default=False,
              help="Keep the unformatted raw.<name> copy after formatting.")
@click.option("--skip", is_flag=True, default=False,
              help="Do nothing.")
@click.pass_context
@_handle_errors
def report_command(ctx: click.Context, module: str, exec_file: str | None,
                   xml_file: str | None, source_encoding: str | None,
                   scopes: tuple[str, ...], includes: tuple[str, ...],
                   excludes: tuple[str, ...], transitive: bool | None,
                   pretty: bool | None, keep_raw: bool, skip: bool) -> None:
    """Write the coverage XML report of MODULE and its workspace dependencies."""
    from reactor_coverage.reports.coverage import get_coverage_report

    config = _load_config(ctx)
    root = config.resolve_module(module)

    overrides: dict[str, Any] = {}
    if exec_file:
        overrides["exec_file"] = Path(exec_file)
    if xml_file:
        overrides["output"] = Path(xml_file)
    if source_encoding:
        overrides["source_encoding"] = source_encoding
    if scopes:
        overrides["scopes"] = _parse_scopes(scopes)
    if includes:
        overrides["includes"] = list(includes)
    if excludes:
        overrides["excludes"] = list(excludes)
    if transitive is not None:
        overrides["transitive"] = transitive
    if pretty is not None:
        overrides["pretty"] = pretty
    if keep_raw:
        overrides["delete_raw"] = False
    if skip:
        overrides["skip"] = True
    options = dataclasses.replace(config.report, **overrides)

    if ctx.obj["verbose"]:
        click.echo(f"[verbose] Writing coverage report for {root.key} to '{options.output}'", err=True)

    summary = get_coverage_report(config.graph, root, options)
    if summary["skipped"] and ctx.obj["verbose"]:
        click.echo("[verbose] Nothing to report", err=True)
    _emit_json(summary, ctx)
