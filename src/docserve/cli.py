"""Command-line interface for docserve."""

import logging
from pathlib import Path

import click
import yaml

from . import __version__
from .cleanup import PendingCleanup
from .config import (
    CONFIG_FILENAME,
    config_to_dict,
    create_default_config,
    find_config_file,
    load_config,
)
from .errors import DocserveError
from .index import build_index
from .render import LocalRenderer, create_renderer
from .server import create_server, run_server


@click.group()
@click.version_option(version=__version__, prog_name="docserve")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output")
def main(verbose):
    """Serve a directory over HTTP, rendering Markdown files as HTML pages.

    \b
    Quick start:
      docserve config init           # Create .docserve.yaml
      docserve serve docs/           # Serve docs/ on http://127.0.0.1:2000/
      docserve serve --online        # Render through the GitHub API
      docserve render README.md      # Write README.html
      docserve index docs/           # Show which files live where
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument(
    "directory",
    required=False,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option(
    "--offline/--online",
    default=None,
    help="Render locally (default) or through the remote Markdown API",
)
@click.option("--host", help="Interface to bind")
@click.option("-p", "--port", type=int, help="Port to listen on")
@click.option("--strict", is_flag=True, default=None, help="Stop on the first render failure")
@click.option(
    "--render-all",
    is_flag=True,
    default=None,
    help="Render every file as Markdown, not only Markdown suffixes",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Config file path",
)
def serve(directory, offline, host, port, strict, render_all, config_path):
    """Serve DIRECTORY (default: configured root or cwd).

    Markdown files are rendered to HTML on every request; all other files
    are served unchanged. In local mode the stylesheets are written into
    the served directory and removed again on exit.

    \b
    Examples:
      docserve serve docs/ -p 8080
      docserve serve --online
      docserve serve --strict --render-all
    """
    try:
        cfg = load_config(
            config_path=Path(config_path) if config_path else None,
            start_path=directory,
            root_override=directory,
            offline_override=offline,
        )
        if host is not None:
            cfg.server.host = host
        if port is not None:
            cfg.server.port = port
        if strict is not None:
            cfg.strict = strict
        if render_all is not None:
            cfg.render.render_all = render_all
        cfg.validate()
    except DocserveError as e:
        raise click.ClickException(str(e))

    cleanup = PendingCleanup()
    try:
        server = create_server(cfg, cleanup)
    except OSError as e:
        raise click.ClickException(
            f"Cannot listen on {cfg.server.host}:{cfg.server.port}: {e}"
        )

    host, port = server.server_address[:2]
    mode = "offline" if cfg.render.offline else "online"
    click.echo(f"Serving {cfg.root_dir} ({mode})")
    click.echo(f"Listening on http://{host}:{port}/")

    try:
        run_server(server, cleanup)
    except DocserveError as e:
        raise click.ClickException(str(e))


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output HTML path (default: FILE with .html suffix)",
)
@click.option(
    "--offline/--online",
    default=None,
    help="Render locally (default) or through the remote Markdown API",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Config file path",
)
def render(file, output, offline, config_path):
    """Render a Markdown FILE to a standalone HTML page.

    In local mode the stylesheets are written next to the page and kept,
    so the page can be opened straight from disk.

    \b
    Examples:
      docserve render README.md
      docserve render notes.md -o site/notes.html
      docserve render README.md --online
    """
    if output is None:
        output = file.with_suffix(".html")
    if output.resolve() == file.resolve():
        raise click.UsageError("Output path would overwrite the input file")

    try:
        cfg = load_config(
            config_path=Path(config_path) if config_path else None,
            start_path=file.parent,
            offline_override=offline,
        )
        source = file.read_bytes()
    except DocserveError as e:
        raise click.ClickException(str(e))
    except OSError as e:
        raise click.ClickException(f"Cannot read {file}: {e}")

    output.parent.mkdir(parents=True, exist_ok=True)
    cleanup = PendingCleanup()
    if cfg.render.offline:
        renderer = LocalRenderer(
            output.parent,
            cleanup,
            extensions=cfg.render.extensions,
            stylesheet_base="",
        )
    else:
        renderer = create_renderer(cfg, cleanup)

    try:
        page = renderer.render(source)
    except DocserveError as e:
        raise click.ClickException(str(e))

    try:
        output.write_bytes(page)
    except OSError as e:
        raise click.ClickException(f"Cannot write output {output}: {e}")

    click.echo(f"Rendered: {file} -> {output}")
    for asset in cleanup.pending:
        click.echo(f"Asset: {asset}")


@main.command()
@click.argument(
    "directory",
    required=False,
    default=".",
    type=click.Path(exists=True, file_okay=False),
)
def index(directory):
    """Print which files live directly in each directory under DIRECTORY."""
    click.echo(
        yaml.dump(build_index(directory), default_flow_style=False, sort_keys=True)
    )


@main.group()
def config():
    """Manage docserve configuration."""
    pass


@config.command("init")
@click.option(
    "-d",
    "--directory",
    type=click.Path(),
    default=".",
    help="Directory to create config in",
)
def config_init(directory):
    """Create a new .docserve.yaml configuration file."""
    try:
        config_path = create_default_config(Path(directory))
        click.echo(f"Created: {config_path}")
        click.echo("\nNext steps:")
        click.echo(f"  1. Edit the settings in {CONFIG_FILENAME}")
        click.echo("  2. Run: docserve serve")
    except DocserveError as e:
        raise click.ClickException(str(e))


@config.command("show")
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True),
    help="Config file path",
)
def config_show(config_path):
    """Display current configuration.

    Shows merged configuration from file, environment, and defaults.
    """
    try:
        cfg = load_config(config_path=Path(config_path) if config_path else None)
        data = config_to_dict(cfg)
        click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False))
    except DocserveError as e:
        raise click.ClickException(str(e))


@config.command("where")
@click.option(
    "-d",
    "--directory",
    type=click.Path(exists=True),
    help="Directory to search from",
)
def config_where(directory):
    """Show which config file would be used.

    Searches up the directory tree for .docserve.yaml.
    """
    start = Path(directory) if directory else Path.cwd()
    config_path = find_config_file(start)

    if config_path:
        click.echo(f"Config file: {config_path}")
    else:
        click.echo(f"No {CONFIG_FILENAME} found (searched from {start})")
