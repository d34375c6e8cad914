"""CLI entry point for watchrun."""

from __future__ import annotations

import asyncio
import os
import signal
from contextlib import suppress
from pathlib import Path

import click

from . import __version__
from .config import DEFAULT_CONFIG_PATH, EXAMPLE_CONFIG, format_duration, load_config
from .display import Display
from .exceptions import ConfigError, ConstructionError
from .logs import configure_logging
from .pipeline import Pipeline


# ── Helpers ──────────────────────────────────────────────


def _config_path(ctx: click.Context, config_path: str | None) -> str:
    """Subcommand --config wins over the group's --config."""
    if config_path:
        return config_path
    return (ctx.obj or {}).get("config_path") or DEFAULT_CONFIG_PATH


async def _serve(pipeline: Pipeline, display: Display) -> None:
    """Run the pipeline until SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    stopping = False

    def _request_stop() -> None:
        nonlocal stopping
        if stopping:
            return
        stopping = True
        display.shutdown()
        asyncio.ensure_future(pipeline.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        # Windows: no signal handlers on the loop; Ctrl+C raises KeyboardInterrupt
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_stop)

    await pipeline.run()


# ── CLI Commands ─────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="watchrun")
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    help=f"Config file path (default: {DEFAULT_CONFIG_PATH})",
)
@click.option(
    "--dir",
    "-d",
    "root",
    default=".",
    type=click.Path(file_okay=False),
    help="Directory to watch",
)
@click.option("--dry-run", is_flag=True, help="Show what would run without running it")
@click.option("--verbose", "-v", is_flag=True, help="Show filtered events and debug logs")
@click.option("--poll", is_flag=True, help="Poll for changes instead of OS notifications")
@click.pass_context
def main(
    ctx: click.Context,
    config_path: str | None,
    root: str,
    dry_run: bool,
    verbose: bool,
    poll: bool,
) -> None:
    """watchrun — run commands, webhooks and logs when files change."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    if ctx.invoked_subcommand is not None:
        return

    configure_logging(verbose)
    config_path = config_path or DEFAULT_CONFIG_PATH
    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    display = Display()
    pipeline = Pipeline(
        config,
        root,
        dry_run=dry_run,
        verbose=verbose,
        reporter=display,
        use_polling=poll,
    )
    display.banner(config, config_path, pipeline.root)
    if dry_run:
        click.echo(click.style("  Dry run: no actions will be executed\n", fg="yellow"))

    try:
        asyncio.run(_serve(pipeline, display))
    except ConstructionError as e:
        raise click.ClickException(str(e)) from e
    except KeyboardInterrupt:
        display.shutdown()


@main.command()
@click.option("--config", "-c", "config_path", default=None, help="Config file path")
@click.pass_context
def validate(ctx: click.Context, config_path: str | None) -> None:
    """Check a config file and print its rules."""
    path = _config_path(ctx, config_path)
    try:
        config = load_config(path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    click.echo(click.style(f"Config OK: {path}", fg="green"))
    click.echo(f"  debounce: {format_duration(config.global_.debounce)}")
    if config.global_.ignore:
        click.echo(f"  ignore:   {', '.join(config.global_.ignore)}")
    click.echo(f"  rules:    {len(config.rules)}")
    for rule in config.rules:
        events = ", ".join(str(e) for e in rule.events) or "all events"
        click.echo(f"    - {rule.name} [{rule.action.type}] {', '.join(rule.watch)} ({events})")


@main.command()
@click.option("--config", "-c", "config_path", default=None, help="Where to write")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def init(ctx: click.Context, config_path: str | None, force: bool) -> None:
    """Write an example config file."""
    path = Path(_config_path(ctx, config_path)).expanduser()
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")

    if path.parent != Path("."):
        os.makedirs(path.parent, exist_ok=True)
    path.write_text(EXAMPLE_CONFIG)
    click.echo(f"Wrote example config to {path}")
    click.echo("Edit the rules, then run: watchrun validate")


if __name__ == "__main__":
    main()
