"""CLI entry point for approvers."""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

import click

from approvers import __version__
from approvers.config import (
    ConfigError,
    DirectoryEndpoint,
    RepeaterConfig,
    load_config,
)
from approvers.directory.client import Person
from approvers.exceptions import ApproversError, LookupFailure
from approvers.mode import StaticMode
from approvers.persistence import FileMirrorSink, serialize
from approvers.repeater import (
    ApproversRepeater,
    build_directory_client,
    create_repeater,
)


class OfflineDirectory:
    """Directory for commands that must not touch the network."""

    async def resolve(self, key: str) -> Person:
        raise LookupFailure("Directory access is disabled for this command.")

    async def search(self, term: str, endpoint=None, limit=None) -> list[Person]:
        return []


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@click.group()
@click.version_option(version=__version__, prog_name="approvers")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to approvers.toml configuration file.",
)
@click.option("--log-level", default=None, help="Override the configured log level.")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """Approvers: ordered approver rows backed by a people directory."""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    ctx.obj["config"] = config
    _configure_logging(log_level or config.logging.level)


@cli.command()
@click.argument("value")
@click.option("--read-only", is_flag=True, help="Treat the form as read-only.")
@click.pass_context
def normalize(ctx: click.Context, value: str, read_only: bool) -> None:
    """Print the canonical form of VALUE after enforcing row bounds.

    Approver keys are kept as stored; nothing is resolved.
    """
    config: RepeaterConfig = ctx.obj["config"]

    async def _run() -> str:
        repeater = ApproversRepeater(config, StaticMode(read_only), OfflineDirectory())
        try:
            await repeater.load(value, hydrate=False)
        finally:
            await repeater.aclose()
        return serialize(repeater.rows)

    click.echo(asyncio.run(_run()))


@cli.command()
@click.argument("value")
@click.pass_context
def show(ctx: click.Context, value: str) -> None:
    """Resolve every approver in VALUE and print one line per row."""
    config: RepeaterConfig = ctx.obj["config"]

    async def _run() -> ApproversRepeater:
        repeater = create_repeater(config, mode=StaticMode(True))
        try:
            await repeater.load(value)
        finally:
            await repeater.aclose()
        return repeater

    repeater = asyncio.run(_run())
    rows = repeater.display_rows()
    if not rows:
        click.echo("No approvers to display")
    for row in rows:
        suffix = f" <{row.title}>" if row.title and row.title != row.name else ""
        click.echo(f"{row.order}. {row.name}{suffix}")
    if repeater.error_message:
        click.echo(repeater.error_message, err=True)


@cli.command()
@click.argument("term")
@click.option(
    "--endpoint",
    type=click.Choice([e.value for e in DirectoryEndpoint]),
    default=None,
    help="Directory search variant (defaults to config).",
)
@click.option("--limit", type=int, default=None, help="Maximum results (1-25).")
@click.pass_context
def search(ctx: click.Context, term: str, endpoint: str | None, limit: int | None) -> None:
    """Search the directory for TERM."""
    config: RepeaterConfig = ctx.obj["config"]

    async def _run() -> list[Person]:
        directory = build_directory_client(config, StaticMode(False))
        try:
            return await directory.search(
                term,
                DirectoryEndpoint.parse(endpoint) if endpoint else None,
                limit,
            )
        finally:
            await directory.close()

    try:
        people = asyncio.run(_run())
    except ApproversError as e:
        click.echo(f"Search failed: {e}", err=True)
        sys.exit(1)
    if not people:
        click.echo("No matches")
    for person in people:
        email = f" <{person.email}>" if person.email else ""
        click.echo(f"{person.login}\t{person.display_name}{email}")


@cli.command()
@click.argument("value")
@click.option(
    "--target-dir",
    type=click.Path(file_okay=False, path_type=Path),
    required=True,
    help="Directory holding mirror files.",
)
@click.option("--target-id", default=None, help="Mirror target id (defaults to config).")
@click.pass_context
def mirror(ctx: click.Context, value: str, target_dir: Path, target_id: str | None) -> None:
    """Normalize VALUE and write its pretty-printed mirror file."""
    config: RepeaterConfig = ctx.obj["config"]
    target = (target_id or config.mirror.target_id).strip()
    if not target:
        click.echo("No mirror target id configured.", err=True)
        sys.exit(1)

    effective = replace(
        config, mirror=replace(config.mirror, target_id=target, delay_seconds=0.0)
    )
    sink = FileMirrorSink(target_dir)
    field = sink.lookup(target)
    if field is None:
        click.echo(f"Invalid mirror target id: {target}", err=True)
        sys.exit(1)

    async def _run() -> str:
        repeater = ApproversRepeater(
            effective, StaticMode(False), OfflineDirectory(), mirror_sink=sink
        )
        try:
            await repeater.load(value, hydrate=False)
            repeater.save(force=True)
        finally:
            await repeater.aclose()
        return repeater.value

    result = asyncio.run(_run())
    click.echo(f"Wrote {field.path}: {result}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
