"""``flask pipeline ...`` commands: one-off ticks and a backfill, for cron or ops use."""

from __future__ import annotations

import click
from flask import Flask
from flask.cli import AppGroup

from .pipeline.runtime import get_embedding_scheduler, get_match_scheduler

pipeline_cli = AppGroup("pipeline", help="Run the embedding and matching pipeline by hand.")


@pipeline_cli.command("embed")
def embed_command() -> None:
    """Run one embedding claim tick."""
    result = get_embedding_scheduler().tick()
    click.echo(f"claimed={result.claimed} succeeded={result.succeeded} failed={result.failed} lost={result.lost} skipped={result.skipped}")


@pipeline_cli.command("match")
def match_command() -> None:
    """Run one match tick."""
    created = get_match_scheduler().tick()
    click.echo(f"notifications created: {created}")


@pipeline_cli.command("backfill")
@click.option("--max-batches", type=int, default=None, help="Stop after this many batches.")
def backfill_command(max_batches: int | None) -> None:
    """Embed every item still missing an embedding, batch by batch."""
    processed = get_embedding_scheduler().backfill(max_batches=max_batches)
    click.echo(f"Backfill complete. Processed: {processed}")


def register_cli(app: Flask) -> None:
    app.cli.add_command(pipeline_cli)
