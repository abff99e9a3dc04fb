"""Retention CLI: review, due-queue and diagnostics commands."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any

import typer

from retention.application.config import AppConfig, resolve_config

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="retention: SM-2 spaced-repetition scheduler for learner topics.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

config_app = typer.Typer(help="Manage retention configuration.")
app.add_typer(config_app, name="config")

_VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def _apply_verbosity(verbose: int) -> None:
    logging.getLogger().setLevel(_VERBOSITY_LEVELS.get(verbose, logging.DEBUG))


def _resolve_with_overrides(**overrides: Any) -> AppConfig:
    return resolve_config(overrides)


def _service(config: AppConfig):
    from retention.application.factory import get_retention_service

    return get_retention_service(config)


BackendOption = Annotated[
    str | None,
    typer.Option(help="Storage backend: sqlite or memory."),
]
DbPathOption = Annotated[Path | None, typer.Option(help="SQLite database file.")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON.")]


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
):
    """Global settings for retention."""
    # Without -v, fall back to the configured level.
    if not verbose:
        verbose = resolve_config().verbose
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _apply_verbosity(verbose)


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def review(
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    topic: Annotated[str, typer.Argument(help="Topic ID.")],
    quality: Annotated[
        float, typer.Option("--quality", "-q", help="Recall quality, 0 (blackout) to 5 (perfect).")
    ],
    backend: BackendOption = None,
    db_path: DbPathOption = None,
    json_output: JsonOption = False,
):
    """[bold green]Review[/bold green] a topic and reschedule it."""
    from retention.interface.schemas import RecallResultResponse

    config = _resolve_with_overrides(backend=backend, db_path=db_path)
    service = _service(config)

    try:
        result = asyncio.run(service.review(learner, topic, quality))
    except Exception as e:
        logger.debug("Review failed", exc_info=True)
        typer.secho(f"Review failed: {e}", fg="red", err=True)
        raise typer.Exit(1) from e

    if json_output:
        typer.echo(RecallResultResponse.from_result(result).model_dump_json(indent=2))
        return

    state = result.new_state
    verdict = "passed" if result.passed else "failed"
    typer.secho(f"{topic}: {verdict}", fg="green" if result.passed else "red")
    typer.echo(
        f"Next review: {state.next_review_at:%Y-%m-%d} "
        f"(in {state.interval_days}d, ease {state.ease_factor:.2f}, reps {state.repetitions})"
    )
    if result.failure_action:
        typer.secho(f"Action: {result.failure_action.value}", fg="yellow")


@app.command()
def due(
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    backend: BackendOption = None,
    db_path: DbPathOption = None,
    json_output: JsonOption = False,
):
    """List topics whose review is due now."""
    from retention.interface.schemas import DueResponse, StateModel

    config = _resolve_with_overrides(backend=backend, db_path=db_path)
    states = asyncio.run(_service(config).list_due(learner))

    if json_output:
        resp = DueResponse(
            learner_id=learner,
            count=len(states),
            topics=[StateModel.from_state(s) for s in states],
        )
        typer.echo(resp.model_dump_json(indent=2))
        return

    if not states:
        typer.secho("Nothing due.", fg="green")
        return

    typer.echo(f"Due topics: {len(states)}")
    for s in states:
        typer.echo(f"  {s.topic_id}  due {s.next_review_at:%Y-%m-%d %H:%M}  reps {s.repetitions}")


@app.command()
def show(
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    topic: Annotated[str, typer.Argument(help="Topic ID.")],
    backend: BackendOption = None,
    db_path: DbPathOption = None,
):
    """Show the stored card for a topic."""
    from retention.interface.schemas import StateModel

    config = _resolve_with_overrides(backend=backend, db_path=db_path)
    state = asyncio.run(_service(config).get_topic(learner, topic))
    if state is None:
        typer.secho(f"No card for {learner}/{topic}.", fg="red", err=True)
        raise typer.Exit(1)

    typer.echo(StateModel.from_state(state).model_dump_json(indent=2))


@app.command()
def summary(
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    backend: BackendOption = None,
    db_path: DbPathOption = None,
):
    """Count a learner's topics by retention status."""
    config = _resolve_with_overrides(backend=backend, db_path=db_path)
    result = asyncio.run(_service(config).summary(learner))

    typer.echo(f"Topics: {result.total}  Due: {result.due}")
    for status, count in result.by_status.items():
        typer.echo(f"  {status.value:<10} {count}")


@app.command()
def simulate(
    qualities: Annotated[list[float], typer.Argument(help="Quality scores, in review order.")],
    start: Annotated[
        str | None,
        typer.Option(help="ISO timestamp of the first review. Defaults to now."),
    ] = None,
):
    """Run the scheduler over a sequence of reviews, each on its due date.

    Nothing is stored; this only shows how a card would progress.
    """
    from datetime import datetime

    from retention.application.scheduler import update

    try:
        now = datetime.fromisoformat(start) if start else None
    except ValueError as e:
        typer.secho(f"Invalid --start timestamp: {e}", fg="red", err=True)
        raise typer.Exit(1) from e

    card = None
    typer.echo(f"{'#':>3} {'q':>4} {'ok':>3} {'reps':>4} {'ivl':>5} {'ease':>5}  next")
    for i, q in enumerate(qualities, start=1):
        outcome = update(card, q, now=now)
        card = outcome.card
        now = card.next_review_at
        typer.echo(
            f"{i:>3} {q:>4g} {'y' if outcome.was_successful else 'n':>3} "
            f"{card.repetitions:>4} {card.interval_days:>5} {card.ease_factor:>5.2f}  "
            f"{card.next_review_at:%Y-%m-%d}"
        )


@app.command()
def serve(
    port: Annotated[int | None, typer.Option(help="Port to bind the server to.")] = None,
    host: Annotated[str | None, typer.Option(help="Host to bind the server to.")] = None,
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Start the HTTP API."""
    import uvicorn

    config = _resolve_with_overrides(host=host, port=port)
    uvicorn.run("retention.server:app", host=config.host, port=config.port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


def main() -> None:
    app()
