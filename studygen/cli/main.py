"""Command-line interface for studygen."""

import asyncio
import json
import logging
import sys

import click
import uvicorn

from studygen import __version__
from studygen.api.app import create_app
from studygen.client import StudyGenClient
from studygen.core.config import settings
from studygen.core.exceptions import StudyGenError
from studygen.core.lifecycle import LifecycleManager
from studygen.observability import (
    configure_logging,
    setup_telemetry,
    shutdown_telemetry,
)
from studygen.utils.service_factory import create_services

logger = logging.getLogger(__name__)

DEFAULT_API_URL = f"http://localhost:{settings.api_port}"


@click.group()
def cli() -> None:
    """studygen - flashcard and quiz generation service."""
    pass


@cli.command()
@click.option(
    "--host",
    default=settings.api_host,
    help="Host to bind to",
    show_default=True,
)
@click.option(
    "--port",
    default=settings.api_port,
    type=int,
    help="Port to bind to",
    show_default=True,
)
@click.option(
    "--no-worker",
    is_flag=True,
    help="Serve the API only; run workers with `studygen worker`",
)
@click.option(
    "--log-level",
    default=settings.log_level.lower(),
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
    show_default=True,
)
def serve(host: str, port: int, no_worker: bool, log_level: str) -> None:
    """Start the studygen API server."""
    configure_logging(level=log_level)
    logger.info(f"Starting studygen API server on {host}:{port}")

    app = create_app(start_workers=False if no_worker else None)

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=log_level,
    )


@cli.command()
@click.option(
    "--concurrency",
    type=int,
    default=None,
    help="Worker tasks in this process (default: QUEUE_CONCURRENCY)",
)
def worker(concurrency: int | None) -> None:
    """Run the generation worker pool without the API."""
    configure_logging()
    setup_telemetry()

    async def run_workers() -> None:
        services = await create_services()
        if concurrency is not None:
            services.queue.concurrency = concurrency

        lifecycle = LifecycleManager(
            queue=services.queue,
            job_store=services.job_store,
            database=services.database,
        )
        lifecycle.install_signal_handlers()
        await services.queue.start()
        click.echo(
            f"Worker pool running ({services.queue.concurrency} workers), "
            "Ctrl+C to stop"
        )

        await lifecycle.wait_for_shutdown_signal()
        state = await lifecycle.shutdown()
        shutdown_telemetry()
        if state.errors:
            sys.exit(1)

    try:
        asyncio.run(run_workers())
    except StudyGenError as e:
        logger.error(f"Worker startup failed: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--topic", "-t", required=True, help="Study topic")
@click.option(
    "--api-url",
    default=DEFAULT_API_URL,
    help="studygen API base URL",
    show_default=True,
)
@click.option("--user-id", help="User identifier forwarded as identity header")
@click.option(
    "--max-attempts",
    type=int,
    default=60,
    help="Polls before giving up",
    show_default=True,
)
@click.option(
    "--interval",
    type=float,
    default=2.0,
    help="Seconds between polls",
    show_default=True,
)
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output the study set as JSON",
)
def generate(
    topic: str,
    api_url: str,
    user_id: str | None,
    max_attempts: int,
    interval: float,
    output_json: bool,
) -> None:
    """Generate a study set for a topic and wait for the result."""
    logging.basicConfig(level=logging.WARNING, format="%(message)s")

    async def execute() -> None:
        async with StudyGenClient(
            api_url, user_id=user_id, identity_header=settings.identity_header
        ) as client:
            try:
                study_set = await client.generate(
                    topic, max_attempts=max_attempts, interval=interval
                )
            except StudyGenError as e:
                click.echo(f"Error: {e}", err=True)
                sys.exit(1)

        if output_json:
            click.echo(json.dumps(study_set.model_dump(mode="json"), indent=2))
            return

        click.echo(f"\n{'=' * 60}")
        click.echo(study_set.topic)
        click.echo(f"{'=' * 60}")
        click.echo(study_set.summary)
        minutes = study_set.estimated_study_time_minutes
        click.echo(f"Estimated study time: {minutes} min")
        click.echo(f"\nFlashcards ({len(study_set.flashcards)}):")
        for card in study_set.flashcards:
            click.echo(f"  [{card.difficulty}] {card.front}")
            click.echo(f"      {card.back}")
        click.echo(f"\nQuiz ({len(study_set.example_quiz_questions)}):")
        for i, question in enumerate(study_set.example_quiz_questions, 1):
            click.echo(f"  {i}. {question.question}")
            for j, option in enumerate(question.choices):
                marker = "*" if j == question.answer_index else " "
                click.echo(f"     {marker} {option}")

    asyncio.run(execute())


@cli.command("queue-status")
@click.option(
    "--api-url",
    default=DEFAULT_API_URL,
    help="studygen API base URL",
    show_default=True,
)
def queue_status(api_url: str) -> None:
    """Show job counts by state."""

    async def execute() -> None:
        async with StudyGenClient(api_url) as client:
            try:
                counts = await client.get_queue_status()
            except StudyGenError as e:
                click.echo(f"Error: {e}", err=True)
                sys.exit(1)
        for name, value in counts.model_dump().items():
            click.echo(f"{name:>10}: {value}")

    asyncio.run(execute())


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"studygen v{__version__}")


if __name__ == "__main__":
    cli()
