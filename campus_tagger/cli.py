import asyncio
import logging
import sys
import traceback
from pathlib import Path
from typing import Optional

import click

from .config import Settings, load_settings
from .llm.categories import DEFAULT_CATEGORIES
from .llm.event_tagging import TAGGER_VERSION, create_event_tagger
from .llm.token_estimator import estimate_tokens
from .models import Event, EventTags
from .text_utils import remove_artifacts


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(levelname)-8s [%(name)s] %(message)s",
        stream=sys.stderr,
    )
    # Keep HTTP client chatter out of stage traces
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@click.group()
def cli(): ...


@cli.group()
def dev():
    """Development and debugging commands."""
    pass


async def _tag(event: Event, settings: Settings) -> EventTags:
    async with create_event_tagger(settings) as tagger:
        return await tagger.tag_event(event)


@cli.command()
@click.argument("title")
@click.option("--text", type=str, help="Email body of the event")
@click.option("--file", "path", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Read the email body from a file")
@click.option("--debug", is_flag=True, help="Show both prompting stages for every category")
@click.option("--strict", is_flag=True, help="Exit with an error if any category fails")
def tag(title: str, text: Optional[str] = None, path: Optional[Path] = None, debug: bool = False, strict: bool = False):
    """Tag an event with form, content and amenities tags."""
    if (text is None) == (path is None):
        raise click.UsageError("Pass exactly one of --text or --file")

    body = path.read_text() if path is not None else text
    event = Event(title=title, text=remove_artifacts(body))

    settings = load_settings()
    if debug:
        settings = settings.model_copy(update={"debug": True})
    configure_logging(settings.debug)

    try:
        result = asyncio.run(_tag(event, settings))
    except Exception as e:
        click.echo(f"Error during tagging: {e}")
        traceback.print_exc()
        sys.exit(1)

    click.echo(f"Event: {event.title}")
    click.echo("=" * 50)
    click.echo(f"Tags: {', '.join(result.sorted_tags()) or '(none)'}")
    if result.food_description:
        click.echo(f"Food: {result.food_description}")
    click.echo(f"Tagger version: {result.version}")

    for name, error in result.errors.items():
        click.echo(f"Category '{name}' failed: {error}")

    if strict and result.errors:
        sys.exit(1)


@dev.command("estimate-tokens")
@click.argument("text")
def estimate_tokens_cmd(text: str):
    """Show the token estimate used for rate limiting."""
    click.echo(estimate_tokens(text))


@dev.command()
def show_categories():
    """Show each tag category with its backend and allowed tags."""
    click.echo(f"Tagger version: {TAGGER_VERSION}")
    for category in DEFAULT_CATEGORIES:
        click.echo(f"\n• {category.name} ({category.backend.value})")
        if category.max_tags is not None:
            click.echo(f"  Up to {category.max_tags} tags")
        click.echo(f"  Allowed: {', '.join(sorted(category.allowed_tags))}")


# Add the dev group to the main CLI
cli.add_command(dev)


if __name__ == "__main__":
    cli()
