"""Main CLI entry point for webnovel-translator."""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

import click
import structlog
from rich.console import Console
from rich.table import Table

from webnovel_translator import __version__
from webnovel_translator.config import AppConfig, get_config, set_config
from webnovel_translator.services.events import EventType, RunEvent

logger = structlog.get_logger()
console = Console()


def setup_config(env_file: Optional[Path] = None, state_file: Optional[Path] = None) -> AppConfig:
    """Load configuration from environment."""
    config = AppConfig.load(env_file)
    if state_file:
        config.state_file = state_file
    set_config(config)
    return config


def get_service(ctx: click.Context):
    """The workspace service for this invocation, created on first use."""
    from webnovel_translator.services.workspace_service import WorkspaceService

    obj = ctx.ensure_object(dict)
    if "service" not in obj:
        obj["service"] = WorkspaceService(config=get_config())
    return obj["service"]


def parse_chapter_list(value: str) -> list[int]:
    """Parse a chapter list like "3", "1-5" or "1,4,10-12" into sorted numbers."""
    result = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                start, end = part.split("-", 1)
                result.update(range(int(start.strip()), int(end.strip()) + 1))
            else:
                result.add(int(part))
        except ValueError:
            raise click.BadParameter(f"Invalid chapter range: {part}") from None
    if not result or min(result) < 1:
        raise click.BadParameter(f"Invalid chapter range: {value}")
    return sorted(result)


def _fail(event: str, detail: str) -> None:
    logger.error(event, detail=detail)
    console.print(f"[red]{detail}[/red]")
    raise SystemExit(1)


def _install_stop_handler(service) -> None:
    """First Ctrl+C stops the run after the step in flight, a second one interrupts."""
    if sys.platform == "win32":
        return
    loop = asyncio.get_running_loop()

    def on_interrupt() -> None:
        loop.remove_signal_handler(signal.SIGINT)
        service.request_stop()
        console.print("[yellow]Stopping after the current step. Press Ctrl+C again to abort.[/yellow]")

    loop.add_signal_handler(signal.SIGINT, on_interrupt)


PRINTED_EVENTS = (
    EventType.CHAPTER_STARTED,
    EventType.CHAPTER_TRANSLATED,
    EventType.CHAPTER_FAILED,
    EventType.RUN_CANCELLED,
)


def _print_event(event: RunEvent) -> None:
    data = event.data
    if event.type == EventType.CHAPTER_STARTED:
        console.print(
            f"[cyan]Translating chapter {data['chapter']} "
            f"({data['position']}/{data['total']})...[/cyan]"
        )
    elif event.type == EventType.CHAPTER_TRANSLATED:
        console.print(
            f"  [green]Chapter {data['chapter']} done[/green] "
            f"({data['completed']}/{data['total']} completed)"
        )
    elif event.type == EventType.CHAPTER_FAILED:
        console.print(f"  [red]Chapter {data['chapter']} failed:[/red] {data['reason']}")
    elif event.type == EventType.RUN_CANCELLED:
        console.print("[yellow]Stopped by user.[/yellow]")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output")
@click.option("--log-file", type=click.Path(), help="Write JSON logs to file")
@click.option("--env-file", type=click.Path(exists=True), help="Path to .env file")
@click.option("--state-file", type=click.Path(), help="Persistent state file")
@click.version_option(version=__version__)
@click.pass_context
def cli(
    ctx,
    verbose: bool,
    quiet: bool,
    log_file: Optional[str],
    env_file: Optional[str],
    state_file: Optional[str],
) -> None:
    """Japanese web novel translation tool.

    Translate chapters with an LLM, build a character glossary, and export EPUB.
    """
    from webnovel_translator.log import configure_logging

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    config = setup_config(
        Path(env_file) if env_file else None,
        Path(state_file) if state_file else None,
    )

    verbosity = 1 if verbose else (-1 if quiet else 0)
    configure_logging(
        verbosity=verbosity,
        log_file=Path(log_file) if log_file else None,
        default_level=config.log_level,
    )


# =============================================================================
# Settings
# =============================================================================


@cli.command()
@click.option("--url", "series_url", help="Series index URL")
@click.option("--name", "series_name", help="Series name used in prompts")
@click.option("--site", help="Source site")
@click.option("--model", "selected_model", help="Model identifier")
@click.option("--start", "start_chapter", type=click.IntRange(min=1), help="First chapter to translate")
@click.option("--count", "num_chapters", type=click.IntRange(min=1), help="Number of chapters")
@click.option("--output-name", "output_file_name", help="EPUB file name without extension")
@click.option("--glossary-start", "glossary_start_chapter", type=click.IntRange(min=1))
@click.option("--glossary-count", "glossary_num_chapters", type=click.IntRange(min=1))
@click.pass_context
def settings(ctx, **values) -> None:
    """Show or change the saved form values."""
    from webnovel_translator.sites import supported_sites

    if values.get("site") and values["site"] not in supported_sites():
        _fail("unsupported_site", f"Unsupported site: {values['site']}")

    service = get_service(ctx)
    state = service.update_settings(**values)

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Setting", style="green")
    table.add_column("Value", style="yellow")
    for name in (
        "series_url",
        "series_name",
        "site",
        "selected_model",
        "start_chapter",
        "num_chapters",
        "output_file_name",
        "glossary_start_chapter",
        "glossary_num_chapters",
    ):
        table.add_row(name, str(getattr(state, name)))
    table.add_row("translated_chapters", str(len(state.translated_chapters)))
    console.print(table)


@cli.command("config")
def show_config() -> None:
    """Show the effective configuration."""
    from webnovel_translator.config import print_config_summary

    print_config_summary(console=console)


# =============================================================================
# Translation
# =============================================================================


@cli.command()
@click.option("--url", "series_url", help="Series index URL")
@click.option("--name", "series_name", help="Series name used in prompts")
@click.option("--model", "selected_model", help="Model identifier")
@click.option("--start", "start_chapter", type=click.IntRange(min=1), help="First chapter")
@click.option("--count", "num_chapters", type=click.IntRange(min=1), help="Number of chapters")
@click.option("--chapters", help="Explicit chapter list (e.g. 3 or 1-5,8)")
@click.pass_context
def translate(ctx, chapters: Optional[str], **values) -> None:
    """Translate chapters one by one, stopping at the first failure.

    Examples:

        # Translate chapters 1-5 of a series
        webnovel-translator translate --url "https://ncode.syosetu.com/n5547eo" --start 1 --count 5

        # Retry a single chapter
        webnovel-translator translate --chapters 4
    """
    chapter_numbers = parse_chapter_list(chapters) if chapters else None
    service = get_service(ctx)
    service.update_settings(**values)

    if not service.config.llm.api_key:
        _fail("missing_api_key", "API key is not configured. Set LLM_API_KEY or GEMINI_API_KEY.")

    async def run():
        _install_stop_handler(service)
        sub_id = service.event_bus.subscribe(_print_event, types=PRINTED_EVENTS)
        try:
            return await service.translate_chapters(chapter_numbers)
        finally:
            service.event_bus.unsubscribe(sub_id)

    try:
        result = asyncio.run(run())
    except ValueError as e:
        _fail("translate_failed", str(e))

    if result.all_done:
        console.print(f"[green]{result.status_message()}[/green]")
        return

    console.print(f"[yellow]{result.status_message()}[/yellow]")
    if result.halted:
        number = result.failed_chapter
        if result.ambiguous_text is not None:
            review_path = service.config.export.output_dir / f"chapter_{number}_review.txt"
            review_path.parent.mkdir(parents=True, exist_ok=True)
            review_path.write_text(result.ambiguous_text, encoding="utf-8")
            console.print(f"Raw response saved to {review_path}")
            console.print(
                f"Review it, then accept it with: "
                f"webnovel-translator manual {number} --translated {review_path}"
            )
        else:
            console.print(
                f"Supply chapter {number} manually with: "
                f"webnovel-translator manual {number} --source <file>"
            )
        raise SystemExit(1)


@cli.command()
@click.argument("chapter", type=click.IntRange(min=1))
@click.option(
    "--source",
    "source_file",
    type=click.File("r", encoding="utf-8"),
    help="Source-language chapter text to translate",
)
@click.option(
    "--translated",
    "translated_file",
    type=click.File("r", encoding="utf-8"),
    help="Already translated chapter text to store as is",
)
@click.pass_context
def manual(ctx, chapter: int, source_file, translated_file) -> None:
    """Supply a chapter that could not be translated automatically."""
    from webnovel_translator.translator.outcome import Success

    if bool(source_file) == bool(translated_file):
        _fail("invalid_flags", "Use exactly one of --source or --translated")

    service = get_service(ctx)
    if translated_file:
        try:
            service.accept_manual_translation(chapter, translated_file.read())
        except ValueError as e:
            _fail("manual_failed", str(e))
        console.print(f"[green]Chapter {chapter} stored.[/green]")
        return

    try:
        outcome = asyncio.run(service.translate_manual_source(chapter, source_file.read()))
    except ValueError as e:
        _fail("manual_failed", str(e))

    if not isinstance(outcome, Success):
        _fail("manual_failed", f"Chapter {chapter}: {outcome.reason}")
    console.print(f"[green]Chapter {chapter} translated and stored.[/green]")


# =============================================================================
# Chapter Commands
# =============================================================================


@cli.group()
def chapters():
    """Review and edit translated chapters."""
    pass


@chapters.command("list")
@click.pass_context
def chapters_list(ctx) -> None:
    """List translated chapters."""
    records = get_service(ctx).list_chapters()
    if not records:
        click.echo("No chapters translated yet.")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Chapter", style="cyan", justify="right")
    table.add_column("Length", justify="right")
    table.add_column("First line", style="green")
    for record in records:
        first_line = next((line.strip() for line in record.translated_text.splitlines() if line.strip()), "")
        table.add_row(str(record.chapter_number), str(len(record.translated_text)), first_line[:60])
    console.print(table)


@chapters.command("show")
@click.argument("chapter", type=int)
@click.pass_context
def chapters_show(ctx, chapter: int) -> None:
    """Print a translated chapter."""
    try:
        record = get_service(ctx).get_chapter(chapter)
    except KeyError:
        _fail("chapter_not_found", f"Chapter {chapter} not found")
    click.echo(record.translated_text)


@chapters.command("edit")
@click.argument("chapter", type=int)
@click.option(
    "--file",
    "text_file",
    type=click.File("r", encoding="utf-8"),
    help="Replacement text (opens an editor when omitted)",
)
@click.pass_context
def chapters_edit(ctx, chapter: int, text_file) -> None:
    """Replace the text of a translated chapter."""
    service = get_service(ctx)
    try:
        record = service.get_chapter(chapter)
    except KeyError:
        _fail("chapter_not_found", f"Chapter {chapter} not found")

    text = text_file.read() if text_file else click.edit(record.translated_text)
    if text is None or not text.strip():
        click.echo("No changes.")
        return
    service.edit_chapter(chapter, text)
    console.print(f"[green]Chapter {chapter} updated.[/green]")


@chapters.command("delete")
@click.argument("chapter", type=int)
@click.pass_context
def chapters_delete(ctx, chapter: int) -> None:
    """Delete a translated chapter."""
    if not get_service(ctx).delete_chapter(chapter):
        _fail("chapter_not_found", f"Chapter {chapter} not found")
    console.print(f"Chapter {chapter} deleted.")


# =============================================================================
# Glossary Commands
# =============================================================================


@cli.group()
def glossary():
    """Build and manage the character glossary."""
    pass


@glossary.command("build")
@click.option("--start", "glossary_start_chapter", type=click.IntRange(min=1), help="First chapter")
@click.option("--count", "glossary_num_chapters", type=click.IntRange(min=1), help="Number of chapters")
@click.option("--resume", is_flag=True, help="Continue after the last processed chapter")
@click.pass_context
def glossary_build(ctx, resume: bool, **values) -> None:
    """Generate glossary segments from chapter pages."""
    service = get_service(ctx)
    service.update_settings(**values)

    if not service.config.llm.api_key:
        _fail("missing_api_key", "API key is not configured. Set LLM_API_KEY or GEMINI_API_KEY.")

    def on_segment(segment) -> None:
        console.print(
            f"  [green]Segment {segment.segment_number}[/green] "
            f"(chapters {segment.chapter_range}): {len(segment.characters)} characters"
        )

    async def run():
        _install_stop_handler(service)
        return await service.build_glossary(resume=resume, on_segment=on_segment)

    try:
        result = asyncio.run(run())
    except ValueError as e:
        _fail("glossary_build_failed", str(e))

    if not result.success:
        _fail("glossary_build_failed", result.error or "Glossary generation failed")

    if result.skipped_segments:
        console.print(
            f"[yellow]Skipped segments: {', '.join(str(n) for n in result.skipped_segments)}[/yellow]"
        )
    if result.stopped:
        console.print("[yellow]Stopped by user.[/yellow]")
    collection = result.collection
    console.print(
        f"[green]Glossary has {len(collection.segments)} segments, "
        f"{len(collection.all_characters())} characters, "
        f"processed up to chapter {collection.last_processed_chapter}.[/green]"
    )


@glossary.command("show")
@click.option("--limit", default=50, help="Maximum entries to show")
@click.pass_context
def glossary_show(ctx, limit: int) -> None:
    """Display glossary contents."""
    collection = get_service(ctx).state.glossary_collection
    if not collection or not collection.segments:
        click.echo("No glossary generated yet.")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Seg", justify="right")
    table.add_column("ID", style="dim")
    table.add_column("Japanese", style="cyan")
    table.add_column("English", style="green")
    table.add_column("Importance")
    table.add_column("Description")

    shown = 0
    total = 0
    for segment in collection.segments:
        for char in segment.characters:
            total += 1
            if shown < limit:
                table.add_row(
                    str(segment.segment_number),
                    char.id,
                    char.japanese_name,
                    char.english_name,
                    char.importance.value,
                    char.description,
                )
                shown += 1

    console.print(
        f"Glossary for {collection.series_name} "
        f"(chapters {collection.total_chapter_range}, {len(collection.segments)} segments):"
    )
    console.print(table)
    if total > limit:
        click.echo(f"  ... and {total - limit} more")


@glossary.command("delete-segment")
@click.argument("segment")
@click.pass_context
def glossary_delete_segment(ctx, segment: str) -> None:
    """Delete a segment by number or id."""
    try:
        deleted = get_service(ctx).delete_segment(segment)
    except ValueError as e:
        _fail("glossary_missing", str(e))
    if not deleted:
        _fail("segment_not_found", f"Segment {segment} not found")
    console.print(f"Segment {segment} deleted.")


@glossary.command("edit-character")
@click.argument("character_id")
@click.option("--japanese", "japanese_name")
@click.option("--english", "english_name")
@click.option("--description")
@click.option("--importance", type=click.Choice(["major", "minor", "background"]))
@click.pass_context
def glossary_edit_character(ctx, character_id: str, **updates) -> None:
    """Edit a character everywhere it appears."""
    changes = {name: value for name, value in updates.items() if value is not None}
    if not changes:
        click.echo("No changes.")
        return
    try:
        found = get_service(ctx).update_character(character_id, **changes)
    except ValueError as e:
        _fail("glossary_missing", str(e))
    if not found:
        _fail("character_not_found", f"Character {character_id} not found")
    console.print(f"Character {character_id} updated.")


@glossary.command("add-character")
@click.argument("japanese_name")
@click.argument("english_name")
@click.option("--description", default="", help="Short description")
@click.option("--importance", default="minor", type=click.Choice(["major", "minor", "background"]))
@click.pass_context
def glossary_add_character(
    ctx, japanese_name: str, english_name: str, description: str, importance: str
) -> None:
    """Add a character to the latest segment."""
    from webnovel_translator.glossary.models import Character

    character = Character(
        japanese_name=japanese_name,
        english_name=english_name,
        description=description,
        importance=importance,
    )
    try:
        get_service(ctx).add_character(character)
    except ValueError as e:
        _fail("glossary_missing", str(e))
    console.print(f"Character {character.id} added.")


@glossary.command("delete-character")
@click.argument("character_id")
@click.pass_context
def glossary_delete_character(ctx, character_id: str) -> None:
    """Delete a character from every segment."""
    try:
        removed = get_service(ctx).delete_character(character_id)
    except ValueError as e:
        _fail("glossary_missing", str(e))
    if not removed:
        _fail("character_not_found", f"Character {character_id} not found")
    console.print(f"Character {character_id} deleted.")


@glossary.command("clear")
@click.confirmation_option(prompt="Delete the whole glossary?")
@click.pass_context
def glossary_clear(ctx) -> None:
    """Delete the whole glossary."""
    get_service(ctx).clear_glossary()
    console.print("Glossary cleared.")


# =============================================================================
# Export and Reset
# =============================================================================


@cli.command()
@click.option("--output", "-o", type=click.Path(), help="Output EPUB path")
@click.option("--no-glossary", is_flag=True, help="Leave the glossary out of the book")
@click.pass_context
def export(ctx, output: Optional[str], no_glossary: bool) -> None:
    """Export translated chapters to EPUB."""
    service = get_service(ctx)
    try:
        path = service.export_epub(
            Path(output) if output else None,
            include_glossary=not no_glossary,
        )
    except ValueError as e:
        _fail("export_failed", str(e))

    logger.info("export_complete", path=str(path))
    console.print(f"[green]EPUB written to {path}[/green]")


@cli.command()
@click.confirmation_option(prompt="Delete all saved settings, chapters and glossary?")
@click.pass_context
def reset(ctx) -> None:
    """Clear everything saved in the state file."""
    get_service(ctx).reset()
    console.print("All saved data cleared.")


if __name__ == "__main__":
    cli()
