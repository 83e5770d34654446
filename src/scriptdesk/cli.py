"""CLI entry point for the script editor.

Provides commands:
  - init: Create or upgrade the SQLite database
  - status: Row counts per table
  - parse: Classify a transcript file with the stored overrides
  - terms: Manage blocked filler terms
  - rules: Manage literal-line classification rules
  - speakers: Manage the speaker directory
  - tags: Manage body tag presets
  - threads / episodes: Create and list sub-items and episodes
  - body: Show or import the body of a sub-item or episode
  - entries: Persist the parsed lines of a body
  - annotate: Tag exact text ranges of a body
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Optional, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from scriptdesk.config import EditorConfig, load_editor_config
from scriptdesk.database import Database
from scriptdesk.editor.session import ActionOutcome, EditorSession
from scriptdesk.exceptions import ScriptdeskError
from scriptdesk.formatter import annotations_table, display_parsed_lines, display_segments
from scriptdesk.models import BodyTarget, Classification, EpisodeScope, SpeakerPolicy, ThreadScope
from scriptdesk.parser.classifier import ClassifierInputs, classify
from scriptdesk.store.sqlite import AsyncSqliteStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

app = typer.Typer(
    help="scriptdesk - classify pasted story transcripts and annotate script bodies",
    rich_markup_mode="rich",
)
console = Console()

terms_app = typer.Typer(help="Manage blocked filler terms")
app.add_typer(terms_app, name="terms")

rules_app = typer.Typer(help="Manage literal-line classification rules")
app.add_typer(rules_app, name="rules")

speakers_app = typer.Typer(help="Manage the speaker directory")
app.add_typer(speakers_app, name="speakers")

tags_app = typer.Typer(help="Manage body tag presets")
app.add_typer(tags_app, name="tags")

threads_app = typer.Typer(help="Create and list sub-items")
app.add_typer(threads_app, name="threads")

episodes_app = typer.Typer(help="Create and list episodes of a sub-item")
app.add_typer(episodes_app, name="episodes")

body_app = typer.Typer(help="Show or import body text")
app.add_typer(body_app, name="body")

entries_app = typer.Typer(help="Persist parsed lines as entries")
app.add_typer(entries_app, name="entries")

annotate_app = typer.Typer(help="Tag exact text ranges of a body")
app.add_typer(annotate_app, name="annotate")

DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", "-d", help="Path to SQLite database (default from config)"),
]
ThreadOption = Annotated[
    Optional[str], typer.Option("--thread", "-t", help="Sub-item id")
]
EpisodeOption = Annotated[
    Optional[str], typer.Option("--episode", "-e", help="Episode id")
]


@app.callback()
def app_callback(
    ctx: typer.Context,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to editor_config.json"),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show log output")
    ] = False,
) -> None:
    """Load configuration shared by every command."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )
    try:
        ctx.obj = load_editor_config(config_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(code=1)


def get_config(ctx: typer.Context) -> EditorConfig:
    """Type-safe accessor for EditorConfig from Typer context."""
    if ctx.obj is None:
        ctx.obj = load_editor_config()
    return ctx.obj


def _db_path(ctx: typer.Context, db_path: Path | None) -> Path:
    return db_path or get_config(ctx).db_path


def _run_with_store(db_path: Path, work: Callable[[AsyncSqliteStore], Awaitable[T]]) -> T:
    """Ensure the schema exists, then run *work* against an async store."""
    Database(db_path).close()

    async def _run() -> T:
        async with AsyncSqliteStore(str(db_path)) as store:
            return await work(store)

    try:
        return asyncio.run(_run())
    except ScriptdeskError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)


def _target(thread: str | None, episode: str | None) -> BodyTarget:
    if bool(thread) == bool(episode):
        console.print("[red]Pass exactly one of --thread or --episode.[/red]")
        raise typer.Exit(code=1)
    return ThreadScope(thread) if thread else EpisodeScope(episode)


def _report(outcome: ActionOutcome) -> None:
    if not outcome.ok:
        console.print(f"[red]{escape(outcome.message)}[/red]")
        raise typer.Exit(code=1)
    if outcome.message:
        console.print(f"[green]{escape(outcome.message)}[/green]")


async def _open_session(
    store: AsyncSqliteStore, config: EditorConfig, target: BodyTarget
) -> EditorSession:
    session = EditorSession(store, config.classifier_options())
    _report(await session.start())
    _report(await session.open(target))
    return session


# ----------------------------------------------------------------------
# Database
# ----------------------------------------------------------------------


@app.command()
def init(ctx: typer.Context, db_path: DbOption = None) -> None:
    """Create the database, or upgrade an older one in place."""
    path = _db_path(ctx, db_path)
    with Database(path):
        pass
    console.print(f"[green]Database ready:[/green] {path}")


@app.command()
def status(ctx: typer.Context, db_path: DbOption = None) -> None:
    """Display row counts per table and line rules per classification."""
    path = _db_path(ctx, db_path)
    if not path.exists():
        console.print(
            f"[yellow]Database not found:[/yellow] {path}\n"
            "Run [bold]scriptdesk init[/bold] first."
        )
        raise typer.Exit(code=1)

    with Database(path) as db:
        counts = db.get_table_counts()
        rule_counts = db.get_rule_counts()

    console.print(Panel(f"Database: [bold]{path}[/bold]", title="Script Store Status"))

    table = Table(title="Rows by Table")
    table.add_column("Table", style="bold")
    table.add_column("Count", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(table)

    if rule_counts:
        rules = Table(title="Line Rules by Classification")
        rules.add_column("Classification", style="bold")
        rules.add_column("Count", justify="right")
        for name, count in sorted(rule_counts.items()):
            rules.add_row(name, str(count))
        console.print(rules)


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------


@app.command()
def parse(
    ctx: typer.Context,
    transcript: Annotated[Path, typer.Argument(help="Transcript text file", exists=True)],
    db_path: DbOption = None,
    heuristic: Annotated[
        bool,
        typer.Option("--heuristic", help="Also accept short name-like lines as speakers"),
    ] = False,
    no_fallback: Annotated[
        bool,
        typer.Option("--no-fallback", help="Do not pair lines without a recognized speaker"),
    ] = False,
) -> None:
    """Classify a transcript file using the stored overrides."""
    config = get_config(ctx)
    if heuristic:
        config.speaker_policy = SpeakerPolicy.HEURISTIC
    if no_fallback:
        config.alternation_fallback = False

    async def _load(store: AsyncSqliteStore) -> ClassifierInputs:
        terms = await store.load_blocked_terms()
        rules = await store.load_line_rules()
        speakers = await store.load_known_speakers()
        return ClassifierInputs(
            blocked_terms=frozenset(terms),
            line_rules={r.line_text: r.classification for r in rules},
            known_speakers=frozenset(speakers),
        )

    inputs = _run_with_store(_db_path(ctx, db_path), _load)
    text = transcript.read_text(encoding="utf-8")
    parsed = classify(
        text,
        inputs.blocked_terms,
        inputs.line_rules,
        inputs.known_speakers,
        options=config.classifier_options(),
    )
    display_parsed_lines(parsed, console=console, title=transcript.name)
    if not parsed:
        raise typer.Exit(code=1)


# ----------------------------------------------------------------------
# Overrides
# ----------------------------------------------------------------------


@terms_app.command("list")
def terms_list(ctx: typer.Context, db_path: DbOption = None) -> None:
    """List blocked terms in insertion order."""
    terms = _run_with_store(_db_path(ctx, db_path), lambda s: s.load_blocked_terms())
    if not terms:
        console.print("[dim]No blocked terms.[/dim]")
        return
    for term in terms:
        console.print(f"  {term}", markup=False)


@terms_app.command("add")
def terms_add(
    ctx: typer.Context,
    term: Annotated[str, typer.Argument(help="Literal line to drop before parsing")],
    db_path: DbOption = None,
) -> None:
    """Block a literal line."""
    _run_with_store(_db_path(ctx, db_path), lambda s: s.upsert_blocked_term(term))
    console.print(f"[green]Blocked:[/green] {term}")


@terms_app.command("remove")
def terms_remove(
    ctx: typer.Context,
    term: Annotated[str, typer.Argument(help="Blocked term to remove")],
    db_path: DbOption = None,
) -> None:
    """Unblock a literal line."""
    _run_with_store(_db_path(ctx, db_path), lambda s: s.delete_blocked_term(term))
    console.print(f"[green]Unblocked:[/green] {term}")


@rules_app.command("list")
def rules_list(ctx: typer.Context, db_path: DbOption = None) -> None:
    """List line rules."""
    rules = _run_with_store(_db_path(ctx, db_path), lambda s: s.load_line_rules())
    table = Table(title="Line Rules")
    table.add_column("Line", style="bold")
    table.add_column("Classification")
    for rule in rules:
        table.add_row(Text(rule.line_text), rule.classification.value)
    console.print(table)


@rules_app.command("set")
def rules_set(
    ctx: typer.Context,
    line_text: Annotated[str, typer.Argument(help="Exact line text")],
    classification: Annotated[Classification, typer.Argument(help="speaker, direction or location")],
    db_path: DbOption = None,
) -> None:
    """Force a classification for one exact line."""
    _run_with_store(
        _db_path(ctx, db_path), lambda s: s.upsert_line_rule(line_text, classification)
    )
    console.print(f"[green]Rule set:[/green] {line_text} -> {classification.value}")


@rules_app.command("clear")
def rules_clear(
    ctx: typer.Context,
    line_text: Annotated[str, typer.Argument(help="Exact line text")],
    db_path: DbOption = None,
) -> None:
    """Remove the rule for one exact line."""
    _run_with_store(_db_path(ctx, db_path), lambda s: s.delete_line_rule(line_text))
    console.print(f"[green]Rule cleared:[/green] {line_text}")


@speakers_app.command("list")
def speakers_list(ctx: typer.Context, db_path: DbOption = None) -> None:
    """List known speakers."""
    speakers = _run_with_store(_db_path(ctx, db_path), lambda s: s.list_speakers())
    table = Table(title="Speakers")
    table.add_column("Name", style="bold")
    table.add_column("Icon")
    for speaker in speakers:
        table.add_row(Text(speaker.name), Text(speaker.icon_url or ""))
    console.print(table)


@speakers_app.command("add")
def speakers_add(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Speaker name as it appears in transcripts")],
    icon_url: Annotated[Optional[str], typer.Option("--icon", help="Icon URL")] = None,
    db_path: DbOption = None,
) -> None:
    """Add a speaker to the directory."""
    _run_with_store(_db_path(ctx, db_path), lambda s: s.upsert_speaker(name, icon_url))
    console.print(f"[green]Speaker added:[/green] {name}")


# ----------------------------------------------------------------------
# Tag presets, sub-items, episodes
# ----------------------------------------------------------------------


@tags_app.command("list")
def tags_list(ctx: typer.Context, db_path: DbOption = None) -> None:
    """List body tag presets."""
    presets = _run_with_store(_db_path(ctx, db_path), lambda s: s.list_tag_presets())
    table = Table(title="Body Tags")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold magenta")
    for preset in presets:
        table.add_row(preset.id, Text(preset.name))
    console.print(table)


@tags_app.command("add")
def tags_add(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Tag name")],
    db_path: DbOption = None,
) -> None:
    """Create a body tag preset."""
    preset_id = _run_with_store(_db_path(ctx, db_path), lambda s: s.create_tag_preset(name))
    console.print(f"[green]Tag created:[/green] {name} ({preset_id})")


@tags_app.command("remove")
def tags_remove(
    ctx: typer.Context,
    preset_id: Annotated[str, typer.Argument(help="Tag preset id")],
    db_path: DbOption = None,
) -> None:
    """Delete a body tag preset and its annotations."""
    _run_with_store(_db_path(ctx, db_path), lambda s: s.delete_tag_preset(preset_id))
    console.print(f"[green]Tag removed:[/green] {preset_id}")


def _read_body(body_file: Path | None) -> str:
    return body_file.read_text(encoding="utf-8") if body_file else ""


@threads_app.command("list")
def threads_list(ctx: typer.Context, db_path: DbOption = None) -> None:
    """List sub-items."""
    threads = _run_with_store(_db_path(ctx, db_path), lambda s: s.list_threads())
    table = Table(title="Sub-items")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Body", justify="right")
    for thread in threads:
        table.add_row(thread.id, Text(thread.title), f"{len(thread.body)} chars")
    console.print(table)


@threads_app.command("add")
def threads_add(
    ctx: typer.Context,
    title: Annotated[str, typer.Argument(help="Sub-item title")],
    body_file: Annotated[
        Optional[Path], typer.Option("--body-file", help="Initial body text", exists=True)
    ] = None,
    db_path: DbOption = None,
) -> None:
    """Create a sub-item."""
    body = _read_body(body_file)
    thread_id = _run_with_store(_db_path(ctx, db_path), lambda s: s.create_thread(title, body))
    console.print(f"[green]Sub-item created:[/green] {title} ({thread_id})")


@episodes_app.command("list")
def episodes_list(
    ctx: typer.Context,
    thread_id: Annotated[str, typer.Argument(help="Sub-item id")],
    db_path: DbOption = None,
) -> None:
    """List episodes of a sub-item."""
    episodes = _run_with_store(_db_path(ctx, db_path), lambda s: s.list_episodes(thread_id))
    table = Table(title="Episodes")
    table.add_column("ID", style="dim")
    table.add_column("Label")
    table.add_column("Title", style="bold")
    for episode in episodes:
        table.add_row(episode.id, Text(episode.label or ""), Text(episode.title))
    console.print(table)


@episodes_app.command("add")
def episodes_add(
    ctx: typer.Context,
    thread_id: Annotated[str, typer.Argument(help="Sub-item id")],
    title: Annotated[str, typer.Argument(help="Episode title")],
    label: Annotated[Optional[str], typer.Option("--label", help="Episode label")] = None,
    body_file: Annotated[
        Optional[Path], typer.Option("--body-file", help="Initial body text", exists=True)
    ] = None,
    db_path: DbOption = None,
) -> None:
    """Create an episode inside a sub-item."""
    body = _read_body(body_file)
    episode_id = _run_with_store(
        _db_path(ctx, db_path), lambda s: s.create_episode(thread_id, title, body, label)
    )
    console.print(f"[green]Episode created:[/green] {title} ({episode_id})")


# ----------------------------------------------------------------------
# Bodies and entries
# ----------------------------------------------------------------------


@body_app.command("show")
def body_show(
    ctx: typer.Context,
    thread: ThreadOption = None,
    episode: EpisodeOption = None,
    db_path: DbOption = None,
) -> None:
    """Print a body and its classification."""
    target = _target(thread, episode)
    config = get_config(ctx)

    async def _show(store: AsyncSqliteStore) -> None:
        session = await _open_session(store, config, target)
        body = Text(session.body) if session.body else "[dim](empty)[/dim]"
        console.print(Panel(body, title=target.label))
        display_parsed_lines(session.parsed, console=console)

    _run_with_store(_db_path(ctx, db_path), _show)


@body_app.command("import")
def body_import(
    ctx: typer.Context,
    transcript: Annotated[Path, typer.Argument(help="Transcript text file", exists=True)],
    thread: ThreadOption = None,
    episode: EpisodeOption = None,
    speaker_split: Annotated[
        bool,
        typer.Option("--speaker-split", help="Split 'Name: line' cues of known speakers first"),
    ] = False,
    db_path: DbOption = None,
) -> None:
    """Replace a body with the contents of a file and save it."""
    target = _target(thread, episode)
    config = get_config(ctx)
    text = transcript.read_text(encoding="utf-8")

    async def _import(store: AsyncSqliteStore) -> None:
        session = await _open_session(store, config, target)
        _report(session.type_text(text))
        if speaker_split:
            _report(await session.run_speaker_split())
        _report(await session.save())
        display_parsed_lines(session.parsed, console=console)

    _run_with_store(_db_path(ctx, db_path), _import)


@entries_app.command("persist")
def entries_persist(
    ctx: typer.Context,
    thread: ThreadOption = None,
    episode: EpisodeOption = None,
    db_path: DbOption = None,
) -> None:
    """Classify a body and store the result as its entry rows."""
    target = _target(thread, episode)
    config = get_config(ctx)

    async def _persist(store: AsyncSqliteStore) -> None:
        session = await _open_session(store, config, target)
        _report(await session.persist_entries())

    _run_with_store(_db_path(ctx, db_path), _persist)


# ----------------------------------------------------------------------
# Annotations
# ----------------------------------------------------------------------


async def _tag_names(store: AsyncSqliteStore) -> dict[str, str]:
    return {preset.id: preset.name for preset in await store.list_tag_presets()}


@annotate_app.command("list")
def annotate_list(
    ctx: typer.Context,
    thread: ThreadOption = None,
    episode: EpisodeOption = None,
    db_path: DbOption = None,
) -> None:
    """List annotations, marking those past the end of the body as stale."""
    target = _target(thread, episode)
    config = get_config(ctx)

    async def _list(store: AsyncSqliteStore) -> None:
        session = await _open_session(store, config, target)
        annotator = session.annotator
        stale = {a.id for a in annotator.stale(session.body)}
        names = await _tag_names(store)
        console.print(annotations_table(annotator.annotations, names, stale))

    _run_with_store(_db_path(ctx, db_path), _list)


@annotate_app.command("add")
def annotate_add(
    ctx: typer.Context,
    start: Annotated[int, typer.Argument(help="Start offset (inclusive)")],
    end: Annotated[int, typer.Argument(help="End offset (exclusive)")],
    tag: Annotated[str, typer.Argument(help="Tag preset name or id")],
    thread: ThreadOption = None,
    episode: EpisodeOption = None,
    db_path: DbOption = None,
) -> None:
    """Attach a tag to the body range [START, END)."""
    target = _target(thread, episode)
    config = get_config(ctx)

    async def _add(store: AsyncSqliteStore) -> None:
        names = await _tag_names(store)
        by_name = {name: preset_id for preset_id, name in names.items()}
        tag_id = by_name.get(tag, tag)
        if tag_id not in names:
            raise ScriptdeskError(f"Unknown tag: {tag}")
        session = await _open_session(store, config, target)
        _report(await session.add_annotation(start, end, tag_id))
        display_segments(session.segments(), names, console=console)

    _run_with_store(_db_path(ctx, db_path), _add)


@annotate_app.command("remove")
def annotate_remove(
    ctx: typer.Context,
    annotation_id: Annotated[str, typer.Argument(help="Annotation id")],
    thread: ThreadOption = None,
    episode: EpisodeOption = None,
    db_path: DbOption = None,
) -> None:
    """Delete one annotation."""
    target = _target(thread, episode)
    config = get_config(ctx)

    async def _remove(store: AsyncSqliteStore) -> None:
        session = await _open_session(store, config, target)
        _report(await session.delete_annotation(annotation_id))

    _run_with_store(_db_path(ctx, db_path), _remove)


@annotate_app.command("show")
def annotate_show(
    ctx: typer.Context,
    thread: ThreadOption = None,
    episode: EpisodeOption = None,
    db_path: DbOption = None,
) -> None:
    """Print the body with tagged ranges highlighted."""
    target = _target(thread, episode)
    config = get_config(ctx)

    async def _show(store: AsyncSqliteStore) -> None:
        session = await _open_session(store, config, target)
        display_segments(session.segments(), await _tag_names(store), console=console)

    _run_with_store(_db_path(ctx, db_path), _show)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
