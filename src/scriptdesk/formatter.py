"""Rich display formatting for parsed lines, tagged bodies and annotations.

All functions take an optional Console so tests can capture output.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

from scriptdesk.models import LineKind

if TYPE_CHECKING:
    from scriptdesk.models import ParsedLine, Segment, TagAnnotation

KIND_STYLES = {
    LineKind.DIALOGUE: "",
    LineKind.DIRECTION: "italic yellow",
    LineKind.LOCATION: "bold cyan",
}


def parsed_lines_table(parsed: Sequence[ParsedLine], title: str = "Parsed Lines") -> Table:
    """Build a table with one row per parsed line.

    Rows whose classification came from an explicit rule show the rule in
    the last column so the user can see which lines are pinned.
    """
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Kind")
    table.add_column("Speaker", style="bold")
    table.add_column("Content")
    table.add_column("Rule", style="dim")

    for index, line in enumerate(parsed):
        style = KIND_STYLES.get(line.kind, "")
        table.add_row(
            str(index),
            Text(line.kind.value, style=style),
            Text(line.speaker),
            Text(line.content, style=style),
            line.source_rule.value if line.source_rule else "",
        )
    return table


def display_parsed_lines(
    parsed: Sequence[ParsedLine], console: Console | None = None, title: str = "Parsed Lines"
) -> None:
    con = console or Console()
    if not parsed:
        con.print("[yellow]Nothing to parse.[/yellow]")
        return
    con.print(parsed_lines_table(parsed, title=title))


def highlighted_body(segments: Sequence[Segment], tag_names: Mapping[str, str]) -> Text:
    """Render segments as one Text, tagged ranges highlighted with their chips."""
    text = Text()
    for segment in segments:
        if not segment.is_tagged:
            text.append(segment.text)
            continue
        text.append(segment.text, style="black on yellow")
        chips = ", ".join(tag_names.get(tag_id, tag_id) for tag_id in segment.tag_ids)
        text.append(f"[{chips}]", style="bold magenta")
    return text


def display_segments(
    segments: Sequence[Segment],
    tag_names: Mapping[str, str] | None = None,
    console: Console | None = None,
) -> None:
    con = console or Console()
    con.print(highlighted_body(segments, tag_names or {}))


def annotations_table(
    annotations: Sequence[TagAnnotation],
    tag_names: Mapping[str, str] | None = None,
    stale_ids: set[str] | None = None,
) -> Table:
    names = tag_names or {}
    stale = stale_ids or set()
    table = Table(title="Annotations")
    table.add_column("ID", style="dim")
    table.add_column("Tag", style="bold magenta")
    table.add_column("Range", justify="right")
    table.add_column("Text")

    for annotation in annotations:
        range_label = f"{annotation.start_offset}-{annotation.end_offset}"
        if annotation.id in stale:
            range_label += " [red](stale)[/red]"
        table.add_row(
            annotation.id[:8],
            names.get(annotation.tag_id, annotation.tag_id),
            range_label,
            Text(annotation.selected_text),
        )
    return table
