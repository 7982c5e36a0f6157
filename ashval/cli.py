"""
CLI interface for ashval.

Usage:
    ashval note add "Harbor" "Meet [[Kara|Character]] at [[The Docks]]."
    ashval note show Harbor
    ashval prompt "Rewrite the harbor scene" --mode scene-rewrite
    ashval resolve response.md
"""

import json
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from .api import Workspace
from .errors import AshvalError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .modes import DEFAULT_MODE, OPERATION_MODES
from .notation import parse_input_cues, parse_lore_notations, parse_note_links
from .resolver import resolve_response
from .types import LoreType, Note

# Set ASHVAL_VERBOSE=1 to enable debug mode via environment
if os.environ.get("ASHVAL_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"ashval {version('ashval')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


app = typer.Typer(
    name="ashval",
    help="Notes, lore and AI drafting for writers.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
note_app = typer.Typer(name="note", help="Create and inspect notes.", no_args_is_help=True)
lore_app = typer.Typer(name="lore", help="Manage worldbuilding entries.", no_args_is_help=True)
project_app = typer.Typer(name="project", help="Manage projects.", no_args_is_help=True)
vocab_app = typer.Typer(name="vocab", help="Manage the learned vocabulary.", no_args_is_help=True)
app.add_typer(note_app)
app.add_typer(lore_app)
app.add_typer(project_app)
app.add_typer(vocab_app)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="ASHVAL_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Notes, lore and AI drafting for writers."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_workspace() -> Workspace:
    """Open the workspace, handling errors gracefully."""
    import atexit

    try:
        ws = Workspace(_store_override)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: Failed to open store: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(ws.close)
    return ws


def _read_text(source: Optional[str]) -> str:
    """Literal text, a file path, or '-' (or nothing) for stdin."""
    if source is None or source == "-":
        if sys.stdin.isatty():
            typer.echo("Error: No input (pass text, a file, or pipe to stdin)", err=True)
            raise typer.Exit(1)
        return sys.stdin.read()
    path = Path(source).expanduser()
    try:
        if path.is_file():
            return path.read_text(encoding="utf-8")
    except OSError:
        pass
    return source


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _note_dict(note: Note) -> dict:
    data = asdict(note)
    data["links"] = [l.target_title for l in note.links]
    return data


def _find_note(ws: Workspace, ref: str) -> Note:
    note = ws.get_note(ref) or ws.find_note_by_title(ref)
    if note is None:
        typer.echo(f"Error: Note not found: {ref}", err=True)
        raise typer.Exit(1)
    return note


def _fail(e: Exception) -> None:
    typer.echo(f"Error: {e}", err=True)
    raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Notes
# -----------------------------------------------------------------------------

@note_app.command("add")
def note_add(
    title: Annotated[str, typer.Argument(help="Note title")],
    content: Annotated[Optional[str], typer.Argument(
        help="Note content, a file path, or '-' for stdin"
    )] = None,
    tag: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t", help="Tag (repeatable)"
    )] = None,
    project: Annotated[Optional[str], typer.Option(
        "--project", "-p", help="Project id"
    )] = None,
):
    """Add a note. Links in [[Title]] notation are indexed on save."""
    ws = _get_workspace()
    text = _read_text(content) if content is not None else ""
    try:
        note = ws.add_note(title, text, tags=tag or [], project_id=project)
    except ValueError as e:
        _fail(e)
    if _get_json_output():
        _echo_json(_note_dict(note))
    else:
        typer.echo(note.id)


@note_app.command("show")
def note_show(
    ref: Annotated[str, typer.Argument(help="Note id or title")],
):
    """Show a note with its forward links and backlinks."""
    ws = _get_workspace()
    view = ws.link_view(_find_note(ws, ref).id)
    if _get_json_output():
        data = _note_dict(view.note)
        data["links"] = [
            {"target": r.link.target_title, "resolved": r.resolved,
             "id": r.note.id if r.note else None}
            for r in view.forward
        ]
        data["backlinks"] = [{"id": n.id, "title": n.title} for n in view.backlinks]
        _echo_json(data)
        return

    typer.echo(f"# {view.note.title}  ({view.note.id})")
    typer.echo(view.note.content)
    if view.forward:
        typer.echo("\nLinks:")
        for r in view.forward:
            marker = "->" if r.resolved else "x "
            typer.echo(f"  {marker} {r.link.target_title}")
    if view.backlinks:
        typer.echo("\nBacklinks:")
        for n in view.backlinks:
            typer.echo(f"  <- {n.title}")


@note_app.command("list")
def note_list(
    project: Annotated[Optional[str], typer.Option(
        "--project", "-p", help="Only notes in this project"
    )] = None,
):
    """List notes, most recently updated first."""
    ws = _get_workspace()
    notes = ws.list_notes(project)
    if _get_json_output():
        _echo_json([_note_dict(n) for n in notes])
        return
    for n in notes:
        typer.echo(f"{n.id}  {n.updated_at[:10]}  {n.title}")


@note_app.command("revert")
def note_revert(
    ref: Annotated[str, typer.Argument(help="Note id or title")],
    version: Annotated[Optional[int], typer.Option(
        "--version", "-V", help="Version number (default: newest)"
    )] = None,
):
    """Restore an archived version of a note."""
    ws = _get_workspace()
    note = _find_note(ws, ref)
    try:
        note = ws.revert_note(note.id, version)
    except KeyError as e:
        _fail(e)
    typer.echo(f"Reverted {note.title}")


@note_app.command("delete")
def note_delete(
    ref: Annotated[str, typer.Argument(help="Note id or title")],
):
    """Delete a note."""
    ws = _get_workspace()
    note = _find_note(ws, ref)
    ws.delete_note(note.id)
    typer.echo(f"Deleted {note.title}")


# -----------------------------------------------------------------------------
# Lore
# -----------------------------------------------------------------------------

@lore_app.command("add")
def lore_add(
    title: Annotated[str, typer.Argument(help="Entry title")],
    type: Annotated[str, typer.Option(
        "--type", "-T",
        help=f"One of: {', '.join(t.value for t in LoreType)}",
    )] = LoreType.CONCEPT.value,
    content: Annotated[str, typer.Option("--content", "-c", help="Entry text")] = "",
    project: Annotated[Optional[str], typer.Option(
        "--project", "-p", help="Project id"
    )] = None,
):
    """Add a lore entry (existing entries with the same identity are kept)."""
    ws = _get_workspace()
    try:
        entry = ws.add_lore(title, type, content, project_id=project)
    except ValueError as e:
        _fail(e)
    if _get_json_output():
        _echo_json(asdict(entry))
    else:
        typer.echo(entry.id)


@lore_app.command("list")
def lore_list(
    project: Annotated[Optional[str], typer.Option(
        "--project", "-p", help="Only entries in this project"
    )] = None,
):
    """List lore entries."""
    ws = _get_workspace()
    entries = ws.list_lore(project)
    if _get_json_output():
        _echo_json([asdict(e) for e in entries])
        return
    for e in entries:
        typer.echo(f"{e.id}  {e.type.value:<12}  {e.title}")


@lore_app.command("scan")
def lore_scan(
    text: Annotated[Optional[str], typer.Argument(
        help="Text, a file path, or '-' for stdin. Text that starts with '-' (cue lines) must follow '--'"
    )] = None,
    project: Annotated[Optional[str], typer.Option(
        "--project", "-p", help="Project id"
    )] = None,
):
    """Create lore entries for [[Title|Type]] and @Name notations not yet known."""
    ws = _get_workspace()
    created = ws.auto_create_lore(_read_text(text), project)
    if _get_json_output():
        _echo_json([asdict(e) for e in created])
        return
    for e in created:
        typer.echo(f"+ {e.type.value:<12}  {e.title}")
    typer.echo(f"Created {len(created)} entries", err=True)


# -----------------------------------------------------------------------------
# Projects
# -----------------------------------------------------------------------------

@project_app.command("add")
def project_add(
    name: Annotated[str, typer.Argument(help="Project name")],
    genre: Annotated[Optional[str], typer.Option("--genre", "-g")] = None,
    description: Annotated[Optional[str], typer.Option("--description", "-d")] = None,
):
    """Create a project."""
    ws = _get_workspace()
    try:
        project = ws.add_project(name, genre, description)
    except ValueError as e:
        _fail(e)
    if _get_json_output():
        _echo_json(asdict(project))
    else:
        typer.echo(project.id)


@project_app.command("list")
def project_list(
    show_all: Annotated[bool, typer.Option(
        "--all", "-a", help="Include archived projects"
    )] = False,
):
    """List projects."""
    ws = _get_workspace()
    projects = ws.list_projects(include_archived=show_all)
    if _get_json_output():
        _echo_json([asdict(p) for p in projects])
        return
    for p in projects:
        suffix = "  (archived)" if p.archived else ""
        typer.echo(f"{p.id}  {p.name}{suffix}")


@project_app.command("archive")
def project_archive(
    project_id: Annotated[str, typer.Argument(help="Project id")],
):
    """Archive a project; archived projects no longer provide AI context."""
    ws = _get_workspace()
    try:
        project = ws.archive_project(project_id)
    except KeyError as e:
        _fail(e)
    typer.echo(f"Archived {project.name}")


# -----------------------------------------------------------------------------
# Text tools
# -----------------------------------------------------------------------------

@app.command()
def parse(
    text: Annotated[Optional[str], typer.Argument(
        help="Text, a file path, or '-' for stdin. Text that starts with '-' (cue lines) must follow '--'"
    )] = None,
):
    """Show the links, lore notations and structured cues found in text."""
    source = _read_text(text)
    cues = parse_input_cues(source)
    data = {
        "links": [l.target_title for l in parse_note_links(source)],
        "lore": [{"title": n.title, "type": n.type.value} for n in parse_lore_notations(source)],
        "cues": asdict(cues),
    }
    if _get_json_output():
        _echo_json(data)
        return
    typer.echo("Links: " + (", ".join(data["links"]) or "-"))
    typer.echo("Lore:  " + (", ".join(f"{l['title']} ({l['type']})" for l in data["lore"]) or "-"))
    for key, value in data["cues"].items():
        if value:
            shown = ", ".join(value) if isinstance(value, list) else value
            typer.echo(f"{key}: {shown}")


@app.command()
def prompt(
    instruction: Annotated[Optional[str], typer.Argument(
        help="Instruction, a file path, or '-' for stdin. Text that starts with '-' (cue lines) must follow '--'"
    )] = None,
    mode: Annotated[str, typer.Option("--mode", "-m", help="Operation mode")] = DEFAULT_MODE,
    project: Annotated[Optional[str], typer.Option(
        "--project", "-p", help="Active project id"
    )] = None,
    ref: Annotated[Optional[list[str]], typer.Option(
        "--ref", "-r", help="Lore or note id to include as a reference (repeatable)"
    )] = None,
):
    """
    Assemble the prompt a request would send, without sending it.

    \b
    Examples:
        ashval prompt "Describe the docks" --mode scene-creation
        ashval prompt draft.md -m continuity-check -p <project-id>
        ashval prompt -m scene-creation -- "- Tone: grim"
    """
    ws = _get_workspace()
    text = _read_text(instruction) if instruction is not None or not sys.stdin.isatty() else ""
    try:
        assembled = ws.assemble(text, mode, project_id=project, reference_ids=ref or [])
    except AshvalError as e:
        _fail(e)
    if _get_json_output():
        _echo_json({
            "system_instruction": assembled.system_instruction,
            "prompt": assembled.prompt,
            "context": asdict(assembled.context),
        })
        return
    typer.echo(f"[system]\n{assembled.system_instruction}\n")
    typer.echo(f"[user]\n{assembled.prompt}")


@app.command()
def modes():
    """List operation modes."""
    if _get_json_output():
        _echo_json([
            {"name": m.name, "label": m.label, "context_grounded": m.context_grounded}
            for m in OPERATION_MODES.values()
        ])
        return
    for m in OPERATION_MODES.values():
        marker = "*" if m.context_grounded else " "
        typer.echo(f"{marker} {m.name:<26} {m.label}")


@app.command()
def resolve(
    text: Annotated[Optional[str], typer.Argument(
        help="Response text, a file path, or '-' for stdin"
    )] = None,
):
    """Split a settled response into its structured block and prose."""
    resolved = resolve_response(_read_text(text))
    if _get_json_output():
        _echo_json({
            "prose": resolved.prose,
            "structured_block": resolved.structured_block,
            "metadata": resolved.metadata,
        })
        return
    if resolved.structured_block is not None:
        typer.echo("---")
        typer.echo(resolved.structured_block)
        typer.echo("---")
    typer.echo(resolved.prose)


@app.command()
def repetitions(
    text: Annotated[Optional[str], typer.Argument(
        help="Text, a file path, or '-' for stdin"
    )] = None,
    threshold: Annotated[Optional[int], typer.Option(
        "--threshold", "-n", help="Report words used more than this many times"
    )] = None,
):
    """Find overused words."""
    ws = _get_workspace()
    found = ws.word_repetitions(_read_text(text), threshold)
    if _get_json_output():
        _echo_json([{"word": w, "count": n} for w, n in found])
        return
    for word, count in found:
        typer.echo(f"{count:>5}  {word}")


# -----------------------------------------------------------------------------
# Vocabulary
# -----------------------------------------------------------------------------

@vocab_app.command("list")
def vocab_list(
    search: Annotated[Optional[str], typer.Option(
        "--search", "-q", help="Only words containing this text"
    )] = None,
):
    """List learned and added words."""
    ws = _get_workspace()
    words = ws.vocabulary.search(search)
    if _get_json_output():
        _echo_json(words)
        return
    for w in words:
        typer.echo(w)


@vocab_app.command("add")
def vocab_add(
    word: Annotated[str, typer.Argument(help="Word to add")],
):
    """Add a word to the vocabulary."""
    ws = _get_workspace()
    try:
        added = ws.vocabulary.add(word)
    except ValueError as e:
        _fail(e)
    if not added:
        typer.echo(f"Already present: {word.strip().lower()}", err=True)


@vocab_app.command("remove")
def vocab_remove(
    word: Annotated[str, typer.Argument(help="Word to remove")],
):
    """Remove a word from the vocabulary."""
    ws = _get_workspace()
    if not ws.vocabulary.remove(word):
        typer.echo(f"Error: Not in vocabulary: {word}", err=True)
        raise typer.Exit(1)


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="ashval CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
