"""MCP server exposing the note board as tools."""

import atexit
import datetime
import logging
import uuid
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from tagnotes.config import config
from tagnotes.exceptions import InvalidPatternError, TagNotesError
from tagnotes.models.schema import FilterSpec, Note, SortOrder
from tagnotes.observability import metrics, timed_operation
from tagnotes.services.board import NoteBoard
from tagnotes.services.note_store import NoteStore
from tagnotes.services.query import compile_pattern
from tagnotes.storage.state_repository import create_backend

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 100_000
PREVIEW_LENGTH = 80


def _validate_text_length(text: Optional[str]) -> None:
    """Validate input string length at the MCP boundary."""
    if text and len(text) > MAX_TEXT_LENGTH:
        raise ValueError(
            f"Text exceeds maximum length of {MAX_TEXT_LENGTH} characters"
        )


def _split_tags(tags: str) -> List[str]:
    """Parse a comma-separated tag list, dropping blanks."""
    return [t.strip() for t in tags.split(",") if t.strip()]


def _format_timestamp(ms: int) -> str:
    return datetime.datetime.fromtimestamp(
        ms / 1000, tz=datetime.timezone.utc
    ).isoformat(timespec="seconds")


def _format_note_line(note: Note) -> str:
    preview = note.text.replace("\n", " ")
    if len(preview) > PREVIEW_LENGTH:
        preview = preview[: PREVIEW_LENGTH - 3] + "..."
    tags = f" [{', '.join(note.tags)}]" if note.tags else ""
    return f"- {note.id} ({_format_timestamp(note.last_update)}){tags}: {preview}"


class TagNotesMcpServer:
    """MCP server for tagnotes."""

    def __init__(self, board: Optional[NoteBoard] = None):
        """Initialize the MCP server.

        Args:
            board: Board to serve. When None, a store is loaded from the
                configured storage backend and the filter starts with the
                configured default sort.
        """
        self.mcp = FastMCP(config.server_name)
        self._backend = None
        if board is None:
            self._backend = create_backend(config)
            store = NoteStore.from_backend(self._backend)
            board = NoteBoard(store, FilterSpec(sort=SortOrder(config.default_sort)))
        self.board = board
        self.initialize()
        atexit.register(self._shutdown)
        self._register_tools()

    @property
    def store(self) -> NoteStore:
        return self.board.store

    def initialize(self) -> None:
        """Initialize services."""
        logger.info(
            f"tagnotes MCP server initialized ({len(self.store)} notes, "
            f"{len(self.store.tags)} tags)"
        )

    def _shutdown(self) -> None:
        """Release the storage backend on exit."""
        if self._backend is not None:
            self._backend.close()

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, InvalidPatternError):
            logger.info(f"Rejected filter pattern [{error_id}]: {error}")
            return (
                f"Error: {error.message}. "
                "Use a valid regular expression, or escape special characters."
            )
        elif isinstance(error, TagNotesError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, (IOError, OSError)):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        # ========== Notes ==========

        @self.mcp.tool(name="tn_add_note")
        def tn_add_note(text: str, tags: Optional[str] = None) -> str:
            """Create a new note.
            Args:
                text: The text of the note
                tags: Comma-separated list of tags (optional). Tags that do not
                    exist yet are created.
            """
            with timed_operation("tn_add_note") as op:
                try:
                    _validate_text_length(text)
                    note = self.store.add_note(text, _split_tags(tags) if tags else None)
                    op["note_id"] = note.id
                    return f"Note created successfully with ID: {note.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tn_get_note")
        def tn_get_note(note_id: str) -> str:
            """Retrieve a note by ID.
            Args:
                note_id: The ID of the note
            """
            with timed_operation("tn_get_note", note_id=note_id) as op:
                try:
                    note = self.store.get_note(str(note_id))
                    op["found"] = True
                    result = f"ID: {note.id}\n"
                    result += f"Updated: {_format_timestamp(note.last_update)}\n"
                    if note.tags:
                        result += f"Tags: {', '.join(note.tags)}\n"
                    result += f"\n{note.text}\n"
                    return result
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tn_update_note")
        def tn_update_note(
            note_id: str,
            text: Optional[str] = None,
            tags: Optional[str] = None,
        ) -> str:
            """Update a note's text and/or tags.

            Fields that are omitted are kept. Passing an empty string for
            tags removes all tags from the note. Writing the values the note
            already has changes nothing, not even its timestamp.

            Args:
                note_id: The ID of the note
                text: New text (optional)
                tags: New comma-separated tag list (optional)
            """
            with timed_operation("tn_update_note", note_id=note_id) as op:
                try:
                    _validate_text_length(text)
                    before = self.store.get_note(str(note_id))
                    note = self.store.update_note(
                        str(note_id),
                        text=text,
                        tags=_split_tags(tags) if tags is not None else None,
                    )
                    op["changed"] = note is not before
                    if note is before:
                        return f"Note {note.id} unchanged."
                    return f"Note updated successfully: {note.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tn_remove_note")
        def tn_remove_note(note_id: str) -> str:
            """Delete a note. Its tags are kept.
            Args:
                note_id: The ID of the note to delete
            """
            with timed_operation("tn_remove_note", note_id=note_id):
                try:
                    self.store.remove_note(str(note_id))
                    return f"Note deleted successfully: {note_id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tn_list_notes")
        def tn_list_notes(limit: int = 50) -> str:
            """List notes matching the session filter, in filter order.

            Use tn_set_filter to choose a tag, a text pattern, and the sort
            direction.

            Args:
                limit: Maximum number of notes to return (default: 50)
            """
            with timed_operation("tn_list_notes") as op:
                try:
                    notes = self.board.visible_notes()
                    op["result_count"] = len(notes)
                    spec = self.board.filter
                    header = f"Found {len(notes)} notes (sort: {spec.sort.value}"
                    if spec.tag:
                        header += f", tag: {spec.tag}"
                    if spec.includes:
                        header += f", includes: {spec.includes}"
                    header += ")"
                    if not notes:
                        return header + "."
                    limit = max(limit, 0)
                    lines = [_format_note_line(note) for note in notes[:limit]]
                    if len(notes) > limit:
                        lines.append(f"... and {len(notes) - limit} more")
                    return header + ":\n" + "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tn_set_filter")
        def tn_set_filter(
            sort: Optional[str] = None,
            includes: Optional[str] = None,
            tag: Optional[str] = None,
            reset: bool = False,
        ) -> str:
            """Change the session filter used by tn_list_notes.

            Args:
                sort: "ascending" (oldest first) or "descending" (newest first)
                includes: Case-insensitive regular expression over note text;
                    empty string matches every note
                tag: Only list notes with this exact tag; empty string for all
                reset: Clear includes and tag before applying the other arguments

            A rejected sort or pattern leaves the filter untouched.
            """
            with timed_operation("tn_set_filter") as op:
                try:
                    new_sort = None
                    if sort is not None:
                        try:
                            new_sort = SortOrder(sort.lower())
                        except ValueError:
                            return (
                                f"Invalid sort: {sort}. Valid values are: "
                                f"{', '.join(s.value for s in SortOrder)}"
                            )
                    if includes:
                        compile_pattern(includes)

                    if reset:
                        self.board.reset_filter()
                    if new_sort is not None:
                        self.board.set_sort(new_sort)
                    if includes is not None:
                        self.board.set_includes(includes)
                    if tag is not None:
                        self.board.set_tag(tag.strip())
                    spec = self.board.filter
                    op["tag"] = spec.tag
                    return (
                        f"Filter set: sort={spec.sort.value}, "
                        f"includes={spec.includes!r}, tag={spec.tag!r}"
                    )
                except Exception as e:
                    return self.format_error_response(e)

        # ========== Tags ==========

        @self.mcp.tool(name="tn_list_tags")
        def tn_list_tags() -> str:
            """List all tags with the number of notes using each."""
            with timed_operation("tn_list_tags") as op:
                try:
                    counts = self.store.tag_counts()
                    op["result_count"] = len(counts)
                    if not counts:
                        return "No tags defined."
                    result = f"# Tags ({len(counts)} total)\n"
                    result += "| Tag | Notes |\n"
                    result += "|-----|-------|\n"
                    for name, count in counts.items():
                        result += f"| {name} | {count} |\n"
                    return result
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tn_add_tag")
        def tn_add_tag(tag: str) -> str:
            """Create a tag without attaching it to any note.
            Args:
                tag: The tag name
            """
            with timed_operation("tn_add_tag") as op:
                try:
                    tag = tag.strip()
                    added = self.store.add_tag(tag)
                    op["added"] = added
                    if not added:
                        return f"Tag '{tag}' already exists."
                    return f"Tag '{tag}' created."
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tn_delete_tag")
        def tn_delete_tag(tag: str) -> str:
            """Delete a tag and remove it from every note that has it.
            Args:
                tag: The tag name
            """
            with timed_operation("tn_delete_tag") as op:
                try:
                    tag = tag.strip()
                    affected = self.store.tag_counts().get(tag, 0)
                    deleted = self.board.delete_tag(tag)
                    op["deleted"] = deleted
                    if not deleted:
                        return f"Tag '{tag}' does not exist."
                    return f"Tag '{tag}' deleted (removed from {affected} notes)."
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tn_rename_tag")
        def tn_rename_tag(old_tag: str, new_tag: str) -> str:
            """Rename a tag on every note that has it.

            If the new name is already a tag, the two tags are merged.

            Args:
                old_tag: Current tag name
                new_tag: New tag name
            """
            with timed_operation("tn_rename_tag") as op:
                try:
                    old_tag, new_tag = old_tag.strip(), new_tag.strip()
                    merged = self.store.has_tag(new_tag)
                    renamed = self.board.rename_tag(old_tag, new_tag)
                    op["renamed"] = renamed
                    if not renamed:
                        return f"Tag '{old_tag}' not renamed (no such tag, or same name)."
                    if merged:
                        return f"Tag '{old_tag}' merged into '{new_tag}'."
                    return f"Tag '{old_tag}' renamed to '{new_tag}'."
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tn_prune_tags")
        def tn_prune_tags() -> str:
            """Delete tags that no note uses.

            Tags are otherwise kept until deleted explicitly; this is a
            maintenance operation.
            """
            with timed_operation("tn_prune_tags") as op:
                try:
                    removed = self.store.prune_unused_tags()
                    op["deleted_count"] = len(removed)
                    if not removed:
                        return "No unused tags found."
                    return f"Removed {len(removed)} unused tag(s): {', '.join(removed)}"
                except Exception as e:
                    return self.format_error_response(e)

        # ========== Status ==========

        @self.mcp.tool(name="tn_status")
        def tn_status() -> str:
            """Show note and tag counts, the session filter and server metrics."""
            with timed_operation("tn_status"):
                try:
                    spec = self.board.filter
                    output = "# tagnotes Status\n\n"
                    output += f"**Notes:** {len(self.store)}\n"
                    output += f"**Tags:** {len(self.store.tags)}\n"
                    output += (
                        f"**Filter:** sort={spec.sort.value}, "
                        f"includes={spec.includes!r}, tag={spec.tag!r}\n\n"
                    )
                    summary = metrics.get_summary()
                    output += "## Metrics\n"
                    output += f"**Uptime:** {summary['uptime_seconds']:.0f}s\n"
                    output += f"**Operations:** {summary['total_operations']}\n"
                    output += f"**Success rate:** {summary['overall_success_rate']:.1%}\n"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
