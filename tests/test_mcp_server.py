# tests/test_mcp_server.py
"""Tests for the MCP server implementation."""
import json
from unittest.mock import MagicMock, patch

import pytest

from tagnotes.exceptions import StorageError
from tagnotes.models.schema import FilterSpec, SortOrder
from tagnotes.server.mcp_server import MAX_TEXT_LENGTH, TagNotesMcpServer
from tagnotes.services.board import NoteBoard
from tagnotes.services.note_store import NoteStore
from tagnotes.storage.memory_backend import MemoryBackend


class TestMcpServer:
    """Tests for the TagNotesMcpServer tools, backed by a real in-memory store."""

    @pytest.fixture(autouse=True)
    def server(self, board):
        """Create a server whose FastMCP instance captures registered tools."""
        self.registered_tools = {}
        self.mock_mcp = MagicMock()

        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get('name')] = func
                return func
            return tool_wrapper
        self.mock_mcp.tool = mock_tool_decorator

        with patch('tagnotes.server.mcp_server.FastMCP', return_value=self.mock_mcp):
            self.server = TagNotesMcpServer(board=board)
        self.board = board
        self.store = board.store
        yield self.server

    def test_tools_registered(self):
        assert set(self.registered_tools) == {
            "tn_add_note", "tn_get_note", "tn_update_note", "tn_remove_note",
            "tn_list_notes", "tn_set_filter", "tn_list_tags", "tn_add_tag",
            "tn_delete_tag", "tn_rename_tag", "tn_prune_tags", "tn_status",
        }

    def test_run_delegates_to_fastmcp(self):
        self.server.run()
        self.mock_mcp.run.assert_called_once()

    # ----- notes -----

    def test_add_note_tool(self):
        result = self.registered_tools['tn_add_note'](text="call bank", tags="home, errand, ")
        assert "successfully" in result
        note = self.store.notes[-1]
        assert note.id in result
        assert note.tags == ("home", "errand")
        assert "errand" in self.store.tags

    def test_add_note_without_tags(self):
        self.registered_tools['tn_add_note'](text="untagged")
        assert self.store.notes[-1].tags == ()

    def test_add_note_empty_text(self):
        result = self.registered_tools['tn_add_note'](text="   ")
        assert result.startswith("Error:")
        assert "required" in result
        assert len(self.store) == 2

    def test_add_note_too_long(self):
        result = self.registered_tools['tn_add_note'](text="x" * (MAX_TEXT_LENGTH + 1))
        assert "Invalid input" in result
        assert len(self.store) == 2

    def test_get_note_tool(self):
        result = self.registered_tools['tn_get_note'](note_id="1")
        assert "ID: 1" in result
        assert "Tags: home" in result
        assert "buy milk" in result
        assert "1970-01-01T00:00:00+00:00" in result

    def test_get_missing_note(self):
        result = self.registered_tools['tn_get_note'](note_id="missing")
        assert result == "Error: Note with ID 'missing' not found"

    def test_update_note_tool(self):
        result = self.registered_tools['tn_update_note'](
            note_id="1", text="buy oat milk", tags="home,errand"
        )
        assert "updated successfully" in result
        note = self.store.get_note("1")
        assert note.text == "buy oat milk"
        assert note.tags == ("home", "errand")

    def test_update_note_unchanged(self):
        result = self.registered_tools['tn_update_note'](note_id="1", text="buy milk")
        assert "unchanged" in result
        assert self.store.get_note("1").last_update == 100

    def test_update_note_clear_tags(self):
        self.registered_tools['tn_update_note'](note_id="1", tags="")
        assert self.store.get_note("1").tags == ()
        assert "home" in self.store.tags

    def test_remove_note_tool(self):
        result = self.registered_tools['tn_remove_note'](note_id="2")
        assert "deleted successfully" in result
        assert [n.id for n in self.store.notes] == ["1"]

    def test_remove_missing_note(self):
        result = self.registered_tools['tn_remove_note'](note_id="nope")
        assert "not found" in result

    # ----- listing and filters -----

    def test_list_notes_default_order(self):
        result = self.registered_tools['tn_list_notes']()
        assert result.startswith("Found 2 notes (sort: descending)")
        assert result.index("- 2 ") < result.index("- 1 ")

    def test_list_notes_limit(self):
        result = self.registered_tools['tn_list_notes'](limit=1)
        assert "- 2 " in result
        assert "- 1 " not in result
        assert "... and 1 more" in result

    @pytest.mark.parametrize("limit", [0, -1, -5])
    def test_list_notes_non_positive_limit(self, limit):
        result = self.registered_tools['tn_list_notes'](limit=limit)
        assert "- 1 " not in result
        assert "- 2 " not in result
        assert result.endswith("... and 2 more")

    def test_set_filter_then_list(self):
        result = self.registered_tools['tn_set_filter'](includes="BUG")
        assert "includes='BUG'" in result
        listing = self.registered_tools['tn_list_notes']()
        assert "Found 1 notes" in listing
        assert "fix bug" in listing

    def test_set_filter_tag_and_sort(self):
        self.registered_tools['tn_set_filter'](tag=" home ", sort="ASCENDING")
        assert self.board.filter == FilterSpec(sort=SortOrder.ASCENDING, tag="home")

    def test_set_filter_invalid_pattern(self):
        self.registered_tools['tn_set_filter'](includes="milk")
        result = self.registered_tools['tn_set_filter'](includes="milk(")
        assert result.startswith("Error: Invalid search pattern")
        assert self.board.filter.includes == "milk"

    def test_set_filter_invalid_sort(self):
        result = self.registered_tools['tn_set_filter'](sort="sideways")
        assert "Invalid sort" in result
        assert self.board.filter.sort == SortOrder.DESCENDING

    def test_rejected_pattern_leaves_whole_filter_unchanged(self):
        self.registered_tools['tn_set_filter'](tag="home")
        before = self.board.filter

        result = self.registered_tools['tn_set_filter'](
            sort="ascending", includes="(", reset=True
        )

        assert result.startswith("Error: Invalid search pattern")
        assert self.board.filter == before
        assert self.board.filter == FilterSpec(sort=SortOrder.DESCENDING, tag="home")

    def test_rejected_sort_leaves_whole_filter_unchanged(self):
        self.registered_tools['tn_set_filter'](tag="home")
        before = self.board.filter

        result = self.registered_tools['tn_set_filter'](
            sort="sideways", includes="milk", tag="work", reset=True
        )

        assert "Invalid sort" in result
        assert self.board.filter == before

    def test_set_filter_reset(self):
        self.registered_tools['tn_set_filter'](tag="home", includes="milk")
        self.registered_tools['tn_set_filter'](reset=True)
        assert self.board.filter == FilterSpec()

    def test_list_notes_empty(self):
        self.registered_tools['tn_set_filter'](tag="idea")
        assert self.registered_tools['tn_list_notes']().endswith("tag: idea).")

    # ----- tags -----

    def test_list_tags_tool(self):
        result = self.registered_tools['tn_list_tags']()
        assert "Tags (3 total)" in result
        assert "| home | 1 |" in result
        assert "| idea | 0 |" in result

    def test_add_tag_tool(self):
        assert "created" in self.registered_tools['tn_add_tag'](tag="new")
        assert "already exists" in self.registered_tools['tn_add_tag'](tag="new")

    def test_add_empty_tag(self):
        assert self.registered_tools['tn_add_tag'](tag=" ").startswith("Error:")

    def test_delete_tag_tool(self):
        result = self.registered_tools['tn_delete_tag'](tag="work")
        assert "removed from 1 notes" in result
        assert self.store.get_note("2").tags == ()
        assert "does not exist" in self.registered_tools['tn_delete_tag'](tag="work")

    def test_rename_tag_tool(self):
        result = self.registered_tools['tn_rename_tag'](old_tag="work", new_tag="job")
        assert "renamed to 'job'" in result
        assert self.store.get_note("2").tags == ("job",)

    def test_rename_tag_merge(self):
        result = self.registered_tools['tn_rename_tag'](old_tag="work", new_tag="home")
        assert "merged into 'home'" in result
        assert self.store.tags == ["home", "idea"]

    def test_rename_missing_tag(self):
        result = self.registered_tools['tn_rename_tag'](old_tag="nope", new_tag="x")
        assert "not renamed" in result

    def test_tag_arguments_are_trimmed(self):
        assert "Tag 'zz' created" in self.registered_tools['tn_add_tag'](tag=" zz ")
        result = self.registered_tools['tn_rename_tag'](old_tag=" zz ", new_tag=" yy ")
        assert "Tag 'zz' renamed to 'yy'" in result
        result = self.registered_tools['tn_delete_tag'](tag=" yy ")
        assert "Tag 'yy' deleted" in result
        assert "yy" not in self.store.tags
        assert "zz" not in self.store.tags

    def test_prune_tags_tool(self):
        assert "idea" in self.registered_tools['tn_prune_tags']()
        assert "No unused tags" in self.registered_tools['tn_prune_tags']()

    # ----- status and errors -----

    def test_status_tool(self):
        self.registered_tools['tn_list_notes']()
        result = self.registered_tools['tn_status']()
        assert "**Notes:** 2" in result
        assert "**Tags:** 3" in result
        assert "**Operations:**" in result

    def test_storage_error_is_reported(self):
        self.store.repository.backend.save = MagicMock(
            side_effect=StorageError("disk full", operation="save", key="notes")
        )
        result = self.registered_tools['tn_add_note'](text="will fail")
        assert result == "Error: disk full"

    def test_unexpected_error_is_generic(self):
        self.store.get_note = MagicMock(side_effect=RuntimeError("boom"))
        result = self.registered_tools['tn_get_note'](note_id="1")
        assert result.startswith("Error: An unexpected error occurred (ref: ")
        assert "boom" not in result


class TestServerConstruction:
    """Building the server from configuration."""

    def test_loads_store_from_configured_backend(self, test_config, monkeypatch):
        data_dir = test_config.get_data_dir()
        (data_dir / "notes.json").write_text(json.dumps(
            [{"id": "a", "text": "persisted", "tags": ["t"], "last_update": 1}]
        ))
        (data_dir / "tags.json").write_text(json.dumps(["t"]))
        monkeypatch.setattr(test_config, "default_sort", "ascending")

        with patch('tagnotes.server.mcp_server.FastMCP'):
            server = TagNotesMcpServer()

        assert [n.text for n in server.store.notes] == ["persisted"]
        assert server.board.filter.sort == SortOrder.ASCENDING
        server._shutdown()

    def test_explicit_board_is_used(self):
        board = NoteBoard(NoteStore.from_backend(MemoryBackend()))
        with patch('tagnotes.server.mcp_server.FastMCP'):
            server = TagNotesMcpServer(board=board)
        assert server.board is board
        assert server.store is board.store
