"""
Tests for the Workspace API: notes, links, lore, projects.
"""

import pytest

from ashval.api import AI_NOTE_CATEGORY, AUTO_LORE_TAGS, Workspace
from ashval.types import LoreType, NoteLink


class TestNotes:

    def test_add_derives_links(self, workspace):
        note = workspace.add_note("Harbor", "Meet [[Kara|Character]] at [[The Docks]].")
        assert workspace.forward_links(note.id) == [NoteLink("Kara"), NoteLink("The Docks")]
        assert workspace.get_note(note.id).links == note.links

    def test_title_required(self, workspace):
        with pytest.raises(ValueError):
            workspace.add_note("   ")

    def test_edit_updates_links_and_backlinks(self, workspace):
        docks = workspace.add_note("The Docks")
        harbor = workspace.add_note("Harbor", "[[The Docks]]")
        assert [n.id for n in workspace.backlinks(docks.id)] == [harbor.id]

        harbor.content = "No links now."
        workspace.save_note(harbor)
        assert workspace.backlinks(docks.id) == []
        assert workspace.forward_links(harbor.id) == []

    def test_link_view(self, workspace):
        docks = workspace.add_note("The Docks")
        harbor = workspace.add_note("Harbor", "[[the docks]] then [[Lighthouse]]")
        view = workspace.link_view(harbor.id)
        assert [(r.link.target_title, r.resolved) for r in view.forward] == [
            ("the docks", True), ("Lighthouse", False),
        ]
        assert view.forward[0].note.id == docks.id
        assert [n.id for n in workspace.link_view(docks.id).backlinks] == [harbor.id]

    def test_unresolved_link_creates_nothing(self, workspace):
        harbor = workspace.add_note("Harbor", "[[Lighthouse]]")
        workspace.link_view(harbor.id)
        assert workspace.find_note_by_title("Lighthouse") is None
        assert len(workspace.list_notes()) == 1

    def test_missing_note(self, workspace):
        with pytest.raises(KeyError):
            workspace.backlinks("nope")

    def test_revert(self, workspace):
        note = workspace.add_note("Draft", "first [[A]]")
        note.content = "second [[B]]"
        workspace.save_note(note)
        reverted = workspace.revert_note(note.id)
        assert reverted.content == "first [[A]]"
        assert reverted.links == [NoteLink("A")]
        assert workspace.list_versions(note.id)[0].content == "second [[B]]"

    def test_revert_without_versions(self, workspace):
        note = workspace.add_note("Fresh", "only")
        with pytest.raises(KeyError):
            workspace.revert_note(note.id)

    def test_delete(self, workspace):
        note = workspace.add_note("Gone")
        assert workspace.delete_note(note.id)
        assert workspace.get_note(note.id) is None


class TestLore:

    def test_duplicate_returns_existing(self, workspace):
        first = workspace.add_lore("Kara", LoreType.CHARACTER, "A sailor.")
        again = workspace.add_lore("kara", "Character", "Different text.")
        assert again.id == first.id
        assert again.content == "A sailor."
        assert len(workspace.list_lore()) == 1

    def test_unknown_type_string_becomes_concept(self, workspace):
        assert workspace.add_lore("Sunblade", "Weapon").type is LoreType.CONCEPT

    def test_auto_create_is_idempotent(self, workspace):
        text = "Meet [[Kara|Character]] at [[The Docks]]. @Finn helps too."
        created = workspace.auto_create_lore(text)
        assert [(e.title, e.type) for e in created] == [
            ("Kara", LoreType.CHARACTER),
            ("The Docks", LoreType.CONCEPT),
            ("Finn", LoreType.CHARACTER),
        ]
        assert created[0].content == "สร้างอัตโนมัติจาก AI Writer - [[Kara|Character]]"
        assert created[0].tags == AUTO_LORE_TAGS
        assert workspace.auto_create_lore(text) == []
        assert len(workspace.list_lore()) == 3

    def test_auto_create_skips_existing_manual_entry(self, workspace):
        workspace.add_lore("Finn", LoreType.CHARACTER, "Hand-written.")
        assert workspace.auto_create_lore("@Finn") == []

    def test_auto_create_scoped_by_project(self, workspace):
        project = workspace.add_project("Tides")
        workspace.auto_create_lore("@Finn")
        created = workspace.auto_create_lore("@Finn", project.id)
        assert len(created) == 1
        assert created[0].project_id == project.id


class TestProjects:

    def test_archive(self, workspace):
        project = workspace.add_project("Tides", genre="Fantasy")
        workspace.archive_project(project.id)
        assert workspace.list_projects() == []
        assert workspace.get_project(project.id).archived

    def test_archive_missing(self, workspace):
        with pytest.raises(KeyError):
            workspace.archive_project("nope")

    def test_archived_project_not_sampled(self, workspace):
        project = workspace.add_project("Tides")
        workspace.add_note("Docks", "salt", project_id=project.id)
        workspace.archive_project(project.id)
        assembled = workspace.assemble("harbor", "scene-analysis", project_id=project.id)
        assert "Tides" not in assembled.prompt


class TestResponses:

    def test_save_response_as_note(self, workspace):
        text = "```yaml\ntitle: Ember Rite\n```\nThe rite burns [[Kara]]."
        note = workspace.save_response_as_note(text, "magic-system")
        assert note.title == "Ember Rite"
        assert note.category == AI_NOTE_CATEGORY
        assert note.tags == ["magic-system"]
        assert note.links == [NoteLink("Kara")]

    def test_blank_response_not_saved(self, workspace):
        with pytest.raises(ValueError):
            workspace.save_response_as_note("   ")
        assert workspace.list_notes() == []

    def test_repetitions_use_configured_threshold(self, make_workspace):
        ws = make_workspace(repetition_threshold=1)
        assert ws.word_repetitions("echo echo") == [("echo", 2)]
        assert ws.word_repetitions("echo echo", threshold=2) == []


class TestWorkspaceLifecycle:

    def test_store_files_created(self, tmp_path):
        with Workspace(tmp_path / "ws") as ws:
            ws.add_note("Hello")
            assert (ws.store_path / "ashval.toml").exists()
            assert (ws.store_path / "ashval.db").exists()
        assert (tmp_path / "ws" / "ashval-ops.log").exists()

    def test_reopen_keeps_data(self, tmp_path):
        with Workspace(tmp_path / "ws") as ws:
            note = ws.add_note("Persist", "[[Other]]")
        with Workspace(tmp_path / "ws") as ws:
            assert ws.get_note(note.id).links == [NoteLink("Other")]

    def test_custom_instruction_from_config(self, make_workspace):
        ws = make_workspace(custom_instruction="Answer as a pirate.")
        assert ws.assemble("hi", "custom").system_instruction == "Answer as a pirate."
