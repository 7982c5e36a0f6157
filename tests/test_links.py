"""
Tests for forward links, backlinks and link resolution.
"""

from ashval.links import backlinks, forward_links, link_view, refresh_links, resolve_link
from ashval.types import Note, NoteLink


def _note(title, content=""):
    return refresh_links(Note(title=title, content=content))


class TestForwardLinks:

    def test_links_derived_on_refresh(self):
        note = _note("Harbor", "Meet [[Kara|Character]] at [[The Docks]].")
        assert forward_links(note) == [NoteLink("Kara"), NoteLink("The Docks")]

    def test_links_not_recomputed_on_read(self):
        note = _note("Harbor", "[[Kara]]")
        note.content = "[[Someone Else]]"
        assert forward_links(note) == [NoteLink("Kara")]

    def test_refresh_replaces_links(self):
        note = _note("Harbor", "[[Kara]]")
        note.content = "[[Finn]]"
        refresh_links(note)
        assert note.links == [NoteLink("Finn")]


class TestBacklinks:

    def test_case_insensitive_match(self):
        docks = _note("The Docks", "Salt and rope.")
        harbor = _note("Harbor", "Meet at [[the docks]].")
        market = _note("Market", "Nothing linked.")
        assert backlinks([docks, harbor, market], docks) == [harbor]

    def test_self_link_excluded(self):
        loop = _note("Loop", "See [[Loop]].")
        assert backlinks([loop], loop) == []

    def test_each_referrer_listed_once(self):
        docks = _note("Docks")
        twice = _note("Twice", "[[Docks]] and again [[Docks]]")
        assert backlinks([docks, twice], docks) == [twice]

    def test_backlink_property_holds_for_every_linker(self):
        target = _note("Kara")
        linkers = [_note(f"Scene {i}", f"[[{'KARA' if i % 2 else 'kara'}]]") for i in range(4)]
        found = backlinks([target, *linkers], target)
        assert found == linkers

    def test_display_text_does_not_create_backlink(self):
        kara = _note("Kara")
        other = _note("Other", "[[Finn|Kara]]")
        assert backlinks([kara, other], kara) == []


class TestResolution:

    def test_resolves_by_title(self):
        docks = _note("The Docks")
        assert resolve_link(NoteLink("THE DOCKS"), [docks]) is docks

    def test_unresolved_returns_none(self):
        assert resolve_link(NoteLink("Nowhere"), [_note("Somewhere")]) is None

    def test_link_view(self):
        docks = _note("The Docks")
        harbor = _note("Harbor", "[[The Docks]] and [[Lighthouse]]")
        view = link_view(harbor, [docks, harbor])
        assert [r.resolved for r in view.forward] == [True, False]
        assert view.forward[0].note is docks
        assert view.backlinks == []
        assert link_view(docks, [docks, harbor]).backlinks == [harbor]

    def test_link_view_uses_given_referrers(self):
        docks = _note("The Docks")
        sentinel = _note("From index")
        view = link_view(docks, [docks], referrers=[sentinel])
        assert view.backlinks == [sentinel]
