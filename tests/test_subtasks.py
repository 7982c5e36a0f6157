"""
Tests for subtask suggestion.
"""

import pytest

from ashval.errors import NoUsableCredential
from ashval.routing import KeyRouter
from ashval.subtasks import (
    DEFAULT_CATEGORY,
    SUBTASK_SYSTEM_PROMPT,
    build_subtask_prompt,
    parse_subtasks,
    suggest_subtasks,
)

from tests.conftest import ScriptedProvider


class TestParseSubtasks:

    def test_plain_array(self):
        assert parse_subtasks('["Outline", "Draft", "Edit"]') == ["Outline", "Draft", "Edit"]

    def test_fenced_array(self):
        assert parse_subtasks('```json\n["a", "b"]\n```') == ["a", "b"]

    def test_bare_fence(self):
        assert parse_subtasks('```\n["a"]\n```') == ["a"]

    def test_items_trimmed_and_blanks_dropped(self):
        assert parse_subtasks('[" a ", "", "  "]') == ["a"]

    def test_invalid_json(self):
        assert parse_subtasks("Here are your tasks: 1. write") == []

    def test_not_a_list_of_strings(self):
        assert parse_subtasks('{"tasks": ["a"]}') == []
        assert parse_subtasks('["a", 2]') == []

    def test_empty(self):
        assert parse_subtasks("") == []


class TestSuggestSubtasks:

    def test_prompt_includes_category(self):
        assert f'"{DEFAULT_CATEGORY}"' in build_subtask_prompt("Plan launch")
        assert '"Work"' in build_subtask_prompt("Plan launch", "Work")

    @pytest.mark.asyncio
    async def test_returns_parsed_list(self):
        provider = ScriptedProvider(response='["Book venue", "Send invites"]')
        result = await suggest_subtasks("Plan launch party", provider, KeyRouter())
        assert result == ["Book venue", "Send invites"]
        [call] = provider.generate_calls
        assert call["system_instruction"] == SUBTASK_SYSTEM_PROMPT
        assert "Plan launch party" in call["prompt"]
        assert call["decision"].resolved_key is None

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self):
        provider = ScriptedProvider()
        with pytest.raises(ValueError):
            await suggest_subtasks("  ", provider, KeyRouter())
        assert provider.generate_calls == []

    @pytest.mark.asyncio
    async def test_credential_error_propagates(self):
        provider = ScriptedProvider(response='["x"]')
        with pytest.raises(NoUsableCredential):
            await suggest_subtasks("Plan", provider, KeyRouter("stored"))
        assert provider.generate_calls == []

    @pytest.mark.asyncio
    async def test_provider_failure_gives_empty(self):
        class Failing(ScriptedProvider):
            async def generate(self, system_instruction, prompt, decision):
                raise ConnectionError("down")

        assert await suggest_subtasks("Plan", Failing(), KeyRouter()) == []

    @pytest.mark.asyncio
    async def test_empty_response_gives_empty(self):
        assert await suggest_subtasks("Plan", ScriptedProvider(response=""), KeyRouter()) == []
