"""
Tests for the learned vocabulary and repetition analysis.
"""

import pytest

from ashval.document_store import DocumentStore
from ashval.vocabulary import Vocabulary, extract_words, word_repetitions


@pytest.fixture
def vocab(tmp_path):
    store = DocumentStore(tmp_path / "ashval.db")
    yield Vocabulary(store)
    store.close()


class TestExtractWords:

    def test_lowercased_with_punctuation_dropped(self):
        assert extract_words("The Harbor, at dusk!") == ["the", "harbor", "dusk"]

    def test_digits_are_not_words(self):
        assert extract_words("route 66 and r2d2") == ["route", "and"]

    def test_thai_words_keep_vowel_marks(self):
        assert extract_words("ท่าเรือ") == ["ท่าเรือ"]


class TestRepetitions:

    def test_only_words_over_threshold(self):
        text = "rain " * 5 + "wind " * 3 + "sun"
        assert word_repetitions(text, threshold=3) == [("rain", 5)]

    def test_most_frequent_first(self):
        text = "aa " * 4 + "bb " * 6
        assert word_repetitions(text, threshold=3) == [("bb", 6), ("aa", 4)]

    def test_case_insensitive(self):
        assert word_repetitions("Echo echo ECHO eChO", threshold=3) == [("echo", 4)]

    def test_single_letters_ignored(self):
        assert word_repetitions("a a a a a", threshold=1) == []


class TestVocabulary:

    def test_add_and_duplicate(self, vocab):
        assert vocab.add(" Lantern ")
        assert not vocab.add("lantern")
        assert "LANTERN" in vocab
        assert vocab.words() == ["lantern"]

    def test_too_short_rejected(self, vocab):
        with pytest.raises(ValueError):
            vocab.add("x")

    def test_remove(self, vocab):
        vocab.add("lantern")
        assert vocab.remove("Lantern")
        assert not vocab.remove("lantern")
        assert len(vocab) == 0

    def test_search(self, vocab):
        for word in ("lantern", "latern", "harbor"):
            vocab.add(word)
        assert vocab.search("TERN") == ["lantern", "latern"]
        assert vocab.search("") == vocab.words()

    def test_learn_from_counts_new_words(self, vocab):
        assert vocab.learn_from("The lantern swung. The lantern went out.") == 5
        assert vocab.learn_from("The lantern glowed.") == 1
        assert "glowed" in vocab
        assert "the" in vocab
