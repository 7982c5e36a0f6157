"""
Learned vocabulary and word-repetition analysis.

Words from completed model responses are merged into a persistent set
that the editor offers as completions. Users can also add and remove
words by hand.
"""

import logging
import re
from collections import Counter
from typing import Optional

from .document_store import DocumentStore

logger = logging.getLogger(__name__)

# Letters of any script plus Thai vowel and tone marks, which are not \w
_LETTERS = r"(?:[^\W\d_]|[\u0e31\u0e34-\u0e3a\u0e47-\u0e4e])"
_WORD_RE = re.compile(rf"{_LETTERS}+")

MIN_LEARNED_LENGTH = 3
MIN_WORD_LENGTH = 2


def extract_words(text: str, min_length: int = MIN_LEARNED_LENGTH) -> list[str]:
    """Lowercased words of at least ``min_length`` letters, in order, with repeats."""
    return [w for w in _WORD_RE.findall(text.lower()) if len(w) >= min_length]


def word_repetitions(text: str, threshold: int = 3) -> list[tuple[str, int]]:
    """
    Words used more than ``threshold`` times, most frequent first.

    Punctuation and digits are ignored; words shorter than two letters
    are not counted.
    """
    counts = Counter(extract_words(text, MIN_WORD_LENGTH))
    return [(word, n) for word, n in counts.most_common() if n > threshold]


class Vocabulary:
    """The user's dictionary, persisted in the document store."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def words(self) -> list[str]:
        return self._store.list_words()

    def add(self, word: str) -> bool:
        """
        Add a word by hand. Returns False for a duplicate.

        Raises:
            ValueError: the word is shorter than two characters
        """
        word = word.strip().lower()
        if len(word) < MIN_WORD_LENGTH:
            raise ValueError(f"Word must be at least {MIN_WORD_LENGTH} characters")
        if self._store.has_word(word):
            return False
        self._store.add_words([word])
        return True

    def remove(self, word: str) -> bool:
        return self._store.remove_word(word.strip().lower())

    def search(self, query: Optional[str] = None) -> list[str]:
        """Words containing ``query`` (case-insensitive); all words when blank."""
        words = self.words()
        if not query or not query.strip():
            return words
        needle = query.strip().lower()
        return [w for w in words if needle in w]

    def learn_from(self, text: str) -> int:
        """Merge the words of a completed response. Returns how many were new."""
        added = self._store.add_words(dict.fromkeys(extract_words(text)))
        if added:
            logger.info("Learned %d new words", added)
        return added

    def __contains__(self, word: str) -> bool:
        return self._store.has_word(word.lower())

    def __len__(self) -> int:
        return len(self.words())
