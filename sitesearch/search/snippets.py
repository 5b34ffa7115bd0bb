"""
Snippet construction: picks the densest window of query matches in a page's
text and highlights the matched words.
"""

import html
from typing import List, Optional, Set, Tuple

from .lemmatizer import Lemmatizer


class SnippetBuilder:
    """Builds HTML snippets with matched words wrapped in ``<b>`` tags."""

    def __init__(self, lemmatizer: Lemmatizer, window_words: int = 30, lead_words: int = 5):
        self.lemmatizer = lemmatizer
        self.window_words = window_words
        self.lead_words = lead_words

    def _best_window_start(self, matches: List[int]) -> int:
        """Word index of the match that opens the window holding the most matches."""
        best_start, best_count = matches[0], 0
        end = 0
        for i, start in enumerate(matches):
            end = max(end, i)
            while end < len(matches) and matches[end] < start + self.window_words:
                end += 1
            if end - i > best_count:
                best_start, best_count = start, end - i
        return best_start

    def build(self, text: str, query_lemmas: Set[str]) -> str:
        words: List[Tuple[int, int, Optional[str]]] = list(self.lemmatizer.words(text or ""))
        if not words:
            return ""

        matches = [i for i, (_, _, lemma) in enumerate(words) if lemma in query_lemmas]
        if matches:
            first = max(0, self._best_window_start(matches) - self.lead_words)
        else:
            first = 0
        last = min(len(words), first + self.window_words + self.lead_words)

        parts = []
        if first > 0:
            parts.append("... ")

        position = words[first][0]
        for index in range(first, last):
            start, end, lemma = words[index]
            parts.append(html.escape(text[position:start]))
            word = html.escape(text[start:end])
            parts.append(f"<b>{word}</b>" if lemma in query_lemmas else word)
            position = end

        if last < len(words):
            parts.append(" ...")
        else:
            parts.append(html.escape(text[position:]))

        return "".join(parts).strip()
