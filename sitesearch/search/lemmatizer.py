"""
Text normalization: splits text into words, drops function words and
reduces every remaining word to its dictionary form (lemma).
"""

import logging
from collections import Counter
from typing import Dict, Iterator, Optional, Set, Tuple

import nltk
import pymorphy3
from nltk.stem import WordNetLemmatizer
from nltk.tokenize import RegexpTokenizer


logger = logging.getLogger(__name__)

# WordNet parts of speech tried in order; the first that changes the word wins
WORDNET_POS = ('n', 'v', 'a')


# Prepositions, conjunctions, particles, articles and pronouns. These carry
# no meaning for search and are never indexed.
FUNCTION_WORDS = {
    'english': frozenset({
        'a', 'an', 'the', 'and', 'or', 'but', 'nor', 'so', 'yet', 'if', 'then',
        'of', 'to', 'in', 'on', 'at', 'by', 'for', 'from', 'with', 'about',
        'into', 'onto', 'over', 'under', 'between', 'through', 'during',
        'before', 'after', 'above', 'below', 'up', 'down', 'out', 'off',
        'as', 'than', 'that', 'this', 'these', 'those', 'there', 'here',
        'is', 'are', 'was', 'were', 'be', 'been', 'being', 'am',
        'do', 'does', 'did', 'has', 'have', 'had', 'will', 'would', 'shall',
        'should', 'can', 'could', 'may', 'might', 'must',
        'it', 'its', 'he', 'she', 'they', 'we', 'you', 'me', 'him', 'her',
        'them', 'us', 'my', 'your', 'his', 'our', 'their', 'not', 'no',
        'oh', 'ah', 'wow', 'which', 'who', 'whom', 'what', 'when', 'where',
        'also', 'too', 'very', 'just', 'all', 'each',
    }),
    'russian': frozenset({
        'и', 'а', 'но', 'да', 'или', 'либо', 'ни', 'что', 'чтобы', 'если',
        'как', 'когда', 'то', 'же', 'ли', 'бы', 'не', 'вот', 'даже', 'лишь',
        'в', 'во', 'на', 'с', 'со', 'к', 'ко', 'у', 'о', 'об', 'обо', 'от',
        'по', 'за', 'из', 'изо', 'до', 'для', 'без', 'под', 'над', 'при',
        'про', 'через', 'между', 'перед', 'около',
        'я', 'ты', 'он', 'она', 'оно', 'мы', 'вы', 'они', 'его', 'ее', 'их',
        'мне', 'меня', 'ему', 'ей', 'нас', 'вас', 'им',
        'ах', 'ох', 'эх', 'ой', 'ну', 'ведь', 'уж', 'ещё', 'еще',
    }),
}


def ensure_nltk_corpus(resource: str, package: str):
    """Download an NLTK data package on first use if it is not installed."""
    try:
        nltk.data.find(resource)
    except LookupError:
        logger.info(f"Downloading NLTK package '{package}'")
        if not nltk.download(package, quiet=True):
            raise LookupError(f"NLTK package '{package}' is not available")


class Lemmatizer:
    """
    Maps text to ``{lemma: occurrences}``.

    Instances hold only immutable state and can be shared between tasks.
    """

    WORD_PATTERN = r"[^\W\d_]+"

    def __init__(self, language: str = "english", min_word_length: int = 2):
        self.language = language
        self.min_word_length = min_word_length
        self.function_words = FUNCTION_WORDS[language]
        self._tokenizer = RegexpTokenizer(self.WORD_PATTERN)

        if language == 'russian':
            self._morph = pymorphy3.MorphAnalyzer()
            self._base_form = self._russian_base_form
        else:
            ensure_nltk_corpus('corpora/wordnet', 'wordnet')
            self._wordnet = WordNetLemmatizer()
            self._base_form = self._english_base_form

    def _normalize(self, word: str) -> str:
        word = word.lower()
        if self.language == 'russian':
            word = word.replace('ё', 'е')
        return word

    def _english_base_form(self, word: str) -> str:
        for pos in WORDNET_POS:
            lemma = self._wordnet.lemmatize(word, pos)
            if lemma != word:
                return lemma
        return word

    def _russian_base_form(self, word: str) -> str:
        return self._normalize(self._morph.parse(word)[0].normal_form)

    def lemma(self, word: str) -> Optional[str]:
        """Dictionary form of a single word, or None if the word is not indexable."""
        word = self._normalize(word)
        if len(word) < self.min_word_length or word in self.function_words:
            return None
        if not word.isalpha():
            return None
        return self._base_form(word)

    def lemmatize(self, text: str) -> Dict[str, int]:
        """Count occurrences of each lemma in the text."""
        if not text:
            return {}

        counts = Counter()
        for token in self._tokenizer.tokenize(text):
            lemma = self.lemma(token)
            if lemma:
                counts[lemma] += 1
        return dict(counts)

    def lemma_set(self, text: str) -> Set[str]:
        """Distinct lemmas of the text."""
        return set(self.lemmatize(text))

    def words(self, text: str) -> Iterator[Tuple[int, int, Optional[str]]]:
        """
        Yield ``(start, end, lemma)`` for every word in the text.

        ``lemma`` is None for words that are not indexed.
        """
        for start, end in self._tokenizer.span_tokenize(text):
            yield start, end, self.lemma(text[start:end])
