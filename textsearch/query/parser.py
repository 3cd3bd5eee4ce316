"""Query parser for search queries.

Operators are extracted in a fixed order, each step removing what it
matched before the next one runs:

1. ``"quoted phrases"``
2. ``-excluded`` terms
3. ``+required`` terms
4. ``prefix*`` / ``*suffix`` wildcards
5. everything else is optional

Every extracted word then goes through the analyzer, so clause terms are
spelled the way postings are.
"""

import re

from ..analysis import Analyzer, StandardAnalyzer
from ..models import AnalyzedQuery

PHRASE_PATTERN = re.compile(r'"([^"]+)"')
EXCLUDE_PATTERN = re.compile(r"(?<!\S)-([^\s\-]\S*)")
REQUIRE_PATTERN = re.compile(r"(?<!\S)\+([^\s+]\S*)")
WILDCARD_PATTERN = re.compile(r"(\w+\*|\*\w+)")


class QueryParser:
    """Splits a raw query string into structured clause sets.

    Parsing never fails: malformed or empty input yields a query whose
    clause sets are empty.
    """

    def __init__(self, analyzer: Analyzer | None = None):
        self.analyzer = analyzer or StandardAnalyzer()

    def parse(self, query: str | None) -> AnalyzedQuery:
        original = query or ""
        working = original

        phrases, working = self._extract(PHRASE_PATTERN, working)
        must_not, working = self._extract(EXCLUDE_PATTERN, working)
        must, working = self._extract(REQUIRE_PATTERN, working)
        wildcards, working = self._extract(WILDCARD_PATTERN, working)

        return AnalyzedQuery(
            original=original,
            tokens=self._generic_tokens(original),
            must=self._analyze_words(must),
            should=self._analyze_words(working.split()),
            must_not=self._analyze_words(must_not),
            phrase=tuple(p.strip().lower() for p in phrases if p.strip()),
            wildcard=tuple(w.lower() for w in wildcards),
        )

    @staticmethod
    def _extract(pattern: re.Pattern, text: str) -> tuple[list[str], str]:
        """Return every match of ``pattern`` and the text with matches removed."""
        matches = pattern.findall(text)
        if not matches:
            return [], text
        return matches, pattern.sub(" ", text)

    def _analyze_words(self, words: list[str]) -> tuple[str, ...]:
        """Run clause words through the analyzer so they name indexed terms.

        A word the analyzer splits (``t-shirt``) contributes every piece to
        its clause, so ``+t-shirt`` requires both ``t`` and ``shirt``.
        """
        terms = []
        for word in words:
            terms.extend(self._generic_tokens(word))
        return tuple(terms)

    def _generic_tokens(self, text: str) -> tuple[str, ...]:
        """Analyzer tokens of ``text`` without ``+`` and ``*`` operators."""
        tokens = (token.strip("+*") for token in self.analyzer.analyze(text))
        return tuple(token for token in tokens if token)
