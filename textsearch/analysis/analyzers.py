"""Text analyzers for search indexing.

An analyzer is a pure function from raw text to an ordered list of lowercase
tokens. Analyzers are looked up by name through :class:`AnalyzerRegistry`;
unknown names resolve to the standard analyzer.
"""

import logging
import re
from abc import ABC, abstractmethod

from .filters import FilterRegistry, TokenFilter

logger = logging.getLogger(__name__)

SPLIT_PATTERN = re.compile(r"[\s\-_,.;:!?'\"]+")


class Analyzer(ABC):
    """Abstract base class for text analyzers."""

    @abstractmethod
    def analyze(self, text: str) -> list[str]:
        """Analyze text and return list of tokens.

        Args:
            text: Input text to analyze

        Returns:
            List of analyzed tokens
        """
        pass


class StandardAnalyzer(Analyzer):
    """Lowercases and splits on whitespace and punctuation."""

    def analyze(self, text: str) -> list[str]:
        if not text:
            return []
        return [token for token in SPLIT_PATTERN.split(text.lower()) if token]


class KeywordAnalyzer(Analyzer):
    """Treats entire input as single token (for exact matching)."""

    def analyze(self, text: str) -> list[str]:
        """Return text as single lowercase token."""
        token = text.strip().lower() if text else ""
        return [token] if token else []


class StemmingAnalyzer(Analyzer):
    """Standard analysis followed by simplified suffix stripping."""

    def __init__(self):
        self.base = StandardAnalyzer()

    def analyze(self, text: str) -> list[str]:
        stemmed = (self.stem(token) for token in self.base.analyze(text))
        return [token for token in stemmed if token]

    @staticmethod
    def stem(word: str) -> str:
        """Strip a trailing "ing", "ed" or single "s"."""
        if word.endswith("ing"):
            return word[:-3]
        if word.endswith("ed"):
            return word[:-2]
        if word.endswith("s") and not word.endswith("ss"):
            return word[:-1]
        return word


SOUNDEX_CODES = {
    **dict.fromkeys("bfpv", "1"),
    **dict.fromkeys("cgjkqsxz", "2"),
    **dict.fromkeys("dt", "3"),
    "l": "4",
    **dict.fromkeys("mn", "5"),
    "r": "6",
}


def soundex(word: str) -> str:
    """American Soundex code of ``word``, lowercased (``robert`` -> ``r163``).

    Returns an empty string when the word holds no ASCII letters.
    """
    letters = [c for c in word.lower() if "a" <= c <= "z"]
    if not letters:
        return ""

    first = letters[0]
    code = [first]
    previous = SOUNDEX_CODES.get(first, "")

    for char in letters[1:]:
        digit = SOUNDEX_CODES.get(char, "")
        if digit:
            if digit != previous:
                code.append(digit)
                if len(code) == 4:
                    break
            previous = digit
        elif char not in "hw":
            # Vowels separate repeated codes; h and w do not.
            previous = ""

    return "".join(code).ljust(4, "0")


class PhoneticAnalyzer(Analyzer):
    """Standard analysis followed by a Soundex code per token."""

    def __init__(self):
        self.base = StandardAnalyzer()

    def analyze(self, text: str) -> list[str]:
        return [soundex(token) or token for token in self.base.analyze(text)]


class CustomAnalyzer(Analyzer):
    """Chains a base analyzer with a sequence of token filters."""

    def __init__(self, base: Analyzer, filters: list[TokenFilter] | None = None):
        self.base = base
        self.filters = list(filters or [])

    def analyze(self, text: str) -> list[str]:
        tokens = self.base.analyze(text)
        for token_filter in self.filters:
            tokens = token_filter.filter(tokens)
        return tokens


class AnalyzerRegistry:
    """Maps analyzer names to implementations."""

    DEFAULT = "standard"

    def __init__(self):
        self.analyzers: dict[str, Analyzer] = {
            "standard": StandardAnalyzer(),
            "keyword": KeywordAnalyzer(),
            "stemming": StemmingAnalyzer(),
            "phonetic": PhoneticAnalyzer(),
        }

    def register(self, name: str, analyzer: Analyzer) -> None:
        self.analyzers[name] = analyzer

    def get(self, name: str | None) -> Analyzer:
        """Get analyzer by name, falling back to the standard analyzer."""
        analyzer = self.analyzers.get(name) if name else None
        if analyzer is None:
            logger.debug(f"Unknown analyzer {name!r}, using {self.DEFAULT}")
            return self.analyzers[self.DEFAULT]
        return analyzer

    def names(self) -> list[str]:
        return sorted(self.analyzers)

    def __contains__(self, name: str) -> bool:
        return name in self.analyzers


def build_custom_analyzer(
    registry: AnalyzerRegistry,
    filters: FilterRegistry,
    tokenizer: str,
    filter_names: list[str],
) -> CustomAnalyzer:
    """Build a custom analyzer from a base analyzer name and filter names.

    Unknown filter names are skipped with a warning.
    """
    chain = []
    for name in filter_names:
        token_filter = filters.get(name)
        if token_filter is None:
            logger.warning(f"Unknown token filter {name!r} skipped")
            continue
        chain.append(token_filter)
    return CustomAnalyzer(registry.get(tokenizer), chain)
