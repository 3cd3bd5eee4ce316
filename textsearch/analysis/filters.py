"""Token filters: pure functions from a token list to a token list."""

from abc import ABC, abstractmethod


class TokenFilter(ABC):
    """Abstract base class for token filters."""

    @abstractmethod
    def filter(self, tokens: list[str]) -> list[str]:
        pass


def _unique(tokens: list[str]) -> list[str]:
    """Remove duplicates while preserving first occurrence order."""
    return list(dict.fromkeys(tokens))


class LowercaseFilter(TokenFilter):
    def filter(self, tokens: list[str]) -> list[str]:
        return [token.lower() for token in tokens]


class StopwordsFilter(TokenFilter):
    """Drops common English function words."""

    DEFAULT_STOPWORDS = frozenset(
        {
            "a",
            "an",
            "and",
            "are",
            "as",
            "at",
            "be",
            "by",
            "for",
            "from",
            "has",
            "he",
            "in",
            "is",
            "it",
            "its",
            "of",
            "on",
            "that",
            "the",
            "to",
            "was",
            "will",
            "with",
        }
    )

    def __init__(self, stopwords: set[str] | frozenset[str] | None = None):
        self.stopwords = frozenset(stopwords) if stopwords else self.DEFAULT_STOPWORDS

    def filter(self, tokens: list[str]) -> list[str]:
        return [token for token in tokens if token not in self.stopwords]


class SynonymsFilter(TokenFilter):
    """Adds synonyms after each token; the original token is kept."""

    DEFAULT_SYNONYMS = {
        "buy": ["purchase", "order"],
        "search": ["find", "look for"],
        "product": ["item", "article"],
    }

    def __init__(self, synonyms: dict[str, list[str]] | None = None):
        self.synonyms = dict(self.DEFAULT_SYNONYMS)
        if synonyms:
            self.synonyms.update(synonyms)

    def filter(self, tokens: list[str]) -> list[str]:
        expanded = []
        for token in tokens:
            expanded.append(token)
            expanded.extend(self.synonyms.get(token, []))
        return _unique(expanded)


class NgramFilter(TokenFilter):
    """Adds character n-grams of every token, keeping the originals."""

    def __init__(self, min_size: int = 3, max_size: int = 5):
        if min_size < 1 or max_size < min_size:
            raise ValueError(f"Invalid n-gram range: {min_size}..{max_size}")
        self.min_size = min_size
        self.max_size = max_size

    def filter(self, tokens: list[str]) -> list[str]:
        ngrams = []
        for token in tokens:
            length = len(token)
            for n in range(self.min_size, min(self.max_size, length) + 1):
                for i in range(length - n + 1):
                    ngrams.append(token[i : i + n])
        return _unique(tokens + ngrams)


class FilterRegistry:
    """Maps token filter names to implementations."""

    def __init__(self):
        self.filters: dict[str, TokenFilter] = {
            "lowercase": LowercaseFilter(),
            "stopwords": StopwordsFilter(),
            "synonyms": SynonymsFilter(),
            "ngram": NgramFilter(),
        }

    def register(self, name: str, token_filter: TokenFilter) -> None:
        self.filters[name] = token_filter

    def get(self, name: str) -> TokenFilter | None:
        return self.filters.get(name)

    def names(self) -> list[str]:
        return sorted(self.filters)
