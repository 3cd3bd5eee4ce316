"""Analyzer pipeline: analyzers, token filters and their registries."""

from .analyzers import (
    Analyzer,
    AnalyzerRegistry,
    CustomAnalyzer,
    KeywordAnalyzer,
    PhoneticAnalyzer,
    StandardAnalyzer,
    StemmingAnalyzer,
    build_custom_analyzer,
    soundex,
)
from .filters import (
    FilterRegistry,
    LowercaseFilter,
    NgramFilter,
    StopwordsFilter,
    SynonymsFilter,
    TokenFilter,
)

__all__ = [
    "Analyzer",
    "AnalyzerRegistry",
    "CustomAnalyzer",
    "StandardAnalyzer",
    "KeywordAnalyzer",
    "StemmingAnalyzer",
    "PhoneticAnalyzer",
    "build_custom_analyzer",
    "soundex",
    "TokenFilter",
    "FilterRegistry",
    "LowercaseFilter",
    "StopwordsFilter",
    "SynonymsFilter",
    "NgramFilter",
]
