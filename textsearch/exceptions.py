"""Exception hierarchy for the search engine."""


class SearchError(Exception):
    """Base exception for search-related errors."""


class IndexingError(SearchError):
    """Error during document indexing operations."""


class QueryError(SearchError):
    """Error in search options that cannot be recovered from."""


class StorageError(SearchError):
    """Error raised by a storage backend."""


class ConfigError(SearchError):
    """Invalid configuration file or values."""
