"""
Error Types

All errors raised by kgraph derive from KnowledgeGraphError so callers can
catch the whole family at once. The API layer maps them to HTTP status codes:
- InvalidInputError, InvalidPaginationError -> 400
- EntityNotFoundError -> 404
- everything else -> 500

Malformed stored data (a corrupt observations or tags column) is not an
exception: it is normalized to an empty list where rows are converted to
entities, and a warning is logged.
"""


class KnowledgeGraphError(Exception):
    """Base class for every kgraph error."""


class ConfigurationError(KnowledgeGraphError):
    """Settings could not be parsed or are outside what the service accepts."""


class StorageError(KnowledgeGraphError):
    """The storage backend is not initialized or could not be reached."""


class BackendUnavailableError(KnowledgeGraphError):
    """
    Native database search was invoked on a backend that cannot do it.

    This is a programming error: callers must check
    ``SearchStrategy.can_use_database()`` first.
    """


class DatabaseSearchError(KnowledgeGraphError):
    """A backend search query failed. Wraps the driver error as __cause__."""


class InvalidInputError(KnowledgeGraphError, ValueError):
    """A request argument has the wrong shape or value."""


class InvalidPaginationError(InvalidInputError):
    """Negative page or non-positive page size."""


class EntityNotFoundError(KnowledgeGraphError, LookupError):
    """A mutation referenced an entity that does not exist in the project."""

    def __init__(self, name: str, project: str):
        self.name = name
        self.project = project
        super().__init__(f"Entity with name {name} not found in project {project}")
