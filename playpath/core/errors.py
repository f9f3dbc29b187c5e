"""
Progression error taxonomy.

- ContentGraphError: broken static content (cycle, dangling prerequisite)
- StorageFailure: the storage collaborator failed; safe to retry
- InvalidInputError: malformed caller data, rejected before any mutation
- NotFoundError: unknown child, activity or subject id
"""

from __future__ import annotations


class ProgressionError(Exception):
    """Base class for all progression engine errors."""

    retryable: bool = False


class ContentGraphError(ProgressionError):
    """Raised when the prerequisite graph is not a valid DAG."""

    def __init__(self, message: str, subject_ids: set[str] | None = None):
        super().__init__(message)
        self.subject_ids = set(subject_ids or ())


class StorageFailure(ProgressionError):
    """Raised when a read or write against the progress store fails."""

    retryable = True


class InvalidInputError(ProgressionError, ValueError):
    """Raised for malformed outcome data."""


class NotFoundError(ProgressionError, LookupError):
    """Raised for unknown ids."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier
