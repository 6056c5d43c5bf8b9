"""Approvers exception hierarchy.

Provides a structured exception tree so catch blocks can be specific
and callers can distinguish between different failure modes.
"""

from __future__ import annotations


class ApproversError(Exception):
    """Base for all approvers exceptions."""


class ConfigurationError(ApproversError):
    """A required application identifier is missing.

    Blocks every directory-dependent operation until corrected.
    """


class AuthError(ApproversError):
    """Credential acquisition failed."""


class InteractionRequired(AuthError):
    """Silent acquisition is not possible; an interactive prompt is needed."""


class DirectoryError(ApproversError):
    """Directory service request failures."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LookupFailure(DirectoryError):
    """Resolving one identity by its key failed."""


class SearchError(DirectoryError):
    """An incremental directory search failed."""
