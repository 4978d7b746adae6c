"""Exception types raised by folder_cleanup."""

from __future__ import annotations


class CleanupError(Exception):
    """Base error for the project."""


class InvalidRootError(CleanupError):
    """A source or target root is missing, not a directory, or protected."""


class RuleFileError(CleanupError):
    """A mapping rule file is missing or malformed."""


class ManifestFormatError(CleanupError):
    """A manifest could not be parsed."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class ConfigError(CleanupError):
    """Configuration values could not be interpreted."""


class ApprovalRequiredError(CleanupError):
    """A mutating action was attempted without an explicit approval."""


class BackupMissingError(CleanupError):
    """No backup artifact was found and no override was given."""
