"""Errors that end a migration run before or outside the per-row insert loop."""


class MigrationError(Exception):
    """Base class for unrecoverable migration errors."""


class ConfigurationError(MigrationError):
    """Invalid or missing configuration (credentials, batch size)."""


class SourceDatabaseNotFound(MigrationError):
    """The SQLite source file does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Source SQLite database not found at: {path}")
        self.path = path


class DestinationUnavailable(MigrationError):
    """The MySQL destination could not be reached."""
