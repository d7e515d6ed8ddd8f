"""Custom exception hierarchy for the folder player.

Most of these never escape the component that raises them: sources and
parsers recover at their own boundary and hand back empty results.
"""


class FolderPlayerError(Exception):
    """Base exception for all folder player errors."""

    pass


class SourceError(FolderPlayerError):
    """Transport failures while listing or reading a music source."""

    pass


class AuthenticationError(SourceError):
    """Credentials rejected, or challenge came from an untrusted host."""

    pass


class ConfigurationError(FolderPlayerError):
    """Errors related to configuration."""

    pass


class PlaylistError(FolderPlayerError):
    """Errors related to saved playlist operations."""

    pass
