"""Exception types shared by the gitvis server and client."""


class GitVisError(Exception):
    """Base class for all gitvis errors."""


class ValidationError(GitVisError):
    """Invalid repository path, URL or request parameter.

    Raised before any retrieval session or event stream is started.
    """


class ProviderError(GitVisError):
    """Commit history could not be retrieved from the repository."""


class StreamUnavailableError(ProviderError):
    """The event stream could not be opened at all."""


class LoadCancelled(GitVisError):
    """A retrieval session was cancelled or superseded.

    This is a control signal, never shown to the user.
    """


class LayoutError(GitVisError):
    """The layered layout produced unusable coordinates."""


class ConfigurationError(GitVisError):
    """A configuration value is missing or malformed."""
