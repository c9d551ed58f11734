"""
Errors raised by the job and clip repositories.

Routers map these to HTTP status codes; the pipeline treats any of them as
a failed persistence write.
"""


class RepositoryError(Exception):
    """The metadata store rejected or failed an operation."""


class JobRepositoryError(RepositoryError):
    """A job document could not be read or written."""


class ClipRepositoryError(RepositoryError):
    """A clip document could not be read or written."""


class NotFoundError(RepositoryError):
    """The job or clip does not exist."""


class ValidationError(RepositoryError):
    """An update named fields that may not be changed."""


class ConflictError(RepositoryError):
    """A job with the same id already exists."""
