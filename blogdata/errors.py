"""
Error taxonomy for the data-access layer.

Only ``TransportError`` and ``RateLimitError`` are meant to reach a
user-facing caller.  ``ProbeError`` is raised and caught inside the
transport package and only ever logged; ``TreeIntegrityError`` is raised
by ``CommentTree`` and turned into a no-op by the comment service.
"""


class BlogDataError(Exception):
    """Base class for every error raised by this package."""


class TransportError(BlogDataError):
    """Network failure, timeout, or non-success status from the store or relay."""

    def __init__(self, message: str, status_code: int | None = None, path: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class RateLimitError(BlogDataError):
    """The named action is currently blocked."""

    def __init__(self, action: str, retry_after: int):
        self.action = action
        self.retry_after = retry_after
        super().__init__(f"Too many requests, retry in {retry_after} seconds")


class ProbeError(BlogDataError):
    """A diagnostic reachability check failed."""


class TreeIntegrityError(BlogDataError):
    """A delete or reply target is missing from the current comment index."""

    def __init__(self, comment_id: str):
        super().__init__(f"Comment {comment_id!r} not found in the current index")
        self.comment_id = comment_id
