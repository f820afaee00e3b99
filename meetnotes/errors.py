from typing import Optional


class MeetnotesError(Exception):
    """Base class for errors raised by the meeting services."""


class InvalidArgument(MeetnotesError):
    """A required field is missing or malformed (HTTP 400)."""


class NotFound(MeetnotesError):
    """A meeting, workspace or action item does not exist (HTTP 404)."""


class UpstreamUnavailable(MeetnotesError):
    """An AI gateway failed: quota, auth, transport or an unusable reply.

    Never surfaced to clients. Callers degrade to an empty transcript,
    a placeholder summary or an apology message.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceFailure(MeetnotesError):
    """The datastore rejected an operation (HTTP 500)."""
