"""Custom exceptions for rollcall."""

from __future__ import annotations


class RollcallError(Exception):
    """Base exception for all rollcall errors."""


class ConfigError(RollcallError):
    """The ``mentions`` section of the config file is malformed."""


class StateLoadError(RollcallError):
    """Prior mention state could not be loaded.

    Novelty of a mention cannot be decided without it, so the event is
    abandoned and may be redelivered.
    """


class CommentPostError(RollcallError):
    """Posting the mentions comment failed. No state was written."""


class StatePersistError(RollcallError):
    """The comment was posted but the updated state could not be saved.

    Redelivering the event would post the same comment again; the issue
    needs manual reconciliation instead.
    """

    def __init__(self, message: str, posted_comment: str):
        super().__init__(message)
        self.posted_comment = posted_comment
