from __future__ import annotations

from typing import Any


class PortalError(Exception):
    """Base class for errors surfaced to the acting user."""


class ValidationError(PortalError):
    def __init__(
        self,
        message: str,
        missing_fields: list[str] | None = None,
        messages: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.missing_fields = list(missing_fields or [])
        self.messages = list(messages or [])


class NotFoundError(PortalError):
    pass


class NotAuthorizedError(PortalError):
    pass


class StaleStateError(PortalError):
    """The submission is not in a state that allows the action.

    ``status`` is the authoritative status at the time of the check so the
    caller can refresh its view.
    """

    def __init__(self, message: str, status: str) -> None:
        super().__init__(message)
        self.status = status


class DuplicateActionError(PortalError):
    """The approver already approved; the repeated request changed nothing."""

    def __init__(self, message: str, approver_id: str, submission: Any = None) -> None:
        super().__init__(message)
        self.approver_id = approver_id
        self.submission = submission


class DocumentNotApprovedError(PortalError):
    def __init__(self, message: str, status: str) -> None:
        super().__init__(message)
        self.status = status


class ConcurrentUpdateError(PortalError):
    pass
