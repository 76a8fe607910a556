"""Domain exceptions raised by the tagging services.

Services raise these; they never raise HTTPException. The handler registered
in tagtrust.main maps each class to its status code and an ErrorResponse body.
"""


class TagTrustError(Exception):
    """Base class for every domain error surfaced to callers."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__doc__ or self.code


class ValidationError(TagTrustError):
    """Malformed submission (empty entity name, bad attrs, bad direction)."""

    status_code = 422
    code = "validation_error"


class DuplicateError(TagTrustError):
    """An approved or pending tag already exists for this content, name and submitter."""

    status_code = 409
    code = "duplicate"


class NotFoundError(TagTrustError):
    """The referenced tag or user does not exist."""

    status_code = 404
    code = "not_found"


class NotOwnerError(TagTrustError):
    """Only the original submitter may withdraw a tag."""

    status_code = 403
    code = "not_owner"


class SelfVoteError(TagTrustError):
    """A submitter cannot vote on their own tag."""

    status_code = 403
    code = "self_vote"


class PermissionDeniedError(TagTrustError):
    """The caller lacks the role required for this operation."""

    status_code = 403
    code = "permission_denied"


class AlreadyDecidedError(TagTrustError):
    """The tag has left the pending state."""

    status_code = 409
    code = "already_decided"


class ConflictError(TagTrustError):
    """A concurrent operation changed the tag first; re-fetch and retry."""

    status_code = 409
    code = "conflict"


class TransientError(TagTrustError):
    """Reputation could not be recomputed; the whole operation was rolled back."""

    status_code = 503
    code = "transient_failure"
