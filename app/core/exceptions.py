"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Two families:

  * Record errors (NotFoundError, ValidationError) raised by the job and
    hierarchy services.
  * Board errors (BoardError subclasses) raised by the scope resolver and the
    transition engine. These are expected at runtime: the board session
    recovers from them locally and the API maps them to 403/409/422.

Usage:
    from app.core.exceptions import NotFoundError, ScopeDeniedError

    raise NotFoundError(resource="Job", resource_id=job_id)
    raise ScopeDeniedError("Office O2 is outside your scope", requested_office_id="O2")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Security note: used for BOTH genuinely missing records AND cross-org
    lookups. A 403 would confirm the record exists; a 404 does not.

    Args:
        resource: Human-readable model name (e.g. "Job", "Department").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        org_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        org_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.org_id = org_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if org_id is not None:
            msg += f" (org={org_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class BoardError(Exception):
    """Base for errors the workflow board recovers from locally."""

    code = "ERR_BOARD"


class ScopeDeniedError(BoardError):
    """The caller asked for data or an action outside its hierarchy scope.

    Never degrade to a narrower scope when this is raised: the caller must be
    redirected or the entry hidden.
    """

    code = "ERR_SCOPE_DENIED"

    def __init__(
        self,
        message: str,
        *,
        user_id: str | None = None,
        requested_office_id: str | None = None,
        requested_department_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.user_id = user_id
        self.requested_office_id = requested_office_id
        self.requested_department_id = requested_department_id


class TerminalJobError(BoardError):
    """A lane transition was attempted on a CLOSEOUT job."""

    code = "ERR_TERMINAL_JOB"

    def __init__(self, job_id: str | None, target_lane: str) -> None:
        super().__init__(f"Job {job_id} is closed out; cannot move it to '{target_lane}'")
        self.job_id = job_id
        self.target_lane = target_lane


class UnknownLaneError(BoardError):
    """The drop target is not one of the board lanes."""

    code = "ERR_UNKNOWN_LANE"

    def __init__(self, target) -> None:
        super().__init__(f"Unknown lane: {target!r}")
        self.target = target


class WriteConflictError(BoardError):
    """The persistence layer rejected a patch write."""

    code = "ERR_WRITE_CONFLICT"

    def __init__(self, job_id: str, reason: str | None = None) -> None:
        msg = f"Write rejected for job {job_id}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.job_id = job_id
        self.reason = reason
