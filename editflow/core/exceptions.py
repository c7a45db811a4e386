"""
Editing engine exception hierarchy.

Services raise these types; blueprints never catch them individually.
``register_error_handlers`` in ``editflow.utils.errors`` maps each class to an
HTTP status once, so every endpoint reports failures the same way.

Every exception carries a machine-readable ``code`` and a ``details`` dict.

Usage:
    from editflow.core.exceptions import NotFoundError, ConflictError

    raise NotFoundError(resource="Draft", resource_id=module_id)
    raise ConflictError("draft:advance:bad-link", "Requested link doesn't exist")
"""


class EditingError(Exception):
    """Base class for all editing engine failures."""

    code = "editing:error"

    def __init__(self, message: str, *, code: str | None = None, details: dict | None = None) -> None:
        if code is not None:
            self.code = code
        self.details = details or {}
        super().__init__(message)


class StructuralError(EditingError):
    """Raised when a proposed process structure fails validation.

    Nothing is persisted when this is raised.

    Args:
        kind: Which check failed: ``badReference``, ``selfLoop``,
              ``duplicateName``, ``ambiguousTarget``, ``unreachableStep``,
              ``malformed``, ``noFinalStep`` or ``exclusivePermission``.
        message: Human-readable explanation.
        details: Identifies the failing element (step/slot index, name).
    """

    code = "edit-process:new:invalid-description"

    def __init__(self, kind: str, message: str, details: dict | None = None) -> None:
        self.kind = kind
        super().__init__(message, details={"kind": kind, **(details or {})})


class NotFoundError(EditingError):
    """Raised when a process, version, step, slot, draft or module does not exist.

    Args:
        resource: Human-readable model name (e.g. "Draft", "Slot").
        resource_id: The key that was looked up.
    """

    code = "not-found"

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, details={"resource": resource})


class PermissionDeniedError(EditingError):
    """Raised when a user may not perform an operation.

    ``kind`` is ``badRole`` when a slot's role constraint rejects the user,
    ``badUser`` when the acting user does not hold the slot they act through,
    and ``forbidden`` when a team permission is missing.
    """

    code = "forbidden"

    def __init__(self, kind: str, message: str, *, code: str | None = None) -> None:
        self.kind = kind
        super().__init__(message, code=code, details={"kind": kind})


class ConflictError(EditingError):
    """Raised when an operation conflicts with current state.

    Covers a missing transition (``badLink``), a duplicate process name and
    a module that already has a draft. Raised before any mutation.
    """

    code = "conflict"

    def __init__(self, code: str, message: str, *, kind: str | None = None, details: dict | None = None) -> None:
        self.kind = kind
        extra = {"kind": kind} if kind else {}
        super().__init__(message, code=code, details={**extra, **(details or {})})


class InUseError(EditingError):
    """Raised when deleting a process or version that a draft has referenced."""

    code = "edit-process:in-use"

    def __init__(self, resource: str, resource_id: int) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} id={resource_id} has been used by a draft and cannot be deleted",
            details={"resource": resource},
        )


class DependencyFailure(EditingError):
    """Raised when an external collaborator or the database fails mid-operation.

    The whole operation has been rolled back; callers may retry.
    """

    code = "dependency-failure"
    retryable = True


class LockTimeoutError(DependencyFailure):
    """Raised when a draft stays locked by a concurrent operation past the lock timeout."""

    code = "draft:locked"
