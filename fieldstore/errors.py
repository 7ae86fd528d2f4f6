"""
Error taxonomy for the field store.

Every error carries an HTTP-equivalent status code, a human message and
optional structured details so the API layer can render it without
knowing the concrete type.

    ValidationError      400  malformed or missing input (field → message)
    NotFound             404  referenced column / entity absent
    DuplicateKey         400  column_key (or other unique value) collision
    DependencyFailure    500  PostgreSQL unreachable or rejected the statement
    PartialFailure       500  multi-step operation stopped after some steps
"""


class FieldStoreError(Exception):
    """Base class for all field store errors."""

    status_code = 500
    error = "FieldStoreError"

    def __init__(self, message, details=None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self):
        d = {"error": self.error, "message": self.message}
        if self.details:
            d["details"] = self.details
        return d


class ValidationError(FieldStoreError):
    """Raised when input fails validation. ``details`` maps field → message."""

    status_code = 400
    error = "ValidationError"

    def __init__(self, message, details=None):
        super().__init__(message, details or {})

    @classmethod
    def for_field(cls, field, problem):
        return cls(f"Invalid value for '{field}': {problem}", {field: problem})


class InvalidTransition(ValidationError):
    """Raised when a lifecycle transition edge does not exist."""

    def __init__(self, from_state, to_state, allowed):
        self.from_state = from_state
        self.to_state = to_state
        self.allowed = allowed
        super().__init__(
            f"Cannot transition from '{from_state}' to '{to_state}'. "
            f"Allowed: {allowed}",
            {"state": from_state},
        )


class NotFound(FieldStoreError):
    status_code = 404
    error = "NotFound"


class ColumnNotFound(NotFound):
    def __init__(self, column_key, message=None):
        self.column_key = column_key
        super().__init__(message or f"Column '{column_key}' not found")


class EntityNotFound(NotFound):
    def __init__(self, entity_id, kind="Entity"):
        self.entity_id = entity_id
        super().__init__(f"{kind} '{entity_id}' not found")


class DuplicateKey(FieldStoreError):
    status_code = 400
    error = "DuplicateKey"


class DependencyFailure(FieldStoreError):
    """The database failed or rejected an operation.

    The driver's own message is kept in ``details`` for diagnostics.
    """

    status_code = 500
    error = "DependencyFailure"

    def __init__(self, operation, cause):
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"Store operation '{operation}' failed",
            {"operation": operation, "cause": str(cause).strip()},
        )


class PartialFailure(DependencyFailure):
    """A multi-step operation failed after some of its steps were applied.

    ``completed_steps`` lists what is already persisted; the caller is
    expected to retry the failed step or clean up.
    """

    error = "PartialFailure"

    def __init__(self, operation, completed_steps, failed_step, cause):
        super().__init__(operation, cause)
        self.completed_steps = list(completed_steps)
        self.failed_step = failed_step
        self.message = (
            f"'{operation}' failed at step '{failed_step}' after "
            f"completing {self.completed_steps}"
        )
        self.args = (self.message,)
        self.details.update(
            completed_steps=self.completed_steps, failed_step=failed_step,
        )
