import uuid


class SchedulingError(Exception):
    """Base class for every error the scheduling engine reports to its callers."""

    code = "scheduling_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidRequestError(SchedulingError):
    """Malformed input: non-positive duration, missing ids, bad rule windows."""

    code = "invalid_request"
    status_code = 422


class WorkflowStateError(InvalidRequestError):
    code = "invalid_transition"
    status_code = 409


class NotFoundError(SchedulingError):
    """Referenced clinic, professional or appointment does not exist or is inactive."""

    code = "not_found"
    status_code = 404


class ClosedError(SchedulingError):
    """The clinic is not open for the requested date or interval. Forcing cannot fix it."""

    code = "closed"
    status_code = 422


class ConflictError(SchedulingError):
    """A proposed booking collides with existing appointments of the same professional."""

    code = "conflict"
    status_code = 409

    def __init__(self, message: str, verdict, appointment_ids: list[uuid.UUID] | None = None):
        super().__init__(message)
        self.verdict = verdict
        self.appointment_ids = list(appointment_ids or [])

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["verdict"] = self.verdict.value if self.verdict is not None else None
        body["conflicting_appointment_ids"] = [str(i) for i in self.appointment_ids]
        return body


class CommitRaceError(ConflictError):
    """
    Conflict discovered only inside the commit transaction, after validation
    believed the slot was free. `transient` marks store-level failures
    (serialization failure, timeout) that a plain retry may resolve.
    """

    code = "commit_race"

    def __init__(self, message: str, verdict=None, appointment_ids: list[uuid.UUID] | None = None, transient: bool = False):
        super().__init__(message, verdict, appointment_ids)
        self.transient = transient

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["transient"] = self.transient
        return body


class SerializationFailure(Exception):
    """Raised by store adapters when a concurrent transaction invalidated the read set."""
