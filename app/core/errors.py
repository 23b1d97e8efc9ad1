from typing import Iterable, Optional


class RallyError(Exception):
    """Base class for every failure the service layer reports to callers."""

    status_code = 500
    user_message = "Something went wrong. Please try again."

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.user_message
        super().__init__(self.detail)

    @property
    def display_message(self) -> str:
        return self.detail


class NotFound(RallyError):
    status_code = 404
    user_message = "We couldn't find what you were looking for."

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} does not exist.")

    @property
    def display_message(self) -> str:
        return self.user_message


class MalformedData(RallyError):
    status_code = 422
    user_message = "This record is missing information and can't be shown."

    def __init__(self, collection: str, doc_id: str, reason: str = ""):
        self.collection = collection
        self.doc_id = doc_id
        self.reason = reason
        super().__init__(f"{collection}/{doc_id} is malformed. {reason}".strip())

    @property
    def display_message(self) -> str:
        return self.user_message


class ValidationFailed(RallyError):
    status_code = 400
    user_message = "Please check the details you entered."


class PermissionDenied(RallyError):
    status_code = 403
    user_message = "You're not allowed to do that."


class NotHost(PermissionDenied):
    user_message = "Only the host can change this session."


class HostCannotLeave(PermissionDenied):
    user_message = "Hosts can't leave their own session. Cancel it instead."


class CannotMessageSelf(PermissionDenied):
    user_message = "You can't message yourself."


class ProfileIncomplete(PermissionDenied):
    user_message = "Finish setting up your profile first."


class CapacityExceeded(RallyError):
    status_code = 409
    user_message = "This session is already full."


class WriteFailure(RallyError):
    status_code = 502
    user_message = "We couldn't save your changes. Check your connection and try again."


class PartialFailure(RallyError):
    """A multi-step operation stopped part way through.

    Steps listed in ``completed`` were applied and are not rolled back. A retry
    can skip them and run ``remaining`` (which starts with ``failed_step``).
    """

    status_code = 500
    user_message = "Only part of this action went through. Please retry."

    def __init__(
        self,
        operation: str,
        completed: Iterable[str],
        failed_step: str,
        remaining: Iterable[str],
        cause: Exception,
    ):
        self.operation = operation
        self.completed = tuple(completed)
        self.failed_step = failed_step
        self.remaining = tuple(remaining)
        self.cause = cause
        super().__init__(
            f"{operation} failed at {failed_step} after {list(self.completed)}: {cause}"
        )


class VenueLookupError(RallyError):
    status_code = 502
    user_message = "Couldn't load nearby venues right now."


class StoreUnavailable(RallyError):
    status_code = 503
    user_message = "We can't reach the server right now. Please try again."
