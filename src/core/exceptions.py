"""Error taxonomy shared by the services and routers."""


class SupervisorError(Exception):
    """Base exception for the supervisor engine."""

    pass


class StorageError(SupervisorError):
    """Reading or writing a persisted collection failed."""

    def __init__(self, message: str, collection: str = "unknown"):
        self.collection = collection
        super().__init__(f"[{collection}] {message}")


class ConcurrentUpdateError(StorageError):
    """A compare-and-swap write lost against another writer."""

    def __init__(self, collection: str, record_id: str, expected_revision: int):
        self.record_id = record_id
        self.expected_revision = expected_revision
        super().__init__(
            f"Record {record_id} changed since revision {expected_revision}",
            collection,
        )


class NotFoundError(SupervisorError):
    """An operation referenced an id that does not exist."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class ValidationError(SupervisorError):
    """A required field is missing or empty."""

    pass


class InvalidStateError(SupervisorError):
    """The record is not in a state that allows the requested transition."""

    def __init__(self, record_id: str, status: str):
        self.record_id = record_id
        self.status = status
        super().__init__(f"Request {record_id} is not pending (status: {status})")


class DeliveryFailure(SupervisorError):
    """Pushing a message to a live session failed."""

    def __init__(self, customer_phone: str, cause: Exception):
        self.customer_phone = customer_phone
        self.cause = cause
        super().__init__(f"Delivery to {customer_phone} failed: {cause}")
