"""
Queue exceptions.

Configuration errors are raised before any database access. Database
errors wrap the underlying SQLAlchemy exception and are raised after the
enclosing transaction has been rolled back.
"""


class QueueError(RuntimeError):
    """Base class for all queue errors."""


class DuplicateHandlerError(QueueError):
    def __init__(self, job_type: str):
        super().__init__(f"queue: handler already registered for job type {job_type}")
        self.job_type = job_type


class HandlerNotRegisteredError(QueueError):
    def __init__(self, job_type: str):
        super().__init__(f"queue: no handler registered for job type {job_type}")
        self.job_type = job_type


class NoJobTypeError(QueueError):
    def __init__(self):
        super().__init__("queue: no job type specified")


class QueueDatabaseError(QueueError):
    """A statement, transaction or connection failure while talking to the database."""


class SetupError(QueueDatabaseError):
    """Schema bootstrap failed."""
