from typing import Optional


class SiteAuditError(Exception):
    """Base class for every failure raised by the site audit service."""


class TransportError(SiteAuditError):
    """Network failure or timeout while talking to the vendor. Retryable."""


class VendorError(SiteAuditError):
    """The vendor answered with an error status, in HTTP or inside the envelope."""

    def __init__(self, status_message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        self.status_message = status_message
        if status_code is None:
            super().__init__(f"DataForSEO API error: {status_message}")
        else:
            super().__init__(f"DataForSEO API error: {status_message} ({status_code})")


class TaskRejectedError(VendorError):
    """The vendor refused a crawl submission. Carries the vendor reason verbatim."""

    def __init__(self, target: str, status_message: str, status_code: Optional[int] = None):
        self.target = target
        self.status_code = status_code
        self.status_message = status_message
        SiteAuditError.__init__(self, f"Failed to create audit task: {status_message}")


class TaskNotFoundError(SiteAuditError):

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class InvalidTaskStateError(SiteAuditError):

    def __init__(self, task_id: str, status: str, expected: Optional[str] = None):
        self.task_id = task_id
        self.status = status
        self.expected = expected
        message = f"Task {task_id} is in invalid state: {status}"
        if expected:
            message = f"{message} (expected {expected})"
        super().__init__(message)


class AggregationError(SiteAuditError):
    """One of the result fetches failed, so no report is produced.

    The message names only the failed step; the vendor detail stays on
    ``__cause__`` and in the logs.
    """

    def __init__(self, task_id: str, step: str):
        self.task_id = task_id
        self.step = step
        super().__init__(f"Report generation failed while fetching {step} data for task {task_id}")
