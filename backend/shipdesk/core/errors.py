"""Error taxonomy shared by the adapters, the mutation pipeline and the dispatcher.

Validation and not-found errors stop at the mutation pipeline and come back as
failed results. Backend errors surface later as error toasts. Notification
errors are only ever logged.
"""


class ShipdeskError(Exception):
    """Base class for every error raised by shipdesk."""

    code: str | None = None

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ShipdeskError):
    """User input is incomplete or malformed; nothing was persisted."""


class NotFoundError(ShipdeskError):
    """A mutation targets an id that is not in the current snapshot."""


class TrackingNotFoundError(NotFoundError):
    """No shipment carries the requested tracking number."""

    code = "tracking_not_found"

    def __init__(self, tracking_no: str) -> None:
        super().__init__(f'No results for "{tracking_no}"')
        self.tracking_no = tracking_no


class BackendError(ShipdeskError):
    """A storage backend rejected a read or a write."""


class StorageQuotaError(BackendError):
    """The local store could not be written (quota exceeded or disk error)."""


class NotificationError(ShipdeskError):
    """A customer notification could not be delivered."""


class RelayError(NotificationError):
    """The email relay refused or failed a send."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
