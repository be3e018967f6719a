"""Client-side helpers: payment API client, status poller and form."""
from .api import PaymentApiClient, PaymentApiError
from .form import PaymentForm, SubmitResult
from .notifications import Notification
from .poller import PaymentStatusPoller, PollHandle, PollOutcome

__all__ = [
    "Notification",
    "PaymentApiClient",
    "PaymentApiError",
    "PaymentForm",
    "PaymentStatusPoller",
    "PollHandle",
    "PollOutcome",
    "SubmitResult",
]
