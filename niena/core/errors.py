"""
Domain errors raised by the service layer.

Routes let these propagate; the handler registered in main.py turns
them into HTTP responses with the status code carried by each class.
"""


class NienaError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotFoundError(NienaError):
    status_code = 404


class InsufficientCreditsError(NienaError):
    status_code = 402


class InvalidStateError(NienaError):
    status_code = 409


class AgentOutputError(NienaError):
    """The model answered with something we could not use."""
    status_code = 502


class JobSearchError(NienaError):
    status_code = 502

    def __init__(self, message: str = "", status: int = None):
        super().__init__(message)
        self.status = status


class JobSearchRateLimited(JobSearchError):
    status_code = 429


class AccountSuspendedError(NienaError):
    status_code = 403


class SubscriptionExpiredError(NienaError):
    status_code = 412

    def __init__(self, message: str = "SUBSCRIPTION_EXPIRED"):
        super().__init__(message)


class InvalidRequestError(NienaError):
    status_code = 400
