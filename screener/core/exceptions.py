"""
Domain exceptions raised by the service layer.

Routes translate these into HTTP errors with human-readable messages.
"""


class ScreeningError(Exception):
    """Base class for service-layer errors."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: str = None, user_message: str = None):
        super().__init__(message or self.user_message)
        if user_message:
            self.user_message = user_message


class StorageFailure(ScreeningError):
    user_message = "The CV file could not be stored. Please try uploading it again."


class StorageNotFound(ScreeningError):
    user_message = "The CV file could not be found."


class DispatchFailure(ScreeningError):
    user_message = "CV analysis could not be started. You can retry it with Resume Screening."


class CreditLedgerError(ScreeningError):
    user_message = "Your analysis credits could not be checked. Analysis was not started."


class AccountNotFound(ScreeningError):
    user_message = "Account not found."


class JobNotFound(ScreeningError):
    user_message = "Job not found."


class CandidateNotFound(ScreeningError):
    user_message = "Candidate not found."


class InvalidTransition(ScreeningError):
    user_message = "This upload can no longer change state."


class AnalysisPayloadError(ScreeningError):
    user_message = "The analysis result could not be read."
