class ReferralEngineError(Exception):
    """
    Base error for everything that aborts a referral or a feedback message. The
    expression points at the offending element (FHIRPath) and is reported back
    in the OperationOutcome returned to the caller.
    """

    status_code: int = 500
    issue_code: str = "processing"

    def __init__(self, message: str, expression: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.expression = expression


# Input validation


class InvalidParameter(ReferralEngineError):
    status_code = 400
    issue_code = "invalid"


class MissingReferral(ReferralEngineError):
    status_code = 400
    issue_code = "required"

    def __init__(self, message: str = "Referral is missing", expression: str | None = None) -> None:
        super().__init__(message, expression or "Parameters.parameter.where(name='referral').empty()")


class InvalidSubject(ReferralEngineError):
    status_code = 422
    issue_code = "required"


class PatientMismatch(ReferralEngineError):
    status_code = 422
    issue_code = "required"


class SubjectMismatch(ReferralEngineError):
    status_code = 422
    issue_code = "required"


class MissingServiceType(ReferralEngineError):
    status_code = 400
    issue_code = "required"


# Resolution


class UnresolvedParty(ReferralEngineError):
    status_code = 422
    issue_code = "not-found"


class InvalidPerformer(UnresolvedParty):
    pass


class NotFound(ReferralEngineError):
    status_code = 404
    issue_code = "not-found"


# Persistence and transport


class PersistenceError(ReferralEngineError):
    status_code = 500
    issue_code = "exception"

    def __init__(self, message: str, resource_identity: str | None = None) -> None:
        super().__init__(message)
        self.resource_identity = resource_identity


class Unreachable(ReferralEngineError):
    status_code = 502
    issue_code = "transient"


class SubmissionFailed(ReferralEngineError):
    status_code = 500
    issue_code = "exception"

    def __init__(self, message: str, task_id: str | None = None) -> None:
        super().__init__(message, "Endpoint")
        self.task_id = task_id


# Reconciliation


class InvalidEnvelope(ReferralEngineError):
    status_code = 400
    issue_code = "structure"


class UnrecognizedMessage(ReferralEngineError):
    status_code = 400
    issue_code = "not-supported"


class MalformedHeader(ReferralEngineError):
    status_code = 422
    issue_code = "required"


class MissingCorrelationIdentifier(ReferralEngineError):
    status_code = 422
    issue_code = "required"


class NoMatchingTask(ReferralEngineError):
    status_code = 404
    issue_code = "not-found"


class MissingTaskSubject(ReferralEngineError):
    status_code = 422
    issue_code = "required"
