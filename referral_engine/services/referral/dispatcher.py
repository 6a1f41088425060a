import logging
from typing import Tuple

from fhir.resources.R4B.codeableconcept import CodeableConcept
from fhir.resources.R4B.operationoutcome import OperationOutcome
from fhir.resources.R4B.task import Task, TaskOutput

from referral_engine.exceptions import ReferralEngineError, SubmissionFailed
from referral_engine.models.referral.context import DispatchConfig, ReferralResult, Warnings
from referral_engine.services.api.authenticators.authenticator import Authenticator
from referral_engine.services.api.authenticators.registry import AuthenticatorRegistry
from referral_engine.services.api.authenticators.yusa_authenticator import YusaAuthenticator
from referral_engine.services.api.yusa_api import YusaApi, is_submitted
from referral_engine.services.fhir.codes import TASK_OUTPUT_TEXT
from referral_engine.services.fhir.outcome import build_error_outcome, has_error_issue
from referral_engine.services.fhir.references import make_reference
from referral_engine.services.referral.assembler import AssembledReferral
from referral_engine.services.referral.gateway import ResourceGateway
from referral_engine.stats import (
    REFERRAL_DISPATCH_FAILED,
    REFERRAL_DISPATCH_TIME,
    REFERRAL_NOT_SENT,
    REFERRAL_SUBMITTED,
    get_stats,
)

logger = logging.getLogger(__name__)

YUSA_SITE = "YUSA"
NO_SUBMISSION_SITE = "NO-SUBMISSION"
NOT_SUBMITTED = (
    "Referral Request has NOT been submitted because submission is disabled. "
    "Enable it by setting 'recipient_not_ready' to false."
)


def set_task_output(task: Task, outcome: OperationOutcome) -> None:
    task.output = [
        TaskOutput(
            type=CodeableConcept(text=TASK_OUTPUT_TEXT),
            valueReference=make_reference(outcome),
        )
    ]


class Dispatcher:
    """
    Sends an assembled referral to its recipient and records the result on the
    Task. A failed submission always leaves a failed Task with the reason as
    its output before the error is raised.
    """

    def __init__(
        self,
        gateway: ResourceGateway,
        registry: AuthenticatorRegistry,
        recipient_authenticator: Authenticator,
        config: DispatchConfig,
        warnings: Warnings,
        timeout: int = 600,
    ) -> None:
        self.__gateway = gateway
        self.__registry = registry
        self.__recipient_authenticator = recipient_authenticator
        self.__config = config
        self.__warnings = warnings
        self.__timeout = timeout

    def dispatch(self, referral: AssembledReferral) -> ReferralResult:
        endpoint_url = referral.recipient_endpoint.address or ""

        if not self.__config.recipient_ready or endpoint_url.strip() == "":
            self.__warnings.add(NOT_SUBMITTED)
            get_stats().inc(REFERRAL_NOT_SENT)
        else:
            with get_stats().timer(REFERRAL_DISPATCH_TIME):
                self.__submit(referral, endpoint_url)

        return ReferralResult(
            envelope_reference=make_reference(referral.envelope),
            envelope=referral.envelope,
            recipient_endpoint=referral.recipient_endpoint,
            warning=str(self.__warnings) if self.__warnings else None,
        )

    def __submit(self, referral: AssembledReferral, endpoint_url: str) -> None:
        task = referral.task
        outcome = None
        target_url = endpoint_url

        if self.__config.recipient_site == YUSA_SITE:
            failed = self.__submit_yusa(referral, endpoint_url)
        elif self.__config.recipient_site == NO_SUBMISSION_SITE:
            self.__warnings.add("Submission is disabled.")
            get_stats().inc(REFERRAL_NOT_SENT)
            task.status = "requested"
            self.__gateway.update(task)
            return
        else:
            failed, outcome = self.__submit_message(referral, endpoint_url)
            target_url = _process_message_url(endpoint_url)

        if failed:
            self.__fail(task, f"Submitting to {target_url} failed. {self.__warnings}".strip())

        if outcome is not None:
            outcome = self.__gateway.save(outcome)
            set_task_output(task, outcome)
            if has_error_issue(outcome):
                task.status = "failed"
                self.__gateway.update(task)
                get_stats().inc(REFERRAL_DISPATCH_FAILED)
                raise SubmissionFailed(f"Submitting to {target_url} failed", task.id)

        task.status = "requested"
        self.__gateway.update(task)

        service_request = referral.service_request
        service_request.status = "active"
        self.__gateway.update(service_request)

        self.__warnings.add(f"Submitted to {target_url}")
        get_stats().inc(REFERRAL_SUBMITTED)

    def __submit_yusa(self, referral: AssembledReferral, endpoint_url: str) -> bool:
        """
        Returns True when the submission failed.
        """
        if not isinstance(self.__recipient_authenticator, YusaAuthenticator):
            self.__warnings.add("The YUSA recipient api is not configured.")
            return True

        api = YusaApi(endpoint_url, self.__timeout, self.__recipient_authenticator)
        result = api.submit_referral(referral.envelope)
        self.__warnings.add(f"Submitted to YUSA in Restful POST and received response(s) = {result}")
        return not is_submitted(result)

    def __submit_message(
        self, referral: AssembledReferral, endpoint_url: str
    ) -> Tuple[bool, OperationOutcome | None]:
        token = None
        try:
            token = self.__registry.get_bearer_token(endpoint_url)
        except (ConnectionError, ValueError) as e:
            self.__warnings.add(f"Failed to get an access token: {e}")

        try:
            status_code, outcome = self.__gateway.process_message(endpoint_url, referral.envelope, token)
        except (ReferralEngineError, OSError, ValueError) as e:
            message = e.message if isinstance(e, ReferralEngineError) else str(e)
            self.__warnings.add(f"Failed to send a request: {message}")
            return True, None

        if status_code >= 300 and not has_error_issue(outcome):
            self.__warnings.add(f"Failed to send a request: HTTP {status_code}")
            return True, None

        return False, outcome

    def __fail(self, task: Task, message: str) -> None:
        task.status = "failed"
        outcome = self.__gateway.save(build_error_outcome(message, "Endpoint", code="exception"))
        set_task_output(task, outcome)
        self.__gateway.update(task)
        get_stats().inc(REFERRAL_DISPATCH_FAILED)

        logger.error(f"{message} Task/{task.id}")
        raise SubmissionFailed(f"{message} Task.id: Task/{task.id}", task.id)


def _process_message_url(endpoint_url: str) -> str:
    if endpoint_url.endswith("/"):
        return endpoint_url + "$process-message"
    return endpoint_url + "/$process-message"
