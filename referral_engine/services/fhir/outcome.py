import html
import uuid
from typing import Final

from fhir.resources.R4B.operationoutcome import OperationOutcome, OperationOutcomeIssue

from referral_engine.services.fhir.utils import ERROR_SEVERITIES

MAX_DIAGNOSTICS_LENGTH: Final[int] = 300


def build_error_outcome(
    message: str,
    expression: str | None = None,
    code: str = "required",
    with_id: bool = True,
) -> OperationOutcome:
    issue = OperationOutcomeIssue(
        severity="error",
        code=code,
        diagnostics=message,
        expression=[expression] if expression else None,
    )
    return OperationOutcome(
        id=str(uuid.uuid4()) if with_id else None,
        issue=[issue],
    )


def has_error_issue(outcome: OperationOutcome | None) -> bool:
    if outcome is None:
        return False
    return any(issue.severity in ERROR_SEVERITIES for issue in outcome.issue or [])


def get_diagnostics(outcome: OperationOutcome | None) -> str:
    if outcome is None:
        return ""
    messages = []
    for issue in outcome.issue or []:
        if issue.diagnostics:
            messages.append(issue.diagnostics)
        elif issue.details is not None and issue.details.text:
            messages.append(issue.details.text)
        elif issue.details is not None and issue.details.coding:
            messages.append(str(issue.details.coding[0].code))
    return "; ".join(messages)


def sanitize_outcome(outcome: OperationOutcome) -> OperationOutcome:
    """
    Escapes markup in diagnostics received from a recipient, truncates them and
    drops the narrative before the outcome is stored.
    """
    for issue in outcome.issue or []:
        if issue.diagnostics:
            issue.diagnostics = html.escape(issue.diagnostics)[:MAX_DIAGNOSTICS_LENGTH]
    outcome.text = None
    return outcome
