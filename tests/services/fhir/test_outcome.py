from fhir.resources.R4B.codeableconcept import CodeableConcept
from fhir.resources.R4B.narrative import Narrative
from fhir.resources.R4B.operationoutcome import OperationOutcome, OperationOutcomeIssue

from referral_engine.services.fhir.outcome import (
    MAX_DIAGNOSTICS_LENGTH,
    build_error_outcome,
    get_diagnostics,
    has_error_issue,
    sanitize_outcome,
)


def test_build_error_outcome() -> None:
    outcome = build_error_outcome("Referral is missing", "Parameters.parameter")

    assert outcome.id is not None
    issue = outcome.issue[0]
    assert issue.severity == "error"
    assert issue.code == "required"
    assert issue.expression == ["Parameters.parameter"]

    assert build_error_outcome("x", with_id=False).id is None


def test_has_error_issue() -> None:
    info = OperationOutcome(issue=[OperationOutcomeIssue(severity="information", code="informational")])
    fatal = OperationOutcome(issue=[OperationOutcomeIssue(severity="fatal", code="exception")])

    assert not has_error_issue(None)
    assert not has_error_issue(info)
    assert has_error_issue(fatal)


def test_get_diagnostics() -> None:
    outcome = OperationOutcome(
        issue=[
            OperationOutcomeIssue(severity="error", code="invalid", diagnostics="first"),
            OperationOutcomeIssue(severity="error", code="invalid", details=CodeableConcept(text="second")),
        ]
    )

    assert get_diagnostics(outcome) == "first; second"
    assert get_diagnostics(None) == ""


def test_sanitize_outcome() -> None:
    outcome = OperationOutcome(
        text=Narrative(status="generated", div='<div xmlns="http://www.w3.org/1999/xhtml">x</div>'),
        issue=[
            OperationOutcomeIssue(severity="error", code="exception", diagnostics="<script>alert(1)</script>"),
            OperationOutcomeIssue(severity="error", code="exception", diagnostics="a" * 1000),
        ],
    )

    sanitized = sanitize_outcome(outcome)

    assert sanitized.text is None
    assert sanitized.issue[0].diagnostics == "&lt;script&gt;alert(1)&lt;/script&gt;"
    assert len(sanitized.issue[1].diagnostics) == MAX_DIAGNOSTICS_LENGTH
