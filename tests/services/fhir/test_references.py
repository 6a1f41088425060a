from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.reference import Reference
import pytest

from referral_engine.services.fhir.references import (
    is_equal_reference,
    make_reference,
    parse_reference,
    try_parse_reference,
)


@pytest.mark.parametrize(
    "reference, base_url, resource_type, id, version",
    [
        ("Patient/1", None, "Patient", "1", None),
        ("Patient/1/_history/2", None, "Patient", "1", "2"),
        ("http://ehr.example.org/fhir/Patient/1", "http://ehr.example.org/fhir", "Patient", "1", None),
        ("https://ehr.example.org/fhir/Patient/1/_history/3", "https://ehr.example.org/fhir", "Patient", "1", "3"),
    ],
)
def test_parse_reference(
    reference: str, base_url: str | None, resource_type: str, id: str, version: str | None
) -> None:
    parsed = parse_reference(reference)

    assert parsed.base_url == base_url
    assert parsed.resource_type == resource_type
    assert parsed.id == id
    assert parsed.version == version
    assert parsed.relative == f"{resource_type}/{id}"


@pytest.mark.parametrize("reference", ["", "#contained", "urn:uuid:1234", "Patient", "ftp://x/Patient/1"])
def test_parse_invalid_reference(reference: str) -> None:
    with pytest.raises(ValueError):
        parse_reference(reference)

    assert try_parse_reference(reference) is None


@pytest.mark.parametrize(
    "first, second, default_base_url, expected",
    [
        ("Patient/1", "Patient/1", None, True),
        ("Patient/1", "patient/1", None, True),
        ("Patient/1", "Patient/2", None, False),
        ("Patient/1", "Practitioner/1", None, False),
        ("Patient/1/_history/1", "Patient/1", None, True),
        ("Patient/1/_history/1", "Patient/1/_history/2", None, False),
        ("Patient/1", "http://ehr.example.org/fhir/Patient/1", "http://ehr.example.org/fhir/", True),
        ("Patient/1", "http://ehr.example.org/fhir/Patient/1", None, False),
        ("http://a.example.org/fhir/Patient/1", "http://b.example.org/fhir/Patient/1", None, False),
    ],
)
def test_is_equal_reference(first: str, second: str, default_base_url: str | None, expected: bool) -> None:
    actual = is_equal_reference(Reference(reference=first), Reference(reference=second), default_base_url)

    assert actual is expected


def test_is_equal_reference_ignores_display() -> None:
    assert is_equal_reference(Reference(reference="Patient/1", display="Jane"), Reference(reference="Patient/1"))


def test_is_equal_reference_with_missing_values() -> None:
    assert is_equal_reference(None, None)
    assert not is_equal_reference(Reference(reference="Patient/1"), None)
    assert not is_equal_reference(Reference(reference="Patient/1"), Reference(display="Jane"))


def test_make_reference() -> None:
    assert make_reference(Patient(id="1"), "Jane").reference == "Patient/1"

    with pytest.raises(ValueError):
        make_reference(Patient())
