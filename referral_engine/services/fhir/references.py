from dataclasses import dataclass
import logging

from fhir.resources.R4B.reference import Reference
from fhir.resources.R4B.resource import Resource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedReference:
    base_url: str | None
    resource_type: str
    id: str
    version: str | None = None

    @property
    def relative(self) -> str:
        return f"{self.resource_type}/{self.id}"


def parse_reference(reference: str) -> ParsedReference:
    """
    Parses a literal reference. Accepted are relative references ("Patient/1"),
    absolute ones ("http://server/fhir/Patient/1") and both with a version
    ("Patient/1/_history/2").
    """
    ref = reference.strip()
    if ref == "" or ref.startswith("#") or ref.startswith("urn:"):
        raise ValueError(f"Invalid reference: {reference}")

    parts = ref.rstrip("/").split("/")
    version = None
    if len(parts) >= 4 and parts[-2] == "_history":
        version = parts[-1]
        parts = parts[:-2]

    if len(parts) < 2 or parts[-1] == "" or parts[-2] == "":
        logger.error("Failed to parse reference: %s", reference)
        raise ValueError(f"Invalid reference: {reference}")

    base_url = "/".join(parts[:-2]) or None
    if base_url is not None and not (base_url.startswith("http://") or base_url.startswith("https://")):
        raise ValueError(f"Invalid reference: {reference}")

    return ParsedReference(base_url=base_url, resource_type=parts[-2], id=parts[-1], version=version)


def try_parse_reference(reference: Reference | str | None) -> ParsedReference | None:
    value = reference.reference if isinstance(reference, Reference) else reference
    if value is None:
        return None
    try:
        return parse_reference(value)
    except ValueError:
        return None


def _normalize_base(base_url: str | None) -> str | None:
    if base_url is None:
        return None
    return base_url.rstrip("/").lower()


def is_equal_reference(
    reference: Reference | None, other: Reference | None, default_base_url: str | None = None
) -> bool:
    """
    Compares two references by base url, resource type and id. Local references
    are taken to live on default_base_url. Versions are compared only when both
    references carry one, display text is ignored.
    """
    if reference is None and other is None:
        return True
    if reference is None or other is None:
        return False
    if reference.reference is None and other.reference is None:
        return True
    if reference.reference is None or other.reference is None:
        return False
    if reference.reference.strip().lower() == other.reference.strip().lower():
        return True

    first = try_parse_reference(reference)
    second = try_parse_reference(other)
    if first is None or second is None:
        return False

    default_base = _normalize_base(default_base_url)
    if (_normalize_base(first.base_url) or default_base) != (_normalize_base(second.base_url) or default_base):
        return False
    if first.resource_type != second.resource_type:
        return False
    if first.id.lower() != second.id.lower():
        return False
    if first.version is not None and second.version is not None:
        return first.version.lower() == second.version.lower()

    return True


def make_reference(resource: Resource, display: str | None = None) -> Reference:
    if resource.id is None:
        raise ValueError(f"Cannot reference a {resource.get_resource_type()} without id")
    return Reference(reference=f"{resource.get_resource_type()}/{resource.id}", display=display)


def relative_url(resource: Resource) -> str:
    return f"{resource.get_resource_type()}/{resource.id}"
