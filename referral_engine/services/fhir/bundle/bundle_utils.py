from typing import List

from fhir.resources.R4B.bundle import Bundle, BundleEntry
from fhir.resources.R4B.resource import Resource

from referral_engine.services.fhir.references import relative_url, try_parse_reference


def get_resources(bundle: Bundle | None) -> List[Resource]:
    if bundle is None:
        return []
    return [entry.resource for entry in bundle.entry or [] if entry.resource is not None]


def find_entry(bundle: Bundle, reference: str | None) -> BundleEntry | None:
    """
    Finds the entry a reference points at. The fullUrl is matched first, then the
    type and id of the entry resource.
    """
    if reference is None or reference == "":
        return None

    for entry in bundle.entry or []:
        if entry.fullUrl is not None and (
            entry.fullUrl == reference or entry.fullUrl.endswith("/" + reference)
        ):
            return entry

    parsed = try_parse_reference(reference)
    if parsed is None:
        return None
    for entry in bundle.entry or []:
        resource = entry.resource
        if (
            resource is not None
            and resource.get_resource_type() == parsed.resource_type
            and resource.id == parsed.id
        ):
            return entry

    return None


def make_entry(resource: Resource) -> BundleEntry:
    return BundleEntry(fullUrl=relative_url(resource), resource=resource)
