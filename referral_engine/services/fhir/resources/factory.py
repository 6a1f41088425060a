from typing import Any, Dict, TypeVar, Type

from fhir.resources.R4B import get_fhir_model_class
from fhir.resources.R4B.resource import Resource
from pydantic import ValidationError

from referral_engine.services.fhir.utils import get_resource_type

T = TypeVar("T", bound=Resource)


def create_model(model: Type[T], data: Dict[str, Any]) -> T:
    """
    Validates data into the given resource model. Raises ValueError when the data
    does not describe a valid resource of that type.
    """
    data_type = data.get("resourceType")
    if data_type is not None and data_type != model.get_resource_type():
        raise ValueError(f"Expected {model.get_resource_type()} but received {data_type}")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid {model.get_resource_type()}: {e}") from e


def create_resource(data: Dict[str, Any]) -> Resource:
    """
    Creates the resource model named by the resourceType of the data.
    """
    resource_type = get_resource_type(data)
    try:
        model = get_fhir_model_class(resource_type)
    except (AttributeError, LookupError, ValueError) as e:
        raise ValueError(f"Unknown resource {resource_type}: {e}") from e

    try:
        resource: Resource = model.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid {resource_type}: {e}") from e

    return resource
