from typing import Dict, Iterator, List, Type, TypeVar

from fhir.resources.R4B.resource import Resource

T = TypeVar("T", bound=Resource)


class SearchResult:
    """
    Resources of one search (matches and _include results), grouped by resource
    type once so callers never have to inspect entries themselves.
    """

    def __init__(self, resources: List[Resource] | None = None, total: int | None = None) -> None:
        self.__resources = list(resources or [])
        self.total = total
        self.__by_type: Dict[str, List[Resource]] = {}
        for resource in self.__resources:
            self.__by_type.setdefault(resource.get_resource_type(), []).append(resource)

    def all(self, model: Type[T]) -> List[T]:
        return list(self.__by_type.get(model.get_resource_type(), []))  # type: ignore

    def first(self, model: Type[T]) -> T | None:
        matches = self.__by_type.get(model.get_resource_type(), [])
        return matches[0] if matches else None  # type: ignore

    def __iter__(self) -> Iterator[Resource]:
        return iter(self.__resources)

    def __len__(self) -> int:
        return len(self.__resources)
