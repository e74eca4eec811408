"""
Backend collaborator interface.

ResourceApiClient is the only thing the dispatcher does I/O through. Any
implementation may raise the BackendError subclasses from errors.py
(PermissionDenied, NotFound, ValidationFailed, InvalidRequest); anything
else it raises is reported as an internal error.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

from .envelope import Identifier

Representation = dict[str, Any]


@dataclass
class SearchResult:
    items: list[Representation] = field(default_factory=list)
    total_results: int = 0


class ResourceApiClient(ABC):
    """CRUD + search primitives of the content-management backend."""

    @abstractmethod
    def search(self, resource_type: str, query: Mapping[str, Any]) -> SearchResult:
        ...

    @abstractmethod
    def read(self, resource_type: str, id: Identifier) -> Representation:
        ...

    @abstractmethod
    def create(self, resource_type: str, data: Mapping[str, Any]) -> Representation:
        ...

    @abstractmethod
    def update(self, resource_type: str, id: Identifier, data: Mapping[str, Any]) -> Representation:
        """Replace the full representation of a resource."""

    @abstractmethod
    def delete(self, resource_type: str, id: Identifier) -> None:
        ...
