"""
Envelope and result models.

Envelope is the one request shape the gateway accepts:
    {operation, resourceType, id?, query?, data?, ids?}

parse_envelope() is the single parse-and-validate step: it either returns a
typed Envelope or raises BadRequest, so dispatch code never re-checks field
presence.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import BadRequest, UnknownOperation

Identifier = Union[int, str]


class Operation(str, Enum):
    search = "search"
    get = "get"
    create = "create"
    update = "update"
    delete = "delete"
    batch_create = "batch_create"
    batch_delete = "batch_delete"


OPERATION_NAMES = frozenset(op.value for op in Operation)

# Operations that address a single existing resource
ID_OPERATIONS = frozenset({Operation.get, Operation.update, Operation.delete})


class Envelope(BaseModel):
    """A validated gateway request."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    operation: Operation = Field(validation_alias=AliasChoices("operation", "op"))
    resource_type: str = Field(
        min_length=1,
        validation_alias=AliasChoices("resourceType", "resource", "resource_type"),
        serialization_alias="resourceType",
    )
    id: Optional[Identifier] = None
    query: dict[str, Any] = Field(default_factory=dict)
    data: Any = None
    ids: list[Identifier] = Field(default_factory=list)

    @field_validator("query", mode="before")
    @classmethod
    def _query_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @field_validator("ids", mode="before")
    @classmethod
    def _ids_list(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict using wire names, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _first_present(body: dict, *keys: str) -> Any:
    for key in keys:
        if key in body:
            return body[key]
    return None


def parse_envelope(body: Union[bytes, str, dict, Any]) -> Envelope:
    """
    Parse a raw request body into an Envelope.

    Raises:
        BadRequest: body is not a JSON object, or operation/resourceType
            are missing, empty or not strings, or a field has the wrong type.
        UnknownOperation: operation is not one of Operation.
    """
    if isinstance(body, (bytes, bytearray, str)):
        try:
            body = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            raise BadRequest("Invalid JSON body.")

    if not isinstance(body, dict):
        raise BadRequest("Invalid JSON body.")

    operation = _first_present(body, "operation", "op")
    resource_type = _first_present(body, "resourceType", "resource", "resource_type")

    if not isinstance(operation, str) or not operation or \
            not isinstance(resource_type, str) or not resource_type:
        raise BadRequest("Missing required fields: operation, resourceType.")

    if operation not in OPERATION_NAMES:
        raise UnknownOperation(operation)

    try:
        envelope = Envelope.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise BadRequest(f"Invalid envelope field {location}: {first.get('msg')}")

    if envelope.operation in ID_OPERATIONS and envelope.id is None:
        raise BadRequest(f"Operation '{envelope.operation.value}' requires an id.")

    return envelope


# =============================================================================
# Results
# =============================================================================

def success_result(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def error_result(message: str, details: Optional[str] = None) -> dict[str, Any]:
    result: dict[str, Any] = {"error": True, "message": message}
    if details:
        result["details"] = details
    return result


@dataclass
class BatchResult:
    """
    Outcome of a batch operation.

    succeeded + failed always equals the size of the input collection;
    earlier successes are never rolled back.
    """
    operation: Operation
    succeeded: list[Any] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def add_error(self, message: str, status: int, details: Optional[str] = None, **position: Any):
        error = {**position, "message": message, "status": status}
        if details:
            error["details"] = details
        self.errors.append(error)

    def to_dict(self) -> dict[str, Any]:
        if self.operation == Operation.batch_delete:
            return {
                "success": not self.errors,
                "deleted": len(self.succeeded),
                "failed": len(self.errors),
                "ids": list(self.succeeded),
                "errors": list(self.errors),
            }
        return {
            "success": not self.errors,
            "created": len(self.succeeded),
            "failed": len(self.errors),
            "items": list(self.succeeded),
            "errors": list(self.errors),
        }
