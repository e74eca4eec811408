"""
Operation dispatcher - the gateway's single policy point.

Every request goes through the same gate, in order:
1. Method check (only POST mutates or reads through the gateway)
2. Anti-forgery token check against the injected TokenStore
3. Envelope parse-and-validate
4. Dispatch to exactly one handler per Operation

Nothing reaches the backend until steps 1-3 pass. Failures from any step
come back as (status, ResultEnvelope) via map_exception().

Design principles:
- update is read-merge-write: the backend's update replaces the whole
  representation, so fields the caller did not restate must be carried over.
- Batches are not atomic. Each element is attempted on its own, failures
  are collected, earlier successes are never rolled back.
"""

import time
from typing import Any, Callable, Iterable, Mapping, Optional

from .backend import ResourceApiClient
from .envelope import BatchResult, Envelope, Operation, parse_envelope, success_result
from .errors import BadRequest, Forbidden, MethodNotAllowed, map_exception
from .properties import VOCABULARY_RESOURCES, normalize_property_data
from .proxy_logger import log_info, log_warn
from .tokens import TokenStore

WRITE_METHOD = "POST"


def _as_bag(data: Any) -> dict[str, Any]:
    return dict(data) if isinstance(data, Mapping) else {}


class OperationDispatcher:
    """Turns one envelope into one or more ResourceApiClient calls."""

    def __init__(
        self,
        backend: ResourceApiClient,
        token_store: TokenStore,
        vocabulary_resources: Iterable[str] = VOCABULARY_RESOURCES,
    ):
        self.backend = backend
        self.token_store = token_store
        self.vocabulary_resources = frozenset(vocabulary_resources)

        self._handlers: dict[Operation, Callable[[Envelope], Any]] = {
            Operation.search: self._search,
            Operation.get: self._get,
            Operation.create: self._create,
            Operation.update: self._update,
            Operation.delete: self._delete,
            Operation.batch_create: self._batch_create,
            Operation.batch_delete: self._batch_delete,
        }
        missing = set(Operation) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for operations: {sorted(op.value for op in missing)}")

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def handle_request(self, method: str, token: Optional[str], body: Any) -> tuple[int, dict[str, Any]]:
        """
        Run one gateway request through the full gate.

        Args:
            method: HTTP method of the request
            token: Value of the anti-forgery header (None if absent)
            body: Raw body (bytes/str) or an already-decoded JSON value

        Returns:
            (status, ResultEnvelope). Never raises.
        """
        started = time.monotonic()
        envelope: Optional[Envelope] = None

        try:
            if (method or "").upper() != WRITE_METHOD:
                raise MethodNotAllowed()
            if not self.token_store.validate(token):
                raise Forbidden()

            envelope = parse_envelope(body)
            status, result = 200, self.dispatch(envelope)
        except Exception as e:
            mapped = map_exception(e)
            status, result = mapped.status, mapped.result
            if mapped.kind == "Internal":
                log_warn(f"Unclassified backend failure: {e.__class__.__name__}: {e}")

        elapsed_ms = (time.monotonic() - started) * 1000
        if envelope is not None:
            log_info(
                f"{method} {envelope.operation.value} {envelope.resource_type} "
                f"-> {status} ({elapsed_ms:.1f}ms)"
            )
        else:
            log_info(f"{method} rejected -> {status} ({elapsed_ms:.1f}ms)")

        return status, result

    def dispatch(self, envelope: Envelope) -> dict[str, Any]:
        """
        Execute a validated envelope.

        Returns a success ResultEnvelope. Backend failures propagate as
        exceptions for the caller to map.
        """
        return success_result(self._handlers[envelope.operation](envelope))

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def _prepare(self, resource_type: str, data: Any) -> dict[str, Any]:
        bag = _as_bag(data)
        if resource_type in self.vocabulary_resources:
            return normalize_property_data(bag)
        return bag

    def _search(self, envelope: Envelope) -> dict[str, Any]:
        found = self.backend.search(envelope.resource_type, envelope.query)
        return {"items": found.items, "totalResults": found.total_results}

    def _get(self, envelope: Envelope) -> dict[str, Any]:
        return self.backend.read(envelope.resource_type, envelope.id)

    def _create(self, envelope: Envelope) -> dict[str, Any]:
        data = self._prepare(envelope.resource_type, envelope.data)
        return self.backend.create(envelope.resource_type, data)

    def _update(self, envelope: Envelope) -> dict[str, Any]:
        # A failed read aborts the update; nothing is written
        current = self.backend.read(envelope.resource_type, envelope.id)
        patch = self._prepare(envelope.resource_type, envelope.data)
        merged = {**current, **patch}
        return self.backend.update(envelope.resource_type, envelope.id, merged)

    def _delete(self, envelope: Envelope) -> dict[str, Any]:
        self.backend.delete(envelope.resource_type, envelope.id)
        return {"deleted": True, "id": envelope.id}

    def _batch_create(self, envelope: Envelope) -> dict[str, Any]:
        if envelope.data is None:
            elements = []
        elif isinstance(envelope.data, list):
            elements = envelope.data
        else:
            raise BadRequest("batch_create requires data to be an array.")

        batch = BatchResult(Operation.batch_create)
        for index, element in enumerate(elements):
            try:
                data = self._prepare(envelope.resource_type, element)
                batch.succeeded.append(self.backend.create(envelope.resource_type, data))
            except Exception as e:
                mapped = map_exception(e)
                batch.add_error(mapped.result["message"], mapped.status, mapped.result.get("details"), index=index)
                log_warn(f"batch_create {envelope.resource_type}[{index}] failed: {mapped.status} {mapped.kind}")

        return batch.to_dict()

    def _batch_delete(self, envelope: Envelope) -> dict[str, Any]:
        batch = BatchResult(Operation.batch_delete)
        for resource_id in envelope.ids:
            try:
                self.backend.delete(envelope.resource_type, resource_id)
                batch.succeeded.append(resource_id)
            except Exception as e:
                mapped = map_exception(e)
                batch.add_error(mapped.result["message"], mapped.status, mapped.result.get("details"), id=resource_id)
                log_warn(f"batch_delete {envelope.resource_type}#{resource_id} failed: {mapped.status} {mapped.kind}")

        return batch.to_dict()
