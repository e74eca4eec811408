"""
In-memory reference backend.

Implements ResourceApiClient over plain dicts so the gateway can run (and be
tested) without a real content-management system behind it. It mimics the
parts of Omeka-S behaviour the gateway depends on:

- Term values are hydrated: a value with property_id="auto" is resolved to
  the numeric id of its vocabulary term, a numeric id must exist, and a value
  with no property_id at all is silently dropped.
- update() replaces the whole representation, which is why the dispatcher
  merges before writing.
- Failures are raised as BackendError subclasses.
"""

import copy
import threading
import unicodedata
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

from .backend import Representation, ResourceApiClient, SearchResult
from .envelope import Identifier
from .errors import InvalidRequest, NotFound, PermissionDenied, ValidationFailed
from .properties import AUTO_REFERENCE, PROPERTY_REFERENCE_KEY, VOCABULARY_RESOURCES, is_vocabulary_term

DEFAULT_RESOURCE_TYPES = (
    "items", "item_sets", "media", "sites", "users",
    "vocabularies", "properties", "resource_classes", "resource_templates",
)


JSONLD_TYPES = {
    "items": "o:Item",
    "item_sets": "o:ItemSet",
    "media": "o:Media",
    "sites": "o:Site",
    "users": "o:User",
    "vocabularies": "o:Vocabulary",
    "properties": "o:Property",
    "resource_classes": "o:ResourceClass",
    "resource_templates": "o:ResourceTemplate",
}

PROPERTY_FILTER_TYPES = frozenset({"eq", "neq", "in", "nin", "ex", "nex"})

USER_ROLES = ("global_admin", "site_admin", "editor", "reviewer", "author", "researcher")

SEED_VOCABULARIES = [
    {
        "prefix": "dcterms",
        "namespace_uri": "http://purl.org/dc/terms/",
        "label": "Dublin Core",
        "properties": [
            "title", "description", "creator", "contributor", "subject", "date",
            "type", "format", "identifier", "language", "publisher", "rights",
            "source", "relation", "coverage",
        ],
        "classes": [],
    },
    {
        "prefix": "dctype",
        "namespace_uri": "http://purl.org/dc/dcmitype/",
        "label": "Dublin Core Type",
        "properties": [],
        "classes": [
            "Collection", "Dataset", "Event", "Image", "MovingImage",
            "PhysicalObject", "Sound", "StillImage", "Text",
        ],
    },
    {
        "prefix": "foaf",
        "namespace_uri": "http://xmlns.com/foaf/0.1/",
        "label": "Friend of a Friend",
        "properties": ["name", "mbox", "homepage"],
        "classes": ["Document", "Organization", "Person"],
    },
    {
        "prefix": "bibo",
        "namespace_uri": "http://purl.org/ontology/bibo/",
        "label": "Bibliographic Ontology",
        "properties": ["edition", "isbn", "numPages"],
        "classes": ["Article", "Book", "Document"],
    },
]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _label(local_name: str) -> str:
    spaced = "".join(" " + c if c.isupper() else c for c in local_name).strip()
    return spaced[:1].upper() + spaced[1:]


def _ref_id(ref: Any) -> Optional[int]:
    """Pull o:id out of a {"o:id": n} reference."""
    if isinstance(ref, Mapping):
        try:
            return int(ref.get("o:id"))
        except (TypeError, ValueError):
            return None
    return None


def _as_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"Invalid value for {key}: {value!r}")


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


class InMemoryResourceApi(ResourceApiClient):
    """Thread-safe dict-backed ResourceApiClient."""

    def __init__(
        self,
        resource_types: Iterable[str] = DEFAULT_RESOURCE_TYPES,
        writable: Optional[Iterable[str]] = None,
        seed: bool = True,
    ):
        self._store: dict[str, dict[int, Representation]] = {t: {} for t in resource_types}
        self._next_id: dict[str, int] = defaultdict(lambda: 1)
        self._writable = None if writable is None else frozenset(writable)
        self._terms: dict[str, int] = {}
        self._lock = threading.RLock()

        if seed:
            self._seed_vocabularies()

    # =========================================================================
    # ResourceApiClient
    # =========================================================================

    def search(self, resource_type: str, query: Mapping[str, Any]) -> SearchResult:
        with self._lock:
            records = self._records(resource_type)
            matched = [r for r in records.values() if self._matches(resource_type, r, query)]

        matched = self._sort(matched, query)
        total = len(matched)

        if "per_page" in query:
            per_page = max(_as_int("per_page", query["per_page"]), 0)
            page = max(_as_int("page", query.get("page", 1)), 1)
            start = (page - 1) * per_page
            matched = matched[start:start + per_page]

        return SearchResult(items=copy.deepcopy(matched), total_results=total)

    def read(self, resource_type: str, id: Identifier) -> Representation:
        with self._lock:
            return copy.deepcopy(self._get(resource_type, id))

    def create(self, resource_type: str, data: Mapping[str, Any]) -> Representation:
        with self._lock:
            self._records(resource_type)
            self._check_writable(resource_type)

            representation = self._hydrate(resource_type, data)
            self._validate(resource_type, representation, existing_id=None)
            return copy.deepcopy(self._insert(resource_type, representation))

    def update(self, resource_type: str, id: Identifier, data: Mapping[str, Any]) -> Representation:
        with self._lock:
            current = self._get(resource_type, id)
            self._check_writable(resource_type)

            representation = self._hydrate(resource_type, data)
            self._validate(resource_type, representation, existing_id=current["o:id"])

            # Identity and creation time always come from the stored record
            for key in ("@id", "@type", "o:id", "o:created"):
                representation[key] = current[key]
            representation["o:modified"] = utc_now_iso()

            self._store[resource_type][current["o:id"]] = representation
            if resource_type == "properties":
                self._unindex_term(current)
                self._index_term(representation)
            return copy.deepcopy(representation)

    def delete(self, resource_type: str, id: Identifier) -> None:
        with self._lock:
            current = self._get(resource_type, id)
            self._check_writable(resource_type)
            del self._store[resource_type][current["o:id"]]
            if resource_type == "properties":
                self._unindex_term(current)

            # Media cannot outlive their item
            if resource_type == "items" and "media" in self._store:
                media = self._store["media"]
                for media_id in [m for m, rep in media.items() if _ref_id(rep.get("o:item")) == current["o:id"]]:
                    del media[media_id]

    # =========================================================================
    # Lookup
    # =========================================================================

    def _records(self, resource_type: str) -> dict[int, Representation]:
        if resource_type not in self._store:
            raise InvalidRequest(f"Unknown resource: {resource_type}")
        return self._store[resource_type]

    def _get(self, resource_type: str, id: Identifier) -> Representation:
        records = self._records(resource_type)
        try:
            key = int(id)
        except (TypeError, ValueError):
            raise NotFound(f"{resource_type} entity with criteria {{\"id\":{id!r}}} not found")
        if key not in records:
            raise NotFound(f"{resource_type} entity with criteria {{\"id\":{key}}} not found")
        return records[key]

    def _exists(self, resource_type: str, id: Optional[int]) -> bool:
        return id is not None and id in self._store.get(resource_type, {})

    def _check_writable(self, resource_type: str):
        if self._writable is not None and resource_type not in self._writable:
            raise PermissionDenied(f"Write access to {resource_type} is not allowed for the current user")

    # =========================================================================
    # Hydration + validation
    # =========================================================================

    def _hydrate(self, resource_type: str, data: Mapping[str, Any]) -> Representation:
        representation: Representation = {}
        carries_terms = resource_type in VOCABULARY_RESOURCES

        for key, values in data.items():
            if key in ("@id", "@type", "o:id", "o:created", "o:modified"):
                continue
            if carries_terms and key == "o:title":
                continue
            if carries_terms and is_vocabulary_term(key):
                hydrated = self._hydrate_values(key, values)
                if hydrated:
                    representation[key] = hydrated
                continue
            representation[key] = copy.deepcopy(values)

        if carries_terms:
            titles = representation.get("dcterms:title") or []
            representation["o:title"] = titles[0].get("@value") if titles else None

        return representation

    def _hydrate_values(self, term: str, values: Any) -> list[dict[str, Any]]:
        if not isinstance(values, list):
            return []

        hydrated = []
        for value in values:
            if not isinstance(value, Mapping):
                continue
            reference = value.get(PROPERTY_REFERENCE_KEY)
            if reference is None:
                # No property reference: the value is ignored, not rejected
                continue

            if reference == AUTO_REFERENCE:
                property_id = self._terms.get(term)
                if property_id is None:
                    raise ValidationFailed(f"Unknown property term: {term}")
            else:
                property_id = _ref_id({"o:id": reference})
                if not self._exists("properties", property_id):
                    raise ValidationFailed(f"Invalid property id for {term}: {reference!r}")

            record = copy.deepcopy(dict(value))
            record[PROPERTY_REFERENCE_KEY] = property_id
            record.setdefault("type", "literal")
            hydrated.append(record)

        return hydrated

    def _validate(self, resource_type: str, rep: Representation, existing_id: Optional[int]):
        validator = self._validators().get(resource_type)
        if validator:
            validator(rep, existing_id)

    def _validators(self) -> dict[str, Callable[[Representation, Optional[int]], None]]:
        return {
            "items": self._validate_item,
            "media": self._validate_media,
            "sites": self._validate_site,
            "users": self._validate_user,
        }

    def _validate_item(self, rep: Representation, existing_id: Optional[int]):
        item_sets = rep.get("o:item_set") or []
        if not isinstance(item_sets, list):
            raise ValidationFailed("o:item_set must be a list of references.")
        for ref in item_sets:
            if not self._exists("item_sets", _ref_id(ref)):
                raise ValidationFailed(f"Item set {ref!r} does not exist.")

        for key, target in (("o:resource_template", "resource_templates"), ("o:resource_class", "resource_classes")):
            ref = rep.get(key)
            if ref and not self._exists(target, _ref_id(ref)):
                raise ValidationFailed(f"{key} {ref!r} does not exist.")

    def _validate_media(self, rep: Representation, existing_id: Optional[int]):
        if not self._exists("items", _ref_id(rep.get("o:item"))):
            raise ValidationFailed("Media must be attached to an existing item (o:item).")
        rep.setdefault("o:ingester", "upload")

    def _validate_site(self, rep: Representation, existing_id: Optional[int]):
        for key in ("o:title", "o:slug"):
            if not rep.get(key):
                raise ValidationFailed(f"The site {key[2:]} is required.")
        for site_id, site in self._store["sites"].items():
            if site_id != existing_id and site.get("o:slug") == rep["o:slug"]:
                raise ValidationFailed(f"The slug \"{rep['o:slug']}\" is already taken.")
        rep.setdefault("o:theme", "default")
        rep.setdefault("o:navigation", [])

    def _validate_user(self, rep: Representation, existing_id: Optional[int]):
        for key in ("o:name", "o:email"):
            if not rep.get(key):
                raise ValidationFailed(f"The user {key[2:]} is required.")
        role = rep.setdefault("o:role", "researcher")
        if role not in USER_ROLES:
            raise ValidationFailed(f"Invalid role: {role}")
        for user_id, user in self._store["users"].items():
            if user_id != existing_id and user.get("o:email") == rep["o:email"]:
                raise ValidationFailed(f"The email \"{rep['o:email']}\" is already taken.")
        rep.setdefault("o:is_active", False)

    # =========================================================================
    # Search
    # =========================================================================

    def _matches(self, resource_type: str, rep: Representation, query: Mapping[str, Any]) -> bool:
        text = query.get("fulltext_search")
        if text and _fold(str(text)) not in _fold(" ".join(self._searchable_text(rep))):
            return False

        reference_filters = {
            "item_id": "o:item",
            "resource_template_id": "o:resource_template",
            "resource_class_id": "o:resource_class",
            "vocabulary_id": "o:vocabulary",
        }
        for key, field_name in reference_filters.items():
            if key in query and _ref_id(rep.get(field_name)) != _as_int(key, query[key]):
                return False

        if "item_set_id" in query:
            wanted = _as_int("item_set_id", query["item_set_id"])
            if wanted not in [_ref_id(ref) for ref in rep.get("o:item_set") or []]:
                return False

        if "vocabulary_prefix" in query:
            prefix = rep.get("o:prefix") or str(rep.get("o:term", "")).split(":")[0]
            if prefix != query["vocabulary_prefix"]:
                return False

        if "local_name" in query and rep.get("o:local_name") != query["local_name"]:
            return False

        if "role" in query and rep.get("o:role") != query["role"]:
            return False

        if "property" in query and not self._matches_properties(rep, query["property"]):
            return False

        return True

    def _matches_properties(self, rep: Representation, filters: Any) -> bool:
        """
        Omeka-style property filters: [{property, type, text, joiner}, ...].

        type is one of eq/neq (value equals), in/nin (value contains),
        ex/nex (has any value). property is a term or a property id; empty
        means any property. Entries combine left to right with joiner
        "and" (default) or "or". Malformed entries are skipped.
        """
        # Query-string style arrays arrive as {"0": {...}, "1": {...}}
        if isinstance(filters, Mapping):
            entries = list(filters.values())
        elif isinstance(filters, list):
            entries = filters
        else:
            return True

        result: Optional[bool] = None
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            filter_type = entry.get("type") or "eq"
            text = entry.get("text")
            if filter_type not in PROPERTY_FILTER_TYPES:
                continue
            if filter_type not in ("ex", "nex") and (text is None or str(text) == ""):
                continue

            matched = self._matches_property(rep, entry.get("property"), filter_type, text)
            if result is None:
                result = matched
            elif str(entry.get("joiner", "and")).lower() == "or":
                result = result or matched
            else:
                result = result and matched

        return True if result is None else result

    def _matches_property(self, rep: Representation, prop: Any, filter_type: str, text: Any) -> bool:
        terms = self._filter_terms(rep, prop)
        values = [
            _fold(str(v.get("@value", v.get("@id", ""))))
            for term in terms
            for v in rep.get(term) or []
            if isinstance(v, Mapping)
        ]

        if filter_type in ("ex", "nex"):
            found = bool(values)
        else:
            wanted = _fold(str(text))
            if filter_type in ("eq", "neq"):
                found = wanted in values
            else:
                found = any(wanted in value for value in values)

        return not found if filter_type in ("neq", "nin", "nex") else found

    def _filter_terms(self, rep: Representation, prop: Any) -> list[str]:
        if prop is None or str(prop) == "":
            return [key for key in rep if is_vocabulary_term(key)]
        if isinstance(prop, int) or str(prop).isdigit():
            record = self._store.get("properties", {}).get(int(prop))
            return [record["o:term"]] if record and record.get("o:term") else []
        return [str(prop)]

    @staticmethod
    def _searchable_text(rep: Representation) -> list[str]:
        parts = []
        for key, values in rep.items():
            if isinstance(values, list):
                parts.extend(str(v.get("@value", "")) for v in values if isinstance(v, Mapping))
            elif key in ("o:title", "o:name", "o:label", "o:email", "o:slug", "o:term") and values:
                parts.append(str(values))
        return parts

    @staticmethod
    def _sort(records: list[Representation], query: Mapping[str, Any]) -> list[Representation]:
        sort_by = query.get("sort_by", "id")
        descending = str(query.get("sort_order", "asc")).lower() == "desc"
        field_name = {"created": "o:created", "title": "o:title"}.get(str(sort_by))

        def sort_key(rep: Representation):
            if field_name is None:
                return ("", rep["o:id"])
            return (str(rep.get(field_name) or ""), rep["o:id"])

        return sorted(records, key=sort_key, reverse=descending)

    # =========================================================================
    # Storage + seed data
    # =========================================================================

    def _insert(self, resource_type: str, rep: Representation) -> Representation:
        new_id = self._next_id[resource_type]
        self._next_id[resource_type] = new_id + 1
        rep.update({
            "@id": f"/api/{resource_type}/{new_id}",
            "@type": JSONLD_TYPES.get(resource_type, "o:Resource"),
            "o:id": new_id,
            "o:created": utc_now_iso(),
            "o:modified": None,
        })
        self._store[resource_type][new_id] = rep
        if resource_type == "properties":
            self._index_term(rep)
        return rep

    def _index_term(self, rep: Representation):
        term = rep.get("o:term")
        if term and isinstance(term, str):
            self._terms[term] = rep["o:id"]

    def _unindex_term(self, rep: Representation):
        # Only drop the entry if it still points at this property
        term = rep.get("o:term")
        if isinstance(term, str) and self._terms.get(term) == rep["o:id"]:
            del self._terms[term]

    def _seed_vocabularies(self):
        for required in ("vocabularies", "properties", "resource_classes"):
            if required not in self._store:
                return

        for vocab in SEED_VOCABULARIES:
            vocabulary = self._insert("vocabularies", {
                "o:prefix": vocab["prefix"],
                "o:namespace_uri": vocab["namespace_uri"],
                "o:label": vocab["label"],
            })
            ref = {"o:id": vocabulary["o:id"]}

            for local_name in vocab["properties"]:
                term = f"{vocab['prefix']}:{local_name}"
                self._insert("properties", {
                    "o:local_name": local_name,
                    "o:label": _label(local_name),
                    "o:term": term,
                    "o:vocabulary": dict(ref),
                })

            for local_name in vocab["classes"]:
                self._insert("resource_classes", {
                    "o:local_name": local_name,
                    "o:label": _label(local_name),
                    "o:term": f"{vocab['prefix']}:{local_name}",
                    "o:vocabulary": dict(ref),
                })
