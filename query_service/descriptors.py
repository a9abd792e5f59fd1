"""
Operation descriptors: data-only specifications of one database operation.

A descriptor carries a ``name`` (used in reports and logs), a ``kind`` and a
kind-specific ``parameters`` payload:

    find / explain  — filter, projection, sort, limit, skip
    update          — filter, update (operator document), upsert
    delete          — filter
    aggregate       — pipeline (list of single-operator stages)
    create_index    — keys, plus optional name / unique

Parameters are validated when the descriptor is built, so a malformed
descriptor raises ``ValueError`` (pydantic ``ValidationError``) up front and
never reaches the store.  Descriptors are frozen, and their parameters
are a read-only deep copy: mappings become ``MappingProxyType`` and lists
become tuples.  ``plain_parameters()`` hands out a mutable copy.
"""

import copy
import json
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

SortSpec = Union[Dict[str, Any], Sequence[Sequence[Any]]]

FIND_PARAMETERS = {"filter", "projection", "sort", "limit", "skip"}
UPDATE_PARAMETERS = {"filter", "update", "upsert"}
DELETE_PARAMETERS = {"filter"}
AGGREGATE_PARAMETERS = {"pipeline"}
INDEX_PARAMETERS = {"keys", "name", "unique"}

_DIRECTION_ALIASES = {
    1: 1, -1: -1,
    "1": 1, "-1": -1,
    "asc": 1, "ascending": 1,
    "desc": -1, "descending": -1,
}


class OperationKind(str, Enum):
    FIND = "find"
    UPDATE = "update"
    DELETE = "delete"
    AGGREGATE = "aggregate"
    CREATE_INDEX = "create_index"
    EXPLAIN = "explain"


# ---------------------- NORMALISATION HELPERS ----------------------


def normalize_direction(direction: Any) -> int:
    """Map ``1``, ``-1``, ``"asc"`` or ``"desc"`` to a pymongo direction."""
    if isinstance(direction, bool):
        raise ValueError(f"Invalid sort direction: {direction!r}")
    key = direction.lower() if isinstance(direction, str) else direction
    try:
        return _DIRECTION_ALIASES[key]
    except (KeyError, TypeError):
        raise ValueError(f"Invalid sort direction: {direction!r}")


def normalize_key_spec(spec: SortSpec, what: str = "sort") -> List[Tuple[str, int]]:
    """Turn a ``{field: dir}`` dict or ``[[field, dir], ...]`` list into
    the ``[(field, dir), ...]`` form pymongo expects, preserving order."""
    if isinstance(spec, dict):
        pairs = list(spec.items())
    elif isinstance(spec, (list, tuple)):
        pairs = []
        for item in spec:
            if not isinstance(item, (list, tuple)) or len(item) != 2:
                raise ValueError(f"{what} entries must be [field, direction] pairs, got {item!r}")
            pairs.append((item[0], item[1]))
    else:
        raise ValueError(f"{what} must be a dict or a list of pairs, got {type(spec).__name__}")

    normalized = []
    for field, direction in pairs:
        if not isinstance(field, str) or not field:
            raise ValueError(f"{what} field names must be non-empty strings, got {field!r}")
        normalized.append((field, normalize_direction(direction)))
    return normalized


def freeze(value: Any) -> Any:
    """Read-only deep copy: dicts become mapping proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return copy.deepcopy(value)


def thaw(value: Any) -> Any:
    """Mutable deep copy of a frozen value, in the shapes pymongo expects."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    return copy.deepcopy(value)


# ---------------------- PER-KIND VALIDATION ----------------------


def _check_allowed(kind: OperationKind, parameters: Dict[str, Any], allowed: set) -> None:
    unknown = set(parameters) - allowed
    if unknown:
        raise ValueError(
            f"Unsupported parameter(s) for {kind.value}: {', '.join(sorted(unknown))}. "
            f"Allowed: {', '.join(sorted(allowed))}"
        )


def _check_document(parameters: Dict[str, Any], key: str, required: bool = False) -> None:
    if key not in parameters:
        if required:
            raise ValueError(f"Missing required parameter '{key}'")
        return
    if not isinstance(parameters[key], dict):
        raise ValueError(f"'{key}' must be a document, got {type(parameters[key]).__name__}")


def _check_count(parameters: Dict[str, Any], key: str) -> None:
    if key not in parameters:
        return
    value = parameters[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"'{key}' must be a non-negative integer, got {value!r}")


def _validate_find(kind: OperationKind, parameters: Dict[str, Any]) -> None:
    _check_allowed(kind, parameters, FIND_PARAMETERS)
    _check_document(parameters, "filter")
    if parameters.get("projection") is not None:
        _check_document(parameters, "projection")
    if parameters.get("sort") is not None:
        normalize_key_spec(parameters["sort"])
    _check_count(parameters, "limit")
    _check_count(parameters, "skip")


def _validate_update(kind: OperationKind, parameters: Dict[str, Any]) -> None:
    _check_allowed(kind, parameters, UPDATE_PARAMETERS)
    _check_document(parameters, "filter", required=True)
    _check_document(parameters, "update", required=True)
    update = parameters["update"]
    if not update:
        raise ValueError("'update' must contain at least one update operator")
    plain = [k for k in update if not k.startswith("$")]
    if plain:
        raise ValueError(
            f"'update' keys must be update operators (e.g. $set), got: {', '.join(plain)}"
        )
    if "upsert" in parameters and not isinstance(parameters["upsert"], bool):
        raise ValueError("'upsert' must be a boolean")


def _validate_delete(kind: OperationKind, parameters: Dict[str, Any]) -> None:
    _check_allowed(kind, parameters, DELETE_PARAMETERS)
    _check_document(parameters, "filter", required=True)


def _validate_aggregate(kind: OperationKind, parameters: Dict[str, Any]) -> None:
    _check_allowed(kind, parameters, AGGREGATE_PARAMETERS)
    pipeline = parameters.get("pipeline")
    if not isinstance(pipeline, list):
        raise ValueError("'pipeline' must be a list of stages")
    for position, stage in enumerate(pipeline):
        if not isinstance(stage, dict) or len(stage) != 1:
            raise ValueError(f"Stage {position} must be a document with exactly one operator")
        operator = next(iter(stage))
        if not operator.startswith("$"):
            raise ValueError(f"Stage {position} operator must start with '$', got '{operator}'")


def _validate_create_index(kind: OperationKind, parameters: Dict[str, Any]) -> None:
    _check_allowed(kind, parameters, INDEX_PARAMETERS)
    if "keys" not in parameters:
        raise ValueError("Missing required parameter 'keys'")
    if not normalize_key_spec(parameters["keys"], what="keys"):
        raise ValueError("'keys' must name at least one field")
    if "name" in parameters and not isinstance(parameters["name"], str):
        raise ValueError("'name' must be a string")
    if "unique" in parameters and not isinstance(parameters["unique"], bool):
        raise ValueError("'unique' must be a boolean")


_VALIDATORS = {
    OperationKind.FIND: _validate_find,
    OperationKind.EXPLAIN: _validate_find,
    OperationKind.UPDATE: _validate_update,
    OperationKind.DELETE: _validate_delete,
    OperationKind.AGGREGATE: _validate_aggregate,
    OperationKind.CREATE_INDEX: _validate_create_index,
}


# ---------------------- DESCRIPTOR MODEL ----------------------


class OperationDescriptor(BaseModel):
    """One named operation.  Frozen once constructed."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    kind: OperationKind
    parameters: Any = Field(default_factory=lambda: MappingProxyType({}))

    @model_validator(mode="before")
    @classmethod
    def _copy_and_validate(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        parameters = thaw(data.get("parameters") or {})
        if not isinstance(parameters, dict):
            raise ValueError("'parameters' must be a document")
        try:
            kind = OperationKind(data.get("kind"))
        except ValueError:
            raise ValueError(
                f"Unknown operation kind {data.get('kind')!r}. "
                f"Allowed: {', '.join(k.value for k in OperationKind)}"
            )
        _VALIDATORS[kind](kind, parameters)
        data["kind"] = kind
        data["parameters"] = freeze(parameters)
        return data

    def plain_parameters(self) -> Dict[str, Any]:
        return thaw(self.parameters)


# ---------------------- FACTORY HELPERS ----------------------


def _find_parameters(
    mongo_filter: Optional[Dict[str, Any]],
    projection: Optional[Dict[str, Any]],
    sort: Optional[SortSpec],
    limit: int,
    skip: int,
) -> Dict[str, Any]:
    parameters: Dict[str, Any] = {"filter": mongo_filter or {}}
    if projection is not None:
        parameters["projection"] = projection
    if sort is not None:
        parameters["sort"] = sort
    if limit:
        parameters["limit"] = limit
    if skip:
        parameters["skip"] = skip
    return parameters


def find(
    name: str,
    mongo_filter: Optional[Dict[str, Any]] = None,
    projection: Optional[Dict[str, Any]] = None,
    sort: Optional[SortSpec] = None,
    limit: int = 0,
    skip: int = 0,
) -> OperationDescriptor:
    return OperationDescriptor(
        name=name,
        kind=OperationKind.FIND,
        parameters=_find_parameters(mongo_filter, projection, sort, limit, skip),
    )


def explain(
    name: str,
    mongo_filter: Optional[Dict[str, Any]] = None,
    projection: Optional[Dict[str, Any]] = None,
    sort: Optional[SortSpec] = None,
    limit: int = 0,
    skip: int = 0,
) -> OperationDescriptor:
    return OperationDescriptor(
        name=name,
        kind=OperationKind.EXPLAIN,
        parameters=_find_parameters(mongo_filter, projection, sort, limit, skip),
    )


def update(
    name: str,
    mongo_filter: Dict[str, Any],
    update_doc: Dict[str, Any],
    upsert: bool = False,
) -> OperationDescriptor:
    parameters: Dict[str, Any] = {"filter": mongo_filter, "update": update_doc}
    if upsert:
        parameters["upsert"] = True
    return OperationDescriptor(name=name, kind=OperationKind.UPDATE, parameters=parameters)


def delete(name: str, mongo_filter: Dict[str, Any]) -> OperationDescriptor:
    return OperationDescriptor(
        name=name, kind=OperationKind.DELETE, parameters={"filter": mongo_filter},
    )


def aggregate(name: str, pipeline: List[Dict[str, Any]]) -> OperationDescriptor:
    return OperationDescriptor(
        name=name, kind=OperationKind.AGGREGATE, parameters={"pipeline": pipeline},
    )


def create_index(name: str, keys: SortSpec, /, **options: Any) -> OperationDescriptor:
    parameters: Dict[str, Any] = {"keys": keys}
    parameters.update(options)
    return OperationDescriptor(
        name=name, kind=OperationKind.CREATE_INDEX, parameters=parameters,
    )


# ---------------------- LOADING ----------------------


def parse_operations(raw: Any) -> List[OperationDescriptor]:
    """Build descriptors from a decoded JSON array of
    ``{"name", "kind", "parameters"}`` objects."""
    if not isinstance(raw, list):
        raise ValueError("Operations must be a JSON array of descriptors")
    return [OperationDescriptor.model_validate(item) for item in raw]


def load_operations(path: Union[str, Path]) -> List[OperationDescriptor]:
    """Read a JSON file holding an array of descriptors."""
    with open(path, "r", encoding="utf-8") as fh:
        raw = json.load(fh)
    return parse_operations(raw)
