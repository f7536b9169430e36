"""Filter matching and update operators for plain-dict documents.

Supports the subset of document-store semantics the repositories use:

Filters: equality on dotted paths (list fields match when they contain the
value), ``$eq``, ``$ne``, ``$gt``, ``$gte``, ``$lt``, ``$lte``, ``$in``,
``$nin``, ``$exists``, plus top-level ``$or`` / ``$and``.

Updates: ``$set``, ``$unset``, ``$inc``, ``$push`` (with ``$each``),
``$addToSet`` and ``$setOnInsert`` (applied only when upserting).
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

_MISSING = object()

SortSpec = Sequence[Tuple[str, int]]


class QueryError(ValueError):
    """Raised for unsupported operators."""


def get_path(document: Dict[str, Any], path: str) -> Any:
    """Read a dotted path. Returns the module sentinel when absent."""
    current: Any = document
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def is_missing(value: Any) -> bool:
    return value is _MISSING


def set_path(document: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def unset_path(document: Dict[str, Any], path: str) -> None:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        current = current.get(part)
        if not isinstance(current, dict):
            return
    current.pop(parts[-1], None)


def _compare(value: Any, other: Any, op: str) -> bool:
    if value is _MISSING or value is None or other is None:
        return False
    try:
        if op == "$gt":
            return value > other
        if op == "$gte":
            return value >= other
        if op == "$lt":
            return value < other
        return value <= other
    except TypeError:
        return False


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _match_operators(value: Any, spec: Dict[str, Any]) -> bool:
    for op, operand in spec.items():
        if op == "$eq":
            ok = _equals(value, operand)
        elif op == "$ne":
            ok = not _equals(value, operand)
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            ok = _compare(value, operand, op)
        elif op == "$in":
            ok = any(_equals(value, candidate) for candidate in operand)
        elif op == "$nin":
            ok = not any(_equals(value, candidate) for candidate in operand)
        elif op == "$exists":
            ok = (value is not _MISSING) == bool(operand)
        else:
            raise QueryError(f"Unsupported query operator: {op}")
        if not ok:
            return False
    return True


def _is_operator_spec(condition: Any) -> bool:
    return (
        isinstance(condition, dict)
        and bool(condition)
        and all(isinstance(k, str) and k.startswith("$") for k in condition)
    )


def matches(document: Dict[str, Any], query: Optional[Dict[str, Any]]) -> bool:
    """Return True when the document satisfies every clause of the query."""
    if not query:
        return True

    for key, condition in query.items():
        if key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
            continue
        if key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
            continue
        if key.startswith("$"):
            raise QueryError(f"Unsupported top-level operator: {key}")

        value = get_path(document, key)
        if _is_operator_spec(condition):
            if not _match_operators(value, condition):
                return False
        elif not _equals(value, condition):
            return False
    return True


def seed_from_filter(query: Dict[str, Any]) -> Dict[str, Any]:
    """Equality clauses of a filter, used as the base of an upserted document."""
    seed: Dict[str, Any] = {}
    for key, condition in query.items():
        if key.startswith("$") or _is_operator_spec(condition):
            continue
        set_path(seed, key, condition)
    return seed


def apply_update(
    document: Dict[str, Any],
    update: Dict[str, Any],
    is_insert: bool = False,
) -> None:
    """Apply update operators in place."""
    for op, fields in update.items():
        if op == "$setOnInsert":
            if not is_insert:
                continue
            for path, value in fields.items():
                set_path(document, path, value)
        elif op == "$set":
            for path, value in fields.items():
                set_path(document, path, value)
        elif op == "$unset":
            for path in fields:
                unset_path(document, path)
        elif op == "$inc":
            for path, amount in fields.items():
                current = get_path(document, path)
                base = 0 if current is _MISSING or current is None else current
                set_path(document, path, base + amount)
        elif op in ("$push", "$addToSet"):
            for path, value in fields.items():
                current = get_path(document, path)
                items: List[Any] = [] if current is _MISSING or current is None else current
                if isinstance(value, dict) and "$each" in value:
                    new_items = list(value["$each"])
                else:
                    new_items = [value]
                for item in new_items:
                    if op == "$addToSet" and item in items:
                        continue
                    items.append(item)
                set_path(document, path, items)
        else:
            raise QueryError(f"Unsupported update operator: {op}")


def sort_documents(documents: List[Dict[str, Any]], sort: Optional[SortSpec]) -> List[Dict[str, Any]]:
    """Stable multi-key sort. Missing and None values sort first ascending."""
    if not sort:
        return documents
    result = list(documents)
    for path, direction in reversed(list(sort)):
        def key(doc: Dict[str, Any], _path: str = path) -> Tuple[int, Any]:
            value = get_path(doc, _path)
            if value is _MISSING or value is None:
                return (0, 0)
            return (1, value)
        result.sort(key=key, reverse=direction < 0)
    return result
