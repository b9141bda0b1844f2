"""Merging newly extracted fragments into an accumulated partial record."""
import copy
from itertools import chain
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Optional, Type

from pydantic import BaseModel

from .schema.completeness import has_key
from .schema.policies import get_natural_keys
from .utils.logging import get_logger


def merge_records(
    current: Mapping[str, Any],
    extracted: Mapping[str, Any],
    natural_keys: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """
    Fold an extraction into the current record.

    - a present value in ``extracted`` replaces the current one
    - a field absent from ``extracted`` keeps its current value
    - nested objects merge field by field
    - plain lists are replaced as a whole
    - lists named in ``natural_keys`` merge element by element (see
      ``merge_keyed``)

    Neither input is modified.

    Args:
        current: Accumulated record
        extracted: Newly extracted fragment, already stripped of nulls
        natural_keys: Collection field name -> element key field

    Returns:
        The merged record
    """
    natural_keys = natural_keys or {}
    result = copy.deepcopy(dict(current))

    for name, value in extracted.items():
        if value is None:
            continue

        existing = result.get(name)
        if name in natural_keys and isinstance(value, list):
            result[name] = merge_keyed(existing if isinstance(existing, list) else [], value, natural_keys[name])
        elif isinstance(value, Mapping) and isinstance(existing, Mapping):
            result[name] = merge_records(existing, value)
        else:
            result[name] = copy.deepcopy(value)

    return result


def _is_blank(value: Any) -> bool:
    return value is None or value == [] or (isinstance(value, str) and not value.strip())


def _merge_element(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> Dict[str, Any]:
    filled = {name: value for name, value in incoming.items() if not _is_blank(value)}
    return merge_records(existing, filled)


def _key_of(element: Mapping[str, Any], key: str) -> Hashable:
    value = element[key]
    return value if isinstance(value, Hashable) else repr(value)


def merge_keyed(current: Iterable[Any], incoming: Iterable[Any], key: str) -> List[Any]:
    """
    Merge two collections of identity-bearing elements.

    Elements with the same non-empty natural key (exact match) are merged
    field by field. Incoming non-empty values win; empty strings and empty
    lists never overwrite a known value. Unknown keys are appended in
    incoming order after the existing elements, whose order is kept.
    Elements without a key are appended as they are so they can be reported
    as incomplete instead of disappearing. Duplicate keys already present in
    ``current`` are collapsed as well.
    """
    merged: List[Any] = []
    positions: Dict[Hashable, int] = {}

    for element in chain(current, incoming):
        if not isinstance(element, Mapping) or not has_key(element, key):
            if isinstance(element, Mapping):
                get_logger("merge").warning(f"Collection element without '{key}' kept for follow-up: {dict(element)}")
            merged.append(copy.deepcopy(element))
            continue

        identity = _key_of(element, key)
        if identity in positions:
            index = positions[identity]
            merged[index] = _merge_element(merged[index], element)
        else:
            positions[identity] = len(merged)
            merged.append(copy.deepcopy(dict(element)))

    return merged


def merge_with_schema(
    current: Mapping[str, Any],
    extracted: Mapping[str, Any],
    model: Type[BaseModel]
) -> Dict[str, Any]:
    """Merge using the natural keys declared on ``model``."""
    return merge_records(current, extracted, get_natural_keys(model))
