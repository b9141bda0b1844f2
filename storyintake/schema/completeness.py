"""Completeness checks for partial records."""
from typing import Any, Dict, List, Mapping, Type

from pydantic import BaseModel

from .nodes import describe_model, min_length_of
from .policies import get_field_description, get_natural_keys, get_required_fields


def has_key(element: Any, key: str) -> bool:
    """True when a collection element carries a non-empty natural key."""
    if not isinstance(element, Mapping):
        return False
    value = element.get(key)
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _is_empty(value: Any, min_length: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, list):
        # A required list needs content, not just presence
        return len(value) == 0
    if isinstance(value, str) and min_length is not None:
        return len(value) < min_length
    return False


def get_missing_required_fields(instance: Mapping[str, Any], model: Type[BaseModel]) -> List[str]:
    """
    Required fields that are still missing from a partial record.

    A field is missing when it is absent, null, an empty list, or a string
    shorter than the field's own minimum length. Elements of keyed
    collections that lack their natural key are reported as
    ``"<field>[<index>].<key>"`` so the caller can ask about them.

    Args:
        instance: Partial record (plain dict)
        model: Record schema

    Returns:
        Field names and element paths, in schema order
    """
    fields = describe_model(model).field_map()
    missing = [
        name for name in get_required_fields(model)
        if _is_empty(instance.get(name), min_length_of(fields[name]))
    ]

    for name, key in get_natural_keys(model).items():
        elements = instance.get(name)
        if not isinstance(elements, list):
            continue
        missing.extend(
            f"{name}[{index}].{key}"
            for index, element in enumerate(elements)
            if not has_key(element, key)
        )

    return missing


def has_all_required_fields(instance: Mapping[str, Any], model: Type[BaseModel]) -> bool:
    """Fast pre-check; full validation still applies before the record moves on."""
    return not get_missing_required_fields(instance, model)


def missing_by_field(instance: Dict[str, Any], model: Type[BaseModel]) -> Dict[str, str]:
    """Missing required fields mapped to their descriptions, for follow-up prompts."""
    result = {}
    for path in get_missing_required_fields(instance, model):
        name = path.split("[", 1)[0]
        result[path] = get_field_description(model, name)
    return result
