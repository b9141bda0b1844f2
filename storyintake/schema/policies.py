"""
Field policies for progressive intake.

Every top-level field of a record schema carries a policy:

- required: must be filled before the record is complete
- prompted: optional, but worth mentioning to the user
- optional: never actively asked for

The policy is attached to the field explicitly with ``policy_field`` and read
back from the schema. Nested fields are never classified.
"""
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, Field
from pydantic.fields import FieldInfo

POLICY_KEY = "x-policy"
NATURAL_KEY = "x-natural-key"

# Older schemas marked the policy as a description prefix
_LEGACY_PREFIX = re.compile(r"^\[(required|prompted)\]\s*")


class FieldPolicy(str, Enum):
    REQUIRED = "required"
    PROMPTED = "prompted"
    OPTIONAL = "optional"


def policy_field(
    policy: FieldPolicy,
    default: Any = ...,
    *,
    natural_key: Optional[str] = None,
    **kwargs: Any
) -> Any:
    """
    Declare a pydantic field together with its intake policy.

    Args:
        policy: How intake treats the field
        default: Field default (required when omitted)
        natural_key: For lists of objects, the element field that identifies
            "the same" element across extractions
        **kwargs: Passed through to ``pydantic.Field``

    Example:
        title: str = policy_field(FieldPolicy.REQUIRED, min_length=1, description="Working title")
    """
    extra = dict(kwargs.pop("json_schema_extra", None) or {})
    extra[POLICY_KEY] = FieldPolicy(policy).value
    if natural_key:
        extra[NATURAL_KEY] = natural_key
    return Field(default, json_schema_extra=extra, **kwargs)


def _extra(info: FieldInfo) -> Dict[str, Any]:
    return info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}


def field_policy(info: FieldInfo) -> FieldPolicy:
    """Policy of a single field: explicit tag first, legacy description prefix second."""
    tag = _extra(info).get(POLICY_KEY)
    if tag:
        return FieldPolicy(tag)

    match = _LEGACY_PREFIX.match(info.description or "")
    if match:
        return FieldPolicy(match.group(1))
    return FieldPolicy.OPTIONAL


def clean_description(description: Optional[str]) -> str:
    """Description text without a legacy policy prefix."""
    if not description:
        return ""
    return _LEGACY_PREFIX.sub("", description)


def get_field_policies(model: Type[BaseModel]) -> Dict[str, FieldPolicy]:
    """Policies of all top-level fields, in schema order."""
    return {name: field_policy(info) for name, info in model.model_fields.items()}


def get_field_policy(model: Type[BaseModel], name: str) -> FieldPolicy:
    return field_policy(model.model_fields[name])


def _fields_with(model: Type[BaseModel], policy: FieldPolicy) -> List[str]:
    return [name for name, p in get_field_policies(model).items() if p is policy]


def get_required_fields(model: Type[BaseModel]) -> List[str]:
    return _fields_with(model, FieldPolicy.REQUIRED)


def get_prompted_fields(model: Type[BaseModel]) -> List[str]:
    return _fields_with(model, FieldPolicy.PROMPTED)


def get_field_description(model: Type[BaseModel], name: str) -> str:
    """Description of a top-level field for prompts and display, without policy markup."""
    return clean_description(model.model_fields[name].description)


def get_natural_keys(model: Type[BaseModel]) -> Dict[str, str]:
    """Map of collection field name to the natural key of its elements."""
    keys = {}
    for name, info in model.model_fields.items():
        key = _extra(info).get(NATURAL_KEY)
        if key:
            keys[name] = key
    return keys
