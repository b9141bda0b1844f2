from .nodes import (
    SchemaNode, ObjectNode, ArrayNode, OptionalNode, NullableNode,
    DefaultedNode, RefinedNode, PrimitiveNode, EnumNode,
    SchemaVisitor, UnsupportedSchemaError, describe_model, compile_model
)
from .extractable import to_extractable_partial, make_extractable, strip_nulls
from .policies import (
    FieldPolicy, policy_field, get_field_policies, get_field_policy,
    get_required_fields, get_prompted_fields, get_field_description,
    get_natural_keys, clean_description
)
from .completeness import get_missing_required_fields, has_all_required_fields, missing_by_field

__all__ = [
    'SchemaNode', 'ObjectNode', 'ArrayNode', 'OptionalNode', 'NullableNode',
    'DefaultedNode', 'RefinedNode', 'PrimitiveNode', 'EnumNode',
    'SchemaVisitor', 'UnsupportedSchemaError', 'describe_model', 'compile_model',
    'to_extractable_partial', 'make_extractable', 'strip_nulls',
    'FieldPolicy', 'policy_field', 'get_field_policies', 'get_field_policy',
    'get_required_fields', 'get_prompted_fields', 'get_field_description',
    'get_natural_keys', 'clean_description',
    'get_missing_required_fields', 'has_all_required_fields', 'missing_by_field'
]
