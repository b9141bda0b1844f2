"""
Extractable schemas for partial LLM extraction.

Models struggle with "omit if unknown" and tend to fill placeholders. The
extractable variant of a schema makes the choice explicit at every level: use
null for unknown, omit for not applicable. ``strip_nulls`` then reduces the
model's answer to the facts it actually stated.
"""
from dataclasses import replace
from functools import lru_cache
from typing import Any, Type

from pydantic import BaseModel

from ..config.constants import OMIT_HINT
from .nodes import (
    ArrayNode,
    NullableNode,
    ObjectNode,
    OptionalNode,
    SchemaNode,
    SchemaVisitor,
    compile_model,
    describe_model,
)


class ExtractableTransform(SchemaVisitor):
    """
    Fold a node tree into its partial-safe form.

    ``visit`` returns the core shape of a node with every wrapper removed;
    ``safe`` wraps a core as nullable and optional with the omit hint.
    Objects make each of their fields safe. Arrays make only the container
    safe, so elements are never null and arrays never have holes.
    """

    def safe(self, node: SchemaNode) -> SchemaNode:
        core = self.visit(node)
        return OptionalNode(
            NullableNode(replace(core, description=None, hint=None)),
            description=core.description,
            hint=OMIT_HINT
        )

    def _unwrap(self, node) -> SchemaNode:
        inner = node.inner
        # The field's own description wins over a nested model's docstring
        if node.description:
            inner = replace(inner, description=node.description)
        return self.visit(inner)

    def visit_object(self, node: ObjectNode) -> ObjectNode:
        fields = tuple((name, self.safe(child)) for name, child in node.fields)
        return replace(node, fields=fields)

    def visit_array(self, node: ArrayNode) -> ArrayNode:
        return replace(node, element=self.visit(node.element))

    visit_optional = _unwrap
    visit_nullable = _unwrap
    visit_defaulted = _unwrap
    visit_refined = _unwrap

    def visit_primitive(self, node):
        return node

    def visit_enum(self, node):
        return node


def make_extractable(node: ObjectNode) -> ObjectNode:
    """Transform a record's node tree; the record itself stays a plain object."""
    return ExtractableTransform().visit_object(node)


@lru_cache(maxsize=None)
def to_extractable_partial(model: Type[BaseModel]) -> Type[BaseModel]:
    """
    Build the extractable variant of a pydantic model.

    Every field, at every depth, accepts null and may be omitted. Validation
    rules of primitive values are kept, so a present value must still be
    valid; container length bounds and model validators are dropped.

    Example:
        ExtractableStory = to_extractable_partial(Story)
        result = await invoker.generate_object(ExtractableStory, ...)
        clean = strip_nulls(result)
    """
    return compile_model(make_extractable(describe_model(model)), prefix="Extractable")


def strip_nulls(data: Any) -> Any:
    """
    Remove explicit nulls from extracted data, recursively.

    - null and absent values are dropped
    - nested objects are kept even when they end up empty
    - list elements that are null, or objects left without any value, are
      dropped; an empty input list stays an empty list
    - False and 0 are values and survive

    Example:
        strip_nulls({"title": "My Story", "characters": None, "setting": "forest"})
        # {"title": "My Story", "setting": "forest"}
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", exclude_unset=True)

    if isinstance(data, dict):
        return {
            key: strip_nulls(value)
            for key, value in data.items()
            if value is not None
        }

    if isinstance(data, list):
        items = [strip_nulls(item) for item in data if item is not None]
        return [
            item for item in items
            if not isinstance(item, dict) or item
        ]

    return data
