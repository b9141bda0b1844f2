"""
Schema node grammar.

A pydantic model is described as an immutable tree of nodes so that
transformations can be written as visitors that are total over a small,
closed grammar:

    Object(fields) | Array(element) | Optional(inner) | Nullable(inner)
    | Defaulted(inner, default) | Refined(inner, constraints)
    | Primitive(type, constraints) | Enum(values)

``describe_model`` builds the tree, ``compile_model`` turns a tree back into a
pydantic model class.
"""
import enum
import types
from dataclasses import dataclass, field, replace
from functools import lru_cache
from inspect import isclass
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Tuple, Type, Union, get_args, get_origin

from pydantic import BaseModel, Field, create_model
from pydantic.fields import FieldInfo
from pydantic_core import PydanticUndefined


class UnsupportedSchemaError(TypeError):
    """A schema uses a construct the node grammar does not model."""


@dataclass(frozen=True)
class SchemaNode:
    description: Optional[str] = field(default=None, kw_only=True)
    hint: Optional[str] = field(default=None, kw_only=True)

    kind = "node"


@dataclass(frozen=True)
class ObjectNode(SchemaNode):
    name: str
    fields: Tuple[Tuple[str, SchemaNode], ...]
    model: Optional[Type[BaseModel]] = None

    kind = "object"

    def field_map(self) -> Dict[str, SchemaNode]:
        return dict(self.fields)


@dataclass(frozen=True)
class ArrayNode(SchemaNode):
    element: SchemaNode

    kind = "array"


@dataclass(frozen=True)
class OptionalNode(SchemaNode):
    """Field may be omitted."""
    inner: SchemaNode

    kind = "optional"


@dataclass(frozen=True)
class NullableNode(SchemaNode):
    """Value may be null."""
    inner: SchemaNode

    kind = "nullable"


@dataclass(frozen=True)
class DefaultedNode(SchemaNode):
    inner: SchemaNode
    default: Any = None
    default_factory: Optional[Callable[[], Any]] = None

    kind = "defaulted"


@dataclass(frozen=True)
class RefinedNode(SchemaNode):
    """Extra validation on a container or object (length bounds, model validators)."""
    inner: SchemaNode
    constraints: Tuple[Any, ...] = ()

    kind = "refined"


@dataclass(frozen=True)
class PrimitiveNode(SchemaNode):
    type: type
    constraints: Tuple[Any, ...] = ()

    kind = "primitive"


@dataclass(frozen=True)
class EnumNode(SchemaNode):
    values: Tuple[Any, ...]
    enum_type: Optional[Type[enum.Enum]] = None

    kind = "enum"


NODE_KINDS = ("object", "array", "optional", "nullable", "defaulted", "refined", "primitive", "enum")

PRIMITIVE_TYPES = (str, int, float, bool)

WRAPPER_NODES = (OptionalNode, NullableNode, DefaultedNode, RefinedNode)


class SchemaVisitor:
    """Dispatch on node kind; every kind must have a ``visit_<kind>`` method."""

    def visit(self, node: SchemaNode) -> Any:
        kind = getattr(node, "kind", None)
        if kind not in NODE_KINDS:
            raise UnsupportedSchemaError(f"Unmodeled schema node: {type(node).__name__}")
        return getattr(self, f"visit_{kind}")(node)


def unwrap(node: SchemaNode) -> SchemaNode:
    """Strip Optional/Nullable/Defaulted/Refined wrappers."""
    while isinstance(node, WRAPPER_NODES):
        node = node.inner
    return node


def min_length_of(node: SchemaNode) -> Optional[int]:
    """Minimum length a string primitive declares, if any."""
    core = unwrap(node)
    if isinstance(core, PrimitiveNode) and core.type is str:
        for constraint in core.constraints:
            value = getattr(constraint, "min_length", None)
            if value is not None:
                return value
    return None


# ----------------------------------------------------------------------------
# pydantic -> nodes
# ----------------------------------------------------------------------------

def _has_validators(model: Type[BaseModel]) -> bool:
    decorators = model.__pydantic_decorators__
    return bool(decorators.model_validators or decorators.field_validators)


def describe_annotation(annotation: Any, metadata: Tuple[Any, ...] = (), _stack: Tuple[type, ...] = ()) -> SchemaNode:
    """Describe a type annotation (plus pydantic field metadata) as a node."""
    origin = get_origin(annotation)

    if origin is Annotated:
        inner, *extra = get_args(annotation)
        return describe_annotation(inner, tuple(metadata) + tuple(extra), _stack)

    if origin is Union or origin is types.UnionType:
        args = get_args(annotation)
        non_none = [a for a in args if a is not type(None)]
        if len(non_none) == 1 and len(args) == 2:
            return NullableNode(describe_annotation(non_none[0], metadata, _stack))
        raise UnsupportedSchemaError(f"Unions of several types are not supported: {annotation}")

    if origin in (list, List) or (origin is tuple and len(get_args(annotation)) == 2 and get_args(annotation)[1] is Ellipsis):
        args = get_args(annotation)
        if not args:
            raise UnsupportedSchemaError(f"Array without an element type: {annotation}")
        node = ArrayNode(describe_annotation(args[0], (), _stack))
        return RefinedNode(node, constraints=tuple(metadata)) if metadata else node

    if origin is Literal:
        return EnumNode(values=get_args(annotation))

    if isclass(annotation) and issubclass(annotation, enum.Enum):
        return EnumNode(values=tuple(member.value for member in annotation), enum_type=annotation)

    if isclass(annotation) and issubclass(annotation, BaseModel):
        if annotation in _stack:
            raise UnsupportedSchemaError(f"Recursive model is not supported: {annotation.__name__}")
        node = _describe_model(annotation, _stack + (annotation,))
        if metadata or _has_validators(annotation):
            return RefinedNode(node, constraints=tuple(metadata))
        return node

    if annotation in PRIMITIVE_TYPES:
        return PrimitiveNode(annotation, constraints=tuple(metadata))

    raise UnsupportedSchemaError(f"Unsupported annotation: {annotation!r}")


def describe_field(info: FieldInfo, _stack: Tuple[type, ...] = ()) -> SchemaNode:
    """Describe one pydantic field, including whether it may be omitted."""
    node = describe_annotation(info.annotation, tuple(info.metadata), _stack)

    if not info.is_required():
        if info.default_factory is None and info.default is None:
            node = OptionalNode(node)
        else:
            default = None if info.default is PydanticUndefined else info.default
            node = DefaultedNode(node, default=default, default_factory=info.default_factory)

    if info.description:
        node = replace(node, description=info.description)
    return node


def _describe_model(model: Type[BaseModel], _stack: Tuple[type, ...]) -> ObjectNode:
    fields = tuple(
        (name, describe_field(info, _stack))
        for name, info in model.model_fields.items()
    )
    return ObjectNode(model.__name__, fields, model=model, description=model.__doc__)


@lru_cache(maxsize=None)
def describe_model(model: Type[BaseModel]) -> ObjectNode:
    """Describe a pydantic model class as an ObjectNode (cached per class)."""
    return _describe_model(model, (model,))


# ----------------------------------------------------------------------------
# nodes -> pydantic
# ----------------------------------------------------------------------------

def _field_description(node: SchemaNode) -> Optional[str]:
    parts = [p.rstrip('.') for p in (node.description, node.hint) if p]
    return ". ".join(parts) if parts else None


class ModelCompiler(SchemaVisitor):
    """Compile a node tree into pydantic annotations and models."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    def compile_field(self, node: SchemaNode) -> Tuple[Any, FieldInfo]:
        description = _field_description(node)
        if isinstance(node, OptionalNode):
            return self.visit(node.inner), Field(default=None, description=description)
        if isinstance(node, DefaultedNode):
            if node.default_factory is not None:
                return self.visit(node.inner), Field(default_factory=node.default_factory, description=description)
            return self.visit(node.inner), Field(default=node.default, description=description)
        return self.visit(node), Field(..., description=description)

    def visit_object(self, node: ObjectNode) -> Type[BaseModel]:
        fields = {name: self.compile_field(child) for name, child in node.fields}
        return create_model(f"{self.prefix}{node.name}", __doc__=node.description, **fields)

    def visit_array(self, node: ArrayNode) -> Any:
        return List[self.visit(node.element)]

    def visit_optional(self, node: OptionalNode) -> Any:
        # Omission only means something at field level
        return self.visit(node.inner)

    def visit_nullable(self, node: NullableNode) -> Any:
        return Optional[self.visit(node.inner)]

    def visit_defaulted(self, node: DefaultedNode) -> Any:
        return self.visit(node.inner)

    def visit_refined(self, node: RefinedNode) -> Any:
        inner = self.visit(node.inner)
        return Annotated[(inner, *node.constraints)] if node.constraints else inner

    def visit_primitive(self, node: PrimitiveNode) -> Any:
        return Annotated[(node.type, *node.constraints)] if node.constraints else node.type

    def visit_enum(self, node: EnumNode) -> Any:
        if node.enum_type is not None:
            return node.enum_type
        return Literal[node.values]


def compile_model(node: ObjectNode, prefix: str = "") -> Type[BaseModel]:
    """Build a pydantic model class from an ObjectNode."""
    return ModelCompiler(prefix).visit_object(node)
