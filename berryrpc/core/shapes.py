"""Shape descriptors over pydantic annotations.

A :class:`Shape` is the structural view the resolver walks: ``scalar``,
``object`` (a pydantic model, named when registered) or ``array``. Validation,
dumping and masking go through pydantic ``TypeAdapter`` instances built from the
original annotation.
"""
from __future__ import annotations

import collections.abc
import types
from typing import Annotated, Any, Callable, Dict, Mapping, Optional, Union, get_args, get_origin

from pydantic import BaseModel, TypeAdapter

SCALAR = 'scalar'
OBJECT = 'object'
ARRAY = 'array'

_ARRAY_ORIGINS = (
    list, tuple, set, frozenset,
    collections.abc.Sequence, collections.abc.MutableSequence,
    collections.abc.Set, collections.abc.Iterable,
)


class Shape:
    """Structural description of an annotation."""

    __slots__ = ('kind', 'annotation', 'name', 'model', 'item', 'fields', 'aliases', 'nullable')

    def __init__(
        self,
        kind: str,
        annotation: Any,
        *,
        name: Optional[str] = None,
        model: Optional[type] = None,
        item: Optional['Shape'] = None,
        nullable: bool = False,
    ):
        self.kind = kind
        self.annotation = annotation
        self.name = name
        self.model = model
        self.item = item
        self.nullable = nullable
        self.fields: Dict[str, Shape] = {}
        self.aliases: Dict[str, str] = {}

    def field(self, key: str) -> Optional['Shape']:
        """Declared sub-shape for ``key`` (field name or alias)."""
        if key in self.fields:
            return self.fields[key]
        real = self.aliases.get(key)
        return self.fields.get(real) if real else None

    def declares(self, key: str) -> bool:
        return key in self.fields or key in self.aliases

    def __repr__(self) -> str:
        label = self.name or getattr(self.model, '__name__', None) or self.kind
        if self.kind == ARRAY and self.item is not None:
            return f"Shape(array of {self.item!r})"
        return f"Shape({self.kind}:{label})"


def unwrap(annotation: Any) -> tuple[Any, bool]:
    """Strip ``Annotated`` and ``Optional`` wrappers; report nullability."""
    nullable = False
    tp = annotation
    while True:
        origin = get_origin(tp)
        if origin is Annotated:
            tp = get_args(tp)[0]
            continue
        if origin is Union or origin is types.UnionType:
            args = get_args(tp)
            rest = [a for a in args if a is not type(None)]
            if len(rest) != len(args):
                nullable = True
            if len(rest) == 1:
                tp = rest[0]
                continue
        return tp, nullable


def is_model(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, BaseModel)


class ShapeBuilder:
    """Builds and caches shapes. ``name_of`` maps a model class to its registered name."""

    def __init__(self, name_of: Callable[[type], Optional[str]]):
        self._name_of = name_of
        self._cache: Dict[Any, Shape] = {}

    def clear(self) -> None:
        self._cache.clear()

    def build(self, annotation: Any) -> Shape:
        try:
            cached = self._cache.get(annotation)
        except TypeError:  # unhashable annotation metadata
            return self._build(annotation, cache=False)
        if cached is not None:
            return cached
        return self._build(annotation, cache=True)

    def _build(self, annotation: Any, *, cache: bool) -> Shape:
        tp, nullable = unwrap(annotation)
        origin = get_origin(tp)
        if tp in (list, tuple, set, frozenset) or origin in _ARRAY_ORIGINS:
            args = [a for a in get_args(tp) if a is not Ellipsis]
            shape = Shape(ARRAY, annotation, nullable=nullable)
            if cache:
                self._cache[annotation] = shape
            shape.item = self.build(args[0] if args else Any)
            return shape
        if is_model(tp):
            shape = Shape(OBJECT, annotation, name=self._name_of(tp), model=tp, nullable=nullable)
            if cache:
                self._cache[annotation] = shape
            for fname, info in tp.model_fields.items():
                shape.fields[fname] = self.build(info.annotation)
                if info.alias and info.alias != fname:
                    shape.aliases[info.alias] = fname
            return shape
        shape = Shape(SCALAR, annotation, nullable=nullable)
        if cache:
            self._cache[annotation] = shape
        return shape


_ADAPTERS: Dict[Any, TypeAdapter] = {}


def adapter_for(annotation: Any) -> TypeAdapter:
    try:
        adapter = _ADAPTERS.get(annotation)
    except TypeError:
        return TypeAdapter(annotation)
    if adapter is None:
        adapter = _ADAPTERS[annotation] = TypeAdapter(annotation)
    return adapter


def validate(value: Any, shape: Shape, *, coerce: bool = True) -> Any:
    """Validate ``value`` against ``shape``; raises ``pydantic.ValidationError``.

    With ``coerce=False`` pydantic runs in strict mode (no type conversion).
    """
    return adapter_for(shape.annotation).validate_python(value, strict=not coerce)


def dump(value: Any, shape: Shape) -> Any:
    """Plain Python data (dicts/lists) for an already validated value."""
    return adapter_for(shape.annotation).dump_python(value)


def mask(value: Any, shape: Shape, *, keep_unknown: bool = False) -> Any:
    """Copy of ``value`` stripped down to the keys declared by ``shape``.

    ``keep_unknown`` turns the strip off for undeclared keys.
    """
    if value is None:
        return None
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if shape.kind == ARRAY:
        if isinstance(value, (list, tuple)) and shape.item is not None:
            return [mask(v, shape.item, keep_unknown=keep_unknown) for v in value]
        return value
    if shape.kind == OBJECT and isinstance(value, Mapping):
        out: Dict[str, Any] = {}
        for k, v in value.items():
            sub = shape.field(k)
            if sub is not None:
                out[k] = mask(v, sub, keep_unknown=keep_unknown)
            elif keep_unknown:
                out[k] = v
        return out
    return value


__all__ = [
    'SCALAR', 'OBJECT', 'ARRAY', 'Shape', 'ShapeBuilder',
    'unwrap', 'is_model', 'adapter_for', 'validate', 'dump', 'mask',
]
