from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel, PydanticUserError

from .core import shapes
from .core.fields import FieldDef, FieldDescriptor, relation
from .core.shapes import ARRAY, OBJECT, Shape, ShapeBuilder, is_model, unwrap
from .errors import SchemaError

logger = logging.getLogger(__name__)


@dataclass
class TypeDef:
    """A named, resolvable entity type.

    Attributes:
        name: Registered type name (used as loader name and in selections' errors).
        model: pydantic model declaring the entity's fields.
        lookup: Optional mapping / ``keys -> values`` callable backing the default loader.
        sql_model: Optional SQLAlchemy model backing the default loader.
        key: Attribute identifying an entity (loader key column).
    """

    name: str
    model: Type[Any]
    lookup: Any = None
    sql_model: Optional[Type[Any]] = None
    key: str = 'id'


@dataclass
class MethodDef:
    name: str
    input: Any
    output: Any
    handler: Optional[Callable[..., Any]] = None
    description: Optional[str] = None


class RelationsMeta(type):
    def __new__(mcls, name, bases, namespace):
        fdefs: Dict[str, FieldDef] = {}
        for base in reversed(bases):
            fdefs.update(getattr(base, '__rpc_fields__', {}))
        for k, v in list(namespace.items()):
            if isinstance(v, FieldDescriptor):
                v.__set_name__(None, k)
                fdefs[k] = v.build(name)
        namespace['__rpc_fields__'] = fdefs
        return super().__new__(mcls, name, bases, namespace)


class Relations(metaclass=RelationsMeta):
    """Base class for resolver tables declared with :func:`relation` attributes."""


class RpcSchema:
    """Registry of types, relation resolvers and method contracts.

    - ``@schema.type()`` registers a pydantic model as a named type
    - ``@schema.resolvers('User')`` attaches a :class:`Relations` class as the
      type's resolver table
    - ``@schema.method('getUser', input=..., output=...)`` declares a contract
      and binds the decorated function as its handler
    """

    def __init__(self):
        self.types: Dict[str, TypeDef] = {}
        self.resolver_tables: Dict[str, Dict[str, FieldDef]] = {}
        self.methods: Dict[str, MethodDef] = {}
        self._names: Dict[type, str] = {}
        self._shapes = ShapeBuilder(self._names.get)

    # ---------- Types ----------
    def type(self, name: Optional[str] = None, *, model: Optional[Type] = None, lookup: Any = None, key: str = 'id'):
        def deco(cls):
            self.register_type(cls, name=name, model=model, lookup=lookup, key=key)
            return cls
        return deco

    def register_type(self, cls, *, name: Optional[str] = None, model: Optional[Type] = None, lookup: Any = None, key: str = 'id') -> TypeDef:
        if not is_model(cls):
            raise SchemaError(f"Type {cls!r} must be a pydantic BaseModel subclass")
        tname = name or cls.__name__
        if tname in self.types:
            raise SchemaError(f"Duplicate type registration: '{tname}'")
        if cls in self._names:
            raise SchemaError(f"Model {cls.__name__} is already registered as '{self._names[cls]}'")
        if model is not None and lookup is not None:
            raise SchemaError(f"Type '{tname}' accepts either model= or lookup=, not both")
        if model is not None and not hasattr(model, key):
            raise SchemaError(f"Type '{tname}': {model.__name__} has no key attribute '{key}'")
        tdef = TypeDef(name=tname, model=cls, lookup=lookup, sql_model=model, key=key)
        self.types[tname] = tdef
        self._names[cls] = tname
        self._shapes.clear()
        return tdef

    def type_name(self, type_ref: Any) -> str:
        if isinstance(type_ref, str):
            return type_ref
        if isinstance(type_ref, type):
            return self._names.get(type_ref, type_ref.__name__)
        raise SchemaError(f"Cannot name type reference {type_ref!r}")

    # ---------- Resolvers ----------
    def resolvers(self, type_ref: Any):
        def deco(cls):
            fdefs = getattr(cls, '__rpc_fields__', None)
            if fdefs is None:
                raise SchemaError(f"{cls.__name__} must subclass Relations")
            for fdef in fdefs.values():
                self._add_relation(type_ref, fdef)
            return cls
        return deco

    def relation(self, type_ref: Any, name: str, target: Any = None, **meta) -> FieldDef:
        """Imperative form of ``relation(...)`` inside a ``Relations`` class."""
        desc = relation(target, **meta)
        desc.name = name
        fdef = desc.build(self.type_name(type_ref))
        self._add_relation(type_ref, fdef)
        return fdef

    def _add_relation(self, type_ref: Any, fdef: FieldDef) -> None:
        tname = self.type_name(type_ref)
        if not fdef.name:
            raise SchemaError(f"Relation on '{tname}' has no name")
        table = self.resolver_tables.setdefault(tname, {})
        if fdef.name in table:
            raise SchemaError(f"Duplicate resolver registration for field '{fdef.name}' of type '{tname}'")
        if fdef.meta.get('resolve') is None and fdef.meta.get('key') is None:
            raise SchemaError(f"Relation '{tname}.{fdef.name}' needs resolve= or key=")
        table[fdef.name] = fdef

    def virtual_fields(self, type_name: Optional[str]) -> Dict[str, FieldDef]:
        if not type_name:
            return {}
        return self.resolver_tables.get(type_name, {})

    @property
    def resolvable(self) -> bool:
        """True when both a type registry and a resolver table are present."""
        return bool(self.types) and bool(self.resolver_tables)

    # ---------- Methods ----------
    def method(self, name: str, input: Any = Any, output: Any = Any, *, description: Optional[str] = None):
        """Declare a method contract; the returned decorator binds its handler."""
        if name in self.methods:
            raise SchemaError(f"Duplicate method registration: '{name}'")
        self.methods[name] = MethodDef(name=name, input=input, output=output, description=description)

        def deco(fn):
            self.bind(name, fn)
            return fn
        return deco

    def bind(self, name: str, fn: Callable[..., Any]) -> None:
        mdef = self.methods.get(name)
        if mdef is None:
            raise SchemaError(f"Cannot bind handler to unknown method '{name}'")
        if mdef.handler is not None:
            raise SchemaError(f"Method '{name}' already has a handler")
        if not callable(fn):
            raise SchemaError(f"Handler for '{name}' must be callable")
        mdef.handler = fn

    # ---------- Shapes ----------
    def shape_of(self, annotation: Any) -> Shape:
        return self._shapes.build(annotation)

    def type_shape(self, type_name: str) -> Shape:
        tdef = self.types.get(type_name)
        if tdef is None:
            raise SchemaError(f"no type schema available for type '{type_name}'")
        return self.shape_of(tdef.model)

    def relation_shape(self, type_name: str, field_name: str) -> Shape:
        fdef = self.virtual_fields(type_name).get(field_name)
        if fdef is None:
            raise SchemaError(f"no resolver available for field '{field_name}' of type '{type_name}'")
        target = fdef.target
        if isinstance(target, str):
            target = self.type_shape(target).model
        tp, _ = unwrap(target)
        if is_model(tp) and not fdef.single:
            return self.shape_of(List[target])
        return self.shape_of(target)

    # ---------- Validation ----------
    def validate(self) -> None:
        """Reject dangling registrations before serving traffic."""
        problems: List[str] = []
        for tname, table in self.resolver_tables.items():
            tdef = self.types.get(tname)
            if tdef is None:
                problems.append(f"resolvers registered for unknown type '{tname}'")
            for fname, fdef in table.items():
                target = fdef.target
                if isinstance(target, type) and target in self._names:
                    fdef.meta['target'] = target = self._names[target]
                if target is None:
                    problems.append(f"relation '{tname}.{fname}' has no target type")
                elif isinstance(target, str) and target not in self.types:
                    problems.append(f"relation '{tname}.{fname}' targets unknown type '{target}'")
                if fdef.meta.get('resolve') is None and not isinstance(fdef.meta.get('loader') or target, str):
                    problems.append(f"relation '{tname}.{fname}' uses key= without a loader name")
                declared = tdef.model.model_fields.get(fname) if tdef is not None else None
                if declared is not None and declared.is_required():
                    problems.append(f"relation '{tname}.{fname}' shadows the required field '{fname}'")
                elif declared is not None:
                    logger.debug("relation %s.%s shadows a declared field; the resolver wins", tname, fname)
        for mname, mdef in self.methods.items():
            for label, annotation in (('input', mdef.input), ('output', mdef.output)):
                try:
                    shapes.adapter_for(annotation)
                except (PydanticUserError, TypeError) as exc:
                    problems.append(f"method '{mname}' has an unusable {label} type: {exc}")
        if problems:
            raise SchemaError("Invalid schema: " + "; ".join(problems), data={'problems': problems})

    # ---------- Output ----------
    def conform(self, value: Any, shape: Shape, *, selection: Optional[Mapping[str, Any]] = None, mask: bool = True) -> Any:
        """Mask and validate ``value`` against ``shape``, keeping resolved relations.

        Declared fields are validated (and coerced) by pydantic; resolved relation
        fields are conformed against their own type. ``selection`` names the
        relations that were resolved; without it every relation key present on
        ``value`` counts as resolved. Raises ``pydantic.ValidationError``.
        """
        raw = shapes.mask(self._strip(value, shape, selection), shape, keep_unknown=not mask)
        plain = shapes.dump(shapes.validate(raw, shape, coerce=True), shape)
        return self._overlay(value, plain, shape, selection, mask)

    def _resolved(self, source: Any, shape: Shape, selection: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        virtual = self.virtual_fields(shape.name)
        if not virtual or not isinstance(source, Mapping):
            return {}
        if selection is None:
            return {k: None for k in source if k in virtual}
        return {k: sub for k, sub in selection.items() if k in virtual and k in source}

    @staticmethod
    def _nested(selection: Optional[Mapping[str, Any]], key: str) -> Optional[Mapping[str, Any]]:
        return None if selection is None else (selection.get(key) or {})

    def _strip(self, value: Any, shape: Shape, selection: Optional[Mapping[str, Any]]) -> Any:
        """Copy of ``value`` without its resolved relation keys, at every depth."""
        if isinstance(value, BaseModel):
            value = value.model_dump()
        if shape.kind == ARRAY:
            if isinstance(value, (list, tuple)) and shape.item is not None:
                return [self._strip(v, shape.item, selection) for v in value]
            return value
        if shape.kind != OBJECT or not isinstance(value, Mapping):
            return value
        resolved = self._resolved(value, shape, selection)
        out: Dict[str, Any] = {}
        for key, sub in value.items():
            if key in resolved:
                continue
            field = shape.field(key)
            out[key] = sub if field is None else self._strip(sub, field, self._nested(selection, key))
        return out

    def _overlay(self, source: Any, target: Any, shape: Shape, selection: Optional[Mapping[str, Any]], mask: bool) -> Any:
        if source is None or target is None:
            return target
        if isinstance(source, BaseModel):
            source = source.model_dump()
        if shape.kind == ARRAY:
            if isinstance(source, (list, tuple)) and isinstance(target, list) and shape.item is not None:
                return [self._overlay(s, t, shape.item, selection, mask) for s, t in zip(source, target)]
            return target
        if shape.kind != OBJECT or not isinstance(source, Mapping) or not isinstance(target, dict):
            return target
        resolved = self._resolved(source, shape, selection)
        for key, sub in source.items():
            if key in resolved:
                target[key] = None if sub is None else self.conform(
                    sub, self.relation_shape(shape.name, key), selection=resolved[key], mask=mask,
                )
            elif shape.declares(key):
                real = key if key in target else shape.aliases.get(key)
                if real in target:
                    target[real] = self._overlay(sub, target[real], shape.field(key), self._nested(selection, key), mask)
            elif not mask:
                target[key] = sub
        return target


__all__ = ['RpcSchema', 'Relations', 'TypeDef', 'MethodDef', 'relation']
