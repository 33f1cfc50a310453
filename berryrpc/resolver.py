"""Recursive field resolution.

:class:`DataResolver` walks a result value along its declared shape and the
client's selection tree. Relation (virtual) fields are filled by calling their
resolvers with the entity and the request context, then resolved again with
the nested selection, to any depth.

All siblings at one level (selected fields of an entity, elements of a list)
are started before any of them is awaited. Resolvers calling
``context['loaders'][...].load(key)`` therefore land in the same loader batch,
so a key shared by many siblings is fetched once.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Tuple

from .core.fields import FieldDef
from .core.selection import Selection
from .core.shapes import ARRAY, OBJECT, Shape
from .core.utils import clone, maybe_await
from .errors import InputError, ServerError

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .registry import RpcSchema

logger = logging.getLogger(__name__)


def _get(item: Any, key: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


def _set(item: Any, key: str, value: Any) -> None:
    if isinstance(item, dict):
        item[key] = value
    else:
        setattr(item, key, value)


class DataResolver:
    def __init__(self, schema: 'RpcSchema', context: Dict[str, Any]):
        self.schema = schema
        self.context = context

    async def resolve(self, value: Any, shape: Shape, selection: Selection) -> Any:
        """Expand ``selection`` on ``value`` in place and return ``value``."""
        if not value or not selection:
            return value
        if shape.kind == ARRAY:
            await self.resolve_items(value, shape.item, selection)
            return value
        if shape.kind != OBJECT:
            return value
        if isinstance(value, (str, bytes, int, float, bool, list, tuple, set)):
            raise ServerError(f"expected an object for {shape!r}, got {type(value).__name__}")

        name = shape.name
        virtual = self.schema.virtual_fields(name)
        relations: Selection = {}
        declared: List[Tuple[str, Selection]] = []
        for key, sub in selection.items():
            if key in virtual:
                relations[key] = sub
            elif shape.declares(key):
                declared.append((key, sub))
            elif name and not virtual:
                raise ServerError(f"no resolver available for type '{name}'", data={'field': key})
            else:
                of_type = f" of type '{name}'" if name else ''
                raise InputError(f"Invalid field '{key}'{of_type}", data={'field': key, 'type': name})

        pending = []
        if relations:
            pending.append(self.resolve_one(value, name, relations))
        for key, sub in declared:
            pending.append(self.resolve(_get(value, key), shape.field(key), sub))
        await asyncio.gather(*pending)
        return value

    async def resolve_items(self, items: Any, item_shape: Shape, selection: Selection) -> Any:
        """Resolve every element with the same selection, all concurrently."""
        if not items:
            return items
        if not isinstance(items, list):
            raise ServerError(f"expected a list for {item_shape!r} items, got {type(items).__name__}")
        await asyncio.gather(*(self.resolve(item, item_shape, selection) for item in items))
        return items

    async def resolve_one(self, item: Any, type_name: str, selection: Selection) -> Any:
        """Fill the selected relation fields of one entity of ``type_name``.

        Every resolver is invoked with the untouched entity before any result
        is assigned; each result is then copied onto ``item`` and resolved
        against the relation's own type with its nested selection.
        """
        if not item:
            return item
        if type_name not in self.schema.types:
            raise ServerError(f"no type schema available for type '{type_name}'")
        table = self.schema.virtual_fields(type_name)
        if not table:
            raise ServerError(f"no resolver available for type '{type_name}'")
        shape = self.schema.type_shape(type_name)

        picked: List[Tuple[FieldDef, Any, Selection]] = []
        for key, sub in selection.items():
            fdef = table.get(key)
            if fdef is None and shape.declares(key):
                continue
            fn = fdef.resolver() if fdef is not None else None
            if fn is None:
                raise ServerError(f"no resolver available for field '{key}' of type '{type_name}'")
            picked.append((fdef, fn, sub))
        if not picked:
            return item

        calls = []
        try:
            for fdef, fn, _ in picked:
                calls.append(fn(item, self.context))
        except BaseException:
            for call in calls:
                if inspect.iscoroutine(call):
                    call.close()
            raise
        results = await asyncio.gather(*(maybe_await(call) for call in calls))

        for (fdef, _, _), result in zip(picked, results):
            _set(item, fdef.name, clone(result))
        await asyncio.gather(*(
            self.resolve(_get(item, fdef.name), self.schema.relation_shape(type_name, fdef.name), sub)
            for fdef, _, sub in picked
        ))
        return item


__all__ = ['DataResolver']
