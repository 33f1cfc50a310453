"""Per-request batched loaders.

Every loader is a strawberry ``DataLoader``: ``load()`` calls issued in the same
event-loop tick are coalesced into one call of the batch function with the
distinct keys, and results are cached for the loader's lifetime. Loaders are
built per request by :class:`~berryrpc.handler.RpcHandler`, so the cache never
outlives a request.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from strawberry.dataloader import DataLoader

from ..errors import ServerError
from .utils import coerce_key, maybe_await

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from ..registry import RpcSchema

logger = logging.getLogger(__name__)

Lookup = Any  # Mapping[key, value] | Callable[[list[key]], list | Mapping | Awaitable[...]]


class LoaderSet(dict):
    """Loaders of one request keyed by name; ``loaders.Team is loaders['Team']``."""

    def __getattr__(self, name: str) -> DataLoader:
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"no loader named '{name}'") from None


def _values_for(keys: Sequence[Any], found: Any, label: str) -> List[Any]:
    if isinstance(found, Mapping):
        return [found.get(k) for k in keys]
    values = list(found)
    if len(values) != len(keys):
        raise ServerError(f"Loader '{label}' returned {len(values)} values for {len(keys)} keys")
    return values


def lookup_loader(lookup: Lookup, *, name: str = 'lookup') -> DataLoader:
    """Loader over an in-memory mapping or a ``keys -> values`` function.

    The function may be sync or async and may return either a list aligned
    with the keys or a mapping from key to value (missing keys load ``None``).
    """
    if not isinstance(lookup, Mapping) and not callable(lookup):
        raise TypeError(f"lookup for '{name}' must be a mapping or a callable, got {lookup!r}")

    async def load_fn(keys: List[Any]) -> List[Any]:
        logger.debug("Batching %s: %s", name, list(keys))
        if isinstance(lookup, Mapping):
            return [lookup.get(k) for k in keys]
        found = await maybe_await(lookup(list(keys)))
        return _values_for(keys, found, name)

    return DataLoader(load_fn=load_fn)


def model_loader(
    sql_model: type,
    type_model: type,
    *,
    session: Callable[[], Any],
    lock: asyncio.Lock,
    key: str = 'id',
    name: Optional[str] = None,
) -> DataLoader:
    """Loader selecting ``sql_model`` rows by ``key`` in one ``IN`` query per batch.

    ``session()`` returns the request's ``AsyncSession`` or an
    ``async_sessionmaker``. A shared session is used under ``lock`` because an
    ``AsyncSession`` does not allow concurrent operations. Rows are converted
    through the pydantic ``type_model`` into plain dicts.
    """
    label = name or sql_model.__name__
    column = getattr(sql_model, key)

    async def load_fn(keys: List[Any]) -> List[Any]:
        logger.debug("Batching %s: %s", label, list(keys))
        wanted = [coerce_key(column, k) for k in keys]
        stmt = select(sql_model).where(column.in_(list(dict.fromkeys(wanted))))
        source = session()
        if source is None:
            raise ServerError(f"type '{label}' is backed by {sql_model.__name__} but the request context has no database session")
        if isinstance(source, AsyncSession):
            async with lock:
                rows = (await source.execute(stmt)).scalars().all()
        else:
            async with source() as fresh:
                rows = (await fresh.execute(stmt)).scalars().all()
        by_key = {getattr(row, key): row for row in rows}
        return [_row_to_plain(by_key.get(k), type_model) for k in wanted]

    return DataLoader(load_fn=load_fn)


def _row_to_plain(row: Any, type_model: type) -> Any:
    if row is None:
        return None
    return type_model.model_validate(row, from_attributes=True).model_dump()


def build_type_loaders(schema: 'RpcSchema', context: Mapping[str, Any], *, session_key: str = 'db_session') -> Dict[str, DataLoader]:
    """Default loader per registered type that declares a ``lookup`` or a SQL ``model``."""
    loaders: Dict[str, DataLoader] = {}
    lock = asyncio.Lock()
    for name, tdef in schema.types.items():
        if tdef.lookup is not None:
            loaders[name] = lookup_loader(tdef.lookup, name=name)
        elif tdef.sql_model is not None:
            loaders[name] = model_loader(
                tdef.sql_model, tdef.model,
                session=lambda: context.get(session_key),
                lock=lock, key=tdef.key, name=name,
            )
    return loaders


__all__ = ['LoaderSet', 'lookup_loader', 'model_loader', 'build_type_loaders']
