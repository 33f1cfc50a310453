from __future__ import annotations
import copy
import dataclasses
import inspect
from datetime import datetime
from typing import Any, Mapping

from pydantic import BaseModel
from sqlalchemy.sql.sqltypes import Boolean, DateTime, Float, Integer, Numeric


def clone(value: Any) -> Any:
    """Deep, independent copy of a result graph as plain data.

    Pydantic models and dataclasses become dicts; mappings become dicts; lists,
    tuples and sets become lists. Anything else is deep-copied.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, BaseModel):
        return clone(value.model_dump())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return clone(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {k: clone(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [clone(v) for v in value]
    return copy.deepcopy(value)


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def coerce_key(col, val):
    """Coerce a loader key to the python type of a SQLAlchemy column.

    Keys arriving over the wire are usually strings; an Integer primary key
    needs ``"1" -> 1`` for both the IN clause and the result lookup. Values
    that cannot be converted are returned unchanged.
    """
    ctype = getattr(col, 'type', None)
    if ctype is None or not isinstance(val, str):
        return val
    try:
        if isinstance(ctype, Integer):
            return int(val)
        if isinstance(ctype, (Numeric, Float)):
            return float(val)
        if isinstance(ctype, Boolean):
            lv = val.strip().lower()
            if lv in ('true', 't', '1', 'yes', 'y'):
                return True
            if lv in ('false', 'f', '0', 'no', 'n'):
                return False
            return val
        if isinstance(ctype, DateTime):
            dv = datetime.fromisoformat(val.replace('Z', '+00:00'))
            if getattr(ctype, 'timezone', False) is False and dv.tzinfo is not None:
                dv = dv.replace(tzinfo=None)
            return dv
    except ValueError:
        return val
    return val
