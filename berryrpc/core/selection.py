from __future__ import annotations
from typing import Any, Dict, Mapping, Optional

from ..errors import InputError

# Leaf marker clients send for "select, no nesting".
SELECT = 1

Selection = Dict[str, 'Selection']


def normalize_selection(raw: Any, *, path: str = '') -> Selection:
    """Normalize a client field-selection tree.

    Accepted leaves are ``1``/``True`` or an empty mapping; a mapping selects the
    field and applies the nested tree to its resolved value. ``0``/``False``/
    ``None`` leave the field out. The result uses ``{}`` for every leaf, e.g.::

        normalize_selection({'team': {'leader': 1, 'members': 0}})
        # -> {'team': {'leader': {}}}

    Raises:
        InputError: for non-mapping trees, non-string keys or unsupported leaves.
    """
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        where = f" at '{path}'" if path else ''
        raise InputError(f"Invalid selection{where}: expected an object, got {type(raw).__name__}")
    out: Selection = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key:
            raise InputError(f"Invalid selection key {key!r}")
        sub_path = f"{path}.{key}" if path else key
        if isinstance(value, Mapping):
            out[key] = normalize_selection(value, path=sub_path)
        elif value is True or (type(value) is int and value == 1):
            out[key] = {}
        elif value is None or value is False or (type(value) is int and value == 0):
            continue
        else:
            raise InputError(f"Invalid selection value for '{sub_path}': {value!r}")
    return out


def selection_depth(selection: Optional[Mapping[str, Any]]) -> int:
    if not selection:
        return 0
    return 1 + max(selection_depth(sub) for sub in selection.values())


__all__ = ['SELECT', 'Selection', 'normalize_selection', 'selection_depth']
