"""Error types raised by the RPC pipeline.

Two kinds matter to callers:

- :class:`InputError`: the request itself was invalid (unknown method, bad
  input, unknown selected field). Safe to report back with its message.
- :class:`ServerError`: the server is misconfigured or produced an invalid
  result (missing handler, missing resolver, output failing its shape).
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class RpcError(Exception):
    """Base class for errors that map onto an RPC error envelope."""

    code = 'RPC_ERROR'

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data: Dict[str, Any] = dict(data or {})

    @property
    def cause(self) -> Any:
        return self.data.get('cause')

    def to_dict(self) -> Dict[str, Any]:
        """Wire form: ``{"message", "code", "data"?}``; ``cause`` is never sent."""
        out: Dict[str, Any] = {'message': self.message, 'code': self.data.get('code') or self.code}
        extra = {k: v for k, v in self.data.items() if k not in ('cause', 'code')}
        if extra:
            out['data'] = extra
        return out

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"{type(self).__name__}({self.message!r})"


class InputError(RpcError):
    code = 'INPUT_ERROR'


class ServerError(RpcError):
    code = 'SERVER_ERROR'


class SchemaError(ServerError):
    """Registration-time configuration problem (duplicate or dangling entries)."""

    code = 'SCHEMA_ERROR'


__all__ = ['RpcError', 'InputError', 'ServerError', 'SchemaError']
