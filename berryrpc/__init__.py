"""BerryRPC: RPC dispatch with client-selected relation expansion.

Public API:
- RpcSchema, Relations, relation
- RpcHandler, RpcParams, HandlerConfig
- DataResolver
- InputError, ServerError, SchemaError, RpcError
- execute (transport envelopes), SELECT
"""
from .config import HandlerConfig
from .core.fields import relation
from .core.loaders import LoaderSet
from .core.selection import SELECT, normalize_selection
from .errors import InputError, RpcError, SchemaError, ServerError
from .handler import RpcHandler, RpcParams
from .registry import Relations, RpcSchema
from .resolver import DataResolver
from .transport import execute

__all__ = [
    'RpcSchema', 'Relations', 'relation',
    'RpcHandler', 'RpcParams', 'HandlerConfig',
    'DataResolver', 'LoaderSet',
    'InputError', 'ServerError', 'SchemaError', 'RpcError',
    'execute', 'SELECT', 'normalize_selection',
]
