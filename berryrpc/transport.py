"""Transport-neutral request/response envelopes.

``execute`` takes an already parsed JSON body and returns what a transport
should serialize back:

- an object ``{"method", "input", "selection"?}`` -> ``{"result": ...}`` or
  ``{"error": {"message", "code", "data"?}}``
- a list of such objects -> a list of envelopes in the same order
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import InputError, RpcError
from .handler import RpcHandler

logger = logging.getLogger(__name__)

INTERNAL_ERROR = 'INTERNAL_ERROR'

Envelope = Dict[str, Any]


def error_payload(exc: BaseException, *, expose_internal: bool = False) -> Envelope:
    """Error envelope for ``exc``; unexpected exceptions are not leaked by default."""
    if isinstance(exc, RpcError):
        return {'error': exc.to_dict()}
    message = str(exc) if expose_internal and str(exc) else 'Internal server error'
    return {'error': {'message': message, 'code': INTERNAL_ERROR}}


def envelope(outcome: Any, *, expose_internal: bool = False) -> Envelope:
    if isinstance(outcome, BaseException):
        return error_payload(outcome, expose_internal=expose_internal)
    return {'result': outcome}


async def execute(
    handler: RpcHandler,
    body: Any,
    context: Optional[Mapping[str, Any]] = None,
) -> Union[Envelope, List[Envelope]]:
    expose = handler.config.expose_internal_errors
    if isinstance(body, list):
        outcomes = await handler.handle_batch(body, context)
        for outcome in outcomes:
            _log_unexpected(outcome)
        return [envelope(o, expose_internal=expose) for o in outcomes]
    if not isinstance(body, Mapping):
        return error_payload(InputError("Invalid request: expected an object or a list of objects"))
    try:
        result = await handler.handle(body, context)
    except Exception as exc:
        _log_unexpected(exc)
        return error_payload(exc, expose_internal=expose)
    return {'result': result}


def _log_unexpected(outcome: Any) -> None:
    if isinstance(outcome, BaseException) and not isinstance(outcome, RpcError):
        logger.error("unhandled error in rpc handler", exc_info=outcome)


__all__ = ['execute', 'envelope', 'error_payload', 'INTERNAL_ERROR']
