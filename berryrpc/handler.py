from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ValidationError

from .config import HandlerConfig
from .core import shapes
from .core.loaders import LoaderSet, build_type_loaders
from .core.selection import Selection, normalize_selection, selection_depth
from .core.utils import clone, maybe_await
from .errors import InputError, RpcError, SchemaError, ServerError
from .registry import MethodDef, RpcSchema
from .resolver import DataResolver

logger = logging.getLogger(__name__)

Context = Dict[str, Any]
ErrorCallback = Callable[[BaseException, Any, Context], Any]


@dataclass
class RpcParams:
    """What a business handler receives besides the context."""

    input: Any
    selection: Selection = field(default_factory=dict)


def describe_validation_error(exc: ValidationError, limit: int = 3) -> str:
    parts = []
    for err in exc.errors()[:limit]:
        loc = '.'.join(str(p) for p in err.get('loc', ())) or '<root>'
        parts.append(f"{loc}: {err.get('msg')}")
    more = exc.error_count() - limit
    if more > 0:
        parts.append(f"(+{more} more)")
    return '; '.join(parts)


class RpcHandler:
    """Validates, dispatches and expands RPC calls against an :class:`RpcSchema`.

    Args:
        schema: Registry with method contracts, types and relation resolvers.
            It is validated once here.
        handlers: Extra ``{method: handler}`` bindings (override schema-bound ones).
        create_loaders: ``fn(custom_context) -> {name: DataLoader}`` merged over
            the schema's default type loaders.
        create_custom_loaders: ``fn({**custom_context, 'loaders': type_loaders})``
            returning more loaders (e.g. one-to-many lookups).
        on_error: ``fn(error, payload, context)``, sync or async, told about every
            error before it is re-raised.
        config: Pipeline switches; keyword ``options`` (``validate_input=False``,
            ...) override it.
    """

    def __init__(
        self,
        schema: RpcSchema,
        *,
        handlers: Optional[Mapping[str, Callable[..., Any]]] = None,
        create_loaders: Optional[Callable[[Context], Mapping[str, Any]]] = None,
        create_custom_loaders: Optional[Callable[[Context], Mapping[str, Any]]] = None,
        on_error: Optional[ErrorCallback] = None,
        config: Optional[HandlerConfig] = None,
        **options: Any,
    ):
        self.schema = schema
        self.config = (config or HandlerConfig()).with_overrides(**options)
        self.create_loaders = create_loaders
        self.create_custom_loaders = create_custom_loaders
        self.on_error = on_error
        self._handlers: Dict[str, Callable[..., Any]] = {}
        for name, fn in (handlers or {}).items():
            if name not in schema.methods:
                raise SchemaError(f"Handler provided for unknown method '{name}'")
            if not callable(fn):
                raise SchemaError(f"Handler for '{name}' must be callable")
            self._handlers[name] = fn
        schema.validate()

    # ---------- Introspection ----------
    def get_handler(self, method: str) -> Optional[Callable[..., Any]]:
        fn = self._handlers.get(method)
        if fn is not None:
            return fn
        mdef = self.schema.methods.get(method)
        return mdef.handler if mdef is not None else None

    def methods(self) -> List[str]:
        return [name for name in self.schema.methods if self.get_handler(name) is not None]

    def get_contract(self, method: str) -> Optional[MethodDef]:
        return self.schema.methods.get(method)

    # ---------- Context ----------
    def create_context(self, custom_context: Optional[Mapping[str, Any]] = None) -> Context:
        """Fresh per-request context: the custom context plus all loaders."""
        custom = dict(custom_context or {})
        type_loaders = build_type_loaders(self.schema, custom, session_key=self.config.session_key)
        if self.create_loaders is not None:
            type_loaders.update(self.create_loaders(custom) or {})
        extra: Mapping[str, Any] = {}
        if self.create_custom_loaders is not None:
            extra = self.create_custom_loaders({**custom, 'loaders': LoaderSet(type_loaders)}) or {}
        return {**custom, 'loaders': LoaderSet({**type_loaders, **extra})}

    # ---------- Dispatch ----------
    async def handle(self, payload: Any, custom_context: Optional[Mapping[str, Any]] = None) -> Any:
        """Run one call: validate input, invoke the handler, expand, validate output."""
        context: Optional[Context] = None
        try:
            method, raw_input, raw_selection = self._parse_payload(payload)
            contract = self.schema.methods.get(method)
            if contract is None:
                raise InputError(f"Invalid method: {method}", data={'method': method})
            fn = self.get_handler(method)
            if fn is None:
                raise ServerError(f"Method not implemented: {method}", data={'method': method})

            context = self.create_context(custom_context)
            selection = normalize_selection(raw_selection)
            params = RpcParams(input=self._validate_input(contract, raw_input), selection=selection)
            result = clone(await maybe_await(fn(params, context)))
            if selection:
                result = await self._resolve(contract, result, selection, context)
            return self._validate_output(contract, result, selection)
        except Exception as exc:
            await self._report(exc, payload, context if context is not None else dict(custom_context or {}))
            raise

    async def handle_batch(self, payloads: Sequence[Any], custom_context: Optional[Mapping[str, Any]] = None) -> List[Any]:
        """Run every payload concurrently and independently.

        Returns one entry per payload, in order: the result, or the exception
        that payload raised. A failing payload never affects its siblings.
        """
        if not isinstance(payloads, (list, tuple)):
            exc = InputError("Invalid batch: expected a list of payloads")
            await self._report(exc, payloads, dict(custom_context or {}))
            raise exc
        outcomes = await asyncio.gather(
            *(self.handle(p, custom_context) for p in payloads),
            return_exceptions=True,
        )
        return list(outcomes)

    # ---------- Steps ----------
    def _parse_payload(self, payload: Any) -> Tuple[str, Any, Any]:
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(exclude_none=True)
        if not isinstance(payload, Mapping) or not payload.get('method'):
            raise InputError("Invalid payload: method is required")
        method = payload['method']
        if not isinstance(method, str):
            raise InputError("Invalid payload: method must be a string")
        raw_input = payload.get('input')
        if raw_input is None:
            raw_input = {}
        raw_selection = payload.get('selection')
        if raw_selection is None:
            raw_selection = payload.get('mappings')
        return method, raw_input, raw_selection

    def _validate_input(self, contract: MethodDef, raw_input: Any) -> Any:
        if not self.config.validate_input:
            return raw_input
        shape = self.schema.shape_of(contract.input)
        try:
            return shapes.validate(raw_input, shape, coerce=self.config.coerce_input)
        except ValidationError as exc:
            raise InputError(
                f"Input validation error: {describe_validation_error(exc)}",
                data={'cause': exc, 'errors': exc.errors(include_url=False, include_context=False)},
            ) from exc

    async def _resolve(self, contract: MethodDef, result: Any, selection: Selection, context: Context) -> Any:
        if not self.schema.resolvable:
            logger.debug("selection ignored for %s: no types or resolvers registered", contract.name)
            return result
        logger.debug("resolving %s with selection depth %d", contract.name, selection_depth(selection))
        resolver = DataResolver(self.schema, context)
        return await resolver.resolve(result, self.schema.shape_of(contract.output), selection)

    def _validate_output(self, contract: MethodDef, result: Any, selection: Selection) -> Any:
        if not self.config.validate_output:
            return result
        shape = self.schema.shape_of(contract.output)
        try:
            return self.schema.conform(result, shape, selection=selection, mask=self.config.mask_output)
        except ValidationError as exc:
            raise ServerError(
                f"Output validation error: {describe_validation_error(exc)}",
                data={'cause': exc},
            ) from exc

    async def _report(self, exc: BaseException, payload: Any, context: Context) -> None:
        method = payload.get('method') if isinstance(payload, Mapping) else None
        if isinstance(exc, InputError):
            logger.info("rpc %s rejected: %s", method, exc.message)
        elif isinstance(exc, ServerError):
            logger.error("rpc %s failed: %s", method, exc.message, exc_info=exc)
        elif not isinstance(exc, RpcError):
            logger.debug("rpc %s raised %s", method, type(exc).__name__)
        if self.on_error is None:
            return
        try:
            await maybe_await(self.on_error(exc, payload, context))
        except Exception:
            logger.exception("on_error callback failed for rpc %s", method)


__all__ = ['RpcHandler', 'RpcParams', 'describe_validation_error']
