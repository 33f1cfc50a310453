from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

ResolveFn = Callable[[Any, Dict[str, Any]], Any]


@dataclass
class FieldDef:
    """Internal, normalized field description collected by the registry.

    Attributes:
        name: The attribute name on the declaring class (e.g. "team").
        kind: Currently always "relation" (a virtual field filled by a resolver).
        meta: Metadata captured from the descriptor factory. Keys interpreted by
            the registry/resolver: target, single, key, loader, resolve,
            description.
    """

    name: str
    kind: str
    meta: Dict[str, Any]

    @property
    def target(self) -> Any:
        return self.meta.get('target')

    @property
    def single(self) -> bool:
        return bool(self.meta.get('single'))

    @property
    def description(self) -> Optional[str]:
        return self.meta.get('description')

    def resolver(self) -> Optional[ResolveFn]:
        """Return the resolve callable, deriving one from ``key`` when needed."""
        fn = self.meta.get('resolve')
        if fn is not None:
            return fn
        key = self.meta.get('key')
        loader_name = self.meta.get('loader') or self.meta.get('target')
        if key is None or not isinstance(loader_name, str):
            return None
        return _key_resolver(key, loader_name, self.single)


def _key_resolver(key: str, loader_name: str, single: bool) -> ResolveFn:
    def resolve(entity: Any, context: Dict[str, Any]) -> Any:
        if isinstance(entity, Mapping):
            value = entity.get(key)
        else:
            value = getattr(entity, key, None)
        if value is None:
            return None if single else []
        return context['loaders'][loader_name].load(value)
    resolve.__name__ = f"load_{loader_name}_by_{key}"
    return resolve


class FieldDescriptor:
    """Descriptor placed on :class:`~berryrpc.registry.Relations` classes.

    Users normally build it through :func:`relation`. The registry inspects the
    descriptor and converts it to a :class:`FieldDef`. Calling the descriptor
    with a function stores that function as the resolver, so it doubles as a
    decorator.
    """

    def __init__(self, *, kind: str, **meta):
        self.kind = kind
        self.meta = dict(meta)
        self.name: str | None = None

    def __set_name__(self, owner, name):  # pragma: no cover - simple
        self.name = name

    def __call__(self, fn: ResolveFn) -> 'FieldDescriptor':
        if not callable(fn):
            raise TypeError(f"relation resolver must be callable, got {fn!r}")
        self.meta['resolve'] = fn
        if self.name is None:
            self.name = getattr(fn, '__name__', None)
        return self

    def build(self, parent_name: str) -> FieldDef:
        """Build a :class:`FieldDef` consumed by the registry.

        Args:
            parent_name: Name of the declaring class (unused; kept for symmetry
                with the registry's other builders).
        """
        return FieldDef(name=self.name or '', kind=self.kind, meta=dict(self.meta))


def relation(
    target: Any = None,
    *,
    single: bool | None = None,
    key: Optional[str] = None,
    loader: Optional[str] = None,
    resolve: Optional[ResolveFn] = None,
    **meta,
) -> FieldDescriptor:
    """Declare a resolvable (virtual) relation field.

    The field is not part of the entity's pydantic model; it is filled in only
    when a client selects it, by calling the resolver with the entity and the
    per-request context.

    Args:
        target: Related type. Either a registered type name (``'Team'``), a
            registered pydantic model class, or an inline annotation such as
            ``list[User]`` or an unregistered model.
        single: When True the relation yields at most one entity. When
            False/None it yields a list.
        key: Attribute of the entity holding the foreign key. Without an
            explicit ``resolve`` the relation then loads
            ``context['loaders'][loader or target].load(entity[key])``.
        loader: Name of the loader used by the ``key`` shortcut; defaults to
            the target type name.
        resolve: ``fn(entity, context) -> value | awaitable``.
        **meta: Extra options such as ``description``.

    Examples:
        @schema.resolvers('User')
        class UserRelations(Relations):
            team = relation('Team', single=True, key='team_id')

        @schema.resolvers('Team')
        class TeamRelations(Relations):
            @relation('User')
            def members(team, ctx):
                return ctx['loaders'].TeamMembers.load(team['id'])

    Returns:
        FieldDescriptor: A descriptor captured by the registry.
    """
    m = dict(meta)
    m['target'] = target
    if single is not None:
        m['single'] = single
    if key is not None:
        m['key'] = key
    if loader is not None:
        m['loader'] = loader
    if resolve is not None:
        m['resolve'] = resolve
    return FieldDescriptor(kind='relation', **m)
