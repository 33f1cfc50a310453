# Core subpackage: building blocks shared by the registry, resolver and handler.
from .fields import FieldDef, FieldDescriptor, relation
from .loaders import LoaderSet, build_type_loaders, lookup_loader, model_loader
from .selection import SELECT, Selection, normalize_selection
from .shapes import ARRAY, OBJECT, SCALAR, Shape, ShapeBuilder
from .utils import clone, coerce_key, maybe_await

__all__ = [
    'FieldDef', 'FieldDescriptor', 'relation',
    'LoaderSet', 'build_type_loaders', 'lookup_loader', 'model_loader',
    'SELECT', 'Selection', 'normalize_selection',
    'ARRAY', 'OBJECT', 'SCALAR', 'Shape', 'ShapeBuilder',
    'clone', 'coerce_key', 'maybe_await',
]
