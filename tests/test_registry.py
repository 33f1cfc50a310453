from typing import Annotated, List, Optional

import pytest
from pydantic import BaseModel, Field

from berryrpc import Relations, RpcSchema, SchemaError, relation
from berryrpc.core.shapes import ARRAY, OBJECT, SCALAR
from tests.models import User as UserRow


class Author(BaseModel):
    id: int
    name: str
    email_address: Optional[str] = Field(default=None, alias='email')


class Book(BaseModel):
    id: int
    title: str
    author_id: int


class Node(BaseModel):
    value: int
    children: List['Node'] = []


def test_type_decorator_registers_by_class_name():
    schema = RpcSchema()

    @schema.type()
    class Publisher(BaseModel):
        id: str

    assert schema.types['Publisher'].model is Publisher
    assert schema.type_name(Publisher) == 'Publisher'


def test_type_with_explicit_name_and_sql_model():
    schema = RpcSchema()
    tdef = schema.register_type(Author, name='Writer', model=UserRow)
    assert tdef.sql_model is UserRow
    assert tdef.key == 'id'
    assert schema.type_name(Author) == 'Writer'
    assert schema.shape_of(Author).name == 'Writer'


def test_type_registration_errors():
    schema = RpcSchema()
    schema.register_type(Author)
    with pytest.raises(SchemaError, match='Duplicate type'):
        schema.register_type(Book, name='Author')
    with pytest.raises(SchemaError, match='already registered'):
        schema.register_type(Author, name='Other')
    with pytest.raises(SchemaError):
        schema.register_type(dict)
    with pytest.raises(SchemaError, match='either model= or lookup='):
        schema.register_type(Book, model=UserRow, lookup={})
    with pytest.raises(SchemaError, match="no key attribute 'isbn'"):
        schema.register_type(Book, model=UserRow, key='isbn')


def test_relations_class_collects_fields_and_inherits():
    class Base(Relations):
        author = relation('Author', single=True, key='author_id')

    class BookRelations(Base):
        @relation('Author')
        def coauthors(book, ctx):
            return []

    assert set(BookRelations.__rpc_fields__) == {'author', 'coauthors'}
    assert BookRelations.__rpc_fields__['author'].single is True
    assert BookRelations.__rpc_fields__['coauthors'].single is False


def test_resolvers_decorator_and_duplicates():
    schema = RpcSchema()
    schema.register_type(Author)
    schema.register_type(Book)

    @schema.resolvers(Book)
    class BookRelations(Relations):
        author = relation(Author, single=True, key='author_id')

    assert set(schema.virtual_fields('Book')) == {'author'}
    assert schema.resolver_tables['Book']['author'].target == 'Author'
    assert schema.resolvable

    # the decorator stays usable once a table exists
    @schema.resolvers(Author)
    class AuthorRelations(Relations):
        books = relation(Book, resolve=lambda author, ctx: [])

    assert set(schema.resolver_tables) == {'Book', 'Author'}
    with pytest.raises(SchemaError, match="Duplicate resolver registration for field 'author' of type 'Book'"):
        schema.relation('Book', 'author', 'Author', key='author_id')
    with pytest.raises(SchemaError, match='needs resolve= or key='):
        schema.relation('Book', 'reviews', 'Author')
    with pytest.raises(SchemaError, match='must subclass Relations'):
        schema.resolvers('Book')(object)


def test_method_declaration_and_binding():
    schema = RpcSchema()
    schema.method('ping', output=str, description='Health check')
    with pytest.raises(SchemaError, match='Duplicate method'):
        schema.method('ping')

    def ping(params, ctx):
        return 'pong'

    schema.bind('ping', ping)
    assert schema.methods['ping'].handler is ping
    assert schema.methods['ping'].description == 'Health check'
    with pytest.raises(SchemaError, match='already has a handler'):
        schema.bind('ping', ping)
    with pytest.raises(SchemaError, match="unknown method 'pong'"):
        schema.bind('pong', ping)
    schema.method('echo')
    with pytest.raises(SchemaError, match='must be callable'):
        schema.bind('echo', 'not callable')


def test_not_resolvable_without_resolvers():
    schema = RpcSchema()
    schema.register_type(Author)
    assert not schema.resolvable


class TestValidate:
    def test_valid_schema(self):
        schema = RpcSchema()
        schema.register_type(Author, lookup={})
        schema.register_type(Book, lookup={})
        schema.relation(Book, 'author', Author, single=True, key='author_id')
        schema.method('getBook', input=Book, output=Optional[Book])
        schema.validate()
        assert schema.resolver_tables['Book']['author'].target == 'Author'

    def test_dangling_registrations_are_reported_together(self):
        schema = RpcSchema()
        schema.register_type(Book)
        schema.relation('Magazine', 'editor', 'Author', key='editor_id')
        schema.relation(Book, 'publisher', 'Publisher', key='publisher_id')
        with pytest.raises(SchemaError) as exc_info:
            schema.validate()
        problems = exc_info.value.data['problems']
        assert "resolvers registered for unknown type 'Magazine'" in problems
        assert "relation 'Magazine.editor' targets unknown type 'Author'" in problems
        assert "relation 'Book.publisher' targets unknown type 'Publisher'" in problems

    def test_key_relation_needs_a_loader_name(self):
        schema = RpcSchema()
        schema.register_type(Book)
        schema.relation(Book, 'tags', List[str], key='id')
        with pytest.raises(SchemaError, match='without a loader name'):
            schema.validate()

    def test_shadowing_a_required_field(self):
        schema = RpcSchema()
        schema.register_type(Book)
        schema.register_type(Author)
        schema.relation(Book, 'title', Author, single=True, resolve=lambda book, ctx: None)
        with pytest.raises(SchemaError, match="shadows the required field 'title'"):
            schema.validate()

    def test_unusable_method_type(self):
        class NotAType:
            pass

        schema = RpcSchema()
        schema.method('broken', output=NotAType)
        with pytest.raises(SchemaError, match="method 'broken' has an unusable output type"):
            schema.validate()


class TestShapes:
    def test_object_shape(self):
        schema = RpcSchema()
        schema.register_type(Author)
        shape = schema.shape_of(Author)
        assert shape.kind == OBJECT
        assert shape.name == 'Author'
        assert shape.field('id').kind == SCALAR
        assert shape.declares('email') and shape.field('email') is shape.fields['email_address']

    def test_array_and_optional_shapes(self):
        schema = RpcSchema()
        schema.register_type(Book)
        shape = schema.shape_of(Optional[List[Book]])
        assert shape.kind == ARRAY
        assert shape.nullable
        assert shape.item.name == 'Book'
        assert schema.shape_of(Annotated[Book, 'meta']).name == 'Book'

    def test_unregistered_model_is_anonymous(self):
        schema = RpcSchema()
        assert schema.shape_of(Book).name is None

    def test_registration_refreshes_cached_shapes(self):
        schema = RpcSchema()
        assert schema.shape_of(Book).name is None
        schema.register_type(Book)
        assert schema.shape_of(Book).name == 'Book'

    def test_recursive_models(self):
        schema = RpcSchema()
        shape = schema.shape_of(Node)
        assert shape.field('children').item is shape

    def test_relation_shapes(self):
        schema = RpcSchema()
        schema.register_type(Author)
        schema.register_type(Book)
        schema.relation(Book, 'author', 'Author', single=True, key='author_id')
        schema.relation(Author, 'books', 'Book', key='id', loader='BooksByAuthor')
        assert schema.relation_shape('Book', 'author').name == 'Author'
        books = schema.relation_shape('Author', 'books')
        assert books.kind == ARRAY and books.item.name == 'Book'
        with pytest.raises(SchemaError):
            schema.relation_shape('Book', 'isbn')
