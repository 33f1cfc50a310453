"""Default loaders for types backed by SQLAlchemy models (aiosqlite)."""
from typing import List, Optional

import pytest
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from berryrpc import Relations, RpcHandler, RpcSchema, ServerError, relation
from tests import models

pytestmark = pytest.mark.asyncio


class UserRecord(BaseModel):
    id: int
    name: str
    email: str
    team_id: Optional[int] = None


class TeamRecord(BaseModel):
    id: int
    name: str
    leader_id: Optional[int] = None


class GetById(BaseModel):
    id: str


def build_handler() -> RpcHandler:
    schema = RpcSchema()
    schema.register_type(UserRecord, name='User', model=models.User)
    schema.register_type(TeamRecord, name='Team', model=models.Team)

    @schema.resolvers('User')
    class UserRelations(Relations):
        team = relation('Team', single=True, key='team_id')

    @schema.resolvers('Team')
    class TeamRelations(Relations):
        leader = relation('User', single=True, key='leader_id')

    @schema.method('listUsers', output=List[UserRecord])
    async def list_users(params, ctx):
        session: AsyncSession = ctx['db_session']
        rows = (await session.execute(select(models.User).order_by(models.User.id))).scalars().all()
        return [UserRecord.model_validate(row, from_attributes=True) for row in rows]

    @schema.method('getUser', input=GetById, output=Optional[UserRecord])
    async def get_user(params, ctx):
        return await ctx['loaders'].User.load(params.input.id)

    return RpcHandler(schema)


def _selects(statements, table):
    return [s for s in statements if s.lstrip().upper().startswith('SELECT') and f'FROM {table}' in s]


async def test_relations_are_fetched_with_one_query_per_level(db_session, populated_db, sql_statements):
    handler = build_handler()
    sql_statements.clear()
    result = await handler.handle(
        {'method': 'listUsers', 'selection': {'team': {'leader': 1}}},
        {'db_session': db_session},
    )
    by_name = {u['name']: u for u in result}
    assert set(by_name) == {'Alice Johnson', 'Bob Smith', 'Charlie Brown', 'Dave NoTeam'}
    assert by_name['Alice Johnson']['team']['name'] == 'Engineering'
    assert by_name['Bob Smith']['team']['leader']['name'] == 'Alice Johnson'
    assert by_name['Charlie Brown']['team']['leader']['email'] == 'charlie@example.com'
    assert by_name['Dave NoTeam']['team'] is None
    # teams batch, plus users twice: the list itself and the leaders batch
    assert len(_selects(sql_statements, 'teams')) == 1
    assert len(_selects(sql_statements, 'users')) == 2


async def test_string_keys_are_coerced_to_column_type(db_session, populated_db):
    handler = build_handler()
    alice = populated_db['users'][0]
    result = await handler.handle(
        {'method': 'getUser', 'input': {'id': str(alice.id)}, 'selection': {'team': 1}},
        {'db_session': db_session},
    )
    assert result['id'] == alice.id
    assert result['team']['name'] == 'Engineering'


async def test_missing_row_loads_none(db_session, populated_db):
    handler = build_handler()
    result = await handler.handle({'method': 'getUser', 'input': {'id': '999'}}, {'db_session': db_session})
    assert result is None


async def test_sessionmaker_in_context(engine, populated_db):
    handler = build_handler()
    ctx = handler.create_context({'db_session': async_sessionmaker(engine, expire_on_commit=False)})
    team_id = populated_db['teams'][1].id
    team = await ctx['loaders'].Team.load(team_id)
    assert team == {'id': team_id, 'name': 'Design', 'leader_id': populated_db['users'][2].id}


async def test_missing_session_is_a_server_error():
    handler = build_handler()
    ctx = handler.create_context({})
    with pytest.raises(ServerError, match='no database session'):
        await ctx['loaders'].Team.load(1)


async def test_custom_session_key(db_session, populated_db):
    handler = build_handler()
    custom = RpcHandler(handler.schema, session_key='session')
    ctx = custom.create_context({'session': db_session})
    user = await ctx['loaders'].User.load(populated_db['users'][1].id)
    assert user['name'] == 'Bob Smith'
