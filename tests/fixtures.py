"""Database fixtures for BerryRPC tests (shared)."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Team, User


async def seed_populated_db(session: AsyncSession):
    """Create two teams and four users; Dave has no team."""
    engineering = Team(name="Engineering")
    design = Team(name="Design")
    session.add_all([engineering, design])
    await session.flush()
    users = [
        User(name="Alice Johnson", email="alice@example.com", team_id=engineering.id),
        User(name="Bob Smith", email="bob@example.com", team_id=engineering.id),
        User(name="Charlie Brown", email="charlie@example.com", team_id=design.id),
        User(name="Dave NoTeam", email="dave@example.com", team_id=None),
    ]
    session.add_all(users)
    await session.flush()
    engineering.leader_id = users[0].id
    design.leader_id = users[2].id
    await session.commit()
    return {'teams': [engineering, design], 'users': users}


@pytest.fixture(scope="function")
async def populated_db(db_session: AsyncSession):
    return await seed_populated_db(db_session)
