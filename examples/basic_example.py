"""
Basic example of using BerryRPC with in-memory data.

This example demonstrates:
- Registering pydantic models as named types backed by a lookup
- Declaring relations that clients expand on demand
- Calling methods with a selection tree
- Batching: a team shared by several users is fetched once
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel
from strawberry.dataloader import DataLoader

from berryrpc import InputError, Relations, RpcHandler, RpcSchema, relation


USERS = {
    "1": {"id": "1", "name": "Alice", "team_id": "team1", "created_at": datetime(2024, 1, 1)},
    "2": {"id": "2", "name": "Bob", "team_id": "team1", "created_at": datetime(2024, 1, 2)},
    "3": {"id": "3", "name": "Charlie", "team_id": "team2", "created_at": datetime(2024, 1, 3)},
}

TEAMS = {
    "team1": {"id": "team1", "name": "Engineering", "leader_id": "1", "created_at": datetime(2023, 6, 1)},
    "team2": {"id": "team2", "name": "Design", "leader_id": "3", "created_at": datetime(2023, 7, 1)},
}


# Types
class User(BaseModel):
    id: str
    name: str
    team_id: Optional[str] = None
    created_at: datetime


class Team(BaseModel):
    id: str
    name: str
    leader_id: Optional[str] = None
    created_at: datetime


class GetUser(BaseModel):
    id: str


async def fetch_teams(keys):
    print(f"  fetching teams {keys}")
    return {k: TEAMS[k] for k in keys if k in TEAMS}


schema = RpcSchema()
schema.register_type(User, lookup=USERS)
schema.register_type(Team, lookup=fetch_teams)


@schema.resolvers(User)
class UserRelations(Relations):
    team = relation("Team", single=True, key="team_id")


@schema.resolvers(Team)
class TeamRelations(Relations):
    leader = relation("User", single=True, key="leader_id")

    @relation("User")
    def members(team, ctx):
        return ctx["loaders"].TeamMembers.load(team["id"])


def create_custom_loaders(context):
    async def load_members(team_ids):
        return [[u for u in USERS.values() if u["team_id"] == tid] for tid in team_ids]

    return {"TeamMembers": DataLoader(load_fn=load_members)}


# Methods
@schema.method("getUser", input=GetUser, output=User, description="Fetch one user")
async def get_user(params, ctx):
    return await ctx["loaders"].User.load(params.input.id)


@schema.method("getUsers", output=List[User], description="List all users")
def get_users(params, ctx):
    return list(USERS.values())


rpc = RpcHandler(schema, create_custom_loaders=create_custom_loaders)


async def main():
    print("getUser without selection:")
    print(" ", await rpc.handle({"method": "getUser", "input": {"id": "1"}}))

    print("getUsers with team, leader and members:")
    users = await rpc.handle({
        "method": "getUsers",
        "input": {},
        "selection": {"team": {"leader": 1, "members": 1}},
    })
    for user in users:
        team = user["team"]
        print(f"  {user['name']}: {team['name']} led by {team['leader']['name']}, "
              f"{len(team['members'])} members")

    print("batch with a failing call:")
    results = await rpc.handle_batch([
        {"method": "getUser", "input": {"id": "2"}, "selection": {"team": 1}},
        {"method": "getUser", "input": {"id": "1"}, "selection": {"salary": 1}},
    ])
    for outcome in results:
        if isinstance(outcome, InputError):
            print(f"  error: {outcome.message}")
        else:
            print(f"  {outcome['name']} -> {outcome['team']['name']}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
