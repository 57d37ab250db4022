"""
Representative data for the sales store.

Creates a handful of groups and users with overlapping memberships and a
deterministic pseudo-random year of sales. Runs at startup when the store is
empty, and from the "seed" CLI command.
"""

import datetime
import logging
import random
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import Group, Sale, User, user_groups

logger = logging.getLogger(__name__)

SEED_GROUPS = ["Northeast", "Southeast", "Midwest", "West Coast", "Enterprise"]

# (name, role, indexes into SEED_GROUPS); several users sit in two groups
SEED_USERS = [
    ("Alice Johnson", "Agent", [0]),
    ("Bob Smith", "Agent", [0, 4]),
    ("Carol White", "Senior Agent", [1]),
    ("David Brown", "Agent", [1, 4]),
    ("Eve Davis", "Manager", [2]),
    ("Frank Miller", "Agent", [2]),
    ("Grace Wilson", "Senior Agent", [3, 4]),
    ("Henry Moore", "Agent", [3]),
]

SEED_YEAR = 2021


async def is_seeded(session: AsyncSession) -> bool:
    return await session.scalar(select(Sale.id).limit(1)) is not None


async def clear_store(session: AsyncSession) -> None:
    async with session.begin():
        await session.execute(delete(Sale))
        await session.execute(delete(user_groups))
        await session.execute(delete(User))
        await session.execute(delete(Group))
    logger.info("Sales store cleared.")


async def seed_database(
    session_factory: async_sessionmaker[AsyncSession],
    sales_per_user: int = 120,
    year: int = SEED_YEAR,
    random_seed: int = 42,
    force: bool = False,
) -> Optional[int]:
    """
    Populates the store with representative users, groups and sales.

    Args:
        session_factory: Session factory bound to the store engine
        sales_per_user: Number of sales generated for every seeded user
        year: Calendar year the sale timestamps fall into (UTC)
        random_seed: Seed for the generator, so repeated runs produce the same data
        force: Clear existing data first instead of skipping a seeded store

    Returns:
        Number of sales created, or None when the store was already seeded.
    """
    async with session_factory() as session:
        async with session.begin():
            seeded = await is_seeded(session)
        if seeded:
            if not force:
                logger.info("Sales store already seeded, skipping.")
                return None
            await clear_store(session)

        rng = random.Random(random_seed)
        year_start = datetime.datetime(year, 1, 1, tzinfo=datetime.timezone.utc)
        seconds_in_year = int(
            (datetime.datetime(year + 1, 1, 1, tzinfo=datetime.timezone.utc) - year_start).total_seconds()
        )

        async with session.begin():
            groups = [Group(name=name) for name in SEED_GROUPS]
            session.add_all(groups)
            sales = []
            for name, role, group_indexes in SEED_USERS:
                user = User(name=name, role=role, groups=[groups[i] for i in group_indexes])
                session.add(user)
                for _ in range(sales_per_user):
                    sales.append(
                        Sale(
                            user=user,
                            # Amounts in cents, 10.00 to 150.00
                            amount=rng.randint(10, 150) * 100,
                            date=year_start + datetime.timedelta(seconds=rng.randrange(seconds_in_year)),
                        )
                    )
            session.add_all(sales)

    logger.info("Seeded %d groups, %d users and %d sales.", len(groups), len(SEED_USERS), len(sales))
    return len(sales)
