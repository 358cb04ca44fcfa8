from collections.abc import AsyncGenerator
from dataclasses import dataclass

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cardatlas.db.operations import create_card, create_card_set, create_card_type, create_rarity
from cardatlas.models.db import Base


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Catalog:
    """Ids of the seeded reference rows and cards, keyed by name."""

    unit_type_id: str
    pilot_type_id: str
    common_id: str
    rare_id: str
    set_id: str
    cards: dict[str, str]


CATALOG_CARDS = [
    # name, type, rarity, level, cost, faction, pilot, set_number
    ("Zaku II", "unit", "common", 2, 1, "Zeon", None, "GD01-001"),
    ("Zaku II Commander Type", "unit", "rare", 4, 3, "Zeon", "Char Aznable", "GD01-002"),
    ("Gundam", "unit", "rare", 5, 4, "Earth Federation", "Amuro Ray", "GD01-003"),
    ("Char Aznable", "pilot", "rare", 3, 2, "Zeon", None, "GD01-004"),
    ("GM 100% Custom", "unit", "common", 1, 1, "Earth Federation", None, "GD01-005"),
]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def catalog(session_factory: async_sessionmaker[AsyncSession]) -> Catalog:
    """Seed a small Gundam card catalog and commit it."""
    async with session_factory() as session:
        unit = await create_card_type(session, "Unit", category="Mobile Suit")
        pilot = await create_card_type(session, "Pilot")
        common = await create_rarity(session, "Common", "#cccccc")
        rare = await create_rarity(session, "Rare", "#ffcc00")
        card_set = await create_card_set(session, "Newtype Rising", "GD01")

        type_ids = {"unit": unit.id, "pilot": pilot.id}
        rarity_ids = {"common": common.id, "rare": rare.id}

        cards: dict[str, str] = {}
        for name, type_key, rarity_key, level, cost, faction, pilot_name, number in CATALOG_CARDS:
            card = await create_card(
                session,
                {
                    "name": name,
                    "type_id": type_ids[type_key],
                    "rarity_id": rarity_ids[rarity_key],
                    "set_id": card_set.id,
                    "set_number": number,
                    "level": level,
                    "cost": cost,
                    "faction": faction,
                    "pilot": pilot_name,
                },
            )
            cards[name] = card.id

        await session.commit()

    return Catalog(
        unit_type_id=unit.id,
        pilot_type_id=pilot.id,
        common_id=common.id,
        rare_id=rare.id,
        set_id=card_set.id,
        cards=cards,
    )
