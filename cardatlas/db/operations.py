"""
Database CRUD operations.

Provides async functions for the card catalog and the search event log.

Card writes change search results. Callers MUST commit and then invalidate
the search result cache; these functions only flush.
"""

from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cardatlas.models.db import CardDB, CardSetDB, CardTypeDB, RarityDB, SearchEventDB
from cardatlas.models.search import SearchContext, SearchEvent, SearchSource

# Columns a client may set on a card
CARD_FIELDS = (
    "name",
    "level",
    "cost",
    "type_id",
    "rarity_id",
    "set_id",
    "set_number",
    "pilot",
    "model",
    "faction",
    "series",
    "nation",
    "language",
    "description",
    "image_url",
    "is_foil",
    "is_promo",
    "is_alternate",
)


# --- Reference Data ---


async def create_card_type(
    session: AsyncSession, name: str, category: str | None = None
) -> CardTypeDB:
    card_type = CardTypeDB(name=name, category=category)
    session.add(card_type)
    await session.flush()
    return card_type


async def create_rarity(session: AsyncSession, name: str, color: str = "#000000") -> RarityDB:
    rarity = RarityDB(name=name, color=color)
    session.add(rarity)
    await session.flush()
    return rarity


async def create_card_set(
    session: AsyncSession, name: str, code: str, release_date: datetime | None = None
) -> CardSetDB:
    card_set = CardSetDB(name=name, code=code, release_date=release_date)
    session.add(card_set)
    await session.flush()
    return card_set


# --- Card Operations ---


async def get_card(session: AsyncSession, card_id: str) -> CardDB | None:
    """
    Get a card with its type, rarity and set loaded.

    Returns None if the card does not exist.
    """
    result = await session.execute(
        select(CardDB)
        .where(CardDB.id == card_id)
        .options(
            selectinload(CardDB.type),
            selectinload(CardDB.rarity),
            selectinload(CardDB.card_set),
        )
    )
    return result.scalar_one_or_none()


async def create_card(session: AsyncSession, data: dict[str, Any]) -> CardDB:
    """
    Create a card from a field mapping.

    Unknown keys are ignored.
    """
    card = CardDB(**{key: value for key, value in data.items() if key in CARD_FIELDS})
    session.add(card)
    await session.flush()
    # Load server-generated timestamps
    await session.refresh(card)
    return card


async def update_card(session: AsyncSession, card_id: str, data: dict[str, Any]) -> CardDB | None:
    """
    Apply a partial update to a card.

    Returns the updated card, or None if it does not exist.
    """
    card = await get_card(session, card_id)
    if card is None:
        return None

    for key, value in data.items():
        if key in CARD_FIELDS:
            setattr(card, key, value)

    await session.flush()
    return card


async def delete_card(session: AsyncSession, card_id: str) -> bool:
    """
    Delete a card.

    Returns True if deleted, False if not found.
    """
    card = await session.get(CardDB, card_id)
    if card is None:
        return False

    await session.delete(card)
    await session.flush()
    return True


def card_to_record(card: CardDB, include_relations: bool = False) -> dict[str, Any]:
    """
    Convert a card row to a JSON-safe record.

    Relations are only read when include_relations is True; they must have
    been eager-loaded.
    """
    record: dict[str, Any] = {
        "id": card.id,
        "name": card.name,
        "level": card.level,
        "cost": card.cost,
        "type_id": card.type_id,
        "rarity_id": card.rarity_id,
        "set_id": card.set_id,
        "set_number": card.set_number,
        "pilot": card.pilot,
        "model": card.model,
        "faction": card.faction,
        "series": card.series,
        "nation": card.nation,
        "language": card.language,
        "description": card.description,
        "image_url": card.image_url,
        "is_foil": card.is_foil,
        "is_promo": card.is_promo,
        "is_alternate": card.is_alternate,
        "created_at": card.created_at.isoformat() if card.created_at else None,
    }

    if include_relations:
        record["type"] = {"id": card.type.id, "name": card.type.name} if card.type else None
        record["rarity"] = (
            {"id": card.rarity.id, "name": card.rarity.name, "color": card.rarity.color}
            if card.rarity
            else None
        )
        record["set"] = (
            {"id": card.card_set.id, "name": card.card_set.name, "code": card.card_set.code}
            if card.card_set
            else None
        )

    return record


# --- Search Event Operations ---


async def add_search_event(session: AsyncSession, event: SearchEvent) -> SearchEventDB:
    """Append a search event to the log."""
    row = SearchEventDB(
        event_id=event.event_id,
        cache_key=event.cache_key,
        filters=dict(event.filters),
        options=dict(event.options),
        result_count=event.result_count,
        latency_ms=event.latency_ms,
        cache_hit=event.cache_hit,
        session_id=event.context.session_id,
        user_id=event.context.user_id,
        source=event.context.source.value,
        user_agent=event.context.user_agent,
        referer=event.context.referer,
        created_at=event.timestamp,
    )
    session.add(row)
    await session.flush()
    return row


async def get_search_events_since(
    session: AsyncSession, since: datetime, limit: int = 10_000
) -> list[SearchEventDB]:
    """Get the most recent events at or after `since`, newest first."""
    result = await session.execute(
        select(SearchEventDB)
        .where(SearchEventDB.created_at >= since)
        .order_by(SearchEventDB.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def search_event_to_model(row: SearchEventDB) -> SearchEvent:
    """Convert a database event row back to a domain event."""
    timestamp = row.created_at
    if timestamp.tzinfo is None:
        # SQLite drops the offset; everything is stored in UTC
        timestamp = timestamp.replace(tzinfo=UTC)

    try:
        source = SearchSource(row.source)
    except ValueError:
        source = SearchSource.MANUAL

    return SearchEvent(
        cache_key=row.cache_key,
        filters=MappingProxyType(dict(row.filters or {})),
        options=MappingProxyType(dict(row.options or {})),
        result_count=row.result_count,
        latency_ms=row.latency_ms,
        cache_hit=row.cache_hit,
        context=SearchContext(
            session_id=row.session_id,
            user_id=row.user_id,
            source=source,
            user_agent=row.user_agent,
            referer=row.referer,
        ),
        timestamp=timestamp,
        event_id=row.event_id,
    )
