"""Tests for database CRUD operations."""

from dataclasses import replace
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from cardatlas.db.operations import (
    add_search_event,
    card_to_record,
    create_card,
    delete_card,
    get_card,
    get_search_events_since,
    search_event_to_model,
    update_card,
)
from cardatlas.models.db import SearchEventDB
from cardatlas.models.search import (
    NormalizedFilter,
    SearchContext,
    SearchEvent,
    SearchOptions,
    SearchSource,
)


class TestCardOperations:
    async def test_get_card_loads_relations(self, session: AsyncSession, catalog) -> None:
        """Type, rarity and set are available on a fetched card."""
        card = await get_card(session, catalog.cards["Gundam"])

        assert card is not None
        record = card_to_record(card, include_relations=True)
        assert record["name"] == "Gundam"
        assert record["type"]["name"] == "Unit"
        assert record["rarity"] == {"id": catalog.rare_id, "name": "Rare", "color": "#ffcc00"}
        assert record["set"]["code"] == "GD01"

    async def test_get_card_not_found(self, session: AsyncSession, catalog) -> None:
        assert await get_card(session, "missing") is None

    async def test_create_card_defaults(self, session: AsyncSession, catalog) -> None:
        card = await create_card(
            session,
            {
                "name": "Dom",
                "type_id": catalog.unit_type_id,
                "rarity_id": catalog.common_id,
                "set_id": catalog.set_id,
                "set_number": "GD01-010",
                "unknown_field": "ignored",
            },
        )

        assert card.id is not None
        assert card.language == "en"
        assert card.is_foil is False
        assert card.created_at is not None

    async def test_record_without_relations(self, session: AsyncSession, catalog) -> None:
        card = await get_card(session, catalog.cards["Zaku II"])
        assert card is not None

        record = card_to_record(card)

        assert "type" not in record
        assert record["level"] == 2
        assert isinstance(record["created_at"], str)

    async def test_update_card(self, session: AsyncSession, catalog) -> None:
        card = await update_card(session, catalog.cards["Zaku II"], {"cost": 2, "id": "hijack"})

        assert card is not None
        assert card.cost == 2
        assert card.id == catalog.cards["Zaku II"]

    async def test_update_missing_card(self, session: AsyncSession, catalog) -> None:
        assert await update_card(session, "missing", {"cost": 2}) is None

    async def test_delete_card(self, session: AsyncSession, catalog) -> None:
        card_id = catalog.cards["Char Aznable"]

        assert await delete_card(session, card_id) is True
        await session.commit()

        assert await get_card(session, card_id) is None

    async def test_delete_missing_card(self, session: AsyncSession, catalog) -> None:
        assert await delete_card(session, "missing") is False


def make_event(minutes_ago: int = 0, source: SearchSource = SearchSource.MANUAL) -> SearchEvent:
    event = SearchEvent.create(
        cache_key="b" * 32,
        filters=NormalizedFilter(faction="Zeon", level_min=2),
        options=SearchOptions(),
        result_count=4,
        latency_ms=8.0,
        cache_hit=False,
        context=SearchContext(user_id="user-1", source=source, referer="http://example.test"),
    )
    if minutes_ago:
        event = replace(event, timestamp=event.timestamp - timedelta(minutes=minutes_ago))
    return event


class TestSearchEventOperations:
    async def test_round_trip(self, session: AsyncSession) -> None:
        event = make_event(source=SearchSource.SUGGESTION)
        await add_search_event(session, event)
        await session.commit()

        rows = await get_search_events_since(session, datetime.now(UTC) - timedelta(hours=1))

        assert len(rows) == 1
        stored = search_event_to_model(rows[0])
        assert stored.event_id == event.event_id
        assert dict(stored.filters) == {"faction": "Zeon", "level_min": 2}
        assert stored.context.user_id == "user-1"
        assert stored.context.source is SearchSource.SUGGESTION
        assert stored.context.referer == "http://example.test"

    async def test_events_filtered_by_time_newest_first(self, session: AsyncSession) -> None:
        await add_search_event(session, make_event(minutes_ago=5))
        await add_search_event(session, make_event(minutes_ago=60 * 48))
        await add_search_event(session, make_event(minutes_ago=1))
        await session.commit()

        rows = await get_search_events_since(session, datetime.now(UTC) - timedelta(days=1))

        assert len(rows) == 2
        assert rows[0].created_at > rows[1].created_at

    async def test_limit(self, session: AsyncSession) -> None:
        for _ in range(3):
            await add_search_event(session, make_event())
        await session.commit()

        rows = await get_search_events_since(
            session, datetime.now(UTC) - timedelta(hours=1), limit=2
        )

        assert len(rows) == 2

    async def test_unknown_source_read_as_manual(self, session: AsyncSession) -> None:
        session.add(
            SearchEventDB(
                event_id="e" * 32,
                cache_key="c" * 32,
                filters={},
                options={},
                result_count=0,
                latency_ms=1.0,
                cache_hit=False,
                source="legacy",
                created_at=datetime.now(UTC),
            )
        )
        await session.commit()

        rows = await get_search_events_since(session, datetime.now(UTC) - timedelta(hours=1))

        assert search_event_to_model(rows[0]).context.source is SearchSource.MANUAL
