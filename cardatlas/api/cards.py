"""
Card API endpoints.

Card search (cached, with analytics) and the card write endpoints that
invalidate the search cache.

INVARIANT: Every card write commits first, then clears the search cache.
"""

import logging
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cardatlas.api.dependencies import get_search_cache, get_search_service
from cardatlas.db import card_to_record, create_card, delete_card, get_card, update_card
from cardatlas.db.database import get_session
from cardatlas.models.search import SearchContext, SearchSource
from cardatlas.search.cache import SearchResultCache
from cardatlas.search.service import CardSearchService, SearchOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cards", tags=["cards"])


class CardSearchRequest(BaseModel):
    """Request body for card search. Unrecognized keys are ignored."""

    filters: dict[str, Any] = Field(
        default_factory=dict,
        examples=[{"search": "Zaku", "faction": "Zeon", "levelMin": 2, "levelMax": 5}],
    )
    options: dict[str, Any] = Field(
        default_factory=dict,
        examples=[{"page": 1, "limit": 20, "sortBy": "level", "sortOrder": "asc"}],
    )


class SearchMeta(BaseModel):
    """How a search result was produced."""

    model_config = ConfigDict(populate_by_name=True)

    has_filters: bool = Field(serialization_alias="hasFilters")
    applied_filters: dict[str, Any] = Field(serialization_alias="appliedFilters")
    search_options: dict[str, Any] = Field(serialization_alias="searchOptions")
    cache_hit: bool = Field(serialization_alias="cacheHit")
    latency_ms: float = Field(serialization_alias="latencyMs")
    timestamp: datetime


class CardSearchResponse(BaseModel):
    """One page of card search results."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20
    total_pages: int = Field(default=0, serialization_alias="totalPages")
    search_meta: SearchMeta | None = Field(default=None, serialization_alias="searchMeta")


class CardCreateRequest(BaseModel):
    """Fields for a new card."""

    name: str = Field(..., min_length=1, max_length=255)
    type_id: str
    rarity_id: str
    set_id: str
    set_number: str = Field(..., min_length=1, max_length=20)
    level: int | None = Field(default=None, ge=0)
    cost: int | None = Field(default=None, ge=0)
    pilot: str | None = None
    model: str | None = None
    faction: str | None = None
    series: str | None = None
    nation: str | None = None
    language: str = "en"
    description: str | None = None
    image_url: str | None = None
    is_foil: bool = False
    is_promo: bool = False
    is_alternate: bool = False


class CardUpdateRequest(BaseModel):
    """Partial card update. Only provided fields change."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    type_id: str | None = None
    rarity_id: str | None = None
    set_id: str | None = None
    set_number: str | None = Field(default=None, min_length=1, max_length=20)
    level: int | None = Field(default=None, ge=0)
    cost: int | None = Field(default=None, ge=0)
    pilot: str | None = None
    model: str | None = None
    faction: str | None = None
    series: str | None = None
    nation: str | None = None
    language: str | None = None
    description: str | None = None
    image_url: str | None = None
    is_foil: bool | None = None
    is_promo: bool | None = None
    is_alternate: bool | None = None


class CardResponse(BaseModel):
    card: dict[str, Any]


class CardDeleteResponse(BaseModel):
    card_id: str
    deleted: bool


def _search_context(request: Request) -> SearchContext:
    """Build analytics context from request headers."""
    try:
        source = SearchSource(request.headers.get("x-search-source", "manual").lower())
    except ValueError:
        source = SearchSource.MANUAL

    return SearchContext(
        session_id=request.headers.get("x-session-id"),
        user_id=request.headers.get("x-user-id"),
        source=source,
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
    )


def _to_response(outcome: SearchOutcome) -> CardSearchResponse:
    page = outcome.page
    applied = outcome.filters.as_dict()
    return CardSearchResponse(
        items=[dict(item) for item in page.items],
        total=page.total,
        page=page.page,
        limit=page.limit,
        total_pages=page.total_pages,
        search_meta=SearchMeta(
            has_filters=bool(applied),
            applied_filters=applied,
            search_options=outcome.options.as_dict(),
            cache_hit=outcome.cache_hit,
            latency_ms=round(outcome.latency_ms, 3),
            timestamp=datetime.now(UTC),
        ),
    )


async def _invalidate_after_commit(session: AsyncSession, cache: SearchResultCache) -> None:
    await session.commit()
    cache.invalidate_all()


@router.post("/search", response_model=CardSearchResponse)
async def search_cards(
    body: CardSearchRequest,
    request: Request,
    service: Annotated[CardSearchService, Depends(get_search_service)],
) -> CardSearchResponse:
    """
    Search cards with filters, sorting and pagination.

    Malformed or unknown filters are ignored and out-of-range options are
    clamped. Returns 503 if the card store is unavailable.
    """
    outcome = await service.search_with_outcome(
        body.filters, body.options, _search_context(request)
    )
    return _to_response(outcome)


@router.get("/search", response_model=CardSearchResponse)
async def search_cards_by_query(
    request: Request,
    service: Annotated[CardSearchService, Depends(get_search_service)],
) -> CardSearchResponse:
    """
    Search cards using query parameters.

    Example: /cards/search?search=Zaku&sortBy=level&sortOrder=asc&page=1&limit=20
    """
    params = dict(request.query_params)
    outcome = await service.search_with_outcome(params, params, _search_context(request))
    return _to_response(outcome)


@router.get("/{card_id}", response_model=CardResponse)
async def get_card_by_id(
    card_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CardResponse:
    """Get a single card with its type, rarity and set."""
    card = await get_card(session, card_id)
    if card is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Card '{card_id}' not found",
        )
    return CardResponse(card=card_to_record(card, include_relations=True))


@router.post("", response_model=CardResponse, status_code=status.HTTP_201_CREATED)
async def create_new_card(
    request: CardCreateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[SearchResultCache, Depends(get_search_cache)],
) -> CardResponse:
    """Create a card. Clears cached search results."""
    try:
        card = await create_card(session, request.model_dump())
        record = card_to_record(card)
        await _invalidate_after_commit(session, cache)
    except IntegrityError as e:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Card references an unknown type, rarity or set",
        ) from e

    logger.info("CARD_CREATED", extra={"card_id": record["id"]})
    return CardResponse(card=record)


@router.put("/{card_id}", response_model=CardResponse)
async def update_existing_card(
    card_id: str,
    request: CardUpdateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[SearchResultCache, Depends(get_search_cache)],
) -> CardResponse:
    """Update a card. Clears cached search results."""
    changes = request.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )

    try:
        card = await update_card(session, card_id, changes)
        if card is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Card '{card_id}' not found",
            )
        record = card_to_record(card)
        await _invalidate_after_commit(session, cache)
    except IntegrityError as e:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Card references an unknown type, rarity or set",
        ) from e

    logger.info("CARD_UPDATED", extra={"card_id": card_id, "fields": sorted(changes)})
    return CardResponse(card=record)


@router.delete("/{card_id}", response_model=CardDeleteResponse)
async def delete_existing_card(
    card_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[SearchResultCache, Depends(get_search_cache)],
) -> CardDeleteResponse:
    """Delete a card. Clears cached search results."""
    deleted = await delete_card(session, card_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Card '{card_id}' not found",
        )

    await _invalidate_after_commit(session, cache)
    logger.info("CARD_DELETED", extra={"card_id": card_id})
    return CardDeleteResponse(card_id=card_id, deleted=True)
