"""
SQLAlchemy ORM models for persistent storage.

Card catalog tables (types, rarities, sets, cards) and the search
analytics event log.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CardTypeDB(Base):
    """A card type (Unit, Pilot, Command, Base, ...)."""

    __tablename__ = "card_types"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<CardTypeDB(id={self.id}, name={self.name})>"


class RarityDB(Base):
    """A card rarity with its display color."""

    __tablename__ = "rarities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    color: Mapped[str] = mapped_column(String(20), default="#000000")

    def __repr__(self) -> str:
        return f"<RarityDB(id={self.id}, name={self.name})>"


class CardSetDB(Base):
    """A released card set."""

    __tablename__ = "sets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255))
    code: Mapped[str] = mapped_column(String(20), unique=True)
    release_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<CardSetDB(code={self.code})>"


class CardDB(Base):
    """
    A card in the catalog.

    Every column referenced by the search planner is indexed or cheap to scan.
    """

    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), index=True)
    level: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    cost: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    type_id: Mapped[str] = mapped_column(String(36), ForeignKey("card_types.id"), index=True)
    rarity_id: Mapped[str] = mapped_column(String(36), ForeignKey("rarities.id"), index=True)
    set_id: Mapped[str] = mapped_column(String(36), ForeignKey("sets.id"), index=True)
    set_number: Mapped[str] = mapped_column(String(20))

    # Gundam-specific attributes
    pilot: Mapped[str | None] = mapped_column(String(255), nullable=True)
    model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    faction: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    series: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    nation: Mapped[str | None] = mapped_column(String(100), nullable=True)
    language: Mapped[str] = mapped_column(String(10), default="en")

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_foil: Mapped[bool] = mapped_column(Boolean, default=False)
    is_promo: Mapped[bool] = mapped_column(Boolean, default=False)
    is_alternate: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    type: Mapped["CardTypeDB"] = relationship()
    rarity: Mapped["RarityDB"] = relationship()
    card_set: Mapped["CardSetDB"] = relationship()

    def __repr__(self) -> str:
        return f"<CardDB(id={self.id}, name={self.name})>"


class SearchEventDB(Base):
    """
    One recorded card search.

    Append-only. Written by the analytics recorder, read by the analytics API.
    """

    __tablename__ = "search_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(32), unique=True)
    cache_key: Mapped[str] = mapped_column(String(64), index=True)

    filters: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    options: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    result_count: Mapped[int] = mapped_column(Integer)
    latency_ms: Mapped[float] = mapped_column(Float)
    cache_hit: Mapped[bool] = mapped_column(Boolean, index=True)

    session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    source: Mapped[str] = mapped_column(String(20), default="manual")
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referer: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    def __repr__(self) -> str:
        return f"<SearchEventDB(event_id={self.event_id}, cache_hit={self.cache_hit})>"
