"""
SQL execution of search query plans.

Compiles an abstract QueryPlan into SQLAlchemy expressions. Every value is
a bound parameter; LIKE wildcards in user text are escaped.
"""

import logging
from typing import Any

from sqlalchemy import Select, and_, false, func, select, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute, selectinload

from cardatlas.db.operations import card_to_record
from cardatlas.models.db import CardDB
from cardatlas.models.failure import DataAccessError
from cardatlas.models.search import SortOrder
from cardatlas.search.planner import CardField, Condition, Operator, QueryPlan, QueryResult

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"

COLUMNS: dict[CardField, InstrumentedAttribute[Any]] = {
    CardField.ID: CardDB.id,
    CardField.NAME: CardDB.name,
    CardField.PILOT: CardDB.pilot,
    CardField.MODEL: CardDB.model,
    CardField.TYPE_ID: CardDB.type_id,
    CardField.RARITY_ID: CardDB.rarity_id,
    CardField.SET_ID: CardDB.set_id,
    CardField.FACTION: CardDB.faction,
    CardField.SERIES: CardDB.series,
    CardField.NATION: CardDB.nation,
    CardField.LANGUAGE: CardDB.language,
    CardField.LEVEL: CardDB.level,
    CardField.COST: CardDB.cost,
    CardField.IS_FOIL: CardDB.is_foil,
    CardField.IS_PROMO: CardDB.is_promo,
    CardField.IS_ALTERNATE: CardDB.is_alternate,
    CardField.SET_NUMBER: CardDB.set_number,
    CardField.CREATED_AT: CardDB.created_at,
}


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user text only ever matches literally."""
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def compile_condition(condition: Condition) -> Any:
    """Translate one planner condition into a SQLAlchemy expression."""
    column = COLUMNS[condition.field]

    if condition.op is Operator.EQ:
        return column == condition.value
    if condition.op is Operator.CONTAINS:
        return column.ilike(f"%{escape_like(str(condition.value))}%", escape=LIKE_ESCAPE)
    if condition.op is Operator.GTE:
        return column >= condition.value
    if condition.op is Operator.LTE:
        return column <= condition.value

    raise ValueError(f"Unsupported operator: {condition.op}")


def compile_where(plan: QueryPlan) -> Any:
    if plan.matches_nothing:
        return false()
    if not plan.predicate:
        return true()
    return and_(*(compile_condition(condition) for condition in plan.predicate))


def build_select(plan: QueryPlan) -> Select[tuple[CardDB]]:
    """Build the page query for a plan."""
    ordering = []
    for term in plan.order_by:
        column = COLUMNS[term.field]
        ordering.append(column.desc() if term.order is SortOrder.DESC else column.asc())

    stmt = (
        select(CardDB)
        .where(compile_where(plan))
        .order_by(*ordering)
        .offset(plan.skip)
        .limit(plan.take)
    )

    if plan.include_relations:
        stmt = stmt.options(
            selectinload(CardDB.type),
            selectinload(CardDB.rarity),
            selectinload(CardDB.card_set),
        )

    return stmt


def build_count(plan: QueryPlan) -> Select[tuple[int]]:
    return select(func.count()).select_from(CardDB).where(compile_where(plan))


class SqlCardQueryExecutor:
    """
    Runs query plans against the card tables.

    Database errors are reported as DataAccessError so callers never see
    driver exceptions.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def execute(self, plan: QueryPlan) -> QueryResult:
        try:
            total = (await self.session.execute(build_count(plan))).scalar_one()
            rows = (await self.session.execute(build_select(plan))).scalars().all()
        except SQLAlchemyError as e:
            logger.warning(
                "SEARCH_DATA_ACCESS_FAILED",
                extra={"error_type": type(e).__name__},
            )
            raise DataAccessError("search", detail=type(e).__name__) from e

        records = [card_to_record(card, plan.include_relations) for card in rows]
        return QueryResult(records=records, total=int(total))
