"""
Module: stock_kernel.selectors.stocktaking_selector
Responsibility: Read-only queries for the stocktaking screens: the session
    list with aggregate figures, the filtered line list of one session and
    counting progress.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A session of another tenant is invisible: list queries return
      nothing and get_session() returns None.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select

from stock_kernel.domain.dtos import (
    ProgressInfo,
    SessionOverview,
    StocktakingLineInfo,
    StocktakingSessionInfo,
)
from stock_kernel.domain.units import pieces_to_packages
from stock_kernel.models.catalog import Item
from stock_kernel.models.stocktaking import (
    StocktakingLine,
    StocktakingSession,
    StocktakingStatus,
)
from stock_kernel.selectors.base import BaseSelector


class LineFilter(str, Enum):
    """Line list filter of the counting screen."""

    ALL = "all"
    COUNTED = "counted"
    UNCOUNTED = "uncounted"
    DIFFERENCE = "difference"


_counted = StocktakingLine.counted_quantity.is_not(None)
_has_difference = and_(
    _counted,
    StocktakingLine.counted_quantity != StocktakingLine.expected_quantity,
)


class StocktakingSelector(BaseSelector):
    """Stocktaking sessions and lines of one tenant."""

    def _line_figures(self):
        """Per-session line count, counted count and absolute difference."""
        return (
            select(
                StocktakingLine.session_id.label("session_id"),
                func.count(StocktakingLine.id).label("total_lines"),
                func.count(StocktakingLine.counted_quantity).label("counted_lines"),
                func.coalesce(
                    func.sum(
                        case(
                            (
                                _counted,
                                func.abs(
                                    StocktakingLine.counted_quantity
                                    - StocktakingLine.expected_quantity
                                ),
                            ),
                            else_=0,
                        )
                    ),
                    0,
                ).label("total_difference"),
            )
            .group_by(StocktakingLine.session_id)
            .subquery()
        )

    def get_session(self, tenant_id: UUID, session_id: UUID) -> StocktakingSessionInfo | None:
        stocktaking = self.session.get(StocktakingSession, session_id)
        if stocktaking is None or stocktaking.tenant_id != tenant_id:
            return None
        line_count = self.session.execute(
            select(func.count(StocktakingLine.id))
            .where(StocktakingLine.session_id == session_id)
        ).scalar_one()
        return StocktakingSessionInfo.from_model(stocktaking, line_count=line_count)

    def list_sessions(
        self,
        tenant_id: UUID,
        status: StocktakingStatus | str | None = None,
        location_id: UUID | None = None,
    ) -> list[SessionOverview]:
        """Sessions newest first, each with its line figures."""
        figures = self._line_figures()
        stmt = (
            select(
                StocktakingSession,
                func.coalesce(figures.c.total_lines, 0),
                func.coalesce(figures.c.counted_lines, 0),
                func.coalesce(figures.c.total_difference, 0),
            )
            .outerjoin(figures, figures.c.session_id == StocktakingSession.id)
            .where(StocktakingSession.tenant_id == tenant_id)
            .order_by(StocktakingSession.number.desc())
        )
        if status is not None:
            stmt = stmt.where(StocktakingSession.status == StocktakingStatus(status).value)
        if location_id is not None:
            stmt = stmt.where(StocktakingSession.location_id == location_id)

        return [
            SessionOverview(
                session=StocktakingSessionInfo.from_model(stocktaking, line_count=int(total)),
                total_lines=int(total),
                counted_lines=int(counted),
                total_absolute_difference=int(difference),
            )
            for stocktaking, total, counted, difference in self.session.execute(stmt)
        ]

    def list_lines(
        self,
        tenant_id: UUID,
        session_id: UUID,
        line_filter: LineFilter | str = LineFilter.ALL,
        search: str | None = None,
    ) -> list[StocktakingLineInfo]:
        """
        Lines of a session ordered by item name.

        ``search`` matches item name or code, case-insensitively.
        """
        stmt = (
            select(StocktakingLine, Item)
            .join(Item, Item.id == StocktakingLine.item_id)
            .join(StocktakingSession, StocktakingSession.id == StocktakingLine.session_id)
            .where(StocktakingLine.session_id == session_id)
            .where(StocktakingSession.tenant_id == tenant_id)
            .order_by(Item.name, Item.code)
        )

        line_filter = LineFilter(line_filter)
        if line_filter is LineFilter.COUNTED:
            stmt = stmt.where(_counted)
        elif line_filter is LineFilter.UNCOUNTED:
            stmt = stmt.where(StocktakingLine.counted_quantity.is_(None))
        elif line_filter is LineFilter.DIFFERENCE:
            stmt = stmt.where(_has_difference)

        if search:
            term = search.strip()
            stmt = stmt.where(
                or_(
                    Item.name.icontains(term, autoescape=True),
                    Item.code.icontains(term, autoescape=True),
                )
            )

        return [
            StocktakingLineInfo.from_model(
                line,
                item_code=item.code,
                item_name=item.name,
                unit=item.unit,
                counted_packages=(
                    pieces_to_packages(line.counted_quantity, item.pieces_per_package)
                    if line.counted_quantity is not None
                    else None
                ),
            )
            for line, item in self.session.execute(stmt)
        ]

    def progress(self, tenant_id: UUID, session_id: UUID) -> ProgressInfo:
        """Counting progress; all zeros for an unknown session."""
        total, counted, with_difference = self.session.execute(
            select(
                func.count(StocktakingLine.id),
                func.count(StocktakingLine.counted_quantity),
                func.coalesce(func.sum(case((_has_difference, 1), else_=0)), 0),
            )
            .join(StocktakingSession, StocktakingSession.id == StocktakingLine.session_id)
            .where(StocktakingLine.session_id == session_id)
            .where(StocktakingSession.tenant_id == tenant_id)
        ).one()
        return ProgressInfo(
            total=int(total),
            counted=int(counted),
            with_difference=int(with_difference),
        )
