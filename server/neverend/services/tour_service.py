"""Tour service for catalog business logic operations."""

import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotFoundError
from ..core.observability import metrics_collector
from ..models.tour import Tour, TourInclusion, TourPrice, TourProgram
from ..schemas.tour import (
    CreateTourRequest,
    TourInclusionInput,
    TourPriceInput,
    TourProgramInput,
    UpdateTourRequest,
)

logger = logging.getLogger(__name__)

_NESTED_FIELDS = {"programs", "prices", "inclusions"}
_NON_NULLABLE_FIELDS = {"title", "status"}


def build_programs(items: Iterable[TourProgramInput]) -> list[TourProgram]:
    """Itinerary rows for the entries that have both a day and a text."""
    programs = []
    for item in items:
        if item.day is None or not item.programm or not item.programm.strip():
            continue
        programs.append(TourProgram(
            day=item.day,
            programm=item.programm.strip(),
            image_url=item.image_url or None,
        ))
    return programs


def build_prices(items: Iterable[TourPriceInput]) -> list[TourPrice]:
    """Price rows for the entries that carry a price; order defaults to position."""
    prices = []
    for index, item in enumerate(items):
        if item.price is None:
            continue
        prices.append(TourPrice(
            price=item.price,
            description=item.description.strip() if item.description else None,
            price_order=item.price_order if item.price_order is not None else index,
        ))
    return prices


def build_inclusions(items: Iterable[TourInclusionInput]) -> list[TourInclusion]:
    """Inclusion rows for the entries with an item and a known type."""
    inclusions = []
    for item in items:
        if not item.item or not item.item.strip():
            continue
        if item.type not in ("included", "excluded"):
            continue
        inclusions.append(TourInclusion(item=item.item.strip(), type=item.type))
    return inclusions


class TourService:
    """Service for tour-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_tours(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        location: Optional[str] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
    ) -> list[Tour]:
        """
        List tours matching the catalog filters.

        Args:
            status: Exact status match
            search: Substring matched against title, descriptions and location
            date_from: Earliest allowed start date
            date_to: Latest allowed end date
            location: Substring of the destination
            min_price: Lower bound for the legacy price
            max_price: Upper bound for the legacy price

        Returns:
            Tours ordered by start date ascending, newest first within a date
        """
        stmt = select(Tour)

        if status:
            stmt = stmt.where(Tour.status == status)
        if date_from:
            stmt = stmt.where(Tour.date_start >= date_from)
        if date_to:
            stmt = stmt.where(Tour.date_end <= date_to)
        if min_price is not None:
            stmt = stmt.where(Tour.price >= min_price)
        if max_price is not None:
            stmt = stmt.where(Tour.price <= max_price)
        if location:
            stmt = stmt.where(Tour.location.ilike(f"%{location}%"))
        if search:
            term = f"%{search}%"
            stmt = stmt.where(or_(
                Tour.title.ilike(term),
                Tour.description.ilike(term),
                Tour.short_description.ilike(term),
                Tour.location.ilike(term),
            ))

        stmt = stmt.order_by(Tour.date_start.asc(), Tour.created_at.desc())
        result = await self.db.execute(stmt)
        tours = list(result.scalars().all())

        logger.debug(
            "Tours listed",
            extra={"count": len(tours), "status": status, "search": search}
        )
        return tours

    async def get_tour_by_id(self, tour_id: int) -> Optional[Tour]:
        """
        Get tour by ID.

        Args:
            tour_id: Tour ID to search for

        Returns:
            Tour with its nested collections if found, None otherwise
        """
        stmt = (
            select(Tour)
            .where(Tour.id == tour_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_by_id_or_raise(self, tour_id: int) -> Tour:
        """
        Get tour by ID or raise NotFoundError.

        Raises:
            NotFoundError: If tour not found
        """
        tour = await self.get_tour_by_id(tour_id)
        if not tour:
            logger.warning(
                "Tour not found",
                extra={"tour_id": tour_id}
            )
            raise NotFoundError(
                resource_type="tour",
                resource_id=str(tour_id),
                detail="Тур не найден",
            )
        return tour

    async def create_tour(self, request: CreateTourRequest) -> Tour:
        """
        Create a new tour with its nested itinerary, prices and inclusions.

        Args:
            request: Tour creation request

        Returns:
            Created tour entity
        """
        fields = request.model_dump(exclude=_NESTED_FIELDS)
        fields["status"] = request.status.value
        tour = Tour(**fields)

        tour.programs = build_programs(request.programs or [])
        tour.prices = build_prices(request.prices or [])
        tour.inclusions = build_inclusions(request.inclusions or [])

        self.db.add(tour)
        await self.db.commit()

        logger.info(
            "Tour created successfully",
            extra={
                "tour_id": tour.id,
                "title": tour.title,
                "prices": len(tour.prices),
                "programs": len(tour.programs),
            }
        )
        metrics_collector.record_tour_created()

        return await self.get_tour_by_id_or_raise(tour.id)

    async def update_tour(self, tour_id: int, request: UpdateTourRequest) -> Tour:
        """
        Update a tour.

        Scalar fields change only when supplied. A supplied nested list
        replaces the stored rows; an empty list clears them.

        Raises:
            NotFoundError: If tour not found
        """
        tour = await self.get_tour_by_id_or_raise(tour_id)

        changes = request.model_dump(exclude_unset=True, exclude=_NESTED_FIELDS)
        for field, value in changes.items():
            if value is None and field in _NON_NULLABLE_FIELDS:
                continue
            if field == "status":
                value = value.value if hasattr(value, "value") else value
            setattr(tour, field, value)

        if request.programs is not None:
            tour.programs = build_programs(request.programs)
        if request.prices is not None:
            tour.prices = build_prices(request.prices)
        if request.inclusions is not None:
            tour.inclusions = build_inclusions(request.inclusions)

        await self.db.commit()

        logger.info(
            "Tour updated successfully",
            extra={"tour_id": tour_id, "fields": sorted(changes)}
        )

        return await self.get_tour_by_id_or_raise(tour_id)

    async def delete_tour(self, tour_id: int) -> None:
        """
        Delete a tour and its nested rows.

        Raises:
            NotFoundError: If tour not found
        """
        tour = await self.get_tour_by_id_or_raise(tour_id)
        await self.db.delete(tour)
        await self.db.commit()

        logger.info("Tour deleted", extra={"tour_id": tour_id})
