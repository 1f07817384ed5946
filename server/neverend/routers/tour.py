"""Tour router for catalog reads and admin tour management."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_current_admin
from ..core.exceptions import ProblemDetailsException
from ..schemas.tour import CreateTourRequest, Tour, TourDetail, UpdateTourRequest
from ..services.tour_service import TourService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tours", tags=["tours"])


def _internal_error(message: str, e: Exception, **context) -> HTTPException:
    logger.error(message, extra={**context, "error": str(e)}, exc_info=True)
    return HTTPException(status_code=500, detail="Internal server error")


@router.get("", response_model=list[Tour])
async def list_tours(
    status: Optional[str] = Query(None, description="Exact status, the site asks for 'active'"),
    search: Optional[str] = Query(None, description="Substring of title, descriptions or location"),
    date_from: Optional[date] = Query(None, description="Earliest start date"),
    date_to: Optional[date] = Query(None, description="Latest end date"),
    location: Optional[str] = Query(None, description="Substring of the destination"),
    min_price: Optional[int] = Query(None, ge=0),
    max_price: Optional[int] = Query(None, ge=0),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """
    List tours for the catalog.

    Ordered by start date ascending, newest first within the same date.
    Each tour carries its price options so cards can show the cheapest.
    """
    tour_service = TourService(db)

    try:
        tours = await tour_service.list_tours(
            status=status,
            search=search,
            date_from=date_from,
            date_to=date_to,
            location=location,
            min_price=min_price,
            max_price=max_price,
        )
        content = [Tour.model_validate(tour).model_dump(mode="json") for tour in tours]
        return JSONResponse(status_code=200, content=content)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error("Unexpected error listing tours", e, status=status)


@router.get("/{tour_id}", response_model=TourDetail)
async def get_tour(
    tour_id: int,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Get one tour with its itinerary, inclusions and price options."""
    tour_service = TourService(db)

    try:
        tour = await tour_service.get_tour_by_id_or_raise(tour_id)
        response_data = TourDetail.model_validate(tour)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error("Unexpected error reading tour", e, tour_id=tour_id)


@router.post("", response_model=TourDetail, status_code=201)
async def create_tour(
    request: CreateTourRequest,
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Create a tour from the admin panel."""
    tour_service = TourService(db)

    try:
        tour = await tour_service.create_tour(request)
        response_data = TourDetail.model_validate(tour)

        logger.info(
            "Tour created from admin panel",
            extra={"tour_id": tour.id, "admin": admin["username"]}
        )

        return JSONResponse(status_code=201, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error("Unexpected error in tour creation", e, title=request.title)


@router.put("/{tour_id}", response_model=TourDetail)
async def update_tour(
    tour_id: int,
    request: UpdateTourRequest,
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Update a tour; supplied nested lists replace the stored ones."""
    tour_service = TourService(db)

    try:
        tour = await tour_service.update_tour(tour_id, request)
        response_data = TourDetail.model_validate(tour)

        logger.info(
            "Tour updated from admin panel",
            extra={"tour_id": tour_id, "admin": admin["username"]}
        )

        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error("Unexpected error in tour update", e, tour_id=tour_id)


@router.delete("/{tour_id}", status_code=204)
async def delete_tour(
    tour_id: int,
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
) -> Response:
    """Delete a tour together with its nested rows."""
    tour_service = TourService(db)

    try:
        await tour_service.delete_tour(tour_id)

        logger.info(
            "Tour deleted from admin panel",
            extra={"tour_id": tour_id, "admin": admin["username"]}
        )

        return Response(status_code=204)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error("Unexpected error in tour deletion", e, tour_id=tour_id)
