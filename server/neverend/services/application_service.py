"""Application service for booking lead intake."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.observability import metrics_collector
from ..models.application import Application
from ..models.tour import Tour
from ..schemas.application import CreateApplicationRequest

logger = logging.getLogger(__name__)


class ApplicationService:
    """Service for application-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_application(self, request: CreateApplicationRequest) -> Application:
        """
        Store a booking lead.

        A tour id that no longer matches a tour is dropped rather than
        rejected, so a visitor on a stale page still gets through.

        Args:
            request: Validated application request

        Returns:
            Created application entity
        """
        tour_id = request.tour_id
        if tour_id is not None:
            exists = await self.db.scalar(select(Tour.id).where(Tour.id == tour_id))
            if exists is None:
                logger.warning(
                    "Application references unknown tour, storing without it",
                    extra={"tour_id": tour_id}
                )
                tour_id = None

        application = Application(
            name=request.name,
            phone=request.phone,
            email=request.email,
            direction=request.direction,
            message=request.message,
            tour_id=tour_id,
        )
        self.db.add(application)
        await self.db.commit()
        await self.db.refresh(application)

        logger.info(
            "Application received",
            extra={"application_id": application.id, "tour_id": tour_id}
        )
        metrics_collector.record_application(with_tour=tour_id is not None)

        return application
