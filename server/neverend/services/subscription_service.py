"""Subscription service for new-tour announcements."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConflictError
from ..core.observability import metrics_collector
from ..models.subscription import Subscription

logger = logging.getLogger(__name__)

ALREADY_SUBSCRIBED = "Этот email уже подписан на новые туры"


class SubscriptionService:
    """Service for subscription-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> Optional[Subscription]:
        stmt = select(Subscription).where(Subscription.email == email)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def subscribe(self, email: str) -> Subscription:
        """
        Subscribe an email to new-tour announcements.

        Args:
            email: Normalized email address

        Returns:
            Created subscription entity

        Raises:
            ConflictError: If the email is already subscribed
        """
        existing = await self.get_by_email(email)
        if existing:
            logger.info(
                "Subscription rejected - email already subscribed",
                extra={"subscription_id": existing.id}
            )
            raise ConflictError(detail=ALREADY_SUBSCRIBED)

        subscription = Subscription(email=email)
        try:
            self.db.add(subscription)
            await self.db.commit()
            await self.db.refresh(subscription)
        except IntegrityError as e:
            # Lost a race with a concurrent request for the same email
            await self.db.rollback()
            logger.warning(
                "Subscription failed due to integrity constraint",
                extra={"error": str(e)}
            )
            raise ConflictError(detail=ALREADY_SUBSCRIBED)

        logger.info("Subscription created", extra={"subscription_id": subscription.id})
        metrics_collector.record_subscription()

        return subscription
