"""Subscription router for new-tour announcements."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.subscription import CreateSubscriptionRequest, SubscriptionCreated
from ..services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])

SUBSCRIBED = "Вы подписались на новые туры"


@router.post("", response_model=SubscriptionCreated, status_code=201)
async def create_subscription(
    request: CreateSubscriptionRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Subscribe an email; an already subscribed email is a conflict."""
    subscription_service = SubscriptionService(db)

    try:
        subscription = await subscription_service.subscribe(request.email)
        response_data = SubscriptionCreated(
            id=subscription.id,
            email=subscription.email,
            message=SUBSCRIBED,
        )
        return JSONResponse(status_code=201, content=response_data.model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in subscription",
            extra={"error": str(e)},
            exc_info=True
        )
        raise HTTPException(
            status_code=500,
            detail="Internal server error"
        )
