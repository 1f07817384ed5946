"""Application router for booking lead intake."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import check_idempotency, get_idempotency_key, store_idempotent_response
from ..core.exceptions import ProblemDetailsException
from ..schemas.application import ApplicationCreated, CreateApplicationRequest
from ..services.application_service import ApplicationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/applications", tags=["applications"])

APPLICATION_ACCEPTED = "Спасибо! Ваша заявка принята, мы свяжемся с вами в ближайшее время."


@router.post("", response_model=ApplicationCreated, status_code=201)
async def create_application(
    request: CreateApplicationRequest,
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    cached_response: Optional[dict] = Depends(check_idempotency),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """
    Accept a booking lead from any of the site forms.

    Repeating the request with the same Idempotency-Key replays the first
    response instead of storing a second lead.
    """
    if cached_response:
        logger.info(
            "Application replayed from idempotency cache",
            extra={"application_id": cached_response.get("id")}
        )
        return JSONResponse(status_code=201, content=cached_response)

    application_service = ApplicationService(db)

    try:
        application = await application_service.create_application(request)

        response_data = ApplicationCreated(id=application.id, message=APPLICATION_ACCEPTED)
        content = response_data.model_dump()
        await store_idempotent_response(content, idempotency_key)

        return JSONResponse(status_code=201, content=content)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in application intake",
            extra={"tour_id": request.tour_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(
            status_code=500,
            detail="Internal server error"
        )
