"""
Unlock code redemption API
Used by the student app
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from typing import Optional, Union
from app.core.database import get_db
from app.core.exceptions import (
    ValidationError,
    NotFoundError,
    CodeAlreadyUsedError,
    CodeExpiredError,
    AlreadyEnrolledError,
    PersistenceError,
)
from app.core.security import verify_rate_limiter
from app.services.redemption import redeem_unlock_code
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/code", tags=["Unlock codes"])


class RedeemCodeRequest(BaseModel):
    """Redeem request body"""
    code: Optional[str] = None
    course_id: Optional[Union[int, str]] = None
    user_id: Optional[str] = None
    device_id: Optional[str] = None


class RedeemCodeResponse(BaseModel):
    """Redeem response body"""
    success: bool
    message: str
    enrollment_id: int
    course_id: int


@router.post("/redeem", response_model=RedeemCodeResponse)
async def redeem_code(
    request: RedeemCodeRequest,
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(verify_rate_limiter)
):
    """
    Redeem an unlock code

    The code is single use: once redeemed, any further attempt is
    rejected regardless of device.
    """
    try:
        enrollment = await redeem_unlock_code(
            db,
            code=request.code,
            course_id=request.course_id,
            user_id=request.user_id,
            device_id=request.device_id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except (ValidationError, CodeAlreadyUsedError, CodeExpiredError, AlreadyEnrolledError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except PersistenceError as e:
        logger.exception("Error redeeming unlock code")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    return RedeemCodeResponse(
        success=True,
        message="Code redeemed successfully. You are now enrolled in the course.",
        enrollment_id=enrollment.id,
        course_id=enrollment.course_id,
    )
