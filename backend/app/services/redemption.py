"""
Unlock code redemption
A student trades a code for an enrollment, exactly once
"""
from datetime import datetime
from typing import Any, Callable
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.database import MAX_INTEGER_ID
from app.core.exceptions import (
    ValidationError,
    NotFoundError,
    CodeAlreadyUsedError,
    CodeExpiredError,
    AlreadyEnrolledError,
    PersistenceError,
)
from app.models import Course, CourseEnrollment, UnlockCode
from app.services.code_generator import CodeGenerator
import logging

logger = logging.getLogger(__name__)


def hash_device(device_id: str) -> str:
    return CodeGenerator.hash(device_id.strip())


async def redeem_unlock_code(
    db: AsyncSession,
    code: str,
    course_id: Any,
    user_id: str,
    device_id: str = None,
    clock: Callable[[], datetime] = datetime.now,
) -> CourseEnrollment:
    """
    Redeem a code for the given course

    1. Look the code up by hash (never by plaintext) within the course
    2. Reject used or expired codes, and students already enrolled
    3. Flip is_used with a conditional update so concurrent redeemers
       cannot both win
    4. Enroll the student and bump the course counter
    """
    code = (code or "").strip()
    user_id = (user_id or "").strip()
    if not code or course_id in (None, "") or not user_id:
        raise ValidationError("Code, course ID, and user authentication required")
    try:
        course_id = int(course_id)
    except (TypeError, ValueError):
        raise ValidationError("Invalid course id")
    if not 1 <= course_id <= MAX_INTEGER_ID:
        raise ValidationError("Invalid course id")

    code_hash = CodeGenerator.hash(CodeGenerator.normalize(code))
    now = clock()

    try:
        result = await db.execute(
            select(UnlockCode).where(
                UnlockCode.code_hash == code_hash,
                UnlockCode.course_id == course_id,
            ).execution_options(populate_existing=True)
        )
        unlock_code = result.scalar_one_or_none()

        if not unlock_code:
            raise NotFoundError("Invalid code or code doesn't match this course")
        if unlock_code.is_used:
            raise CodeAlreadyUsedError()
        if unlock_code.is_expired(now):
            raise CodeExpiredError()

        result = await db.execute(
            select(CourseEnrollment.id).where(
                CourseEnrollment.course_id == course_id,
                CourseEnrollment.student_id == user_id,
            )
        )
        if result.scalar_one_or_none() is not None:
            raise AlreadyEnrolledError()

        result = await db.execute(
            update(UnlockCode)
            .where(UnlockCode.id == unlock_code.id, UnlockCode.is_used.is_(False))
            .values(
                is_used=True,
                used_by_user_id=user_id,
                used_device_hash=hash_device(device_id) if device_id else None,
                used_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise CodeAlreadyUsedError()

        enrollment = CourseEnrollment(course_id=course_id, student_id=user_id, progress=0)
        db.add(enrollment)
        await db.execute(
            update(Course)
            .where(Course.id == course_id)
            .values(enrolled_count=Course.enrolled_count + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        await db.refresh(enrollment)
    except IntegrityError:
        # Enrollment unique constraint: enrolled concurrently
        await db.rollback()
        raise AlreadyEnrolledError()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to redeem unlock code") from e

    logger.info(f"Unlock code {unlock_code.id} redeemed by user {user_id} for course {course_id}")
    return enrollment
