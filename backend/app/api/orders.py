"""
Orders & payments admin API
Offline sales, unlock code issuance and listings
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from pydantic import BaseModel
from typing import Optional, Union
from datetime import datetime
import math
from app.core.database import get_db, MAX_INTEGER_ID
from app.core.exceptions import (
    ValidationError,
    NotFoundError,
    CodeGenerationExhaustedError,
    PersistenceError,
)
from app.core.security import AdminIdentity, get_current_admin
from app.models import Transaction, UnlockCode
from app.services.unlock_code_issuer import UnlockCodeIssuer, PurchaseClaim
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders-payments", tags=["Orders & Payments"])


class CreateTransactionRequest(BaseModel):
    """Offline sale request body. Checked by the issuer, not here."""
    buyer_name: Optional[str] = None
    contact: Optional[str] = None
    payment_method: Optional[str] = None
    payment_reference_type: Optional[str] = None
    payment_reference: Optional[str] = None
    course_id: Optional[Union[int, str]] = None
    amount: Optional[Union[float, str]] = None
    notes: Optional[str] = None


class IssuedCodeData(BaseModel):
    transaction_id: int
    unlock_code_id: int
    plain_code: str
    expires_on: datetime
    transaction: dict
    message: str


class CreateTransactionResponse(BaseModel):
    success: bool
    data: IssuedCodeData


@router.post("/transaction", response_model=CreateTransactionResponse)
async def create_offline_transaction(
    request: CreateTransactionRequest,
    admin: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Record an offline sale and generate its unlock code

    The plain code is returned once; the admin relays it to the buyer.
    """
    claim = PurchaseClaim(
        buyer_name=request.buyer_name,
        contact=request.contact,
        payment_method=request.payment_method,
        payment_reference_type=request.payment_reference_type,
        payment_reference=request.payment_reference,
        course_id=request.course_id,
        amount=request.amount,
        notes=request.notes,
        issued_by=admin,
    )

    try:
        issued = await UnlockCodeIssuer(db).issue(claim)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except CodeGenerationExhaustedError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    except PersistenceError as e:
        logger.exception("Error creating offline transaction")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    return CreateTransactionResponse(
        success=True,
        data=IssuedCodeData(
            transaction_id=issued.transaction_id,
            unlock_code_id=issued.unlock_code_id,
            plain_code=issued.plain_code,
            expires_on=issued.expires_on,
            transaction=issued.transaction.to_dict(),
            message=f"Transaction created and code generated: {issued.plain_code}",
        ),
    )


def _page_bounds(page: int, limit: int):
    """page is at least 1, limit is clamped to 1..100"""
    limit = min(100, max(1, limit))
    page = min(max(1, page), MAX_INTEGER_ID // limit)
    return page, limit, (page - 1) * limit


def _pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit),
    }


@router.get("/transactions")
async def list_transactions(
    page: int = Query(1),
    limit: int = Query(50),
    _: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Offline transactions, newest first, paginated"""
    page, limit, skip = _page_bounds(page, limit)

    result = await db.execute(
        select(Transaction)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .offset(skip)
        .limit(limit)
    )
    transactions = result.scalars().all()
    total = (await db.execute(select(func.count(Transaction.id)))).scalar_one()

    return {
        "success": True,
        "data": [t.to_dict() for t in transactions],
        "pagination": _pagination(page, limit, total),
    }


@router.get("/transactions/{transaction_id}")
async def get_transaction(
    transaction_id: int = Path(..., ge=1, le=MAX_INTEGER_ID),
    _: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Single transaction"""
    transaction = await db.get(Transaction, transaction_id)
    if not transaction:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transaction not found"
        )
    return {"success": True, "data": transaction.to_dict()}


@router.get("/codes")
async def list_unlock_codes(
    page: int = Query(1),
    limit: int = Query(50),
    _: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Unlock codes with their transactions, newest first, paginated"""
    page, limit, skip = _page_bounds(page, limit)

    result = await db.execute(
        select(UnlockCode)
        .order_by(UnlockCode.created_at.desc(), UnlockCode.id.desc())
        .offset(skip)
        .limit(limit)
    )
    codes = result.scalars().all()
    total = (await db.execute(select(func.count(UnlockCode.id)))).scalar_one()

    transaction_ids = {code.transaction_id for code in codes if code.transaction_id is not None}
    transactions = {}
    if transaction_ids:
        result = await db.execute(select(Transaction).where(Transaction.id.in_(transaction_ids)))
        transactions = {t.id: t.to_dict() for t in result.scalars().all()}

    data = []
    for code in codes:
        item = code.to_dict()
        item["transaction"] = transactions.get(code.transaction_id)
        data.append(item)

    return {
        "success": True,
        "data": data,
        "pagination": _pagination(page, limit, total),
    }


@router.get("/codes/{code_id}")
async def get_unlock_code(
    code_id: int = Path(..., ge=1, le=MAX_INTEGER_ID),
    _: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Single unlock code with its transaction"""
    unlock_code = await db.get(UnlockCode, code_id)
    if not unlock_code:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Code not found"
        )

    transaction = await db.get(Transaction, unlock_code.transaction_id)
    data = unlock_code.to_dict()
    data["transaction"] = transaction.to_dict() if transaction else None
    return {"success": True, "data": data}
