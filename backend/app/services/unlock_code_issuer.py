"""
Unlock code issuance

Records an offline sale and hands back exactly one unused, uniquely hashed
unlock code bound to it.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import get_settings
from app.core.database import MAX_INTEGER_ID
from app.core.exceptions import (
    ValidationError,
    NotFoundError,
    CodeGenerationExhaustedError,
    PersistenceError,
)
from app.core.security import AdminIdentity
from app.models import Course, Transaction, TransactionStatus, PaymentMethod, PaymentReferenceType, UnlockCode
from app.services.code_generator import CodeGenerator
import logging

logger = logging.getLogger(__name__)

# Transaction.amount is Numeric(12, 2)
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999.99")


@dataclass
class PurchaseClaim:
    """Raw sale details as entered by the admin"""
    buyer_name: Optional[str]
    contact: Optional[str]
    payment_method: Optional[str]
    course_id: Any
    amount: Any
    issued_by: AdminIdentity
    payment_reference_type: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class IssuedCode:
    """Result of a successful issuance. plain_code is only ever returned here."""
    transaction: Transaction
    unlock_code: UnlockCode
    plain_code: str

    @property
    def transaction_id(self) -> int:
        return self.transaction.id

    @property
    def unlock_code_id(self) -> int:
        return self.unlock_code.id

    @property
    def expires_on(self) -> datetime:
        return self.unlock_code.expires_on


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_amount(raw: Any) -> Decimal:
    """Positive, at most two decimal places, fits the amount column"""
    if isinstance(raw, bool):
        raise ValidationError("Amount must be a positive number")
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be a positive number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be a positive number")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}")
    if amount != amount.quantize(CENT):
        raise ValidationError("Amount can have at most 2 decimal places")
    return amount.quantize(CENT)


def _parse_course_id(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValidationError("Invalid course id")
    try:
        course_id = int(str(raw).strip())
    except ValueError:
        raise ValidationError("Invalid course id")
    if not 1 <= course_id <= MAX_INTEGER_ID:
        raise ValidationError("Invalid course id")
    return course_id


class UnlockCodeIssuer:
    """
    Issues unlock codes for offline sales

    The unique index on unlock_codes.code_hash is the real uniqueness
    guarantee. The lookup before insert only saves a round trip on the
    common collision case; an IntegrityError on insert counts as a
    collision too.
    """

    def __init__(
        self,
        db: AsyncSession,
        generator: CodeGenerator = None,
        validity: timedelta = None,
        max_attempts: int = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        settings = get_settings()
        self.db = db
        self.generator = generator or CodeGenerator()
        self.validity = validity if validity is not None else timedelta(days=settings.unlock_code_validity_days)
        self.max_attempts = max_attempts if max_attempts is not None else settings.unlock_code_max_attempts
        self._clock = clock

    def validate(self, claim: PurchaseClaim) -> dict:
        """Check the claim without touching storage"""
        buyer_name = _clean(claim.buyer_name)
        contact = _clean(claim.contact)
        payment_method = _clean(claim.payment_method)
        if (
            not buyer_name
            or not contact
            or not payment_method
            or claim.course_id in (None, "")
            or claim.amount in (None, "")
        ):
            raise ValidationError("Missing required fields")

        try:
            payment_method = PaymentMethod(payment_method).value
        except ValueError:
            raise ValidationError(f"Unsupported payment method: {payment_method}")

        reference_type = _clean(claim.payment_reference_type)
        if reference_type is not None:
            try:
                reference_type = PaymentReferenceType(reference_type).value
            except ValueError:
                raise ValidationError(f"Unsupported payment reference type: {reference_type}")

        return {
            "buyer_name": buyer_name,
            "contact": contact,
            "payment_method": payment_method,
            "payment_reference_type": reference_type,
            "payment_reference": _clean(claim.payment_reference),
            "course_id": _parse_course_id(claim.course_id),
            "amount": _parse_amount(claim.amount),
            "notes": _clean(claim.notes),
        }

    async def issue(self, claim: PurchaseClaim) -> IssuedCode:
        values = self.validate(claim)
        admin = claim.issued_by

        try:
            course = await self.db.get(Course, values["course_id"])
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to look up course") from e
        if course is None:
            raise NotFoundError("Course not found")

        # The admin asserts the offline payment is complete at issuance time
        transaction = Transaction(
            **values,
            status=TransactionStatus.COMPLETED.value,
            issued_by_admin_id=admin.admin_id,
            issued_by_role=admin.role,
        )
        self.db.add(transaction)
        await self._commit("Failed to save transaction")
        transaction_id = transaction.id

        unlock_code, plain_code = await self._store_unique_code(
            transaction_id=transaction_id,
            course_id=values["course_id"],
            issued_to=values["buyer_name"],
            admin=admin,
        )

        # Back-link. A failure here leaves a valid code without its reference
        # on the transaction; the reconciliation job links it later.
        unlock_code_id = unlock_code.id
        try:
            await self.db.refresh(transaction)
            transaction.unlock_code_id = unlock_code_id
            await self.db.commit()
            await self.db.refresh(transaction)
            await self.db.refresh(unlock_code)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Unlock code {unlock_code_id} stored but transaction {transaction_id} back-link failed"
            )
            raise PersistenceError("Failed to link unlock code to transaction") from e

        logger.info(
            f"Issued unlock code {unlock_code_id} for transaction {transaction_id}, "
            f"course {values['course_id']}, by {admin.role} {admin.admin_id}"
        )
        return IssuedCode(transaction=transaction, unlock_code=unlock_code, plain_code=plain_code)

    async def _store_unique_code(self, transaction_id: int, course_id: int, issued_to: str, admin: AdminIdentity):
        for attempt in range(1, self.max_attempts + 1):
            plain_code = self.generator.generate()
            code_hash = self.generator.hash(plain_code)

            if await self._hash_taken(code_hash):
                logger.warning(f"Unlock code collision on attempt {attempt} (pre-check)")
                continue

            unlock_code = UnlockCode(
                code=plain_code,
                code_hash=code_hash,
                course_id=course_id,
                issued_to=issued_to,
                issued_by_admin_id=admin.admin_id,
                issued_by_role=admin.role,
                is_used=False,
                expires_on=self._clock() + self.validity,
                transaction_id=transaction_id,
            )
            self.db.add(unlock_code)
            try:
                await self.db.commit()
            except IntegrityError:
                # Another writer stored the same hash after our pre-check
                await self.db.rollback()
                logger.warning(f"Unlock code collision on attempt {attempt} (unique index)")
                continue
            except SQLAlchemyError as e:
                await self.db.rollback()
                raise PersistenceError("Failed to save unlock code") from e
            return unlock_code, plain_code

        logger.error(
            f"Unlock code generation exhausted after {self.max_attempts} attempts "
            f"for transaction {transaction_id}"
        )
        raise CodeGenerationExhaustedError()

    async def _hash_taken(self, code_hash: str) -> bool:
        try:
            result = await self.db.execute(
                select(UnlockCode.id).where(UnlockCode.code_hash == code_hash)
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to check unlock code uniqueness") from e
        return result.scalar_one_or_none() is not None

    async def _commit(self, message: str):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(message) from e
