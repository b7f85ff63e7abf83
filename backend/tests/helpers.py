"""
Test helpers
"""
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Transaction, UnlockCode
from app.services.code_generator import CodeGenerator


async def count_rows(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


class ScriptedGenerator(CodeGenerator):
    """Returns the given codes in order"""

    def __init__(self, codes):
        super().__init__()
        self.codes = list(codes)
        self.calls = 0

    def generate(self) -> str:
        self.calls += 1
        return self.codes.pop(0)


async def store_code(db: AsyncSession, course_id: int, plain_code: str) -> int:
    """Store an issued code (with its transaction) directly, bypassing the issuer"""
    transaction = Transaction(
        buyer_name="Existing Buyer",
        contact="9800000000",
        payment_method="cash",
        course_id=course_id,
        amount=500,
        status="completed",
        issued_by_admin_id="admin-1",
        issued_by_role="admin",
    )
    db.add(transaction)
    await db.flush()
    unlock_code = UnlockCode(
        code=plain_code,
        code_hash=CodeGenerator.hash(plain_code),
        course_id=course_id,
        issued_to="Existing Buyer",
        issued_by_admin_id="admin-1",
        issued_by_role="admin",
        is_used=False,
        expires_on=datetime.now() + timedelta(days=7),
        transaction_id=transaction.id,
    )
    db.add(unlock_code)
    await db.flush()
    transaction.unlock_code_id = unlock_code.id
    await db.commit()
    return unlock_code.id
