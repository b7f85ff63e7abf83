"""
Offline payment transactions
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, ForeignKey
from sqlalchemy.sql import func
from app.core.database import Base
import enum


class PaymentMethod(str, enum.Enum):
    PERSONAL_WALLET_TRANSFER = "personal-wallet-transfer"
    BANK_TRANSFER = "bank-transfer"
    CASH = "cash"
    OTHER = "other"


class PaymentReferenceType(str, enum.Enum):
    TRANSACTION_ID = "transaction-id"
    SCREENSHOT = "screenshot"


class TransactionStatus(str, enum.Enum):
    """Transaction status"""
    PENDING_CODE_REDEMPTION = "pending-code-redemption"  # reserved for deferred payment methods
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Transaction(Base):
    """Offline payment claim recorded by an admin"""
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    buyer_name = Column(String(200), nullable=False)
    contact = Column(String(100), nullable=False)

    payment_method = Column(String(32), nullable=False)
    payment_reference_type = Column(String(32), nullable=True)
    payment_reference = Column(String(255), nullable=True)

    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    notes = Column(Text, nullable=True)

    status = Column(String(32), default=TransactionStatus.COMPLETED.value, nullable=False)

    # Issuer identity as supplied by admin auth
    issued_by_admin_id = Column(String(64), nullable=False)
    issued_by_role = Column(String(32), nullable=False)

    # Back-link to the issued code, filled in after the code is stored
    unlock_code_id = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "buyer_name": self.buyer_name,
            "contact": self.contact,
            "payment_reference_type": self.payment_reference_type,
            "payment_reference": self.payment_reference,
            "payment_method": self.payment_method,
            "course_id": self.course_id,
            "amount": float(self.amount) if self.amount is not None else None,
            "notes": self.notes,
            "status": self.status,
            "issued_by_admin_id": self.issued_by_admin_id,
            "issued_by_role": self.issued_by_role,
            "unlock_code_id": self.unlock_code_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self):
        return f"<Transaction(id={self.id}, status={self.status})>"
