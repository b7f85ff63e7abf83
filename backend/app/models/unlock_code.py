"""
Unlock code model
Single-use redemption token for a course purchase
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
from app.core.database import Base


class UnlockCode(Base):
    """Unlock code table"""
    __tablename__ = "unlock_codes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Plain code, kept so the issuing admin can show or resend it
    code = Column(String(16), nullable=False)

    # SHA-256 of the code; the only value matched against user input
    code_hash = Column(String(64), unique=True, index=True, nullable=False)

    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    issued_to = Column(String(200), nullable=False)
    issued_by_admin_id = Column(String(64), nullable=False)
    issued_by_role = Column(String(32), nullable=False)

    # Redemption audit fields
    is_used = Column(Boolean, default=False, nullable=False)
    used_by_user_id = Column(String(64), nullable=True)
    used_device_hash = Column(String(64), nullable=True)
    used_at = Column(DateTime, nullable=True)

    expires_on = Column(DateTime, nullable=False)

    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False, index=True)

    created_at = Column(DateTime, server_default=func.now())

    def is_expired(self, now) -> bool:
        return self.expires_on is not None and self.expires_on < now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "code_hash": self.code_hash,
            "course_id": self.course_id,
            "issued_to": self.issued_to,
            "issued_by_admin_id": self.issued_by_admin_id,
            "issued_by_role": self.issued_by_role,
            "is_used": self.is_used,
            "used_by_user_id": self.used_by_user_id,
            "used_device_hash": self.used_device_hash,
            "used_at": self.used_at,
            "expires_on": self.expires_on,
            "created_at": self.created_at,
            "transaction_id": self.transaction_id,
        }

    def __repr__(self):
        return f"<UnlockCode(id={self.id}, is_used={self.is_used})>"
