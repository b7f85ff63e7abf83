"""
ORM models
"""
from app.models.course import Course, CourseEnrollment
from app.models.transaction import Transaction, TransactionStatus, PaymentMethod, PaymentReferenceType
from app.models.unlock_code import UnlockCode

__all__ = [
    "Course",
    "CourseEnrollment",
    "Transaction",
    "TransactionStatus",
    "PaymentMethod",
    "PaymentReferenceType",
    "UnlockCode",
]
