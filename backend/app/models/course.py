"""
Course directory and enrollments

Courses are managed elsewhere; this service only reads them and bumps the
enrollment counter on redemption.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.core.database import Base


class Course(Base):
    """Course table"""
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    enrolled_count = Column(Integer, default=0, nullable=False)

    def __repr__(self):
        return f"<Course(id={self.id}, title={self.title})>"


class CourseEnrollment(Base):
    """A student's enrollment in a course"""
    __tablename__ = "course_enrollments"
    __table_args__ = (
        UniqueConstraint("course_id", "student_id", name="uq_enrollment_course_student"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    student_id = Column(String(64), nullable=False, index=True)
    progress = Column(Integer, default=0, nullable=False)
    enrolled_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<CourseEnrollment(course_id={self.course_id}, student_id={self.student_id})>"
