# coursehub/models/school_class.py
"""
Courses, classes, enrolments and waiting lists.

A class belongs to a course and is taught by one teacher. Its roster is
the set of ClassEnrollment rows; students that could not get a seat wait
in WaitlistEntry rows until auto-enrollment promotes them.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import WaitlistStatus
from ..database import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(26), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SchoolClass(Base):
    __tablename__ = "classes"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(26), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(String(26), ForeignKey("courses.id"), nullable=True)
    teacher_id = Column(String(26), ForeignKey("teachers.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    max_students = Column(Integer, nullable=False, default=20)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    course = relationship("Course")
    teacher = relationship("Teacher")
    enrollments = relationship("ClassEnrollment", back_populates="school_class", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        if self.course is not None:
            return f"{self.course.name} - {self.name}"
        return self.name


class ClassEnrollment(Base):
    __tablename__ = "class_enrollments"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    class_id = Column(String(26), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String(26), ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    enrolled_at = Column(DateTime(timezone=True), server_default=func.now())

    school_class = relationship("SchoolClass", back_populates="enrollments")
    student = relationship("Student")

    __table_args__ = (UniqueConstraint("class_id", "student_id", name="uq_class_enrollment_student"),)


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(26), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    class_id = Column(String(26), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String(26), ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default=WaitlistStatus.WAITING.value, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    promoted_at = Column(DateTime(timezone=True), nullable=True)

    student = relationship("Student")
